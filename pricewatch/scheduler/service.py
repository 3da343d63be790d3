"""MonitorService — owns the price monitor and its background jobs."""

from __future__ import annotations

import asyncio
import datetime

import structlog

from pricewatch.core.config import Settings
from pricewatch.core.types import utc_now
from pricewatch.monitor.digest import DailyDigest
from pricewatch.monitor.dispatcher import AlertDispatcher
from pricewatch.monitor.health import HealthChecker
from pricewatch.monitor.maintenance import MaintenanceJob
from pricewatch.scheduler.jobs import DailyJob, IntervalJob, Job
from pricewatch.scheduler.orchestrator import PriceMonitor
from pricewatch.source.client import PriceSource
from pricewatch.store.base import Repository

logger = structlog.stdlib.get_logger()


class MonitorService:
    """Runs the price-check cycle, daily digest, health check and maintenance.

    Usage::

        service = create_service(settings)
        await service.start()
        # ...
        await service.stop()
        await service.close()
    """

    def __init__(
        self,
        settings: Settings,
        *,
        source: PriceSource,
        repository: Repository,
        dispatcher: AlertDispatcher,
        monitor: PriceMonitor,
        digest: DailyDigest,
        health: HealthChecker,
        maintenance: MaintenanceJob,
    ) -> None:
        self._settings = settings
        self._source = source
        self._repo = repository
        self._dispatcher = dispatcher
        self._monitor = monitor
        self._digest = digest
        self._health = health
        self._maintenance = maintenance
        self._running = False
        self._started_at: datetime.datetime | None = None

        schedule = settings.schedule
        tz = settings.monitor.timezone
        self._jobs: dict[str, Job] = {
            "price_check": IntervalJob(
                "price_check", monitor.run_cycle,
                interval_secs=settings.monitor.cycle_interval_secs,
            ),
            "health_check": IntervalJob(
                "health_check", health.check,
                interval_secs=schedule.health_interval_secs,
            ),
            "daily_digest": DailyJob(
                "daily_digest", digest.run, hour=schedule.digest_hour, timezone=tz,
            ),
            "maintenance": DailyJob(
                "maintenance", maintenance.run, hour=schedule.maintenance_hour, timezone=tz,
            ),
        }

    @property
    def running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> dict[str, Job]:
        return self._jobs

    @property
    def monitor(self) -> PriceMonitor:
        return self._monitor

    @property
    def digest(self) -> DailyDigest:
        return self._digest

    @property
    def health(self) -> HealthChecker:
        return self._health

    @property
    def maintenance(self) -> MaintenanceJob:
        return self._maintenance

    async def connect(self) -> None:
        await self._source.connect()

    async def start(self) -> None:
        if self._running:
            return
        await self.connect()
        for job in self._jobs.values():
            await job.start()
        self._running = True
        self._started_at = utc_now()
        logger.info("service_started", jobs=list(self._jobs))

    async def stop(self) -> None:
        """Stop all jobs, letting in-flight runs finish within the grace period."""
        if not self._running:
            return
        self._running = False
        grace = self._settings.monitor.shutdown_grace_secs
        await asyncio.gather(*(job.stop(grace_secs=grace) for job in self._jobs.values()))
        logger.info("service_stopped")

    async def restart(self) -> None:
        await self.stop()
        await self.start()

    async def close(self) -> None:
        """Release the source, channel and store connections."""
        await self.stop()
        await self._dispatcher.close()
        await self._source.close()
        await self._repo.close()

    def status(self) -> dict[str, object]:
        last_health = self._health.last
        return {
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "timezone": self._settings.monitor.timezone,
            "jobs": {name: job.status() for name, job in self._jobs.items()},
            "monitor": self._monitor.stats,
            "health": (
                {**last_health.model_dump(mode="json"), "healthy": last_health.healthy}
                if last_health else None
            ),
        }
