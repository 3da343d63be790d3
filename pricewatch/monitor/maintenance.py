"""Nightly maintenance — retention pruning and watch item expiry."""

from __future__ import annotations

import datetime
from collections.abc import Awaitable, Callable

import structlog

from pricewatch.core.clock import local_today
from pricewatch.core.config import RetentionConfig
from pricewatch.core.types import MaintenanceReport, utc_now
from pricewatch.store.base import Repository
from pricewatch.store.exceptions import PersistenceError
from pricewatch.store.history import HistoryStore
from pricewatch.store.registry import WatchRegistry

logger = structlog.get_logger(__name__)


class MaintenanceJob:
    """Each step runs independently; one failing step does not stop the rest."""

    def __init__(
        self,
        repository: Repository,
        history: HistoryStore,
        registry: WatchRegistry,
        retention: RetentionConfig | None = None,
        timezone: str = "Asia/Tokyo",
    ) -> None:
        self._repo = repository
        self._history = history
        self._registry = registry
        self._retention = retention or RetentionConfig()
        self._timezone = timezone

    async def run(self, now: datetime.datetime | None = None) -> MaintenanceReport:
        now = now or utc_now()
        report = MaintenanceReport()

        def days_ago(days: int) -> datetime.datetime:
            return now - datetime.timedelta(days=days)

        report.observations_pruned = await self._step(
            report, "observations", lambda: self._history.prune(now),
        )
        report.notifications_pruned = await self._step(
            report,
            "notifications",
            lambda: self._repo.prune_notifications(days_ago(self._retention.notification_days)),
        )
        report.alerts_pruned = await self._step(
            report,
            "alerts",
            lambda: self._repo.prune_alerts(days_ago(self._retention.alert_days)),
        )
        report.queue_entries_pruned = await self._step(
            report,
            "queue",
            lambda: self._repo.prune_queue(days_ago(self._retention.queue_days)),
        )
        report.watch_items_deactivated = await self._step(
            report,
            "watch_items",
            lambda: self._registry.expire(local_today(self._timezone, now)),
        )

        logger.info("maintenance_completed", **report.model_dump())
        return report

    async def _step(
        self,
        report: MaintenanceReport,
        name: str,
        fn: Callable[[], Awaitable[int]],
    ) -> int:
        try:
            return await fn()
        except PersistenceError as exc:
            logger.warning("maintenance_step_failed", step=name, error=str(exc))
            report.errors.append(f"{name}: {exc}")
            return 0
