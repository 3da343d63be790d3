"""Health check over the store, the upstream API and the email channel."""

from __future__ import annotations

import datetime

import structlog

from pricewatch.core.types import HealthStatus, utc_now
from pricewatch.monitor.channels import EmailChannel
from pricewatch.source.client import PriceSource
from pricewatch.store.base import Repository

logger = structlog.get_logger(__name__)


class HealthChecker:
    def __init__(
        self,
        repository: Repository,
        source: PriceSource,
        channel: EmailChannel,
    ) -> None:
        self._repo = repository
        self._source = source
        self._channel = channel
        self._last: HealthStatus | None = None

    @property
    def last(self) -> HealthStatus | None:
        return self._last

    async def check(self, now: datetime.datetime | None = None) -> HealthStatus:
        """Check every collaborator.  Logs only when something is down."""
        status = HealthStatus(checked_at=now or utc_now())

        try:
            status.database = await self._repo.ping()
            if status.database:
                status.active_watch_items = len(await self._repo.list_active_watch_items())
        except Exception:
            logger.exception("health_check_error", component="database")
            status.database = False

        try:
            status.upstream = await self._source.ping()
        except Exception:
            logger.exception("health_check_error", component="upstream")

        try:
            status.email = await self._channel.ping()
        except Exception:
            logger.exception("health_check_error", component="email")

        if not status.healthy:
            logger.warning(
                "health_check_failed",
                database=status.database,
                upstream=status.upstream,
                email=status.email,
                active_watch_items=status.active_watch_items,
            )
        self._last = status
        return status
