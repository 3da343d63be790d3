"""NotificationThrottle — per-user sliding-window alert cap."""

from __future__ import annotations

import contextlib
import datetime

from pricewatch.core.config import AlertsConfig, get_settings
from pricewatch.core.locks import KeyedLock
from pricewatch.core.types import Alert, NotificationLedgerEntry, utc_now
from pricewatch.store.base import Repository


class NotificationThrottle:
    """Caps notifications per user over a trailing window.

    The count comes from ledger rows, so the window slides: an entry stops
    counting exactly ``throttle_window_hours`` after it was written, not at
    midnight.  Callers that check and then record must hold
    :meth:`user_lock` across both steps::

        async with throttle.user_lock(alert.user_id):
            if await throttle.may_notify(alert.user_id):
                ...send...
                await throttle.record(alert, success=True)
    """

    def __init__(
        self,
        repository: Repository,
        config: AlertsConfig | None = None,
    ) -> None:
        self._repo = repository
        self._config = config or get_settings().alerts
        self._locks = KeyedLock()

    @property
    def max_per_window(self) -> int:
        return self._config.max_alerts_per_user

    @property
    def window(self) -> datetime.timedelta:
        return datetime.timedelta(hours=self._config.throttle_window_hours)

    def user_lock(self, user_id: str) -> contextlib.AbstractAsyncContextManager[None]:
        return self._locks.hold(user_id)

    @property
    def locked_users(self) -> int:
        """Users with a lock held or awaited right now."""
        return len(self._locks)

    async def sent_in_window(
        self,
        user_id: str,
        now: datetime.datetime | None = None,
    ) -> int:
        since = (now or utc_now()) - self.window
        return await self._repo.count_recent_notifications(user_id, since)

    async def may_notify(self, user_id: str, now: datetime.datetime | None = None) -> bool:
        return await self.sent_in_window(user_id, now) < self.max_per_window

    async def record(
        self,
        alert: Alert,
        success: bool,
        now: datetime.datetime | None = None,
    ) -> NotificationLedgerEntry:
        """Write the ledger row for one dispatch attempt."""
        entry = NotificationLedgerEntry(
            user_id=alert.user_id,
            alert_type=alert.alert_type,
            alert_id=alert.id,
            watch_item_id=alert.watch_item_id,
            success=success,
            created_at=now or utc_now(),
        )
        await self._repo.insert_notification(entry)
        return entry
