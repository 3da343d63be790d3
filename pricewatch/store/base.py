"""Repository interface over the watch registry, history and ledger tables."""

from __future__ import annotations

import abc
import datetime

from pricewatch.core.types import (
    Alert,
    DeliveryStatus,
    MonitorQueueEntry,
    NotificationLedgerEntry,
    Observation,
    StayKey,
    WatchItem,
)


class Repository(abc.ABC):
    """Typed read/write operations the engine needs from its store.

    Implementations raise :class:`~pricewatch.store.exceptions.PersistenceError`
    when the backend fails.
    """

    # ── Watch items ─────────────────────────────────────────────

    @abc.abstractmethod
    async def list_active_watch_items(self) -> list[WatchItem]:
        """All watch items with ``is_active = True``."""

    @abc.abstractmethod
    async def get_watch_item(self, item_id: str) -> WatchItem | None: ...

    @abc.abstractmethod
    async def find_watch_item(self, user_id: str, key: StayKey) -> WatchItem | None:
        """The active item for (user, key), if any."""

    @abc.abstractmethod
    async def upsert_watch_item(self, item: WatchItem) -> WatchItem: ...

    @abc.abstractmethod
    async def deactivate_watch_item(self, item_id: str) -> bool: ...

    @abc.abstractmethod
    async def deactivate_watch_items_before(self, day: datetime.date) -> int:
        """Deactivate active items whose check-in is on or before *day*."""

    @abc.abstractmethod
    async def touch_watch_item(
        self,
        item_id: str,
        checked_at: datetime.datetime,
        alerts_sent: int = 0,
    ) -> None:
        """Set ``last_checked_at`` and add *alerts_sent* to ``alert_count``."""

    # ── Observations ────────────────────────────────────────────

    @abc.abstractmethod
    async def insert_observation(self, observation: Observation) -> bool:
        """Append; return False if (key, observed_at) already exists."""

    @abc.abstractmethod
    async def latest_observation(
        self,
        key: StayKey,
        before: datetime.datetime | None = None,
    ) -> Observation | None:
        """Most recent observation for *key*, strictly before *before* if given."""

    @abc.abstractmethod
    async def list_observations(
        self,
        key: StayKey,
        since: datetime.datetime | None = None,
    ) -> list[Observation]:
        """Observations for *key* in chronological order."""

    # ── Alerts ──────────────────────────────────────────────────

    @abc.abstractmethod
    async def insert_alert(self, alert: Alert) -> None: ...

    @abc.abstractmethod
    async def update_alert_status(
        self,
        alert_id: str,
        status: DeliveryStatus,
        error: str = "",
        sent_at: datetime.datetime | None = None,
    ) -> None: ...

    @abc.abstractmethod
    async def list_alerts(
        self,
        since: datetime.datetime,
        until: datetime.datetime | None = None,
    ) -> list[Alert]:
        """Alerts created in ``[since, until)``."""

    # ── Notification ledger ─────────────────────────────────────

    @abc.abstractmethod
    async def count_recent_notifications(
        self,
        user_id: str,
        since: datetime.datetime,
    ) -> int: ...

    @abc.abstractmethod
    async def insert_notification(self, entry: NotificationLedgerEntry) -> None: ...

    # ── Monitor queue ───────────────────────────────────────────

    @abc.abstractmethod
    async def get_queue_entry(self, key: StayKey) -> MonitorQueueEntry | None: ...

    @abc.abstractmethod
    async def upsert_queue_entry(self, entry: MonitorQueueEntry) -> None: ...

    @abc.abstractmethod
    async def delete_queue_entry(self, key: StayKey) -> None: ...

    # ── Retention ───────────────────────────────────────────────

    @abc.abstractmethod
    async def prune_observations(self, cutoff: datetime.datetime) -> int:
        """Delete observations older than *cutoff*, keeping the latest per key."""

    @abc.abstractmethod
    async def prune_notifications(self, cutoff: datetime.datetime) -> int: ...

    @abc.abstractmethod
    async def prune_alerts(self, cutoff: datetime.datetime) -> int: ...

    @abc.abstractmethod
    async def prune_queue(self, cutoff: datetime.datetime) -> int: ...

    # ── Lifecycle ───────────────────────────────────────────────

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        """Release connections.  Default: nothing to do."""
