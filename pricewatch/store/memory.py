"""Process-local repository — used for tests and dry runs."""

from __future__ import annotations

import bisect
import datetime
from collections import defaultdict

from pricewatch.core.types import (
    Alert,
    DeliveryStatus,
    MonitorQueueEntry,
    NotificationLedgerEntry,
    Observation,
    StayKey,
    WatchItem,
)
from pricewatch.store.base import Repository


class InMemoryRepository(Repository):
    """Dict-backed implementation of :class:`Repository`.

    Observations are kept per key sorted by ``observed_at`` so the latest
    lookup is a bisect, not a scan.  Returned watch items and alerts are
    copies; mutating them does not change stored state.
    """

    def __init__(self) -> None:
        self._watch_items: dict[str, WatchItem] = {}
        self._observations: dict[StayKey, list[Observation]] = defaultdict(list)
        self._alerts: dict[str, Alert] = {}
        self._ledger: list[NotificationLedgerEntry] = []
        self._queue: dict[StayKey, MonitorQueueEntry] = {}

    # ── Watch items ─────────────────────────────────────────────

    async def list_active_watch_items(self) -> list[WatchItem]:
        return [i.model_copy(deep=True) for i in self._watch_items.values() if i.is_active]

    async def get_watch_item(self, item_id: str) -> WatchItem | None:
        item = self._watch_items.get(item_id)
        return item.model_copy(deep=True) if item else None

    async def find_watch_item(self, user_id: str, key: StayKey) -> WatchItem | None:
        for item in self._watch_items.values():
            if item.is_active and item.user_id == user_id and item.key == key:
                return item.model_copy(deep=True)
        return None

    async def upsert_watch_item(self, item: WatchItem) -> WatchItem:
        self._watch_items[item.id] = item.model_copy(deep=True)
        return item.model_copy(deep=True)

    async def deactivate_watch_item(self, item_id: str) -> bool:
        item = self._watch_items.get(item_id)
        if item is None or not item.is_active:
            return False
        item.is_active = False
        return True

    async def deactivate_watch_items_before(self, day: datetime.date) -> int:
        count = 0
        for item in self._watch_items.values():
            if item.is_active and item.check_in <= day:
                item.is_active = False
                count += 1
        return count

    async def touch_watch_item(
        self,
        item_id: str,
        checked_at: datetime.datetime,
        alerts_sent: int = 0,
    ) -> None:
        item = self._watch_items.get(item_id)
        if item is None:
            return
        item.last_checked_at = checked_at
        item.alert_count += alerts_sent

    # ── Observations ────────────────────────────────────────────

    async def insert_observation(self, observation: Observation) -> bool:
        series = self._observations[observation.key]
        stamps = [o.observed_at for o in series]
        idx = bisect.bisect_left(stamps, observation.observed_at)
        if idx < len(series) and series[idx].observed_at == observation.observed_at:
            return False
        series.insert(idx, observation)
        return True

    async def latest_observation(
        self,
        key: StayKey,
        before: datetime.datetime | None = None,
    ) -> Observation | None:
        series = self._observations.get(key)
        if not series:
            return None
        if before is None:
            return series[-1]
        stamps = [o.observed_at for o in series]
        idx = bisect.bisect_left(stamps, before)
        return series[idx - 1] if idx > 0 else None

    async def list_observations(
        self,
        key: StayKey,
        since: datetime.datetime | None = None,
    ) -> list[Observation]:
        series = self._observations.get(key, [])
        if since is None:
            return list(series)
        return [o for o in series if o.observed_at >= since]

    # ── Alerts ──────────────────────────────────────────────────

    async def insert_alert(self, alert: Alert) -> None:
        self._alerts[alert.id] = alert.model_copy(deep=True)

    async def update_alert_status(
        self,
        alert_id: str,
        status: DeliveryStatus,
        error: str = "",
        sent_at: datetime.datetime | None = None,
    ) -> None:
        alert = self._alerts.get(alert_id)
        if alert is None:
            return
        alert.status = status
        alert.error = error
        if sent_at is not None:
            alert.sent_at = sent_at

    async def list_alerts(
        self,
        since: datetime.datetime,
        until: datetime.datetime | None = None,
    ) -> list[Alert]:
        return [
            a.model_copy(deep=True)
            for a in self._alerts.values()
            if a.created_at >= since and (until is None or a.created_at < until)
        ]

    # ── Notification ledger ─────────────────────────────────────

    async def count_recent_notifications(
        self,
        user_id: str,
        since: datetime.datetime,
    ) -> int:
        return sum(
            1 for e in self._ledger if e.user_id == user_id and e.created_at >= since
        )

    async def insert_notification(self, entry: NotificationLedgerEntry) -> None:
        self._ledger.append(entry)

    # ── Monitor queue ───────────────────────────────────────────

    async def get_queue_entry(self, key: StayKey) -> MonitorQueueEntry | None:
        entry = self._queue.get(key)
        return entry.model_copy() if entry else None

    async def upsert_queue_entry(self, entry: MonitorQueueEntry) -> None:
        self._queue[entry.key] = entry.model_copy()

    async def delete_queue_entry(self, key: StayKey) -> None:
        self._queue.pop(key, None)

    # ── Retention ───────────────────────────────────────────────

    async def prune_observations(self, cutoff: datetime.datetime) -> int:
        removed = 0
        for key, series in self._observations.items():
            if not series:
                continue
            latest = series[-1]
            kept = [o for o in series if o.observed_at >= cutoff or o is latest]
            removed += len(series) - len(kept)
            self._observations[key] = kept
        return removed

    async def prune_notifications(self, cutoff: datetime.datetime) -> int:
        before = len(self._ledger)
        self._ledger = [e for e in self._ledger if e.created_at >= cutoff]
        return before - len(self._ledger)

    async def prune_alerts(self, cutoff: datetime.datetime) -> int:
        stale = [a.id for a in self._alerts.values() if a.created_at < cutoff]
        for alert_id in stale:
            del self._alerts[alert_id]
        return len(stale)

    async def prune_queue(self, cutoff: datetime.datetime) -> int:
        stale = [k for k, e in self._queue.items() if e.updated_at < cutoff]
        for key in stale:
            del self._queue[key]
        return len(stale)
