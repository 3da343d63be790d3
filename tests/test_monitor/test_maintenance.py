"""Tests for MaintenanceJob — retention windows, expiry, step isolation."""

from __future__ import annotations

import datetime

from pricewatch.core.config import RetentionConfig
from pricewatch.core.types import (
    AlertType,
    MonitorQueueEntry,
    NotificationLedgerEntry,
    Observation,
    StayKey,
    WatchItem,
)
from pricewatch.monitor.maintenance import MaintenanceJob
from pricewatch.store.exceptions import PersistenceError
from pricewatch.store.history import HistoryStore
from pricewatch.store.memory import InMemoryRepository
from pricewatch.store.registry import WatchRegistry

# 02:00 on 24 Dec in Tokyo.
NOW = datetime.datetime(2026, 12, 23, 17, 0, tzinfo=datetime.UTC)
KEY = StayKey(
    hotel_id="12345",
    check_in=datetime.date(2026, 12, 24),
    check_out=datetime.date(2026, 12, 26),
)


def _job(repo: InMemoryRepository) -> MaintenanceJob:
    return MaintenanceJob(
        repo,
        HistoryStore(repo, retention_days=30),
        WatchRegistry(repo),
        RetentionConfig(),
        timezone="Asia/Tokyo",
    )


class BrokenLedgerRepository(InMemoryRepository):
    async def prune_notifications(self, cutoff: datetime.datetime) -> int:
        raise PersistenceError("ledger unavailable")


class TestMaintenance:
    async def test_prunes_and_expires(self) -> None:
        repo = InMemoryRepository()
        old = NOW - datetime.timedelta(days=40)
        await repo.insert_observation(Observation(key=KEY, price=1, observed_at=old))
        await repo.insert_observation(Observation(key=KEY, price=2, observed_at=NOW))
        await repo.insert_notification(NotificationLedgerEntry(
            user_id="u1", alert_type=AlertType.PRICE_DROP, created_at=NOW - datetime.timedelta(days=91),
        ))
        await repo.upsert_queue_entry(MonitorQueueEntry(
            key=KEY, updated_at=NOW - datetime.timedelta(days=2),
        ))
        # Check-in is "today" in Tokyo, so it expires.
        await repo.upsert_watch_item(WatchItem(
            user_id="u1",
            user_email="a@example.com",
            hotel_id=KEY.hotel_id,
            check_in=KEY.check_in,
            check_out=KEY.check_out,
        ))

        report = await _job(repo).run(NOW)

        assert report.observations_pruned == 1
        assert report.notifications_pruned == 1
        assert report.queue_entries_pruned == 1
        assert report.watch_items_deactivated == 1
        assert report.errors == []
        assert await repo.list_active_watch_items() == []

    async def test_failed_step_does_not_stop_others(self) -> None:
        repo = BrokenLedgerRepository()
        await repo.upsert_queue_entry(MonitorQueueEntry(
            key=KEY, updated_at=NOW - datetime.timedelta(days=2),
        ))

        report = await _job(repo).run(NOW)

        assert report.notifications_pruned == 0
        assert report.queue_entries_pruned == 1
        assert len(report.errors) == 1
        assert report.errors[0].startswith("notifications:")
