"""Tests for DailyDigest — local day window, ranking, top-N, savings."""

from __future__ import annotations

import datetime

from pricewatch.alerts.throttle import NotificationThrottle
from pricewatch.core.config import AlertsConfig
from pricewatch.core.types import (
    Alert,
    AlertType,
    ChangeResult,
    DeliveryResult,
    DeliveryStatus,
    EmailMessage,
    Observation,
    StayKey,
)
from pricewatch.monitor.channels import EmailChannel
from pricewatch.monitor.digest import DailyDigest, rank_alerts, total_savings
from pricewatch.monitor.dispatcher import AlertDispatcher
from pricewatch.store.memory import InMemoryRepository

KEY = StayKey(
    hotel_id="12345",
    check_in=datetime.date(2026, 12, 24),
    check_out=datetime.date(2026, 12, 26),
)
# 09:00 on 2 Dec in Tokyo; the digest covers 1 Dec (Tokyo).
NOW = datetime.datetime(2026, 12, 2, 0, 0, tzinfo=datetime.UTC)
IN_WINDOW = datetime.datetime(2026, 12, 1, 3, 0, tzinfo=datetime.UTC)


class FakeChannel(EmailChannel):
    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    async def send(self, msg: EmailMessage) -> DeliveryResult:
        self.sent.append(msg)
        return DeliveryResult(success=True)

    async def close(self) -> None:
        pass


def _alert(
    alert_type: AlertType = AlertType.PRICE_DROP,
    *,
    user_id: str = "u1",
    delta: int = 1000,
    priority: int = 5,
    status: DeliveryStatus = DeliveryStatus.SENT,
    created_at: datetime.datetime = IN_WINDOW,
) -> Alert:
    return Alert(
        alert_type=alert_type,
        watch_item_id="w1",
        user_id=user_id,
        user_email=f"{user_id}@example.com",
        hotel_name=f"Hotel {delta}",
        key=KEY,
        change=ChangeResult(current_price=9000, price_delta=delta),
        observation=Observation(key=KEY, price=9000),
        priority=priority,
        status=status,
        created_at=created_at,
    )


def _digest(repo: InMemoryRepository, top_n: int = 5) -> tuple[DailyDigest, FakeChannel]:
    ch = FakeChannel()
    disp = AlertDispatcher(ch, repo, NotificationThrottle(repo, AlertsConfig()))
    return DailyDigest(repo, disp, timezone="Asia/Tokyo", top_n=top_n), ch


# ── Ranking ─────────────────────────────────────────────────────


class TestRanking:
    def test_priority_then_savings(self) -> None:
        low = _alert(AlertType.NEW_AVAILABILITY, delta=0, priority=3)
        small = _alert(delta=1000)
        big = _alert(delta=5000)
        assert rank_alerts([low, small, big]) == [big, small, low]

    def test_total_savings_counts_price_drops_only(self) -> None:
        alerts = [
            _alert(delta=1000),
            _alert(delta=2500),
            _alert(AlertType.TARGET_PRICE_REACHED, delta=700),
        ]
        assert total_savings(alerts) == 3500


# ── Run ─────────────────────────────────────────────────────────


class TestRun:
    async def test_one_email_per_user(self) -> None:
        repo = InMemoryRepository()
        for a in (_alert(user_id="u1"), _alert(user_id="u1", delta=3000), _alert(user_id="u2")):
            await repo.insert_alert(a)
        digest, ch = _digest(repo)

        assert await digest.run(NOW) == 2
        assert sorted(m.to for m in ch.sent) == ["u1@example.com", "u2@example.com"]
        u1 = next(m for m in ch.sent if m.to == "u1@example.com")
        assert "2 alert(s), potential savings ¥4,000" in u1.text
        assert u1.subject == "Daily price summary: 2026-12-01"

    async def test_top_n_limits_entries(self) -> None:
        repo = InMemoryRepository()
        for delta in range(1000, 8000, 1000):
            await repo.insert_alert(_alert(delta=delta))
        digest, ch = _digest(repo, top_n=5)

        await digest.run(NOW)

        text = ch.sent[0].text
        assert text.count("\n- ") == 5
        assert "Hotel 7000" in text
        assert "Hotel 1000" not in text
        assert "...and 2 more" in text

    async def test_window_is_previous_local_day(self) -> None:
        repo = InMemoryRepository()
        # 16:00 UTC on 1 Dec is already 2 Dec in Tokyo.
        await repo.insert_alert(_alert(created_at=datetime.datetime(2026, 12, 1, 16, 0, tzinfo=datetime.UTC)))
        # 14:00 UTC on 30 Nov is still 30 Nov in Tokyo.
        await repo.insert_alert(_alert(created_at=datetime.datetime(2026, 11, 30, 14, 0, tzinfo=datetime.UTC)))
        digest, ch = _digest(repo)

        assert await digest.run(NOW) == 0
        assert ch.sent == []

    async def test_includes_throttled_excludes_failed(self) -> None:
        repo = InMemoryRepository()
        await repo.insert_alert(_alert(status=DeliveryStatus.THROTTLED, delta=2000))
        await repo.insert_alert(_alert(status=DeliveryStatus.FAILED, delta=9000))
        digest, ch = _digest(repo)

        await digest.run(NOW)

        assert "1 alert(s)" in ch.sent[0].text
        assert "Hotel 2000" in ch.sent[0].text

    async def test_digest_not_written_to_ledger(self) -> None:
        repo = InMemoryRepository()
        await repo.insert_alert(_alert())
        digest, _ = _digest(repo)
        await digest.run(NOW)
        assert await repo.count_recent_notifications("u1", NOW - datetime.timedelta(days=2)) == 0
