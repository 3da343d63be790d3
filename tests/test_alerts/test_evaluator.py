"""Tests for AlertEvaluator — threshold rules, per-poll conditions, priorities."""

from __future__ import annotations

import datetime

from pricewatch.alerts.detector import detect
from pricewatch.alerts.evaluator import AlertEvaluator
from pricewatch.core.config import AlertsConfig
from pricewatch.core.types import (
    AlertConditions,
    AlertType,
    AvailabilityStatus,
    Observation,
    StayKey,
    WatchItem,
)

KEY = StayKey(
    hotel_id="12345",
    check_in=datetime.date(2026, 12, 24),
    check_out=datetime.date(2026, 12, 26),
)

A = AvailabilityStatus.AVAILABLE
L = AvailabilityStatus.LIMITED
U = AvailabilityStatus.UNAVAILABLE


# ── Helpers ─────────────────────────────────────────────────────


def _obs(price: int | None, status: AvailabilityStatus = A, rooms: int | None = 10) -> Observation:
    return Observation(key=KEY, price=price, status=status, remaining_rooms=rooms)


def _item(**kw: object) -> WatchItem:
    defaults: dict[str, object] = {
        "user_id": "u1",
        "user_email": "a@example.com",
        "hotel_id": KEY.hotel_id,
        "hotel_name": "Hotel Sakura",
        "check_in": KEY.check_in,
        "check_out": KEY.check_out,
    }
    defaults.update(kw)
    return WatchItem(**defaults)  # type: ignore[arg-type]


def _types(
    previous: Observation | None,
    current: Observation,
    item: WatchItem | None = None,
) -> list[AlertType]:
    evaluator = AlertEvaluator(AlertsConfig())
    alerts = evaluator.evaluate(item or _item(), current, detect(previous, current))
    return [a.alert_type for a in alerts]


# ── Price drop ──────────────────────────────────────────────────


class TestPriceDrop:
    def test_first_observation_never_alerts(self) -> None:
        assert AlertType.PRICE_DROP not in _types(None, _obs(1000))

    def test_amount_below_threshold(self) -> None:
        # 900 yen / 18% — percentage clears, amount does not.
        assert _types(_obs(5000), _obs(4100)) == []

    def test_percent_below_threshold(self) -> None:
        # 1500 yen / 7.5% — amount clears, percentage does not.
        assert _types(_obs(20000), _obs(18500)) == []

    def test_both_thresholds_met(self) -> None:
        # 1200 yen / 12%.
        assert _types(_obs(10000), _obs(8800)) == [AlertType.PRICE_DROP]

    def test_exact_thresholds_fire(self) -> None:
        assert _types(_obs(10000), _obs(9000)) == [AlertType.PRICE_DROP]

    def test_price_rise_never_alerts(self) -> None:
        assert _types(_obs(10000), _obs(12000)) == []

    def test_disabled_condition(self) -> None:
        item = _item(conditions=AlertConditions(price_drop=False))
        assert _types(_obs(10000), _obs(5000), item) == []

    def test_item_thresholds_override_defaults(self) -> None:
        item = _item(conditions=AlertConditions(
            price_drop_threshold=500, price_drop_percentage=5,
        ))
        # 600 yen / 6% — below global floors, above the item's.
        assert _types(_obs(10000), _obs(9400), item) == [AlertType.PRICE_DROP]

    def test_max_price_budget(self) -> None:
        item = _item(conditions=AlertConditions(max_price=8000))
        assert _types(_obs(10000), _obs(8800), item) == []
        assert _types(_obs(10000), _obs(8000), item) == [AlertType.PRICE_DROP]


# ── Target price ────────────────────────────────────────────────


class TestTargetPrice:
    def test_crossing_fires(self) -> None:
        item = _item(target_price=15000)
        assert _types(_obs(15500), _obs(15000), item) == [AlertType.TARGET_PRICE_REACHED]

    def test_first_observation_below_target_fires(self) -> None:
        item = _item(target_price=15000)
        assert _types(None, _obs(14000), item) == [AlertType.TARGET_PRICE_REACHED]

    def test_staying_below_target_refires(self) -> None:
        item = _item(target_price=10000)
        assert _types(_obs(9000), _obs(8500), item) == [AlertType.TARGET_PRICE_REACHED]

    def test_unchanged_price_below_target_refires(self) -> None:
        item = _item(target_price=10000)
        assert _types(_obs(9000), _obs(9000), item) == [AlertType.TARGET_PRICE_REACHED]

    def test_unavailable_never_reaches_target(self) -> None:
        item = _item(target_price=10000)
        assert _types(_obs(9000), _obs(None, U, 0), item) == []

    def test_above_target(self) -> None:
        item = _item(target_price=15000)
        assert _types(_obs(17000), _obs(16000), item) == []

    def test_fires_together_with_price_drop(self) -> None:
        item = _item(target_price=9000)
        assert _types(_obs(10000), _obs(8800), item) == [
            AlertType.PRICE_DROP,
            AlertType.TARGET_PRICE_REACHED,
        ]


# ── Availability ────────────────────────────────────────────────


class TestNewAvailability:
    def test_fires_on_reopen(self) -> None:
        assert _types(_obs(None, U, 0), _obs(12000)) == [AlertType.NEW_AVAILABILITY]

    def test_disabled_condition(self) -> None:
        item = _item(conditions=AlertConditions(new_availability=False))
        assert _types(_obs(None, U, 0), _obs(12000), item) == []

    def test_sold_out_is_silent(self) -> None:
        assert _types(_obs(12000), _obs(None, U, 0)) == []


class TestLastRoom:
    def test_entering_scarcity_fires(self) -> None:
        item = _item(conditions=AlertConditions(last_room_alert=True))
        assert _types(_obs(12000, A, 5), _obs(12000, L, 2), item) == [AlertType.LAST_ROOM]

    def test_already_scarce_refires(self) -> None:
        item = _item(conditions=AlertConditions(last_room_alert=True))
        assert _types(_obs(9000, L, 2), _obs(9000, L, 1), item) == [AlertType.LAST_ROOM]

    def test_above_threshold_is_silent(self) -> None:
        item = _item(conditions=AlertConditions(last_room_alert=True))
        assert _types(_obs(12000, A, 5), _obs(12000, A, 4), item) == []

    def test_opt_in_required(self) -> None:
        assert _types(_obs(12000, A, 5), _obs(12000, L, 2)) == []

    def test_reopening_with_one_room(self) -> None:
        item = _item(conditions=AlertConditions(last_room_alert=True))
        assert _types(_obs(None, U, 0), _obs(12000, L, 1), item) == [
            AlertType.NEW_AVAILABILITY,
            AlertType.LAST_ROOM,
        ]


# ── Alert payload ───────────────────────────────────────────────


class TestAlertPayload:
    def test_alert_carries_item_and_priority(self) -> None:
        item = _item(user_name="Aiko")
        previous, current = _obs(10000), _obs(8800)
        [alert] = AlertEvaluator(AlertsConfig()).evaluate(item, current, detect(previous, current))
        assert alert.watch_item_id == item.id
        assert alert.user_email == "a@example.com"
        assert alert.hotel_name == "Hotel Sakura"
        assert alert.key == KEY
        assert alert.change.price_delta == 1200
        assert alert.priority == 5

    def test_new_availability_priority_lower(self) -> None:
        current = _obs(12000)
        [alert] = AlertEvaluator(AlertsConfig()).evaluate(
            _item(), current, detect(_obs(None, U, 0), current),
        )
        assert alert.priority == 3
