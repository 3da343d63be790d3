"""Tests for change detection — deltas, percent rounding, transitions."""

from __future__ import annotations

import datetime

from pricewatch.alerts.detector import classify_transition, detect, percent_of
from pricewatch.core.types import AvailabilityStatus, AvailabilityTransition, Observation, StayKey

KEY = StayKey(
    hotel_id="12345",
    check_in=datetime.date(2026, 12, 24),
    check_out=datetime.date(2026, 12, 26),
)

A = AvailabilityStatus.AVAILABLE
L = AvailabilityStatus.LIMITED
U = AvailabilityStatus.UNAVAILABLE


def _obs(price: int | None, status: AvailabilityStatus = A, rooms: int | None = 5) -> Observation:
    return Observation(key=KEY, price=price, status=status, remaining_rooms=rooms)


class TestPercentOf:
    def test_rounds_half_up(self) -> None:
        assert percent_of(5, 1000) == 1  # 0.5 → 1
        assert percent_of(125, 1000) == 13  # 12.5 → 13
        assert percent_of(1200, 10000) == 12

    def test_zero_base(self) -> None:
        assert percent_of(100, 0) == 0

    def test_negative_delta(self) -> None:
        assert percent_of(-1000, 10000) == -10


class TestClassifyTransition:
    def test_first_observation(self) -> None:
        assert classify_transition(None, A) == AvailabilityTransition.NONE

    def test_unchanged(self) -> None:
        assert classify_transition(L, L) == AvailabilityTransition.UNCHANGED

    def test_new_availability(self) -> None:
        assert classify_transition(U, A) == AvailabilityTransition.NEW_AVAILABILITY
        assert classify_transition(U, L) == AvailabilityTransition.NEW_AVAILABILITY

    def test_sold_out(self) -> None:
        assert classify_transition(A, U) == AvailabilityTransition.SOLD_OUT
        assert classify_transition(L, U) == AvailabilityTransition.SOLD_OUT

    def test_limited_and_restocked(self) -> None:
        assert classify_transition(A, L) == AvailabilityTransition.BECAME_LIMITED
        assert classify_transition(L, A) == AvailabilityTransition.RESTOCKED


class TestDetect:
    def test_no_previous_means_no_change(self) -> None:
        change = detect(None, _obs(10000))
        assert change.has_change is False
        assert change.price_delta == 0
        assert change.current_price == 10000
        assert change.transition == AvailabilityTransition.NONE

    def test_price_drop(self) -> None:
        change = detect(_obs(20000), _obs(18500))
        assert change.has_change is True
        assert change.price_delta == 1500
        assert change.percent_delta == 8  # 7.5 → 8
        assert change.previous_price == 20000

    def test_price_rise_is_negative_delta(self) -> None:
        change = detect(_obs(10000), _obs(11000))
        assert change.price_delta == -1000
        assert change.percent_delta == -10

    def test_identical_is_no_change(self) -> None:
        change = detect(_obs(10000), _obs(10000))
        assert change.has_change is False
        assert change.transition == AvailabilityTransition.UNCHANGED

    def test_status_only_change(self) -> None:
        change = detect(_obs(10000, A, 5), _obs(10000, L, 2))
        assert change.has_change is True
        assert change.transition == AvailabilityTransition.BECAME_LIMITED
        assert change.previous_remaining_rooms == 5

    def test_unavailable_previous_has_no_price_delta(self) -> None:
        change = detect(_obs(None, U, 0), _obs(12000))
        assert change.transition == AvailabilityTransition.NEW_AVAILABILITY
        assert change.price_delta == 0
        assert change.has_change is True
