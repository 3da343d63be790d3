"""Change detection between two consecutive observations of a stay."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from pricewatch.core.types import (
    AvailabilityStatus,
    AvailabilityTransition,
    ChangeResult,
    Observation,
)

_BOOKABLE = (AvailabilityStatus.AVAILABLE, AvailabilityStatus.LIMITED)


def classify_transition(
    previous: AvailabilityStatus | None,
    current: AvailabilityStatus,
) -> AvailabilityTransition:
    """Map a (previous, current) status pair to a transition.

    Only ``unavailable → available|limited`` counts as new availability;
    moving between available and limited is tracked separately.
    """
    if previous is None:
        return AvailabilityTransition.NONE
    if previous == current:
        return AvailabilityTransition.UNCHANGED
    if previous == AvailabilityStatus.UNAVAILABLE and current in _BOOKABLE:
        return AvailabilityTransition.NEW_AVAILABILITY
    if current == AvailabilityStatus.UNAVAILABLE:
        return AvailabilityTransition.SOLD_OUT
    if current == AvailabilityStatus.LIMITED:
        return AvailabilityTransition.BECAME_LIMITED
    return AvailabilityTransition.RESTOCKED


def percent_of(delta: int, base: int) -> int:
    """``round(delta / base * 100)`` with half-up rounding; 0 for a zero base."""
    if base == 0:
        return 0
    ratio = Decimal(delta) / Decimal(base) * 100
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def detect(previous: Observation | None, current: Observation) -> ChangeResult:
    """Compare *current* with *previous*.

    With no previous observation nothing can have changed, so
    ``has_change`` is False and callers must not alert on price.
    """
    if previous is None:
        return ChangeResult(
            has_change=False,
            current_price=current.price,
            current_status=current.status,
            transition=AvailabilityTransition.NONE,
        )

    price_delta = 0
    percent_delta = 0
    if previous.price is not None and current.price is not None:
        price_delta = previous.price - current.price
        percent_delta = percent_of(price_delta, previous.price)

    transition = classify_transition(previous.status, current.status)
    has_change = (
        previous.price != current.price
        or transition != AvailabilityTransition.UNCHANGED
    )

    return ChangeResult(
        has_change=has_change,
        previous_price=previous.price,
        current_price=current.price,
        price_delta=price_delta,
        percent_delta=percent_delta,
        previous_status=previous.status,
        current_status=current.status,
        previous_remaining_rooms=previous.remaining_rooms,
        transition=transition,
    )
