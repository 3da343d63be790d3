"""Alert evaluation — decides which alert types a poll should fire."""

from __future__ import annotations

import structlog

from pricewatch.core.config import AlertsConfig, get_settings
from pricewatch.core.types import (
    Alert,
    AlertType,
    AvailabilityStatus,
    AvailabilityTransition,
    ChangeResult,
    Observation,
    WatchItem,
)

logger = structlog.stdlib.get_logger()

# Digest ordering only; priorities never suppress an alert.
ALERT_PRIORITY: dict[AlertType, int] = {
    AlertType.PRICE_DROP: 5,
    AlertType.TARGET_PRICE_REACHED: 5,
    AlertType.LAST_ROOM: 4,
    AlertType.NEW_AVAILABILITY: 3,
}


class AlertEvaluator:
    """Applies the per-item alert rules to one observation.

    Every rule is evaluated independently, so a single poll can fire
    several alert types.  No I/O: all state arrives as arguments.
    """

    def __init__(self, config: AlertsConfig | None = None) -> None:
        self._config = config or get_settings().alerts

    def evaluate(
        self,
        item: WatchItem,
        observation: Observation,
        change: ChangeResult,
    ) -> list[Alert]:
        fired: list[AlertType] = []

        if self.should_alert_price_drop(item, observation, change):
            fired.append(AlertType.PRICE_DROP)
        if self.should_alert_target_price(item, observation, change):
            fired.append(AlertType.TARGET_PRICE_REACHED)
        if self.should_alert_new_availability(item, change):
            fired.append(AlertType.NEW_AVAILABILITY)
        if self.should_alert_last_room(item, observation, change):
            fired.append(AlertType.LAST_ROOM)

        if fired:
            logger.debug(
                "alerts_fired",
                item_id=item.id,
                target=str(item.key),
                types=[t.value for t in fired],
            )

        return [
            Alert(
                alert_type=alert_type,
                watch_item_id=item.id,
                user_id=item.user_id,
                user_email=item.user_email,
                user_name=item.user_name,
                hotel_name=item.hotel_name or observation.hotel_name,
                key=item.key,
                change=change,
                observation=observation,
                priority=ALERT_PRIORITY[alert_type],
            )
            for alert_type in fired
        ]

    # ── Rules ───────────────────────────────────────────────────

    def should_alert_price_drop(
        self,
        item: WatchItem,
        observation: Observation,
        change: ChangeResult,
    ) -> bool:
        """Drop must clear BOTH the absolute and the percentage floor."""
        conditions = item.conditions
        if not conditions.price_drop or not change.has_change:
            return False
        if observation.price is None or observation.status == AvailabilityStatus.UNAVAILABLE:
            return False

        min_amount = (
            conditions.price_drop_threshold
            if conditions.price_drop_threshold is not None
            else self._config.price_drop_threshold_amount
        )
        min_percent = (
            conditions.price_drop_percentage
            if conditions.price_drop_percentage is not None
            else self._config.price_drop_threshold_percent
        )
        if change.price_delta <= 0:
            return False
        if change.price_delta < min_amount or change.percent_delta < min_percent:
            return False

        if conditions.max_price is not None and observation.price > conditions.max_price:
            return False
        return True

    def should_alert_target_price(
        self,
        item: WatchItem,
        observation: Observation,
        change: ChangeResult,
    ) -> bool:
        """Fires on every poll while the price is at or below the user's target."""
        target = item.target_price
        if target is None or observation.price is None:
            return False
        if observation.status == AvailabilityStatus.UNAVAILABLE:
            return False
        return observation.price <= target

    def should_alert_new_availability(self, item: WatchItem, change: ChangeResult) -> bool:
        if not item.conditions.new_availability:
            return False
        return change.transition == AvailabilityTransition.NEW_AVAILABILITY

    def should_alert_last_room(
        self,
        item: WatchItem,
        observation: Observation,
        change: ChangeResult,
    ) -> bool:
        if not item.conditions.last_room_alert:
            return False
        threshold = self._config.last_room_threshold
        remaining = observation.remaining_rooms
        return remaining is not None and 0 < remaining <= threshold
