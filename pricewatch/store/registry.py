"""WatchRegistry — active subscriptions and their lifecycle."""

from __future__ import annotations

import datetime
from collections import defaultdict

import structlog

from pricewatch.core.types import AlertConditions, StayKey, WatchItem
from pricewatch.store.base import Repository
from pricewatch.store.exceptions import WatchItemValidationError

logger = structlog.stdlib.get_logger()


def group_by_target(items: list[WatchItem]) -> dict[StayKey, list[WatchItem]]:
    """Group watch items by the StayKey they watch, preserving order."""
    groups: dict[StayKey, list[WatchItem]] = defaultdict(list)
    for item in items:
        groups[item.key].append(item)
    return dict(groups)


class WatchRegistry:
    """The set of watch items the engine monitors.

    At most one active item exists per (user, StayKey): ``subscribe``
    updates the existing item instead of inserting a duplicate.
    """

    def __init__(self, repository: Repository) -> None:
        self._repo = repository

    async def active_items(self, today: datetime.date) -> list[WatchItem]:
        """Active items whose check-in is still in the future."""
        items = await self._repo.list_active_watch_items()
        return [i for i in items if i.check_in > today]

    async def subscribe(
        self,
        *,
        user_id: str,
        user_email: str,
        key: StayKey,
        today: datetime.date,
        user_name: str = "",
        hotel_name: str = "",
        target_price: int | None = None,
        conditions: AlertConditions | None = None,
    ) -> WatchItem:
        """Create or update the user's item for *key*."""
        if key.check_in <= today:
            raise WatchItemValidationError(
                f"check-in {key.check_in.isoformat()} is not in the future"
            )
        if target_price is not None and target_price <= 0:
            raise WatchItemValidationError("target_price must be positive")

        existing = await self._repo.find_watch_item(user_id, key)
        if existing is not None:
            existing.user_email = user_email
            existing.user_name = user_name or existing.user_name
            existing.hotel_name = hotel_name or existing.hotel_name
            existing.target_price = target_price
            if conditions is not None:
                existing.conditions = conditions
            item = await self._repo.upsert_watch_item(existing)
            logger.info("watch_item_updated", item_id=item.id, target=str(key))
            return item

        item = WatchItem(
            user_id=user_id,
            user_email=user_email,
            user_name=user_name,
            hotel_id=key.hotel_id,
            hotel_name=hotel_name,
            check_in=key.check_in,
            check_out=key.check_out,
            occupancy=key.occupancy,
            target_price=target_price,
            conditions=conditions or AlertConditions(),
        )
        item = await self._repo.upsert_watch_item(item)
        logger.info("watch_item_created", item_id=item.id, target=str(key))
        return item

    async def unsubscribe(self, item_id: str) -> bool:
        """Soft-delete: the item stays for history, but is no longer monitored."""
        removed = await self._repo.deactivate_watch_item(item_id)
        if removed:
            logger.info("watch_item_deactivated", item_id=item_id)
        return removed

    async def expire(self, today: datetime.date) -> int:
        """Deactivate items whose check-in date is today or earlier."""
        count = await self._repo.deactivate_watch_items_before(today)
        if count:
            logger.info("watch_items_expired", count=count, today=today.isoformat())
        return count

    async def mark_checked(
        self,
        item_id: str,
        checked_at: datetime.datetime,
        alerts_sent: int = 0,
    ) -> None:
        await self._repo.touch_watch_item(item_id, checked_at, alerts_sent)
