"""Local-time helpers — jobs run on the product's local calendar."""

from __future__ import annotations

import datetime
from zoneinfo import ZoneInfo

from pricewatch.core.types import utc_now


def local_now(tz_name: str, now: datetime.datetime | None = None) -> datetime.datetime:
    return (now or utc_now()).astimezone(ZoneInfo(tz_name))


def local_today(tz_name: str, now: datetime.datetime | None = None) -> datetime.date:
    return local_now(tz_name, now).date()


def local_day_bounds(
    day: datetime.date,
    tz_name: str,
) -> tuple[datetime.datetime, datetime.datetime]:
    """UTC ``[start, end)`` of a local calendar day."""
    tz = ZoneInfo(tz_name)
    start = datetime.datetime.combine(day, datetime.time.min, tzinfo=tz)
    end = start + datetime.timedelta(days=1)
    return start.astimezone(datetime.UTC), end.astimezone(datetime.UTC)
