"""Daily digest — one summary email per user for the previous local day."""

from __future__ import annotations

import datetime
from collections import defaultdict

import structlog

from pricewatch.core.clock import local_day_bounds, local_today
from pricewatch.core.types import Alert, AlertType, DeliveryStatus
from pricewatch.monitor.dispatcher import AlertDispatcher
from pricewatch.monitor.formatters import format_daily_digest
from pricewatch.store.base import Repository

logger = structlog.get_logger(__name__)

_DIGEST_STATUSES = frozenset({DeliveryStatus.SENT, DeliveryStatus.THROTTLED})


def rank_alerts(alerts: list[Alert]) -> list[Alert]:
    """Highest priority first, then largest saving, then oldest."""
    return sorted(
        alerts,
        key=lambda a: (-a.priority, -a.change.price_delta, a.created_at),
    )


def total_savings(alerts: list[Alert]) -> int:
    return sum(
        a.change.price_delta
        for a in alerts
        if a.alert_type == AlertType.PRICE_DROP and a.change.price_delta > 0
    )


class DailyDigest:
    """Builds and sends the per-user daily summary.

    Throttled alerts are included so users still hear about changes that
    were over their cap.  Digests bypass the throttle and are not written
    to the notification ledger.
    """

    def __init__(
        self,
        repository: Repository,
        dispatcher: AlertDispatcher,
        timezone: str = "Asia/Tokyo",
        top_n: int = 5,
    ) -> None:
        self._repo = repository
        self._dispatcher = dispatcher
        self._timezone = timezone
        self._top_n = top_n

    async def run(self, now: datetime.datetime | None = None) -> int:
        """Send digests for yesterday (local time).  Returns emails sent."""
        day = local_today(self._timezone, now) - datetime.timedelta(days=1)
        since, until = local_day_bounds(day, self._timezone)
        alerts = await self._repo.list_alerts(since, until)

        by_user: defaultdict[str, list[Alert]] = defaultdict(list)
        for alert in alerts:
            if alert.status in _DIGEST_STATUSES:
                by_user[alert.user_id].append(alert)

        sent = 0
        for user_id, user_alerts in by_user.items():
            ranked = rank_alerts(user_alerts)
            first = ranked[0]
            msg = format_daily_digest(
                to=first.user_email,
                user_name=first.user_name,
                day=day,
                alerts=ranked[: self._top_n],
                total_alerts=len(ranked),
                total_savings=total_savings(ranked),
            )
            result = await self._dispatcher.send_message(msg)
            if result.success:
                sent += 1
            else:
                logger.warning("digest_send_failed", user_id=user_id, error=result.error)

        logger.info(
            "digest_completed",
            day=day.isoformat(),
            users=len(by_user),
            sent=sent,
        )
        return sent
