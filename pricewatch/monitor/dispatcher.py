"""Alert dispatcher — persists, throttles and delivers alerts by email."""

from __future__ import annotations

import datetime

import structlog

from pricewatch.alerts.throttle import NotificationThrottle
from pricewatch.core.logging import ALERT_LOG
from pricewatch.core.types import (
    Alert,
    DeliveryResult,
    DeliveryStatus,
    EmailMessage,
    utc_now,
)
from pricewatch.monitor.channels import EmailChannel
from pricewatch.monitor.exceptions import DispatchError
from pricewatch.monitor.formatters import format_alert
from pricewatch.store.base import Repository
from pricewatch.store.exceptions import PersistenceError

# Dedicated structured logger for alert decisions.
alert_logger = structlog.get_logger(ALERT_LOG)

logger = structlog.get_logger(__name__)


class AlertDispatcher:
    """Delivers alerts to users through an :class:`EmailChannel`.

    - Every alert is recorded in the repository before anything is sent.
    - The throttle check and the ledger write happen under the user's lock,
      so concurrent targets cannot push one user past the cap.
    - Exactly one ledger entry is written per send attempt, success or not.
    - Throttled alerts are stored with status ``throttled`` and no ledger entry.
    - Delivery failures are recorded, never raised and never retried here.
    """

    def __init__(
        self,
        channel: EmailChannel,
        repository: Repository,
        throttle: NotificationThrottle,
    ) -> None:
        self._channel = channel
        self._repo = repository
        self._throttle = throttle

    @property
    def channel(self) -> EmailChannel:
        return self._channel

    # ── Direct send (used by the daily digest, etc.) ────────────

    async def send(self, alert: Alert) -> DeliveryResult:
        """Render and send *alert* with no throttling or bookkeeping."""
        return await self.send_message(format_alert(alert))

    async def send_message(self, msg: EmailMessage) -> DeliveryResult:
        try:
            return await self._channel.send(msg)
        except DispatchError as exc:
            return DeliveryResult(success=False, error=str(exc))
        except Exception as exc:
            logger.exception(
                "channel_dispatch_error",
                channel=type(self._channel).__name__,
                subject=msg.subject,
            )
            return DeliveryResult(success=False, error=f"{type(exc).__name__}: {exc}")

    # ── Full pipeline ───────────────────────────────────────────

    async def deliver(
        self,
        alert: Alert,
        now: datetime.datetime | None = None,
    ) -> DeliveryStatus:
        """Throttle-check, send and record one alert.

        A store failure before the send propagates as
        :class:`PersistenceError`; after the send it is logged and the
        channel result is returned.
        """
        now = now or utc_now()
        async with self._throttle.user_lock(alert.user_id):
            if not await self._throttle.may_notify(alert.user_id, now):
                alert.status = DeliveryStatus.THROTTLED
                alert.error = "alert limit reached for user"
                await self._repo.insert_alert(alert)
                self._log_decision(alert)
                logger.info(
                    "alert_throttled",
                    user_id=alert.user_id,
                    alert_type=alert.alert_type.value,
                    key=str(alert.key),
                    limit=self._throttle.max_per_window,
                )
                return alert.status

            alert.status = DeliveryStatus.PENDING
            await self._repo.insert_alert(alert)
            result = await self.send(alert)
            try:
                await self._throttle.record(alert, success=result.success, now=now)
            except PersistenceError as exc:
                logger.error(
                    "notification_ledger_write_failed",
                    alert_id=alert.id,
                    user_id=alert.user_id,
                    error=str(exc),
                )

        # Status follows the channel result even if the ledger write failed.
        if result.success:
            alert.status = DeliveryStatus.SENT
            alert.sent_at = now
        else:
            alert.status = DeliveryStatus.FAILED
            alert.error = result.error
        try:
            await self._repo.update_alert_status(
                alert.id, alert.status, error=alert.error, sent_at=alert.sent_at,
            )
        except PersistenceError as exc:
            logger.error(
                "alert_status_persist_failed",
                alert_id=alert.id,
                status=alert.status.value,
                error=str(exc),
            )
        if not result.success:
            logger.warning(
                "alert_dispatch_failed",
                alert_id=alert.id,
                user_id=alert.user_id,
                alert_type=alert.alert_type.value,
                error=result.error,
            )
        self._log_decision(alert)
        return alert.status

    def _log_decision(self, alert: Alert) -> None:
        alert_logger.info(
            "alert",
            alert_id=alert.id,
            alert_type=alert.alert_type.value,
            status=alert.status.value,
            user_id=alert.user_id,
            watch_item_id=alert.watch_item_id,
            key=str(alert.key),
            priority=alert.priority,
            previous_price=alert.change.previous_price,
            current_price=alert.change.current_price,
            price_delta=alert.change.price_delta,
            error=alert.error,
        )

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        try:
            await self._channel.close()
        except Exception:
            logger.exception("channel_close_error", channel=type(self._channel).__name__)
