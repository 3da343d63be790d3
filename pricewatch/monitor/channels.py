"""Email channels — Resend delivery and a log-only channel for dry runs."""

from __future__ import annotations

import abc
from collections import deque

import aiohttp
import structlog

from pricewatch.core.config import EmailConfig
from pricewatch.core.types import DeliveryResult, EmailMessage
from pricewatch.monitor.exceptions import DispatchError

logger = structlog.get_logger(__name__)


class EmailChannel(abc.ABC):
    """Base class for email delivery channels."""

    @abc.abstractmethod
    async def send(self, msg: EmailMessage) -> DeliveryResult:
        """Deliver *msg*.  Raises :class:`DispatchError` when delivery fails."""

    async def ping(self) -> bool:
        """Whether the channel is configured and reachable."""
        return True

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class ResendChannel(EmailChannel):
    """Delivers email through the Resend HTTP API."""

    def __init__(self, config: EmailConfig) -> None:
        self._api_url = config.api_url
        self._api_key = config.api_key.get_secret_value()
        self._from = config.from_address
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=15),
            )
        return self._session

    async def send(self, msg: EmailMessage) -> DeliveryResult:
        try:
            return await self._post(msg)
        except DispatchError as exc:
            logger.warning("resend_send_failed", to=msg.to, error=str(exc))
            return DeliveryResult(success=False, error=str(exc))

    async def _post(self, msg: EmailMessage) -> DeliveryResult:
        payload: dict = {
            "from": self._from,
            "to": [msg.to],
            "subject": msg.subject,
            "text": msg.text,
        }
        if msg.html:
            payload["html"] = msg.html
        if msg.tags:
            payload["tags"] = [{"name": k, "value": v} for k, v in msg.tags.items()]

        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            session = self._get_session()
            async with session.post(self._api_url, json=payload, headers=headers) as resp:
                if resp.status in (200, 201):
                    body = await resp.json(content_type=None)
                    provider_id = str(body.get("id", "")) if isinstance(body, dict) else ""
                    return DeliveryResult(success=True, provider_id=provider_id)
                text = await resp.text()
                raise DispatchError(f"resend rejected message (HTTP {resp.status}): {text[:200]}")
        except aiohttp.ClientError as exc:
            raise DispatchError(f"resend request failed: {exc}") from exc
        except TimeoutError as exc:
            raise DispatchError("resend request timed out") from exc

    async def ping(self) -> bool:
        return bool(self._api_key and self._from)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class LogChannel(EmailChannel):
    """Writes messages to the log instead of sending them.

    Only the most recent *keep* messages are retained in ``sent``.
    """

    def __init__(self, keep: int = 100) -> None:
        self.sent: deque[EmailMessage] = deque(maxlen=keep)
        self.count = 0

    async def send(self, msg: EmailMessage) -> DeliveryResult:
        self.count += 1
        self.sent.append(msg)
        logger.info("email_logged", to=msg.to, subject=msg.subject, tags=msg.tags)
        return DeliveryResult(success=True, provider_id=f"log-{self.count}")

    async def close(self) -> None:
        pass
