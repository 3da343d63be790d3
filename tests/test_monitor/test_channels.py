"""Tests for email channels — HTTP mocking, error handling, session management."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import aiohttp

from pricewatch.core.config import EmailConfig
from pricewatch.core.types import EmailMessage
from pricewatch.monitor.channels import LogChannel, ResendChannel


# ── Helpers ─────────────────────────────────────────────────────


def _msg(**kw: object) -> EmailMessage:
    defaults: dict[str, object] = {
        "to": "a@example.com",
        "subject": "Price drop: Hotel Sakura",
        "text": "Now: ¥8,800",
        "html": "<p>Now: ¥8,800</p>",
        "tags": {"alert_type": "price_drop"},
    }
    defaults.update(kw)
    return EmailMessage(**defaults)  # type: ignore[arg-type]


def _config(**kw: object) -> EmailConfig:
    defaults: dict[str, object] = {
        "provider": "resend",
        "api_key": "re_fake",
        "from_address": "Alerts <alerts@example.com>",
    }
    defaults.update(kw)
    return EmailConfig(**defaults)  # type: ignore[arg-type]


def _mock_response(status: int = 200, body: object = None, text: str = "ok") -> AsyncMock:
    resp = AsyncMock()
    resp.status = status
    resp.json = AsyncMock(return_value=body if body is not None else {"id": "re_123"})
    resp.text = AsyncMock(return_value=text)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def _channel_with(resp: AsyncMock | None = None, error: Exception | None = None) -> tuple[ResendChannel, MagicMock]:
    ch = ResendChannel(_config())
    mock_session = MagicMock()
    if error is not None:
        mock_session.post = MagicMock(side_effect=error)
    else:
        mock_session.post = MagicMock(return_value=resp)
    mock_session.closed = False
    ch._session = mock_session
    return ch, mock_session


# ── ResendChannel ───────────────────────────────────────────────


class TestResendChannel:
    async def test_send_success(self) -> None:
        ch, session = _channel_with(_mock_response(200))

        result = await ch.send(_msg())

        assert result.success is True
        assert result.provider_id == "re_123"
        call_args = session.post.call_args
        assert call_args[0][0] == "https://api.resend.com/emails"
        assert call_args[1]["headers"]["Authorization"] == "Bearer re_fake"
        payload = call_args[1]["json"]
        assert payload["from"] == "Alerts <alerts@example.com>"
        assert payload["to"] == ["a@example.com"]
        assert payload["subject"] == "Price drop: Hotel Sakura"
        assert payload["html"] == "<p>Now: ¥8,800</p>"
        assert payload["tags"] == [{"name": "alert_type", "value": "price_drop"}]

    async def test_omits_empty_html_and_tags(self) -> None:
        ch, session = _channel_with(_mock_response(200))
        await ch.send(_msg(html="", tags={}))
        payload = session.post.call_args[1]["json"]
        assert "html" not in payload
        assert "tags" not in payload

    async def test_rejected_status_is_failure(self) -> None:
        ch, _ = _channel_with(_mock_response(422, text="invalid from address"))
        result = await ch.send(_msg())
        assert result.success is False
        assert "HTTP 422" in result.error
        assert "invalid from address" in result.error

    async def test_client_error_is_failure(self) -> None:
        ch, _ = _channel_with(error=aiohttp.ClientConnectionError("refused"))
        result = await ch.send(_msg())
        assert result.success is False
        assert "refused" in result.error

    async def test_timeout_is_failure(self) -> None:
        ch, _ = _channel_with(error=TimeoutError())
        result = await ch.send(_msg())
        assert result.success is False
        assert "timed out" in result.error

    async def test_ping_requires_credentials(self) -> None:
        assert await ResendChannel(_config()).ping() is True
        assert await ResendChannel(_config(api_key="")).ping() is False

    async def test_close_session(self) -> None:
        ch = ResendChannel(_config())
        mock_session = AsyncMock()
        mock_session.closed = False
        ch._session = mock_session

        await ch.close()
        mock_session.close.assert_awaited_once()

    async def test_close_when_no_session(self) -> None:
        ch = ResendChannel(_config())
        await ch.close()  # should not raise

    async def test_lazy_session_creation(self) -> None:
        ch = ResendChannel(_config())
        assert ch._session is None
        session = ch._get_session()
        assert session is not None
        await ch.close()


# ── LogChannel ──────────────────────────────────────────────────


class TestLogChannel:
    async def test_records_message(self) -> None:
        ch = LogChannel()
        result = await ch.send(_msg())
        assert result.success is True
        assert result.provider_id == "log-1"
        assert ch.sent[0].to == "a@example.com"
        assert await ch.ping() is True
        await ch.close()

    async def test_keeps_only_recent_messages(self) -> None:
        ch = LogChannel(keep=2)
        for i in range(5):
            result = await ch.send(_msg(subject=f"s{i}"))
        assert result.provider_id == "log-5"
        assert ch.count == 5
        assert [m.subject for m in ch.sent] == ["s3", "s4"]
