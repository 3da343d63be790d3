"""Upstream price source — Rakuten Travel vacancy lookups with retry/backoff."""

from __future__ import annotations

import abc
import asyncio
import datetime
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any

import httpx
import structlog

from pricewatch.core.config import UpstreamConfig, get_settings
from pricewatch.core.types import (
    AvailabilityStatus,
    FetchFailure,
    Observation,
    StayKey,
    utc_now,
)
from pricewatch.source.exceptions import (
    PermanentSourceError,
    SourceConnectionError,
    SourceError,
    SourceRateLimitError,
    SourceResponseError,
    SourceTimeoutError,
    TransientSourceError,
)

logger = structlog.stdlib.get_logger()

SleepFn = Callable[[float], Awaitable[None]]

_DEFAULT_BOOKING_URL = "https://travel.rakuten.co.jp/HOTEL/{hotel_id}/"


class PriceSource(abc.ABC):
    """Abstract upstream lookup: one (hotel, dates, occupancy) → Observation.

    ``fetch`` never raises for upstream problems; it returns a
    :class:`FetchFailure` once retries are exhausted.
    """

    async def connect(self) -> None:
        """Open network resources.  Default: nothing to do."""

    async def close(self) -> None:
        """Release network resources.  Default: nothing to do."""

    @abc.abstractmethod
    async def fetch(self, key: StayKey) -> Observation | FetchFailure:
        """Return the current observation for *key* or a typed failure."""

    async def ping(self) -> bool:
        """Lightweight reachability check used by the health job."""
        return True

    async def __aenter__(self) -> PriceSource:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


def backoff_delay(exc: SourceError, attempt: int, config: UpstreamConfig) -> float:
    """Seconds to wait after *attempt* failed with *exc*."""
    if isinstance(exc, SourceRateLimitError):
        return config.rate_limit_backoff_secs * attempt
    if isinstance(exc, (SourceTimeoutError, SourceConnectionError)):
        return config.network_backoff_secs * attempt
    return config.default_backoff_secs * attempt


# ── Response parsing ────────────────────────────────────────────


def _merge_hotel_parts(entry: Any) -> dict[str, Any]:
    """Flatten one ``hotels[]`` entry into a single dict.

    Rakuten returns either ``{"hotel": [{...}, {...}]}`` (formatVersion 1)
    or ``[{...}, {...}]`` (formatVersion 2), each part holding one key.
    """
    if isinstance(entry, dict) and isinstance(entry.get("hotel"), list):
        entry = entry["hotel"]
    if isinstance(entry, list):
        merged: dict[str, Any] = {}
        for part in entry:
            if isinstance(part, dict):
                merged.update(part)
        return merged
    return entry if isinstance(entry, dict) else {}


def _pair_rooms(room_info: Any) -> list[tuple[dict[str, Any], dict[str, Any]]]:
    """Pair each ``roomBasicInfo`` with the ``dailyCharge`` that follows it."""
    if not isinstance(room_info, list):
        return []
    rooms: list[tuple[dict[str, Any], dict[str, Any]]] = []
    pending: dict[str, Any] | None = None
    for entry in room_info:
        if not isinstance(entry, dict):
            continue
        basic = entry.get("roomBasicInfo")
        charge = entry.get("dailyCharge")
        if isinstance(basic, dict) and isinstance(charge, dict):
            rooms.append((basic, charge))
            pending = None
        elif isinstance(basic, dict):
            pending = basic
        elif isinstance(charge, dict) and pending is not None:
            rooms.append((pending, charge))
            pending = None
    return rooms


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def unavailable_observation(
    key: StayKey,
    observed_at: datetime.datetime,
    hotel_name: str = "",
    booking_url: str = "",
) -> Observation:
    return Observation(
        key=key,
        price=None,
        status=AvailabilityStatus.UNAVAILABLE,
        remaining_rooms=0,
        observed_at=observed_at,
        hotel_name=hotel_name,
        booking_url=booking_url,
    )


def parse_vacancy(
    key: StayKey,
    body: dict[str, Any],
    observed_at: datetime.datetime,
    limited_threshold: int = 3,
    booking_url_template: str = _DEFAULT_BOOKING_URL,
) -> Observation:
    """Convert a VacantHotelSearch response body into an Observation.

    The cheapest vacant plan sets the price; the number of vacant room
    entries stands in for remaining rooms.
    """
    default_url = booking_url_template.format(hotel_id=key.hotel_id)
    hotels = body.get("hotels")
    if not isinstance(hotels, list) or not hotels:
        return unavailable_observation(key, observed_at, booking_url=default_url)

    hotel = _merge_hotel_parts(hotels[0])
    basic_info = hotel.get("hotelBasicInfo")
    if not isinstance(basic_info, dict):
        basic_info = {}
    hotel_name = str(basic_info.get("hotelName") or "")
    booking_url = str(
        basic_info.get("hotelInformationUrl")
        or basic_info.get("planListUrl")
        or default_url
    )

    rooms = [
        (basic, charge)
        for basic, charge in _pair_rooms(hotel.get("roomInfo"))
        if (_as_int(charge.get("total")) or 0) > 0
    ]
    if not rooms:
        return unavailable_observation(key, observed_at, hotel_name, booking_url)

    basic, charge = min(rooms, key=lambda r: _as_int(r[1].get("total")) or 0)
    remaining = len(rooms)
    status = (
        AvailabilityStatus.LIMITED
        if remaining <= limited_threshold
        else AvailabilityStatus.AVAILABLE
    )
    return Observation(
        key=key,
        price=_as_int(charge.get("total")),
        original_price=_as_int(charge.get("rakutenCharge")),
        status=status,
        remaining_rooms=remaining,
        observed_at=observed_at,
        hotel_name=hotel_name,
        room_name=str(basic.get("roomName") or ""),
        plan_name=str(basic.get("planName") or ""),
        booking_url=booking_url,
    )


# ── Rakuten client ──────────────────────────────────────────────


class RakutenPriceSource(PriceSource):
    """Price source backed by the Rakuten Travel VacantHotelSearch API.

    Usage::

        async with RakutenPriceSource(config) as source:
            result = await source.fetch(key)
            if isinstance(result, FetchFailure):
                ...
    """

    def __init__(
        self,
        config: UpstreamConfig | None = None,
        sleep: SleepFn = asyncio.sleep,
        booking_url_template: str = _DEFAULT_BOOKING_URL,
    ) -> None:
        self._config = config or get_settings().upstream
        self._sleep = sleep
        self._booking_url_template = booking_url_template
        self._http: httpx.AsyncClient | None = None

    @property
    def connected(self) -> bool:
        return self._http is not None and not self._http.is_closed

    async def connect(self) -> None:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_secs),
            )

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def fetch(self, key: StayKey) -> Observation | FetchFailure:
        """Fetch with bounded retries; never raises for upstream errors."""
        max_attempts = max(1, self._config.max_attempts)
        last_error: SourceError | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                return await asyncio.wait_for(
                    self._fetch_once(key),
                    timeout=self._config.timeout_secs,
                )
            except TimeoutError:
                last_error = SourceTimeoutError(
                    f"no response within {self._config.timeout_secs}s"
                )
            except PermanentSourceError as exc:
                logger.warning(
                    "source_permanent_error",
                    target=str(key),
                    attempt=attempt,
                    error=str(exc),
                )
                return FetchFailure(
                    key=key,
                    reason=str(exc),
                    attempts=attempt,
                    permanent=True,
                )
            except TransientSourceError as exc:
                last_error = exc

            if attempt < max_attempts:
                delay = backoff_delay(last_error, attempt, self._config)
                logger.warning(
                    "source_retry",
                    target=str(key),
                    attempt=attempt,
                    max_attempts=max_attempts,
                    delay_secs=delay,
                    error=str(last_error),
                    error_type=type(last_error).__name__,
                )
                await self._sleep(delay)

        reason = f"upstream call failed after {max_attempts} attempts: {last_error}"
        logger.error("source_retries_exhausted", target=str(key), reason=reason)
        return FetchFailure(key=key, reason=reason, attempts=max_attempts)

    async def _fetch_once(self, key: StayKey) -> Observation:
        if self._http is None:
            raise SourceConnectionError("HTTP client not connected")

        params: dict[str, Any] = {
            "applicationId": self._config.application_id.get_secret_value(),
            "format": "json",
            "formatVersion": 2,
            "hotelNo": key.hotel_id,
            "checkinDate": key.check_in.isoformat(),
            "checkoutDate": key.check_out.isoformat(),
            "adultNum": key.occupancy,
            "responseType": "large",
        }
        if self._config.affiliate_id:
            params["affiliateId"] = self._config.affiliate_id

        try:
            response = await self._http.get(self._config.base_url, params=params)
        except httpx.TimeoutException as exc:
            raise SourceTimeoutError(f"request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise SourceConnectionError(f"request failed: {exc}") from exc

        return self._parse_response(key, response)

    def _parse_response(self, key: StayKey, response: httpx.Response) -> Observation:
        status = response.status_code
        now = utc_now()

        if status == 429:
            raise SourceRateLimitError("upstream rate limit (HTTP 429)")
        if status >= 500:
            raise SourceResponseError(f"upstream server error (HTTP {status})")

        try:
            body = response.json()
        except ValueError as exc:
            if status == 200:
                raise SourceResponseError("upstream returned invalid JSON") from exc
            body = {}
        if not isinstance(body, dict):
            body = {}

        if status == 404 and body.get("error") == "not_found":
            # No vacancy for these dates is a valid observation, not an error.
            return unavailable_observation(
                key,
                now,
                booking_url=self._booking_url_template.format(hotel_id=key.hotel_id),
            )
        if status != 200:
            detail = body.get("error_description") or body.get("error") or ""
            raise PermanentSourceError(f"upstream rejected request (HTTP {status}) {detail}".strip())

        return parse_vacancy(
            key,
            body,
            observed_at=now,
            limited_threshold=self._config.limited_room_threshold,
            booking_url_template=self._booking_url_template,
        )

    async def ping(self) -> bool:
        if self._http is None:
            return False
        try:
            response = await self._http.get(
                self._config.health_url,
                params={
                    "applicationId": self._config.application_id.get_secret_value(),
                    "format": "json",
                },
                timeout=5.0,
            )
        except httpx.HTTPError as exc:
            logger.warning("source_ping_failed", error=str(exc))
            return False
        return response.status_code == 200
