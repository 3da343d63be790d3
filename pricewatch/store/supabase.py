"""Supabase (PostgREST) repository over httpx."""

from __future__ import annotations

import datetime
from typing import Any

import httpx
import structlog

from pricewatch.core.config import DatabaseConfig, get_settings
from pricewatch.core.types import (
    Alert,
    AlertConditions,
    AlertType,
    AvailabilityStatus,
    ChangeResult,
    DeliveryStatus,
    MonitorQueueEntry,
    NotificationLedgerEntry,
    Observation,
    QueueStatus,
    StayKey,
    WatchItem,
)
from pricewatch.store.base import Repository
from pricewatch.store.exceptions import PersistenceError

logger = structlog.stdlib.get_logger()

WATCH_ITEMS = "watch_items"
OBSERVATIONS = "price_observations"
ALERTS = "price_alerts"
LEDGER = "notification_ledger"
QUEUE = "monitor_queue"

_KEY_COLUMNS = "hotel_id,check_in,check_out,occupancy"


def _ts(value: datetime.datetime) -> str:
    return value.isoformat()


def _key_filters(key: StayKey) -> dict[str, str]:
    return {
        "hotel_id": f"eq.{key.hotel_id}",
        "check_in": f"eq.{key.check_in.isoformat()}",
        "check_out": f"eq.{key.check_out.isoformat()}",
        "occupancy": f"eq.{key.occupancy}",
    }


def _key_columns(key: StayKey) -> dict[str, Any]:
    return {
        "hotel_id": key.hotel_id,
        "check_in": key.check_in.isoformat(),
        "check_out": key.check_out.isoformat(),
        "occupancy": key.occupancy,
    }


def _key_from_row(row: dict[str, Any]) -> StayKey:
    return StayKey(
        hotel_id=str(row["hotel_id"]),
        check_in=row["check_in"],
        check_out=row["check_out"],
        occupancy=row.get("occupancy") or 1,
    )


def _parse_count(response: httpx.Response) -> int:
    """Read the total from a ``Content-Range: 0-9/42`` (or ``*/42``) header."""
    content_range = response.headers.get("content-range", "")
    _, _, total = content_range.partition("/")
    try:
        return int(total)
    except ValueError:
        return 0


# ── Row mapping ─────────────────────────────────────────────────


def watch_item_to_row(item: WatchItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "user_id": item.user_id,
        "user_email": item.user_email,
        "user_name": item.user_name,
        "hotel_id": item.hotel_id,
        "hotel_name": item.hotel_name,
        "check_in": item.check_in.isoformat(),
        "check_out": item.check_out.isoformat(),
        "occupancy": item.occupancy,
        "target_price": item.target_price,
        "alert_conditions": item.conditions.model_dump(),
        "is_active": item.is_active,
        "last_checked_at": _ts(item.last_checked_at) if item.last_checked_at else None,
        "alert_count": item.alert_count,
        "created_at": _ts(item.created_at),
    }


def watch_item_from_row(row: dict[str, Any]) -> WatchItem:
    data = dict(row)
    data["conditions"] = AlertConditions(**(data.pop("alert_conditions", None) or {}))
    data["occupancy"] = data.get("occupancy") or 1
    data["alert_count"] = data.get("alert_count") or 0
    return WatchItem(**{k: v for k, v in data.items() if v is not None})


def observation_to_row(observation: Observation, is_latest: bool) -> dict[str, Any]:
    return {
        **_key_columns(observation.key),
        "price": observation.price,
        "original_price": observation.original_price,
        "discount_rate": observation.discount_rate,
        "availability_status": observation.status.value,
        "remaining_rooms": observation.remaining_rooms,
        "observed_at": _ts(observation.observed_at),
        "hotel_name": observation.hotel_name,
        "room_name": observation.room_name,
        "plan_name": observation.plan_name,
        "booking_url": observation.booking_url,
        "is_latest": is_latest,
    }


def observation_from_row(row: dict[str, Any]) -> Observation:
    return Observation(
        key=_key_from_row(row),
        price=row.get("price"),
        original_price=row.get("original_price"),
        status=AvailabilityStatus(row.get("availability_status") or "available"),
        remaining_rooms=row.get("remaining_rooms"),
        observed_at=row["observed_at"],
        hotel_name=row.get("hotel_name") or "",
        room_name=row.get("room_name") or "",
        plan_name=row.get("plan_name") or "",
        booking_url=row.get("booking_url") or "",
    )


def alert_to_row(alert: Alert) -> dict[str, Any]:
    return {
        "id": alert.id,
        "alert_type": alert.alert_type.value,
        "watch_item_id": alert.watch_item_id,
        "user_id": alert.user_id,
        "user_email": alert.user_email,
        "user_name": alert.user_name,
        "hotel_name": alert.hotel_name,
        **_key_columns(alert.key),
        "previous_price": alert.change.previous_price,
        "current_price": alert.change.current_price,
        "price_difference": alert.change.price_delta,
        "price_drop_percentage": alert.change.percent_delta,
        "change": alert.change.model_dump(mode="json"),
        "observation": alert.observation.model_dump(mode="json"),
        "priority": alert.priority,
        "status": alert.status.value,
        "error": alert.error,
        "created_at": _ts(alert.created_at),
        "sent_at": _ts(alert.sent_at) if alert.sent_at else None,
    }


def alert_from_row(row: dict[str, Any]) -> Alert:
    return Alert(
        id=row["id"],
        alert_type=AlertType(row["alert_type"]),
        watch_item_id=row["watch_item_id"],
        user_id=row["user_id"],
        user_email=row.get("user_email") or "",
        user_name=row.get("user_name") or "",
        hotel_name=row.get("hotel_name") or "",
        key=_key_from_row(row),
        change=ChangeResult(**(row.get("change") or {})),
        observation=Observation(**row["observation"]),
        priority=row.get("priority") or 0,
        status=DeliveryStatus(row.get("status") or "pending"),
        error=row.get("error") or "",
        created_at=row["created_at"],
        sent_at=row.get("sent_at"),
    )


def queue_entry_from_row(row: dict[str, Any]) -> MonitorQueueEntry:
    return MonitorQueueEntry(
        key=_key_from_row(row),
        status=QueueStatus(row.get("status") or "failed"),
        error_count=row.get("error_count") or 0,
        last_error=row.get("last_error") or "",
        next_check_at=row["next_check_at"],
        updated_at=row["updated_at"],
    )


# ── Repository ──────────────────────────────────────────────────


class SupabaseRepository(Repository):
    """Repository backed by Supabase's PostgREST API.

    Expects the tables named at module level with a unique constraint on
    ``(hotel_id, check_in, check_out, occupancy, observed_at)`` for
    observations and on the key columns for ``monitor_queue``.

    Usage::

        repo = SupabaseRepository(settings.database)
        items = await repo.list_active_watch_items()
        await repo.close()
    """

    def __init__(
        self,
        config: DatabaseConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        cfg = config or get_settings().database
        key = cfg.service_role_key.get_secret_value()
        self._http = client or httpx.AsyncClient(
            base_url=f"{cfg.url.rstrip('/')}/rest/v1",
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(cfg.timeout_secs),
        )

    # ── HTTP helpers ────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        table: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await self._http.request(
                method,
                f"/{table}",
                params=params,
                json=json,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise PersistenceError(
                f"{method} {table} failed (HTTP {exc.response.status_code}): "
                f"{exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise PersistenceError(f"{method} {table} failed: {exc}") from exc
        return response

    async def _select(self, table: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        response = await self._request("GET", table, params={"select": "*", **params})
        try:
            rows = response.json()
        except ValueError as exc:
            raise PersistenceError(f"GET {table} returned invalid JSON") from exc
        return rows if isinstance(rows, list) else []

    async def _delete_count(self, table: str, params: dict[str, Any]) -> int:
        response = await self._request(
            "DELETE", table, params=params, prefer="return=minimal,count=exact"
        )
        return _parse_count(response)

    # ── Watch items ─────────────────────────────────────────────

    async def list_active_watch_items(self) -> list[WatchItem]:
        rows = await self._select(WATCH_ITEMS, {"is_active": "eq.true"})
        return [watch_item_from_row(r) for r in rows]

    async def get_watch_item(self, item_id: str) -> WatchItem | None:
        rows = await self._select(WATCH_ITEMS, {"id": f"eq.{item_id}", "limit": 1})
        return watch_item_from_row(rows[0]) if rows else None

    async def find_watch_item(self, user_id: str, key: StayKey) -> WatchItem | None:
        rows = await self._select(
            WATCH_ITEMS,
            {
                "user_id": f"eq.{user_id}",
                "is_active": "eq.true",
                **_key_filters(key),
                "limit": 1,
            },
        )
        return watch_item_from_row(rows[0]) if rows else None

    async def upsert_watch_item(self, item: WatchItem) -> WatchItem:
        await self._request(
            "POST",
            WATCH_ITEMS,
            params={"on_conflict": "id"},
            json=watch_item_to_row(item),
            prefer="resolution=merge-duplicates,return=minimal",
        )
        return item

    async def deactivate_watch_item(self, item_id: str) -> bool:
        response = await self._request(
            "PATCH",
            WATCH_ITEMS,
            params={"id": f"eq.{item_id}", "is_active": "eq.true"},
            json={"is_active": False},
            prefer="return=minimal,count=exact",
        )
        return _parse_count(response) > 0

    async def deactivate_watch_items_before(self, day: datetime.date) -> int:
        response = await self._request(
            "PATCH",
            WATCH_ITEMS,
            params={"is_active": "eq.true", "check_in": f"lte.{day.isoformat()}"},
            json={"is_active": False},
            prefer="return=minimal,count=exact",
        )
        return _parse_count(response)

    async def touch_watch_item(
        self,
        item_id: str,
        checked_at: datetime.datetime,
        alerts_sent: int = 0,
    ) -> None:
        data: dict[str, Any] = {"last_checked_at": _ts(checked_at)}
        if alerts_sent:
            # PostgREST has no atomic increment; read-modify-write is
            # acceptable for a display counter.
            current = await self.get_watch_item(item_id)
            if current is not None:
                data["alert_count"] = current.alert_count + alerts_sent
        await self._request(
            "PATCH", WATCH_ITEMS, params={"id": f"eq.{item_id}"}, json=data
        )

    # ── Observations ────────────────────────────────────────────

    async def insert_observation(self, observation: Observation) -> bool:
        latest = await self.latest_observation(observation.key)
        is_latest = latest is None or observation.observed_at > latest.observed_at

        response = await self._request(
            "POST",
            OBSERVATIONS,
            params={"on_conflict": f"{_KEY_COLUMNS},observed_at"},
            json=observation_to_row(observation, is_latest),
            prefer="resolution=ignore-duplicates,return=representation",
        )
        try:
            inserted = bool(response.json())
        except ValueError:
            inserted = False

        if inserted and is_latest and latest is not None:
            await self._request(
                "PATCH",
                OBSERVATIONS,
                params={
                    **_key_filters(observation.key),
                    "is_latest": "eq.true",
                    "observed_at": f"lt.{_ts(observation.observed_at)}",
                },
                json={"is_latest": False},
            )
        return inserted

    async def latest_observation(
        self,
        key: StayKey,
        before: datetime.datetime | None = None,
    ) -> Observation | None:
        params: dict[str, Any] = {
            **_key_filters(key),
            "order": "observed_at.desc",
            "limit": 1,
        }
        if before is not None:
            params["observed_at"] = f"lt.{_ts(before)}"
        rows = await self._select(OBSERVATIONS, params)
        return observation_from_row(rows[0]) if rows else None

    async def list_observations(
        self,
        key: StayKey,
        since: datetime.datetime | None = None,
    ) -> list[Observation]:
        params: dict[str, Any] = {**_key_filters(key), "order": "observed_at.asc"}
        if since is not None:
            params["observed_at"] = f"gte.{_ts(since)}"
        rows = await self._select(OBSERVATIONS, params)
        return [observation_from_row(r) for r in rows]

    # ── Alerts ──────────────────────────────────────────────────

    async def insert_alert(self, alert: Alert) -> None:
        await self._request(
            "POST", ALERTS, json=alert_to_row(alert), prefer="return=minimal"
        )

    async def update_alert_status(
        self,
        alert_id: str,
        status: DeliveryStatus,
        error: str = "",
        sent_at: datetime.datetime | None = None,
    ) -> None:
        data: dict[str, Any] = {"status": status.value, "error": error}
        if sent_at is not None:
            data["sent_at"] = _ts(sent_at)
        await self._request(
            "PATCH", ALERTS, params={"id": f"eq.{alert_id}"}, json=data
        )

    async def list_alerts(
        self,
        since: datetime.datetime,
        until: datetime.datetime | None = None,
    ) -> list[Alert]:
        created: list[str] = [f"created_at.gte.{_ts(since)}"]
        if until is not None:
            created.append(f"created_at.lt.{_ts(until)}")
        rows = await self._select(
            ALERTS,
            {"and": f"({','.join(created)})", "order": "created_at.asc"},
        )
        return [alert_from_row(r) for r in rows]

    # ── Notification ledger ─────────────────────────────────────

    async def count_recent_notifications(
        self,
        user_id: str,
        since: datetime.datetime,
    ) -> int:
        response = await self._request(
            "GET",
            LEDGER,
            params={
                "select": "user_id",
                "user_id": f"eq.{user_id}",
                "created_at": f"gte.{_ts(since)}",
                "limit": 1,
            },
            prefer="count=exact",
        )
        return _parse_count(response)

    async def insert_notification(self, entry: NotificationLedgerEntry) -> None:
        await self._request(
            "POST",
            LEDGER,
            json={
                "user_id": entry.user_id,
                "alert_type": entry.alert_type.value,
                "alert_id": entry.alert_id,
                "watch_item_id": entry.watch_item_id,
                "success": entry.success,
                "created_at": _ts(entry.created_at),
            },
            prefer="return=minimal",
        )

    # ── Monitor queue ───────────────────────────────────────────

    async def get_queue_entry(self, key: StayKey) -> MonitorQueueEntry | None:
        rows = await self._select(QUEUE, {**_key_filters(key), "limit": 1})
        return queue_entry_from_row(rows[0]) if rows else None

    async def upsert_queue_entry(self, entry: MonitorQueueEntry) -> None:
        await self._request(
            "POST",
            QUEUE,
            params={"on_conflict": _KEY_COLUMNS},
            json={
                **_key_columns(entry.key),
                "status": entry.status.value,
                "error_count": entry.error_count,
                "last_error": entry.last_error,
                "next_check_at": _ts(entry.next_check_at),
                "updated_at": _ts(entry.updated_at),
            },
            prefer="resolution=merge-duplicates,return=minimal",
        )

    async def delete_queue_entry(self, key: StayKey) -> None:
        await self._request("DELETE", QUEUE, params=_key_filters(key))

    # ── Retention ───────────────────────────────────────────────

    async def prune_observations(self, cutoff: datetime.datetime) -> int:
        return await self._delete_count(
            OBSERVATIONS,
            {"observed_at": f"lt.{_ts(cutoff)}", "is_latest": "eq.false"},
        )

    async def prune_notifications(self, cutoff: datetime.datetime) -> int:
        return await self._delete_count(LEDGER, {"created_at": f"lt.{_ts(cutoff)}"})

    async def prune_alerts(self, cutoff: datetime.datetime) -> int:
        return await self._delete_count(ALERTS, {"created_at": f"lt.{_ts(cutoff)}"})

    async def prune_queue(self, cutoff: datetime.datetime) -> int:
        return await self._delete_count(QUEUE, {"updated_at": f"lt.{_ts(cutoff)}"})

    # ── Lifecycle ───────────────────────────────────────────────

    async def ping(self) -> bool:
        try:
            await self._request(
                "GET", WATCH_ITEMS, params={"select": "id", "limit": 1}
            )
        except PersistenceError as exc:
            logger.warning("database_ping_failed", error=str(exc))
            return False
        return True

    async def close(self) -> None:
        await self._http.aclose()
