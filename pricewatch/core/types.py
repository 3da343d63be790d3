"""Domain types for price monitoring — prices are whole yen (int)."""

from __future__ import annotations

import datetime
import uuid
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _new_id() -> str:
    return uuid.uuid4().hex


class AvailabilityStatus(StrEnum):
    """Vacancy state reported for a stay."""

    AVAILABLE = "available"
    LIMITED = "limited"
    UNAVAILABLE = "unavailable"


class AvailabilityTransition(StrEnum):
    """Discrete change between two consecutive availability states."""

    NONE = "none"  # no previous observation
    UNCHANGED = "unchanged"
    NEW_AVAILABILITY = "new_availability"  # unavailable → available/limited
    BECAME_LIMITED = "became_limited"  # available → limited
    RESTOCKED = "restocked"  # limited → available
    SOLD_OUT = "sold_out"  # available/limited → unavailable


class AlertType(StrEnum):
    """Kinds of user-facing alert."""

    PRICE_DROP = "price_drop"
    TARGET_PRICE_REACHED = "target_price_reached"
    NEW_AVAILABILITY = "new_availability"
    LAST_ROOM = "last_room"


class DeliveryStatus(StrEnum):
    """Delivery state of an Alert."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    THROTTLED = "throttled"


class QueueStatus(StrEnum):
    """Retry bookkeeping state for a target."""

    PENDING = "pending"
    FAILED = "failed"


# ── Watch Registry ──────────────────────────────────────────────


class StayKey(BaseModel):
    """The (hotel, check-in, check-out, occupancy) tuple a price belongs to."""

    model_config = ConfigDict(frozen=True)

    hotel_id: str
    check_in: datetime.date
    check_out: datetime.date
    occupancy: int = 1

    @model_validator(mode="after")
    def _check_range(self) -> StayKey:
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        if self.occupancy < 1:
            raise ValueError("occupancy must be at least 1")
        return self

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    def __str__(self) -> str:
        return (
            f"{self.hotel_id}:{self.check_in.isoformat()}"
            f"/{self.check_out.isoformat()}x{self.occupancy}"
        )


class AlertConditions(BaseModel):
    """Per-item alert configuration.  ``None`` thresholds use global defaults."""

    price_drop: bool = True
    price_drop_threshold: int | None = None
    price_drop_percentage: int | None = None
    new_availability: bool = True
    last_room_alert: bool = False
    max_price: int | None = None


class WatchItem(BaseModel):
    """A user's standing subscription to one StayKey."""

    id: str = Field(default_factory=_new_id)
    user_id: str
    user_email: str
    user_name: str = ""
    hotel_id: str
    hotel_name: str = ""
    check_in: datetime.date
    check_out: datetime.date
    occupancy: int = 1
    target_price: int | None = None
    conditions: AlertConditions = Field(default_factory=AlertConditions)
    is_active: bool = True
    last_checked_at: datetime.datetime | None = None
    alert_count: int = 0
    created_at: datetime.datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> StayKey:
        return StayKey(
            hotel_id=self.hotel_id,
            check_in=self.check_in,
            check_out=self.check_out,
            occupancy=self.occupancy,
        )


# ── Observations & changes ─────────────────────────────────────


class Observation(BaseModel):
    """One immutable price/availability reading for a StayKey."""

    model_config = ConfigDict(frozen=True)

    key: StayKey
    price: int | None = None
    original_price: int | None = None
    status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    remaining_rooms: int | None = None
    observed_at: datetime.datetime = Field(default_factory=utc_now)
    hotel_name: str = ""
    room_name: str = ""
    plan_name: str = ""
    booking_url: str = ""

    @property
    def discount_rate(self) -> int | None:
        """Percent below the undiscounted price, if both are known."""
        if not self.original_price or self.price is None:
            return None
        return round((self.original_price - self.price) / self.original_price * 100)


class ChangeResult(BaseModel):
    """Difference between the previous and current observation of a key."""

    has_change: bool = False
    previous_price: int | None = None
    current_price: int | None = None
    price_delta: int = 0  # positive = drop
    percent_delta: int = 0
    previous_status: AvailabilityStatus | None = None
    current_status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    previous_remaining_rooms: int | None = None
    transition: AvailabilityTransition = AvailabilityTransition.NONE


class FetchFailure(BaseModel):
    """Typed failure returned by a PriceSource after retries are exhausted."""

    key: StayKey
    reason: str
    attempts: int = 0
    permanent: bool = False


# ── Alerts & notifications ─────────────────────────────────────


class Alert(BaseModel):
    """A decision that a notification should be sent to a user."""

    id: str = Field(default_factory=_new_id)
    alert_type: AlertType
    watch_item_id: str
    user_id: str
    user_email: str
    user_name: str = ""
    hotel_name: str = ""
    key: StayKey
    change: ChangeResult
    observation: Observation
    priority: int = 0
    status: DeliveryStatus = DeliveryStatus.PENDING
    error: str = ""
    created_at: datetime.datetime = Field(default_factory=utc_now)
    sent_at: datetime.datetime | None = None


class NotificationLedgerEntry(BaseModel):
    """One row per dispatch attempt, used for throttling and audit."""

    user_id: str
    alert_type: AlertType
    alert_id: str = ""
    watch_item_id: str = ""
    success: bool = True
    created_at: datetime.datetime = Field(default_factory=utc_now)


class MonitorQueueEntry(BaseModel):
    """Retry bookkeeping for a target whose last poll failed."""

    key: StayKey
    status: QueueStatus = QueueStatus.FAILED
    error_count: int = 0
    last_error: str = ""
    next_check_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)


class EmailMessage(BaseModel):
    """A rendered email ready for a channel."""

    to: str
    subject: str
    text: str
    html: str = ""
    tags: dict[str, str] = Field(default_factory=dict)


class DeliveryResult(BaseModel):
    """Outcome of one send attempt."""

    success: bool
    error: str = ""
    provider_id: str = ""


# ── Orchestration ──────────────────────────────────────────────


class TargetResult(BaseModel):
    """Outcome of processing one target within a cycle."""

    key: StayKey
    ok: bool = True
    skipped: bool = False
    duplicate: bool = False
    watch_items: int = 0
    alerts_sent: int = 0
    alerts_throttled: int = 0
    alerts_failed: int = 0
    error: str = ""


class CycleStats(BaseModel):
    """Aggregated statistics for one price-check cycle."""

    targets: int = 0
    checked: int = 0
    processed: int = 0
    skipped: int = 0
    duplicates: int = 0
    alerts_sent: int = 0
    alerts_throttled: int = 0
    alerts_failed: int = 0
    errors: int = 0
    started_at: datetime.datetime = Field(default_factory=utc_now)
    duration_secs: float = 0.0

    def add(self, result: TargetResult) -> None:
        """Fold one target result into the cycle totals."""
        if result.skipped:
            self.skipped += 1
            return
        self.checked += 1
        if result.duplicate:
            self.duplicates += 1
        elif result.ok:
            self.processed += 1
        else:
            self.errors += 1
        self.alerts_sent += result.alerts_sent
        self.alerts_throttled += result.alerts_throttled
        self.alerts_failed += result.alerts_failed


class HealthStatus(BaseModel):
    """Reachability of the engine's external collaborators."""

    database: bool = False
    upstream: bool = False
    email: bool = False
    active_watch_items: int = 0
    checked_at: datetime.datetime = Field(default_factory=utc_now)

    @property
    def healthy(self) -> bool:
        return self.database and self.upstream and self.email


class MaintenanceReport(BaseModel):
    """Counts of rows removed or deactivated by one maintenance run."""

    observations_pruned: int = 0
    notifications_pruned: int = 0
    alerts_pruned: int = 0
    queue_entries_pruned: int = 0
    watch_items_deactivated: int = 0
    errors: list[str] = Field(default_factory=list)
