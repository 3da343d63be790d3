"""Core module — config, types, logging."""

from pricewatch.core.config import Settings, get_settings, load_settings, reset_settings
from pricewatch.core.logging import setup_logging
from pricewatch.core.types import (
    Alert,
    AlertConditions,
    AlertType,
    AvailabilityStatus,
    AvailabilityTransition,
    ChangeResult,
    CycleStats,
    DeliveryResult,
    DeliveryStatus,
    FetchFailure,
    MonitorQueueEntry,
    NotificationLedgerEntry,
    Observation,
    StayKey,
    WatchItem,
)

__all__ = [
    "Alert",
    "AlertConditions",
    "AlertType",
    "AvailabilityStatus",
    "AvailabilityTransition",
    "ChangeResult",
    "CycleStats",
    "DeliveryResult",
    "DeliveryStatus",
    "FetchFailure",
    "MonitorQueueEntry",
    "NotificationLedgerEntry",
    "Observation",
    "Settings",
    "StayKey",
    "WatchItem",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
