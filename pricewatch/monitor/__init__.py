"""Notification delivery and the auxiliary digest, health and maintenance jobs."""

from pricewatch.monitor.channels import EmailChannel, LogChannel, ResendChannel
from pricewatch.monitor.digest import DailyDigest
from pricewatch.monitor.dispatcher import AlertDispatcher
from pricewatch.monitor.exceptions import DispatchError
from pricewatch.monitor.formatters import format_alert, format_daily_digest
from pricewatch.monitor.health import HealthChecker
from pricewatch.monitor.maintenance import MaintenanceJob

__all__ = [
    "AlertDispatcher",
    "DailyDigest",
    "DispatchError",
    "EmailChannel",
    "HealthChecker",
    "LogChannel",
    "MaintenanceJob",
    "ResendChannel",
    "format_alert",
    "format_daily_digest",
]
