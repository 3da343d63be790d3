"""Scheduling — the price-check orchestrator, job runners and service."""

from pricewatch.scheduler.factory import create_channel, create_repository, create_service
from pricewatch.scheduler.jobs import DailyJob, IntervalJob, Job
from pricewatch.scheduler.orchestrator import PriceMonitor
from pricewatch.scheduler.service import MonitorService

__all__ = [
    "DailyJob",
    "IntervalJob",
    "Job",
    "MonitorService",
    "PriceMonitor",
    "create_channel",
    "create_repository",
    "create_service",
]
