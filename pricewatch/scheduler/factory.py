"""Convenience factory for wiring the monitoring service."""

from __future__ import annotations

from pricewatch.alerts.evaluator import AlertEvaluator
from pricewatch.alerts.throttle import NotificationThrottle
from pricewatch.core.config import DatabaseConfig, EmailConfig, Settings, get_settings
from pricewatch.monitor.channels import EmailChannel, LogChannel, ResendChannel
from pricewatch.monitor.digest import DailyDigest
from pricewatch.monitor.dispatcher import AlertDispatcher
from pricewatch.monitor.health import HealthChecker
from pricewatch.monitor.maintenance import MaintenanceJob
from pricewatch.scheduler.orchestrator import PriceMonitor
from pricewatch.scheduler.service import MonitorService
from pricewatch.source.client import PriceSource, RakutenPriceSource
from pricewatch.store.base import Repository
from pricewatch.store.history import HistoryStore
from pricewatch.store.memory import InMemoryRepository
from pricewatch.store.registry import WatchRegistry
from pricewatch.store.supabase import SupabaseRepository


def create_repository(config: DatabaseConfig) -> Repository:
    if config.backend == "memory":
        return InMemoryRepository()
    if config.backend == "supabase":
        if not config.url:
            raise ValueError("database.url is required for the supabase backend")
        return SupabaseRepository(config)
    raise ValueError(f"unknown database backend: {config.backend!r}")


def create_channel(config: EmailConfig) -> EmailChannel:
    if config.provider == "log":
        return LogChannel()
    if config.provider == "resend":
        return ResendChannel(config)
    raise ValueError(f"unknown email provider: {config.provider!r}")


def create_service(
    settings: Settings | None = None,
    *,
    source: PriceSource | None = None,
    repository: Repository | None = None,
    channel: EmailChannel | None = None,
) -> MonitorService:
    """Build the full service from *settings*.

    Any collaborator may be passed in directly (tests, dry runs); the rest
    are built from configuration.
    """
    settings = settings or get_settings()
    tz = settings.monitor.timezone

    source = source or RakutenPriceSource(
        settings.upstream,
        booking_url_template=settings.email.booking_url_template,
    )
    repository = repository or create_repository(settings.database)
    channel = channel or create_channel(settings.email)

    history = HistoryStore(repository, retention_days=settings.retention.observation_days)
    registry = WatchRegistry(repository)
    throttle = NotificationThrottle(repository, settings.alerts)
    dispatcher = AlertDispatcher(channel, repository, throttle)

    monitor = PriceMonitor(
        source,
        repository,
        history,
        registry,
        AlertEvaluator(settings.alerts),
        dispatcher,
        settings.monitor,
    )
    return MonitorService(
        settings,
        source=source,
        repository=repository,
        dispatcher=dispatcher,
        monitor=monitor,
        digest=DailyDigest(
            repository, dispatcher, timezone=tz, top_n=settings.schedule.digest_top_n,
        ),
        health=HealthChecker(repository, source, channel),
        maintenance=MaintenanceJob(
            repository, history, registry, settings.retention, timezone=tz,
        ),
    )
