"""Pydantic settings loaded from YAML configuration, with env overrides for credentials."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, SecretStr

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

# Environment variable → (section, key).  Env values win over YAML.
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "RAKUTEN_APPLICATION_ID": ("upstream", "application_id"),
    "RAKUTEN_AFFILIATE_ID": ("upstream", "affiliate_id"),
    "SUPABASE_URL": ("database", "url"),
    "SUPABASE_SERVICE_ROLE_KEY": ("database", "service_role_key"),
    "RESEND_API_KEY": ("email", "api_key"),
    "PRICEWATCH_LOG_LEVEL": ("logging", "level"),
}


class UpstreamConfig(BaseModel):
    """Rakuten Travel vacancy API configuration."""

    base_url: str = (
        "https://app.rakuten.co.jp/services/api/Travel/VacantHotelSearch/20170426"
    )
    health_url: str = (
        "https://app.rakuten.co.jp/services/api/Travel/GetAreaClass/20131024"
    )
    application_id: SecretStr = SecretStr("")
    affiliate_id: str = ""
    timeout_secs: float = 10.0
    max_attempts: int = 3
    rate_limit_backoff_secs: float = 5.0
    network_backoff_secs: float = 2.0
    default_backoff_secs: float = 1.0
    limited_room_threshold: int = 3


class DatabaseConfig(BaseModel):
    """Storage backend configuration."""

    backend: str = "memory"
    url: str = ""
    service_role_key: SecretStr = SecretStr("")
    timeout_secs: float = 30.0


class EmailConfig(BaseModel):
    """Email provider configuration."""

    provider: str = "log"
    api_url: str = "https://api.resend.com/emails"
    api_key: SecretStr = SecretStr("")
    from_address: str = "LastMinuteStay <alerts@lastminutestay.jp>"
    booking_url_template: str = "https://travel.rakuten.co.jp/HOTEL/{hotel_id}/"


class MonitorConfig(BaseModel):
    """Price-check cycle configuration."""

    cycle_interval_secs: float = 900.0
    batch_size: int = 10
    batch_delay_secs: float = 1.0
    failure_retry_secs: float = 1800.0
    permanent_failure_retry_secs: float = 86400.0
    shutdown_grace_secs: float = 30.0
    timezone: str = "Asia/Tokyo"


class AlertsConfig(BaseModel):
    """Alert evaluation and throttling defaults."""

    price_drop_threshold_amount: int = 1000
    price_drop_threshold_percent: int = 10
    last_room_threshold: int = 3
    max_alerts_per_user: int = 10
    throttle_window_hours: float = 24.0


class ScheduleConfig(BaseModel):
    """Auxiliary job schedule (hours are local to ``monitor.timezone``)."""

    digest_hour: int = 9
    digest_top_n: int = 5
    maintenance_hour: int = 2
    health_interval_secs: float = 300.0


class RetentionConfig(BaseModel):
    """Retention windows used by the maintenance job."""

    observation_days: int = 30
    notification_days: int = 90
    alert_days: int = 90
    queue_days: int = 1


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    # Alert decisions also go to this JSON-lines file when set.
    alert_log_path: str = ""
    quiet_loggers: list[str] = ["httpx", "httpcore", "aiohttp.access"]


class Settings(BaseModel):
    """Root settings container."""

    upstream: UpstreamConfig = UpstreamConfig()
    database: DatabaseConfig = DatabaseConfig()
    email: EmailConfig = EmailConfig()
    monitor: MonitorConfig = MonitorConfig()
    alerts: AlertsConfig = AlertsConfig()
    schedule: ScheduleConfig = ScheduleConfig()
    retention: RetentionConfig = RetentionConfig()
    logging: LoggingConfig = LoggingConfig()


def _apply_env_overrides(data: dict[str, Any], environ: dict[str, str]) -> dict[str, Any]:
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if not value:
            continue
        section_data = data.get(section)
        if not isinstance(section_data, dict):
            section_data = {}
            data[section] = section_data
        section_data[key] = value

    # A Supabase URL in the environment implies the Supabase backend
    # unless the YAML picked one explicitly.
    if environ.get("SUPABASE_URL"):
        data["database"].setdefault("backend", "supabase")
    return data


def load_settings(
    path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Load settings from a YAML file, apply env overrides and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.
        environ: Environment mapping. Defaults to ``os.environ``.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    data = _apply_env_overrides(data, dict(os.environ if environ is None else environ))
    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
