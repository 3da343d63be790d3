"""structlog setup for the monitor process, plus the optional alert decision log."""

from __future__ import annotations

import logging
import sys

import structlog

from pricewatch.core.config import LoggingConfig, get_settings

ALERT_LOG = "alert_log"

# Applied to structlog events and to stdlib records from httpx/aiohttp alike.
_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def _formatter(renderer: structlog.types.Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_PRE_CHAIN,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logging(
    level: str | None = None,
    fmt: str | None = None,
    config: LoggingConfig | None = None,
) -> None:
    """Route all logging through one stderr handler.

    Args:
        level: Log level override (e.g. "DEBUG"). Uses config if None.
        fmt: Renderer override ("json" or "console"). Uses config if None.
        config: Logging section. Defaults to the cached settings.

    When ``alert_log_path`` is set, records of the ``alert_log`` logger are
    written there as JSON lines instead of to stderr.
    """
    cfg = config or get_settings().logging
    log_level = logging.getLevelNamesMapping().get((level or cfg.level).upper(), logging.INFO)

    structlog.configure(
        processors=[
            *_PRE_CHAIN,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_formatter(_renderer(fmt or cfg.format)))
    root = logging.getLogger()
    _reset_handlers(root)
    root.addHandler(handler)
    root.setLevel(log_level)

    # Per-request INFO lines from HTTP clients drown the cycle logs.
    for name in cfg.quiet_loggers:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    alert_log = logging.getLogger(ALERT_LOG)
    _reset_handlers(alert_log)
    alert_log.propagate = not cfg.alert_log_path
    if cfg.alert_log_path:
        file_handler = logging.FileHandler(cfg.alert_log_path, encoding="utf-8")
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        alert_log.addHandler(file_handler)
