#!/usr/bin/env python3
"""Price monitor entrypoint — runs the service or a single job on demand.

Usage::

    # Run the service until SIGINT/SIGTERM
    python scripts/run.py run

    # One price-check cycle now
    python scripts/run.py check

    # Check one target now, ignoring queue back-off
    python scripts/run.py check-target 12345 2026-12-24 2026-12-26 --occupancy 2

    # Auxiliary jobs
    python scripts/run.py digest
    python scripts/run.py maintenance
    python scripts/run.py health

    # Configured schedule and service state as JSON
    python scripts/run.py status

    # Custom config file, log level, no real email or database
    python scripts/run.py --config config/settings.yaml --log-level DEBUG --dry-run check
"""

from __future__ import annotations

import argparse
import asyncio
import datetime
import json
import signal
import sys

import structlog

from pricewatch.core.config import load_settings
from pricewatch.core.logging import setup_logging
from pricewatch.core.types import StayKey
from pricewatch.monitor.channels import LogChannel
from pricewatch.scheduler.factory import create_service
from pricewatch.scheduler.service import MonitorService
from pricewatch.store.memory import InMemoryRepository

logger = structlog.get_logger(__name__)


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, default=str))


async def _serve(service: MonitorService) -> int:
    await service.start()

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    logger.info("service_shutting_down")
    return 0


async def _check_target(service: MonitorService, args: argparse.Namespace) -> int:
    key = StayKey(
        hotel_id=args.hotel_id,
        check_in=datetime.date.fromisoformat(args.check_in),
        check_out=datetime.date.fromisoformat(args.check_out),
        occupancy=args.occupancy,
    )
    await service.connect()
    result = await service.monitor.check_target(key)
    _print_json(result.model_dump(mode="json"))
    return 0 if result.ok else 1


async def run(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    overrides = {}
    if args.dry_run:
        overrides = {"repository": InMemoryRepository(), "channel": LogChannel()}
    service = create_service(settings, **overrides)

    logger.info(
        "pricewatch_starting",
        command=args.command,
        database=settings.database.backend,
        email=settings.email.provider,
        dry_run=args.dry_run,
    )

    try:
        if args.command == "run":
            return await _serve(service)

        if args.command == "check":
            await service.connect()
            stats = await service.monitor.run_cycle()
            _print_json(stats.model_dump(mode="json") if stats else None)
            return 0 if stats and not stats.errors else 1

        if args.command == "check-target":
            return await _check_target(service, args)

        if args.command == "digest":
            sent = await service.digest.run()
            _print_json({"digests_sent": sent})
            return 0

        if args.command == "maintenance":
            report = await service.maintenance.run()
            _print_json(report.model_dump(mode="json"))
            return 0 if not report.errors else 1

        if args.command == "health":
            await service.connect()
            health = await service.health.check()
            _print_json({**health.model_dump(mode="json"), "healthy": health.healthy})
            return 0 if health.healthy else 1

        if args.command == "status":
            _print_json(service.status())
            return 0
    finally:
        await service.close()

    return 2


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Monitor hotel prices and email users when they change.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Use an in-memory store and log emails instead of sending them",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Run the service until interrupted")
    sub.add_parser("check", help="Run one price-check cycle now")
    target = sub.add_parser("check-target", help="Check one target now")
    target.add_argument("hotel_id")
    target.add_argument("check_in", help="YYYY-MM-DD")
    target.add_argument("check_out", help="YYYY-MM-DD")
    target.add_argument("--occupancy", type=int, default=1)
    sub.add_parser("digest", help="Send yesterday's daily digests now")
    sub.add_parser("maintenance", help="Run retention pruning and expiry now")
    sub.add_parser("health", help="Check store, upstream and email")
    sub.add_parser("status", help="Print the job schedule and service state")

    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
