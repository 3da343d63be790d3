"""PriceMonitor — one price-check cycle over every active target."""

from __future__ import annotations

import asyncio
import datetime
import time
from collections.abc import Awaitable, Callable

import structlog

from pricewatch.alerts.detector import detect
from pricewatch.alerts.evaluator import AlertEvaluator
from pricewatch.core.clock import local_today
from pricewatch.core.config import MonitorConfig
from pricewatch.core.types import (
    CycleStats,
    DeliveryStatus,
    FetchFailure,
    MonitorQueueEntry,
    QueueStatus,
    StayKey,
    TargetResult,
    WatchItem,
    utc_now,
)
from pricewatch.monitor.dispatcher import AlertDispatcher
from pricewatch.source.client import PriceSource
from pricewatch.store.base import Repository
from pricewatch.store.exceptions import PersistenceError
from pricewatch.store.history import HistoryStore
from pricewatch.store.registry import WatchRegistry, group_by_target

logger = structlog.stdlib.get_logger()


class PriceMonitor:
    """Fetches, records and evaluates every active target, then dispatches alerts.

    Pipeline per cycle:
        1. Load active watch items and group them by target (StayKey)
        2. Process targets in batches; each batch runs concurrently
        3. Per target: queue back-off → fetch → record → detect →
           evaluate per watch item → deliver
        4. Fold per-target results into :class:`CycleStats`

    One target failing never affects the others in its batch.  Only a
    failure to list watch items aborts a cycle.
    """

    def __init__(
        self,
        source: PriceSource,
        repository: Repository,
        history: HistoryStore,
        registry: WatchRegistry,
        evaluator: AlertEvaluator,
        dispatcher: AlertDispatcher,
        config: MonitorConfig | None = None,
        *,
        clock: Callable[[], datetime.datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._repo = repository
        self._history = history
        self._registry = registry
        self._evaluator = evaluator
        self._dispatcher = dispatcher
        self._config = config or MonitorConfig()
        self._clock = clock
        self._sleep = sleep

        self._cycle_running = False
        self._cycles = 0
        self._skipped_cycles = 0
        self._totals = CycleStats()
        self._last_cycle: CycleStats | None = None

    @property
    def cycle_running(self) -> bool:
        return self._cycle_running

    @property
    def last_cycle(self) -> CycleStats | None:
        return self._last_cycle

    @property
    def stats(self) -> dict[str, object]:
        totals = self._totals.model_dump(exclude={"started_at", "duration_secs"})
        return {
            "cycles": self._cycles,
            "skipped_cycles": self._skipped_cycles,
            "cycle_running": self._cycle_running,
            "totals": totals,
            "last_cycle": (
                self._last_cycle.model_dump(mode="json") if self._last_cycle else None
            ),
        }

    # ── Cycle ───────────────────────────────────────────────────

    async def run_cycle(self) -> CycleStats | None:
        """Run one cycle.  Returns None if a cycle is already in progress."""
        if self._cycle_running:
            self._skipped_cycles += 1
            logger.warning("cycle_skipped_in_progress", skipped=self._skipped_cycles)
            return None
        self._cycle_running = True
        try:
            with structlog.contextvars.bound_contextvars(cycle=self._cycles + 1):
                return await self._run_cycle()
        finally:
            self._cycle_running = False

    async def _run_cycle(self) -> CycleStats:
        started_at = self._clock()
        t0 = time.monotonic()
        stats = CycleStats(started_at=started_at)
        logger.info("cycle_started", started_at=started_at.isoformat())

        try:
            items = await self._registry.active_items(
                local_today(self._config.timezone, started_at)
            )
        except PersistenceError as exc:
            stats.errors += 1
            stats.duration_secs = round(time.monotonic() - t0, 3)
            logger.error("cycle_aborted", error=str(exc))
            self._finish(stats)
            return stats

        targets = group_by_target(items)
        keys = list(targets)
        stats.targets = len(keys)
        batch_size = self._config.batch_size

        try:
            for start in range(0, len(keys), batch_size):
                if start:
                    await self._sleep(self._config.batch_delay_secs)
                batch = keys[start:start + batch_size]
                results = await asyncio.gather(
                    *(self._process_target(key, targets[key]) for key in batch),
                    return_exceptions=True,
                )
                for key, result in zip(batch, results):
                    stats.add(self._as_result(key, result))
        finally:
            stats.duration_secs = round(time.monotonic() - t0, 3)
            self._finish(stats)
            logger.info("cycle_completed", **stats.model_dump(mode="json"))
        return stats

    def _finish(self, stats: CycleStats) -> None:
        self._cycles += 1
        self._last_cycle = stats
        for field in (
            "targets", "checked", "processed", "skipped", "duplicates",
            "alerts_sent", "alerts_throttled", "alerts_failed", "errors",
        ):
            setattr(self._totals, field, getattr(self._totals, field) + getattr(stats, field))

    @staticmethod
    def _as_result(key: StayKey, result: TargetResult | BaseException) -> TargetResult:
        if isinstance(result, BaseException):
            logger.error(
                "target_processing_error",
                target=str(key),
                error=f"{type(result).__name__}: {result}",
                exc_info=result,
            )
            return TargetResult(key=key, ok=False, error=str(result) or type(result).__name__)
        return result

    # ── Manual check ────────────────────────────────────────────

    async def check_target(self, key: StayKey) -> TargetResult:
        """Check one target now, ignoring any queue back-off."""
        now = self._clock()
        items = await self._registry.active_items(local_today(self._config.timezone, now))
        return await self._process_target(
            key, [i for i in items if i.key == key], force=True,
        )

    # ── Per target ──────────────────────────────────────────────

    async def _process_target(
        self,
        key: StayKey,
        items: list[WatchItem],
        force: bool = False,
    ) -> TargetResult:
        now = self._clock()
        result = TargetResult(key=key, watch_items=len(items))

        entry = await self._repo.get_queue_entry(key)
        if entry is not None and not force and entry.next_check_at > now:
            result.skipped = True
            logger.debug(
                "target_backoff_skip",
                target=str(key),
                next_check_at=entry.next_check_at.isoformat(),
            )
            return result

        outcome = await self._source.fetch(key)
        if isinstance(outcome, FetchFailure):
            await self._defer(entry, outcome, now)
            result.ok = False
            result.error = outcome.reason
            return result

        try:
            inserted, previous = await self._history.append(outcome)
        except PersistenceError as exc:
            logger.error("observation_persist_failed", target=str(key), error=str(exc))
            result.ok = False
            result.error = str(exc)
            return result

        if not inserted:
            result.duplicate = True
            return result

        if entry is not None:
            await self._repo.delete_queue_entry(key)

        change = detect(previous, outcome)
        for item in items:
            sent = 0
            for alert in self._evaluator.evaluate(item, outcome, change):
                try:
                    status = await self._dispatcher.deliver(alert, now)
                except PersistenceError as exc:
                    logger.error(
                        "alert_persist_failed",
                        item_id=item.id,
                        alert_type=alert.alert_type.value,
                        error=str(exc),
                    )
                    result.alerts_failed += 1
                    continue
                if status == DeliveryStatus.SENT:
                    sent += 1
                elif status == DeliveryStatus.THROTTLED:
                    result.alerts_throttled += 1
                else:
                    result.alerts_failed += 1
            result.alerts_sent += sent
            try:
                await self._registry.mark_checked(item.id, now, alerts_sent=sent)
            except PersistenceError as exc:
                logger.warning("watch_item_touch_failed", item_id=item.id, error=str(exc))

        logger.debug(
            "target_processed",
            target=str(key),
            price=outcome.price,
            status=outcome.status.value,
            transition=change.transition.value,
            alerts_sent=result.alerts_sent,
        )
        return result

    async def _defer(
        self,
        entry: MonitorQueueEntry | None,
        failure: FetchFailure,
        now: datetime.datetime,
    ) -> None:
        retry_secs = (
            self._config.permanent_failure_retry_secs
            if failure.permanent
            else self._config.failure_retry_secs
        )
        error_count = (entry.error_count if entry else 0) + 1
        await self._repo.upsert_queue_entry(MonitorQueueEntry(
            key=failure.key,
            status=QueueStatus.FAILED,
            error_count=error_count,
            last_error=failure.reason,
            next_check_at=now + datetime.timedelta(seconds=retry_secs),
            updated_at=now,
        ))
        logger.warning(
            "target_fetch_failed",
            target=str(failure.key),
            reason=failure.reason,
            attempts=failure.attempts,
            permanent=failure.permanent,
            error_count=error_count,
            retry_in_secs=retry_secs,
        )
