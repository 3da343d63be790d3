"""Background job runners — wall-clock interval jobs and local daily jobs."""

from __future__ import annotations

import abc
import asyncio
import datetime
from collections.abc import Awaitable, Callable
from zoneinfo import ZoneInfo

import structlog

from pricewatch.core.types import utc_now

logger = structlog.stdlib.get_logger()

JobFn = Callable[[], Awaitable[object]]
Clock = Callable[[], datetime.datetime]
Sleep = Callable[[float], Awaitable[None]]

# Upper bound on one sleep so clock adjustments are noticed.
_MAX_SLEEP_SECS = 60.0


class Job(abc.ABC):
    """A named coroutine fired by a background timer.

    Each job is single-flight: a tick that arrives while the previous run
    is still in progress is skipped and logged, never queued.

    Usage::

        job = IntervalJob("price_check", monitor.run_cycle, interval_secs=900)
        await job.start()
        # ...
        await job.stop(grace_secs=30)
    """

    def __init__(
        self,
        name: str,
        fn: JobFn,
        *,
        clock: Clock = utc_now,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._name = name
        self._fn = fn
        self._clock = clock
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[None] | None = None
        self._running = False
        self._busy = False
        self._runs = 0
        self._skips = 0
        self._errors = 0
        self._last_run_at: datetime.datetime | None = None
        self._next_run_at: datetime.datetime | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._running

    @property
    def busy(self) -> bool:
        return self._busy

    @abc.abstractmethod
    def next_fire(self, now: datetime.datetime) -> datetime.datetime:
        """First fire time strictly after *now* (UTC)."""

    @abc.abstractmethod
    def describe(self) -> str:
        """Human-readable schedule."""

    # ── Triggering ──────────────────────────────────────────────

    def trigger(self) -> asyncio.Task[None] | None:
        """Start one run in the background.  Returns None if skipped."""
        if self._busy:
            self._skips += 1
            logger.warning("job_skipped_in_progress", job=self._name, skips=self._skips)
            return None
        self._busy = True
        self._inflight = asyncio.create_task(self._execute())
        return self._inflight

    async def run_now(self) -> bool:
        """Trigger a run and wait for it to finish."""
        task = self.trigger()
        if task is None:
            return False
        await task
        return True

    async def _execute(self) -> None:
        self._last_run_at = self._clock()
        try:
            await self._fn()
            self._runs += 1
        except asyncio.CancelledError:
            raise
        except Exception:
            self._errors += 1
            logger.exception("job_error", job=self._name, errors=self._errors)
        finally:
            self._busy = False

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("job_started", job=self._name, schedule=self.describe())

    async def stop(self, grace_secs: float = 0.0) -> None:
        """Stop firing, give an in-flight run *grace_secs* to finish, then cancel it."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        inflight = self._inflight
        if inflight is not None and not inflight.done():
            try:
                await asyncio.wait_for(asyncio.shield(inflight), timeout=grace_secs)
            except TimeoutError:
                logger.warning("job_cancelled_after_grace", job=self._name, grace_secs=grace_secs)
                inflight.cancel()
                try:
                    await inflight
                except asyncio.CancelledError:
                    pass
        self._inflight = None
        self._next_run_at = None
        logger.info("job_stopped", job=self._name)

    async def _loop(self) -> None:
        fire_at = self.next_fire(self._clock())
        while self._running:
            self._next_run_at = fire_at
            try:
                remaining = (fire_at - self._clock()).total_seconds()
                if remaining > 0:
                    await self._sleep(min(remaining, _MAX_SLEEP_SECS))
                    continue
                self.trigger()
                fire_at = self.next_fire(fire_at)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("job_loop_error", job=self._name)
                await self._sleep(1.0)

    def status(self) -> dict[str, object]:
        return {
            "schedule": self.describe(),
            "running": self._running,
            "busy": self._busy,
            "runs": self._runs,
            "skips": self._skips,
            "errors": self._errors,
            "last_run_at": self._last_run_at.isoformat() if self._last_run_at else None,
            "next_run_at": self._next_run_at.isoformat() if self._next_run_at else None,
        }


class IntervalJob(Job):
    """Fires every *interval_secs*, aligned to the wall clock.

    A 900s job fires at :00, :15, :30 and :45 past each hour.
    """

    def __init__(self, name: str, fn: JobFn, *, interval_secs: float, **kwargs) -> None:
        if interval_secs <= 0:
            raise ValueError("interval_secs must be positive")
        super().__init__(name, fn, **kwargs)
        self._interval_secs = interval_secs

    def next_fire(self, now: datetime.datetime) -> datetime.datetime:
        ts = now.timestamp()
        slot = (int(ts) // self._interval_secs + 1) * self._interval_secs
        return datetime.datetime.fromtimestamp(slot, tz=datetime.UTC)

    def describe(self) -> str:
        return f"every {self._interval_secs:g}s"


class DailyJob(Job):
    """Fires once per local day at *hour*:00 in *timezone*."""

    def __init__(
        self,
        name: str,
        fn: JobFn,
        *,
        hour: int,
        timezone: str = "Asia/Tokyo",
        **kwargs,
    ) -> None:
        if not 0 <= hour <= 23:
            raise ValueError("hour must be in 0..23")
        super().__init__(name, fn, **kwargs)
        self._hour = hour
        self._timezone = timezone
        self._tz = ZoneInfo(timezone)

    def next_fire(self, now: datetime.datetime) -> datetime.datetime:
        local = now.astimezone(self._tz)
        day = local.date()
        candidate = datetime.datetime.combine(day, datetime.time(self._hour), tzinfo=self._tz)
        if candidate <= local:
            candidate = datetime.datetime.combine(
                day + datetime.timedelta(days=1), datetime.time(self._hour), tzinfo=self._tz,
            )
        return candidate.astimezone(datetime.UTC)

    def describe(self) -> str:
        return f"daily at {self._hour:02d}:00 {self._timezone}"
