"""HistoryStore — append-only observations with per-key ordering."""

from __future__ import annotations

import datetime

import structlog

from pricewatch.core.locks import KeyedLock
from pricewatch.core.types import Observation, StayKey, utc_now
from pricewatch.store.base import Repository

logger = structlog.stdlib.get_logger()


class HistoryStore:
    """Records observations and answers "what did we see last time?".

    Writers for the same key are serialized with a per-key lock so that
    ``append`` reads the prior observation and inserts the new one as one
    step.  Different keys never contend.
    """

    def __init__(self, repository: Repository, retention_days: int = 30) -> None:
        self._repo = repository
        self._retention_days = retention_days
        self._locks = KeyedLock()

    async def record(self, observation: Observation) -> bool:
        """Append *observation*.  Returns False for a replay of the same poll."""
        async with self._locks.hold(observation.key):
            return await self._repo.insert_observation(observation)

    async def latest_before(
        self,
        key: StayKey,
        timestamp: datetime.datetime,
    ) -> Observation | None:
        """Most recent observation strictly before *timestamp*, or None."""
        return await self._repo.latest_observation(key, before=timestamp)

    async def append(self, observation: Observation) -> tuple[bool, Observation | None]:
        """Record *observation* and return ``(inserted, previous)``."""
        async with self._locks.hold(observation.key):
            previous = await self._repo.latest_observation(
                observation.key, before=observation.observed_at
            )
            inserted = await self._repo.insert_observation(observation)
        if not inserted:
            logger.info(
                "observation_duplicate",
                target=str(observation.key),
                observed_at=observation.observed_at.isoformat(),
            )
        return inserted, previous

    async def trend(
        self,
        key: StayKey,
        since: datetime.datetime | None = None,
    ) -> list[Observation]:
        """Retained observations for *key*, oldest first."""
        return await self._repo.list_observations(key, since=since)

    async def prune(self, now: datetime.datetime | None = None) -> int:
        """Drop observations past retention, never the newest one per key."""
        cutoff = (now or utc_now()) - datetime.timedelta(days=self._retention_days)
        removed = await self._repo.prune_observations(cutoff)
        logger.info("observations_pruned", removed=removed, cutoff=cutoff.isoformat())
        return removed
