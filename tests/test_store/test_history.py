"""Tests for HistoryStore — previous lookup, duplicate replay, per-key ordering."""

from __future__ import annotations

import asyncio
import datetime

from pricewatch.core.types import Observation, StayKey
from pricewatch.store.history import HistoryStore
from pricewatch.store.memory import InMemoryRepository

KEY = StayKey(
    hotel_id="12345",
    check_in=datetime.date(2026, 12, 24),
    check_out=datetime.date(2026, 12, 26),
)
T0 = datetime.datetime(2026, 12, 1, 0, 0, tzinfo=datetime.UTC)


def _obs(minutes: int, price: int = 10000) -> Observation:
    return Observation(key=KEY, price=price, observed_at=T0 + datetime.timedelta(minutes=minutes))


class TestAppend:
    async def test_first_append_has_no_previous(self) -> None:
        history = HistoryStore(InMemoryRepository())
        inserted, previous = await history.append(_obs(0))
        assert inserted is True
        assert previous is None

    async def test_append_returns_previous(self) -> None:
        history = HistoryStore(InMemoryRepository())
        await history.append(_obs(0, price=10000))
        inserted, previous = await history.append(_obs(15, price=9000))
        assert inserted is True
        assert previous is not None and previous.price == 10000

    async def test_replay_is_not_inserted(self) -> None:
        history = HistoryStore(InMemoryRepository())
        await history.append(_obs(0, price=10000))
        await history.append(_obs(15, price=9000))
        inserted, previous = await history.append(_obs(15, price=9000))
        assert inserted is False
        assert previous is not None and previous.price == 10000
        assert len(await history.trend(KEY)) == 2

    async def test_concurrent_appends_same_key_serialized(self) -> None:
        history = HistoryStore(InMemoryRepository())
        results = await asyncio.gather(*(history.append(_obs(m, price=m)) for m in range(5)))
        assert all(inserted for inserted, _ in results)
        assert [o.price for o in await history.trend(KEY)] == [0, 1, 2, 3, 4]

    async def test_latest_before(self) -> None:
        history = HistoryStore(InMemoryRepository())
        await history.record(_obs(0, price=1))
        await history.record(_obs(15, price=2))
        prev = await history.latest_before(KEY, T0 + datetime.timedelta(minutes=15))
        assert prev is not None and prev.price == 1


class TestPrune:
    async def test_prune_uses_retention_window(self) -> None:
        history = HistoryStore(InMemoryRepository(), retention_days=30)
        await history.record(_obs(0))
        await history.record(_obs(60 * 24 * 10))
        now = T0 + datetime.timedelta(days=35)
        assert await history.prune(now) == 1
        assert len(await history.trend(KEY)) == 1
