"""
backend/tests/test_match_cache.py

Purpose:
    TTL expiry semantics of the in-process caches and the unified result
    cache: deep-copied hits flagged cached=True, strict expiry, skip_cache,
    in-flight coalescing of concurrent misses.

Dependencies:
    - app.services.ttl_cache
    - app.services.match_cache
"""

from __future__ import annotations

import asyncio

import pytest

from app.models.match_intel import EnrichedData, MatchIdentifier, ResponseMetadata, UnifiedMatchData
from app.services.match_cache import MatchCache
from app.services.ttl_cache import TTLCache


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _match(home: str = "Arsenal", away: str = "Chelsea", sport: str = "soccer_epl") -> MatchIdentifier:
    return MatchIdentifier(home_team=home, away_team=away, sport=sport)


def _data(match: MatchIdentifier, warning: str = "w") -> UnifiedMatchData:
    return UnifiedMatchData(
        match=match,
        enriched_data=EnrichedData.unavailable(),
        metadata=ResponseMetadata(warnings=[warning]),
    )


def test_ttl_cache_expires_strictly_at_ttl():
    clock = _Clock()
    cache: TTLCache[str] = TTLCache(10, clock=clock)
    cache.set("k", "v")
    clock.now = 1009.5
    assert cache.get("k") == "v"
    clock.now = 1010.0
    assert cache.get("k") is None
    assert len(cache) == 0


def test_ttl_cache_max_entries_and_purge():
    clock = _Clock()
    cache: TTLCache[int] = TTLCache(10, max_entries=2, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    assert "a" not in cache
    assert cache.get("c") == 3

    cache.set("short", 4, ttl_seconds=1)
    clock.now += 5
    assert cache.purge_expired() == 1
    assert cache.pop("c") == 3
    cache.clear()
    assert len(cache) == 0


def test_ttl_cache_refreshed_key_is_evicted_last():
    clock = _Clock()
    cache: TTLCache[int] = TTLCache(10, max_entries=2, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    cache.set("c", 3)

    assert "b" not in cache
    assert cache.get("a") == 10
    assert cache.get("c") == 3


def test_cache_key_is_lowercase_identity():
    assert _match("Arsenal", "Chelsea", "Soccer_EPL").cache_key == "arsenal:chelsea:soccer_epl"


def test_hit_returns_deep_copy_flagged_cached():
    clock = _Clock()
    cache = MatchCache(300, clock=clock)
    match = _match()
    cache.set(match, _data(match))

    first = cache.get(match)
    assert first is not None
    assert first.cached is True
    first.metadata.warnings.append("mutated")

    second = cache.get(match)
    assert second.metadata.warnings == ["w"]


def test_entry_never_served_past_ttl():
    clock = _Clock()
    cache = MatchCache(300, clock=clock)
    match = _match()
    cache.set(match, _data(match))
    clock.now += 299
    assert cache.get(match) is not None
    clock.now += 1
    assert cache.get(match) is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_get_or_compute_caches_and_skip_cache_recomputes():
    cache = MatchCache(300, clock=_Clock())
    match = _match()
    calls = {"n": 0}

    async def _compute():
        calls["n"] += 1
        return _data(match, warning=f"run-{calls['n']}")

    first = await cache.get_or_compute(match, _compute)
    second = await cache.get_or_compute(match, _compute)
    assert calls["n"] == 1
    assert first.cached is False
    assert second.cached is True
    assert second.metadata.warnings == ["run-1"]

    fresh = await cache.get_or_compute(match, _compute, skip_cache=True)
    assert calls["n"] == 2
    assert fresh.cached is False
    # skip_cache still writes the result
    assert cache.get(match).metadata.warnings == ["run-2"]


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_computation():
    cache = MatchCache(300, coalesce=True, clock=_Clock())
    match = _match()
    gate = asyncio.Event()
    calls = {"n": 0}

    async def _compute():
        calls["n"] += 1
        await gate.wait()
        return _data(match)

    tasks = [asyncio.create_task(cache.get_or_compute(match, _compute)) for _ in range(3)]
    await asyncio.sleep(0)
    assert cache.inflight_count == 1
    gate.set()
    results = await asyncio.gather(*tasks)

    assert calls["n"] == 1
    assert all(r.metadata.warnings == ["w"] for r in results)
    assert len({id(r) for r in results}) == 3
    assert cache.inflight_count == 0


@pytest.mark.asyncio
async def test_failed_computation_is_not_cached():
    cache = MatchCache(300, clock=_Clock())
    match = _match()

    async def _boom():
        raise RuntimeError("upstream exploded")

    with pytest.raises(RuntimeError):
        await cache.get_or_compute(match, _boom)
    assert cache.get(match) is None
    assert cache.inflight_count == 0


@pytest.mark.asyncio
async def test_coalescing_can_be_disabled():
    cache = MatchCache(300, coalesce=False, clock=_Clock())
    match = _match()
    gate = asyncio.Event()
    calls = {"n": 0}

    async def _compute():
        calls["n"] += 1
        await gate.wait()
        return _data(match)

    tasks = [asyncio.create_task(cache.get_or_compute(match, _compute)) for _ in range(2)]
    await asyncio.sleep(0)
    gate.set()
    await asyncio.gather(*tasks)
    assert calls["n"] == 2
