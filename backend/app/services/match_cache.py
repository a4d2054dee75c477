"""
backend/app/services/match_cache.py

Purpose:
    Short-TTL result cache for unified match data, keyed by the lowercase
    "home:away:sport" identity. Hits are returned as deep copies flagged
    cached=True so callers can never mutate the stored entry. Entries are
    never served at or past their TTL.

    Concurrent misses for the same key share one computation (in-flight
    coalescing); followers await the leader's task and receive their own
    copy of its result. A failed computation is not cached.

Dependencies:
    - asyncio
    - app.services.ttl_cache
    - app.config (TTL, coalescing switch)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from app.config import settings
from app.models.match_intel import MatchIdentifier, UnifiedMatchData
from app.services.ttl_cache import TTLCache

logger = logging.getLogger("matchintel.match_cache")


class MatchCache:
    def __init__(
        self,
        ttl_seconds: float | None = None,
        *,
        coalesce: bool | None = None,
        max_entries: int = 2000,
        clock: Callable[[], float] = time.monotonic,
    ):
        ttl = settings.MATCH_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.coalesce = settings.MATCH_CACHE_COALESCE_INFLIGHT if coalesce is None else coalesce
        self._entries: TTLCache[UnifiedMatchData] = TTLCache(ttl, max_entries=max_entries, clock=clock)
        self._inflight: dict[str, asyncio.Task[UnifiedMatchData]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._entries.ttl_seconds

    def get(self, match: MatchIdentifier) -> UnifiedMatchData | None:
        entry = self._entries.get(match.cache_key)
        if entry is None:
            return None
        logger.debug("Cache HIT: %s", match.cache_key)
        return entry.model_copy(deep=True, update={"cached": True})

    def set(self, match: MatchIdentifier, data: UnifiedMatchData) -> None:
        self._entries.set(match.cache_key, data.model_copy(deep=True, update={"cached": False}))

    def invalidate(self, match: MatchIdentifier) -> None:
        self._entries.pop(match.cache_key)

    def purge_expired(self) -> int:
        return self._entries.purge_expired()

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    async def _compute_and_store(
        self, match: MatchIdentifier, compute: Callable[[], Awaitable[UnifiedMatchData]]
    ) -> UnifiedMatchData:
        data = await compute()
        self.set(match, data)
        return data

    async def get_or_compute(
        self,
        match: MatchIdentifier,
        compute: Callable[[], Awaitable[UnifiedMatchData]],
        *,
        skip_cache: bool = False,
    ) -> UnifiedMatchData:
        """Serve from cache or run ``compute`` once and store its result.

        ``skip_cache`` bypasses the read (and any in-flight computation);
        the fresh result is still written.
        """
        if skip_cache:
            return await self._compute_and_store(match, compute)

        hit = self.get(match)
        if hit is not None:
            return hit

        if not self.coalesce:
            return await self._compute_and_store(match, compute)

        key = match.cache_key
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._compute_and_store(match, compute))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        else:
            logger.debug("Joining in-flight computation: %s", key)

        # Shielded so a cancelled caller does not cancel the shared work
        data = await asyncio.shield(task)
        return data.model_copy(deep=True)
