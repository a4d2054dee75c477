import asyncio
import logging
import time
from typing import Any, Optional

from app.config import settings
from app.models.provider_payloads import OddsApiEvent, parse_odds_events
from app.providers.base import OddsProvider
from app.providers.http_client import ResilientClient
from app.services.errors import ProviderUnavailable, StaleData

logger = logging.getLogger("matchintel.odds_api")


class OddsCache:
    """Stale-while-revalidate in-memory cache with mutex for thundering herd protection."""

    def __init__(self, ttl: int, max_stale: Optional[int] = None):
        self.ttl = ttl
        self.max_stale = ttl * 6 if max_stale is None else max_stale
        self._data: dict[str, dict[str, Any]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> Optional[list[OddsApiEvent]]:
        entry = self._data.get(key)
        if not entry:
            return None
        return entry["data"]

    def is_fresh(self, key: str) -> bool:
        entry = self._data.get(key)
        if not entry:
            return False
        return (time.monotonic() - entry["timestamp"]) < self.ttl

    def age(self, key: str) -> Optional[float]:
        entry = self._data.get(key)
        if not entry:
            return None
        return time.monotonic() - entry["timestamp"]

    def get_stale(self, key: str) -> Optional[list[OddsApiEvent]]:
        """Cached list while it is still young enough to stand in for a refresh."""
        age = self.age(key)
        if age is None or age > self.max_stale:
            return None
        return self._data[key]["data"]

    def drop(self, key: str) -> None:
        self._data.pop(key, None)

    def set(self, key: str, data: list[OddsApiEvent]) -> None:
        self._data[key] = {"data": data, "timestamp": time.monotonic()}
        self._cleanup()

    def _cleanup(self) -> None:
        """Remove long-expired entries to prevent unbounded memory growth."""
        now = time.monotonic()
        expired = [k for k, v in self._data.items() if (now - v["timestamp"]) > self.ttl * 10]
        for k in expired:
            del self._data[k]
            self._locks.pop(k, None)

    def get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]


class TheOddsAPIProvider(OddsProvider):
    """TheOddsAPI h2h odds with a per-sport stale-while-revalidate cache.

    A failed refresh raises StaleData carrying the last good list while it
    is younger than ODDS_STALE_MAX_SECONDS; older lists are dropped and the
    plain ProviderUnavailable propagates.
    """

    name = "the-odds-api"

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[ResilientClient] = None,
        base_url: Optional[str] = None,
        max_stale_seconds: Optional[int] = None,
    ):
        self._api_key = settings.ODDSAPIKEY if api_key is None else api_key
        self._base_url = (base_url or settings.THEODDSAPI_BASE_URL).rstrip("/")
        self._client = client or ResilientClient(
            self.name,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            max_retries=settings.HTTP_MAX_RETRIES,
            base_delay=settings.HTTP_BASE_DELAY_SECONDS,
        )
        self._cache = OddsCache(
            ttl=settings.ODDS_CACHE_TTL_SECONDS,
            max_stale=settings.ODDS_STALE_MAX_SECONDS if max_stale_seconds is None else max_stale_seconds,
        )
        self._api_usage: dict[str, Optional[int]] = {"requests_used": 0, "requests_remaining": None}

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _track_usage_headers(self, resp) -> None:
        """Extract and store API usage from response headers."""
        used = resp.headers.get("x-requests-used")
        remaining = resp.headers.get("x-requests-remaining")
        try:
            if used is not None:
                self._api_usage["requests_used"] = int(float(used))
            if remaining is not None:
                self._api_usage["requests_remaining"] = int(float(remaining))
        except ValueError:
            logger.debug("Unparseable usage headers: used=%r remaining=%r", used, remaining)

    async def get_events(self, sport_key: str) -> list[OddsApiEvent]:
        cache_key = f"odds:{sport_key}"

        if self._cache.is_fresh(cache_key):
            return self._cache.get(cache_key) or []

        lock = self._cache.get_lock(cache_key)
        stale = self._cache.get_stale(cache_key)
        if lock.locked() and stale is not None:
            # Another request is already refreshing, serve stale
            return stale

        async with lock:
            # Double-check after acquiring lock
            if self._cache.is_fresh(cache_key):
                return self._cache.get(cache_key) or []

            if not self.is_configured:
                raise ProviderUnavailable(self.name, "ODDSAPIKEY not configured")

            try:
                payload, resp = await self._client.get_json(
                    f"{self._base_url}/sports/{sport_key}/odds",
                    params={
                        "apiKey": self._api_key,
                        "regions": "eu",
                        "markets": "h2h",
                        "oddsFormat": "decimal",
                    },
                )
                self._track_usage_headers(resp)
                events = parse_odds_events(self.name, payload)
            except ProviderUnavailable as exc:
                stale = self._cache.get_stale(cache_key)
                if stale is None:
                    self._cache.drop(cache_key)
                    raise
                age = self._cache.age(cache_key) or 0.0
                logger.warning("TheOddsAPI refresh failed for %s, last good list is %.0fs old: %s", sport_key, age, exc)
                raise StaleData(
                    self.name,
                    f"refresh failed, last good odds are {age:.0f}s old",
                    payload=stale,
                    age_seconds=age,
                    status_code=exc.status_code,
                ) from exc

            self._cache.set(cache_key, events)
            logger.debug(
                "TheOddsAPI %s: %d events (remaining quota %s)",
                sport_key, len(events), self._api_usage["requests_remaining"],
            )
            return events

    @property
    def api_usage(self) -> dict:
        return self._api_usage

    async def aclose(self) -> None:
        await self._client.aclose()
