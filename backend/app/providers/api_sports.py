"""
backend/app/providers/api_sports.py

Purpose:
    API-Sports enrichment provider (football, basketball, hockey, american
    football). Translates the per-sport endpoint layout into the
    EnrichmentProvider contract and hands every payload to the validation
    boundary in app.models.provider_payloads.

Dependencies:
    - httpx (via ResilientClient)
    - app.config
    - app.models.provider_payloads
"""

from __future__ import annotations

import logging
from datetime import datetime

from app.config import settings
from app.models.provider_payloads import (
    ProviderGame,
    TeamIdentity,
    parse_games,
    parse_teams,
)
from app.providers.base import EnrichmentProvider
from app.providers.http_client import ResilientClient
from app.services.errors import ProviderUnavailable
from app.utils import utcnow

logger = logging.getLogger("matchintel.api_sports")

BASE_URLS: dict[str, str] = {
    "soccer": "https://v3.football.api-sports.io",
    "basketball": "https://v1.basketball.api-sports.io",
    "hockey": "https://v1.hockey.api-sports.io",
    "american_football": "https://v1.american-football.api-sports.io",
}

# Soccer is the only API flavour with /fixtures + server-side last/status filters
_SOCCER_FINISHED = "FT-AET-PEN"


def current_season(family: str, now: datetime | None = None) -> int | str:
    """Season parameter for the family. Seasons starting in autumn belong to
    the start year; basketball uses the ``YYYY-YYYY`` form."""
    now = now or utcnow()
    if settings.API_SPORTS_SEASON is not None:
        start = settings.API_SPORTS_SEASON
    else:
        start = now.year if now.month >= 8 else now.year - 1
    if family == "basketball":
        return f"{start}-{start + 1}"
    return start


def _newest_first(games: list[ProviderGame]) -> list[ProviderGame]:
    return sorted(
        games,
        key=lambda g: g.date.timestamp() if g.date is not None else 0.0,
        reverse=True,
    )


class ApiSportsProvider(EnrichmentProvider):
    name = "api-sports"

    def __init__(self, api_key: str | None = None, client: ResilientClient | None = None):
        self._api_key = settings.API_SPORTS_KEY if api_key is None else api_key
        self._client = client or ResilientClient(
            self.name,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            max_retries=settings.HTTP_MAX_RETRIES,
            base_delay=settings.HTTP_BASE_DELAY_SECONDS,
        )
        self._requests_remaining: int | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    @property
    def requests_remaining(self) -> int | None:
        return self._requests_remaining

    def supports(self, family: str) -> bool:
        return family in BASE_URLS

    async def _get(self, family: str, path: str, params: dict) -> object:
        if not self.is_configured:
            raise ProviderUnavailable(self.name, "API_SPORTS_KEY not configured")
        if family not in BASE_URLS:
            raise ProviderUnavailable(self.name, f"unsupported sport family {family}")
        payload, resp = await self._client.get_json(
            f"{BASE_URLS[family]}{path}",
            params=params,
            headers={"x-apisports-key": self._api_key},
        )
        remaining = resp.headers.get("x-ratelimit-requests-remaining")
        if remaining is not None:
            try:
                self._requests_remaining = int(remaining)
            except ValueError:
                logger.debug("Unparseable quota header: %r", remaining)
        return payload

    async def search_teams(self, family: str, name: str) -> list[TeamIdentity]:
        payload = await self._get(family, "/teams", {"search": name})
        return parse_teams(self.name, payload)

    async def get_season_games(self, family: str, team_id: int) -> list[ProviderGame]:
        season = current_season(family)
        if family == "soccer":
            payload = await self._get(
                family, "/fixtures",
                {"team": team_id, "season": season, "status": _SOCCER_FINISHED},
            )
        else:
            payload = await self._get(family, "/games", {"team": team_id, "season": season})
        games = parse_games(self.name, family, payload)
        return _newest_first([g for g in games if g.is_finished(family)])

    async def get_team_games(self, family: str, team_id: int, *, last: int = 5) -> list[ProviderGame]:
        if family == "soccer":
            payload = await self._get(
                family, "/fixtures",
                {"team": team_id, "last": last, "status": _SOCCER_FINISHED},
            )
            games = parse_games(self.name, family, payload)
            return _newest_first([g for g in games if g.is_finished(family)])[:last]
        return (await self.get_season_games(family, team_id))[:last]

    async def get_head_to_head(
        self, family: str, home_id: int, away_id: int, *, last: int = 10
    ) -> list[ProviderGame]:
        pair = f"{home_id}-{away_id}"
        if family == "soccer":
            payload = await self._get(family, "/fixtures/headtohead", {"h2h": pair, "last": last})
        elif family == "hockey":
            payload = await self._get(family, "/games/h2h", {"h2h": pair})
        else:
            payload = await self._get(family, "/games", {"h2h": pair})
        games = parse_games(self.name, family, payload)
        return _newest_first([g for g in games if g.is_finished(family)])[:last]

    async def aclose(self) -> None:
        await self._client.aclose()
