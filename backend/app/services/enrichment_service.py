"""
backend/app/services/enrichment_service.py

Purpose:
    Enrichment aggregator. Resolves both teams against the enrichment
    provider, then fetches recent form (last 5 finished games per team),
    head-to-head history (last 10 meetings) and season aggregates
    concurrently, and normalizes everything into EnrichedData.

    Degradation rules:
      - unsupported sport or unresolved team -> that side null,
        data_source UNAVAILABLE, no exception
      - an individual empty payload -> that field null
      - ProviderUnavailable / ParseFailure -> propagated, so the caller can
        record it against the circuit breaker

Dependencies:
    - asyncio
    - app.providers.base.EnrichmentProvider
    - app.services.team_resolver
    - app.services.ttl_cache
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from app.config import settings
from app.models.match_intel import (
    EnrichedData,
    FormRecord,
    H2HRecord,
    H2HSummary,
    MatchIdentifier,
    TeamStats,
)
from app.models.provider_payloads import ProviderGame, TeamIdentity
from app.providers.base import EnrichmentProvider
from app.services.errors import TeamNotResolved
from app.services.sport_profiles import detect_sport_family
from app.services.team_resolver import TeamResolver
from app.services.ttl_cache import TTLCache

logger = logging.getLogger("matchintel.enrichment")

FORM_GAMES = 5
H2H_MEETINGS = 10


def form_records(games: list[ProviderGame], team_id: int) -> list[FormRecord]:
    """Form rows from the given team's perspective, newest first."""
    records: list[FormRecord] = []
    for game in games[:FORM_GAMES]:
        if game.home_score is None or game.away_score is None:
            continue
        at_home = game.home_id == team_id
        scored = game.home_score if at_home else game.away_score
        conceded = game.away_score if at_home else game.home_score
        if scored > conceded:
            result = "W"
        elif scored < conceded:
            result = "L"
        else:
            result = "D"
        records.append(FormRecord(
            result=result,
            opponent=game.away_name if at_home else game.home_name,
            score=f"{scored}-{conceded}",
            date=game.date,
            home=at_home,
        ))
    return records


def season_stats(games: list[ProviderGame], team_id: int) -> TeamStats | None:
    played = wins = losses = draws = 0
    scored_total = conceded_total = 0
    for game in games:
        if game.home_score is None or game.away_score is None:
            continue
        at_home = game.home_id == team_id
        scored = game.home_score if at_home else game.away_score
        conceded = game.away_score if at_home else game.home_score
        played += 1
        scored_total += scored
        conceded_total += conceded
        if scored > conceded:
            wins += 1
        elif scored < conceded:
            losses += 1
        else:
            draws += 1
    if played == 0:
        return None
    return TeamStats(
        goals_scored=scored_total,
        goals_conceded=conceded_total,
        wins=wins,
        losses=losses,
        draws=draws,
        played=played,
    )


def h2h_records(games: list[ProviderGame]) -> list[H2HRecord]:
    return [
        H2HRecord(
            home_team=g.home_name,
            away_team=g.away_name,
            home_score=g.home_score,
            away_score=g.away_score,
            date=g.date,
        )
        for g in games[:H2H_MEETINGS]
        if g.home_score is not None and g.away_score is not None
    ]


def h2h_summary(games: list[ProviderGame], home_id: int) -> H2HSummary:
    """Wins counted for the requested home team regardless of venue."""
    summary = H2HSummary()
    for game in games[:H2H_MEETINGS]:
        if game.home_score is None or game.away_score is None:
            continue
        summary.total_matches += 1
        if game.home_score == game.away_score:
            summary.draws += 1
            continue
        winner_id = game.home_id if game.home_score > game.away_score else game.away_id
        if winner_id == home_id:
            summary.home_wins += 1
        else:
            summary.away_wins += 1
    return summary


class EnrichmentService:
    def __init__(
        self,
        provider: EnrichmentProvider,
        *,
        resolver: TeamResolver | None = None,
        payload_cache: TTLCache[list[ProviderGame]] | None = None,
    ):
        self.provider = provider
        self._resolver = resolver or TeamResolver(
            TTLCache(settings.TEAM_IDENTITY_CACHE_TTL_SECONDS, max_entries=5000)
        )
        self._payloads: TTLCache[list[ProviderGame]] = payload_cache or TTLCache(
            settings.ENRICHMENT_CACHE_TTL_SECONDS, max_entries=5000
        )

    def purge_expired(self) -> int:
        return self._payloads.purge_expired() + self._resolver.purge_expired()

    async def _cached(
        self, key: str, fetch: Callable[[], Awaitable[list[ProviderGame]]]
    ) -> tuple[list[ProviderGame], bool]:
        hit = self._payloads.get(key)
        if hit is not None:
            return hit, True
        games = await fetch()
        self._payloads.set(key, games)
        return games, False

    async def _resolve(self, name: str, family: str) -> tuple[TeamIdentity | None, bool]:
        try:
            return await self._resolver.resolve(self.provider, name, family)
        except TeamNotResolved:
            return None, False

    async def get_enriched_data(self, match: MatchIdentifier) -> EnrichedData:
        family = detect_sport_family(match.sport)
        if family is None or not self.provider.supports(family):
            logger.info("No enrichment coverage for sport %s", match.sport)
            return EnrichedData.unavailable()
        if not self.provider.is_configured:
            logger.debug("Enrichment provider %s not configured", self.provider.name)
            return EnrichedData.unavailable()

        (home, home_cached), (away, away_cached) = await asyncio.gather(
            self._resolve(match.home_team, family),
            self._resolve(match.away_team, family),
        )
        if home is None and away is None:
            return EnrichedData.unavailable()

        p = self.provider
        fetches: dict[str, Awaitable[tuple[list[ProviderGame], bool]]] = {}
        if home is not None:
            fetches["home_form"] = self._cached(
                f"{family}:form:{home.id}", lambda: p.get_team_games(family, home.id, last=FORM_GAMES)
            )
            fetches["home_season"] = self._cached(
                f"{family}:season:{home.id}", lambda: p.get_season_games(family, home.id)
            )
        if away is not None:
            fetches["away_form"] = self._cached(
                f"{family}:form:{away.id}", lambda: p.get_team_games(family, away.id, last=FORM_GAMES)
            )
            fetches["away_season"] = self._cached(
                f"{family}:season:{away.id}", lambda: p.get_season_games(family, away.id)
            )
        if home is not None and away is not None:
            pair = "-".join(str(i) for i in sorted((home.id, away.id)))
            fetches["h2h"] = self._cached(
                f"{family}:h2h:{pair}",
                lambda: p.get_head_to_head(family, home.id, away.id, last=H2H_MEETINGS),
            )

        names = list(fetches)
        results = await asyncio.gather(*fetches.values(), return_exceptions=True)
        for outcome in results:
            if isinstance(outcome, BaseException):
                raise outcome
        payloads = {name: games for name, (games, _) in zip(names, results)}
        all_cached = home_cached and away_cached and all(hit for _, hit in results)

        if home is None or away is None:
            data_source = "UNAVAILABLE"
        else:
            data_source = "CACHE" if all_cached else "LIVE"

        home_form = form_records(payloads.get("home_form", []), home.id) if home else []
        away_form = form_records(payloads.get("away_form", []), away.id) if away else []
        meetings = payloads.get("h2h", [])

        enriched = EnrichedData(
            home_form=home_form or None,
            away_form=away_form or None,
            head_to_head=h2h_records(meetings) or None,
            h2h_summary=h2h_summary(meetings, home.id) if meetings and home else None,
            home_stats=season_stats(payloads.get("home_season", []), home.id) if home else None,
            away_stats=season_stats(payloads.get("away_season", []), away.id) if away else None,
            data_source=data_source,
        )
        logger.debug(
            "Enriched %s (%s): form=%d/%d h2h=%d source=%s",
            match.match_name, family, len(home_form), len(away_form),
            len(enriched.head_to_head or []), data_source,
        )
        return enriched
