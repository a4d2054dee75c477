"""
backend/app/services/odds_resolver.py

Purpose:
    Resolve market odds for one match: caller-supplied odds are taken as-is
    (normalized to the sport's outcome set), otherwise the odds provider's
    event list for the sport is searched by team-name containment. No
    matching event is a plain None, not an error.

Dependencies:
    - app.providers.base.OddsProvider
    - app.utils.team_matching
    - app.services.team_resolver (alias table)
"""

from __future__ import annotations

import logging

from app.models.match_intel import MatchIdentifier, OddsInfo
from app.models.provider_payloads import OddsApiEvent
from app.providers.base import OddsProvider
from app.services.errors import StaleData
from app.services.sport_profiles import detect_sport_family, has_draw
from app.services.team_resolver import resolve_alias
from app.utils.team_matching import names_contain

logger = logging.getLogger("matchintel.odds_resolver")


def canonical_odds(odds: OddsInfo, sport: str) -> OddsInfo:
    """Drop a draw price the sport cannot settle on."""
    if odds.draw is not None and not has_draw(sport):
        return OddsInfo(home=odds.home, away=odds.away, draw=None)
    return odds


def _alias_match(feed_name: str, requested: str, family: str | None) -> bool:
    return names_contain(resolve_alias(feed_name, family) or feed_name, resolve_alias(requested, family) or requested)


def find_event(events: list[OddsApiEvent], match: MatchIdentifier) -> OddsApiEvent | None:
    """Event whose both sides contain (or alias to) the requested teams.

    Shared tokens alone ("Manchester") never match; a fixture without a
    confident match yields None.
    """
    for event in events:
        if names_contain(event.home_team, match.home_team) and names_contain(event.away_team, match.away_team):
            return event
    # Colloquial spellings ("Man Utd") only match through the alias table
    family = detect_sport_family(match.sport)
    for event in events:
        if _alias_match(event.home_team, match.home_team, family) and _alias_match(
            event.away_team, match.away_team, family
        ):
            return event
    return None


class OddsResolver:
    def __init__(self, provider: OddsProvider | None):
        self.provider = provider

    @property
    def provider_name(self) -> str:
        return self.provider.name if self.provider is not None else "none"

    async def fetch(self, match: MatchIdentifier) -> OddsInfo | None:
        """Live odds for the match. ProviderUnavailable propagates.

        StaleData from the provider is re-raised with its payload narrowed
        to this match's odds (or None when the stale list has no event).
        """
        if self.provider is None or not self.provider.is_configured:
            return None
        if "_" not in match.sport:
            # Odds feeds are keyed per competition (soccer_epl), not per family
            logger.debug("Sport %s is not an odds-feed key, skipping fetch", match.sport)
            return None
        try:
            events = await self.provider.get_events(match.sport)
        except StaleData as e:
            raise StaleData(
                e.provider,
                f"last good odds are {e.age_seconds:.0f}s old",
                payload=self._pick(e.payload or [], match),
                age_seconds=e.age_seconds,
                status_code=e.status_code,
            ) from e
        return self._pick(events, match)

    def _pick(self, events: list[OddsApiEvent], match: MatchIdentifier) -> OddsInfo | None:
        event = find_event(events, match)
        if event is None:
            logger.debug("No odds event for %s in %s (%d events)", match.match_name, match.sport, len(events))
            return None
        odds = self.provider.h2h_odds(event, has_draw(match.sport))
        if odds is None:
            logger.debug("Event %s has no complete h2h market", event.id)
        return odds
