"""
backend/app/services/team_resolver.py

Purpose:
    Resolve free-text team names (odds feed spellings, user input) to the
    enrichment provider's canonical team identity.

    Name resolution order: exact alias -> partial alias -> fuzzy match
    against known canonical names (>= 0.70 similarity) -> cleaned original.
    Provider lookup then tries each search variation and picks the
    candidate that matches the requested name. Resolved identities are
    cached for TEAM_IDENTITY_CACHE_TTL_SECONDS (24h by default).

Dependencies:
    - difflib (via app.utils.team_matching)
    - app.services.ttl_cache
"""

from __future__ import annotations

import logging
import re

from app.models.provider_payloads import TeamIdentity
from app.providers.base import EnrichmentProvider
from app.services.errors import TeamNotResolved
from app.services.team_alias_normalizer import normalize_team_alias, team_key
from app.services.ttl_cache import TTLCache
from app.utils.team_matching import best_match, similarity, teams_match

logger = logging.getLogger("matchintel.team_resolver")

FUZZY_THRESHOLD = 0.70
_SUFFIX_RE = re.compile(r"\b(fc|cf|afc|sc)\b", re.IGNORECASE)

# Odds-feed / colloquial spelling -> provider spelling, keyed by normalized alias
ALIASES: dict[str, dict[str, str]] = {
    "soccer": {
        "man utd": "Manchester United",
        "man united": "Manchester United",
        "manchester utd": "Manchester United",
        "man city": "Manchester City",
        "spurs": "Tottenham",
        "tottenham hotspur": "Tottenham",
        "wolves": "Wolves",
        "wolverhampton wanderers": "Wolves",
        "brighton and hove albion": "Brighton",
        "newcastle united": "Newcastle",
        "west ham united": "West Ham",
        "nottingham forest": "Nottingham Forest",
        "nottm forest": "Nottingham Forest",
        "sheffield utd": "Sheffield Utd",
        "leicester city": "Leicester",
        "atletico madrid": "Atletico Madrid",
        "atl madrid": "Atletico Madrid",
        "barca": "Barcelona",
        "athletic bilbao": "Athletic Club",
        "inter": "Inter",
        "inter milan": "Inter",
        "internazionale": "Inter",
        "ac milan": "AC Milan",
        "juve": "Juventus",
        "bayern": "Bayern Munich",
        "bayern munchen": "Bayern Munich",
        "gladbach": "Borussia Monchengladbach",
        "borussia monchengladbach": "Borussia Monchengladbach",
        "dortmund": "Borussia Dortmund",
        "bvb": "Borussia Dortmund",
        "leverkusen": "Bayer Leverkusen",
        "psg": "Paris Saint Germain",
        "paris sg": "Paris Saint Germain",
        "paris saint germain": "Paris Saint Germain",
        "marseille": "Marseille",
        "olympique marseille": "Marseille",
        "olympique lyonnais": "Lyon",
    },
    "basketball": {
        "la lakers": "Los Angeles Lakers",
        "lakers": "Los Angeles Lakers",
        "la clippers": "Los Angeles Clippers",
        "clippers": "Los Angeles Clippers",
        "gsw": "Golden State Warriors",
        "warriors": "Golden State Warriors",
        "celtics": "Boston Celtics",
        "knicks": "New York Knicks",
        "nets": "Brooklyn Nets",
        "sixers": "Philadelphia 76ers",
        "76ers": "Philadelphia 76ers",
        "bucks": "Milwaukee Bucks",
        "heat": "Miami Heat",
        "nuggets": "Denver Nuggets",
        "suns": "Phoenix Suns",
        "mavs": "Dallas Mavericks",
        "cavs": "Cleveland Cavaliers",
        "okc": "Oklahoma City Thunder",
        "thunder": "Oklahoma City Thunder",
        "timberwolves": "Minnesota Timberwolves",
        "wolves": "Minnesota Timberwolves",
        "spurs": "San Antonio Spurs",
    },
    "hockey": {
        "habs": "Montreal Canadiens",
        "montreal canadiens": "Montreal Canadiens",
        "leafs": "Toronto Maple Leafs",
        "bruins": "Boston Bruins",
        "rangers": "New York Rangers",
        "isles": "New York Islanders",
        "pens": "Pittsburgh Penguins",
        "caps": "Washington Capitals",
        "hawks": "Chicago Blackhawks",
        "wings": "Detroit Red Wings",
        "oilers": "Edmonton Oilers",
        "avs": "Colorado Avalanche",
        "knights": "Vegas Golden Knights",
        "vgk": "Vegas Golden Knights",
        "bolts": "Tampa Bay Lightning",
    },
    "american_football": {
        "niners": "San Francisco 49ers",
        "49ers": "San Francisco 49ers",
        "pats": "New England Patriots",
        "patriots": "New England Patriots",
        "chiefs": "Kansas City Chiefs",
        "kc chiefs": "Kansas City Chiefs",
        "packers": "Green Bay Packers",
        "cowboys": "Dallas Cowboys",
        "eagles": "Philadelphia Eagles",
        "bucs": "Tampa Bay Buccaneers",
        "bills": "Buffalo Bills",
        "ravens": "Baltimore Ravens",
        "commanders": "Washington Commanders",
    },
}


def _known_teams(family: str) -> list[str]:
    return sorted(set(ALIASES.get(family, {}).values()))


def resolve_alias(team_name: str, family: str | None) -> str | None:
    """Provider spelling from the alias table only (exact, then whole-word)."""
    normalized = normalize_team_alias(team_name)
    mappings = ALIASES.get(family or "", {})

    if normalized in mappings:
        return mappings[normalized]

    # Whole-word partial hits ("fc bayern munchen" -> "bayern munchen")
    padded = f" {normalized} "
    for alias, canonical in mappings.items():
        if len(alias) >= 4 and f" {alias} " in padded:
            return canonical
    return None


def resolve_team_name(team_name: str, family: str) -> str:
    """Map a team name onto the provider spelling, or return it cleaned."""
    aliased = resolve_alias(team_name, family)
    if aliased:
        return aliased

    fuzzy = best_match(team_name, _known_teams(family), threshold=FUZZY_THRESHOLD)
    if fuzzy:
        logger.debug("Fuzzy team match %r -> %r", team_name, fuzzy)
        return fuzzy

    return team_name.strip()


def search_variations(team_name: str, family: str) -> list[str]:
    """Ordered, de-duplicated names to try against the provider search."""
    resolved = resolve_team_name(team_name, family)
    variations: list[str] = []
    for candidate in (
        resolved,
        team_name.strip(),
        _SUFFIX_RE.sub(" ", team_name).strip(),
    ):
        candidate = re.sub(r"\s+", " ", candidate).strip()
        if len(candidate) >= 3 and candidate not in variations:
            variations.append(candidate)
    words = resolved.split()
    if len(words) > 1 and len(words[-1]) >= 4 and words[-1] not in variations:
        variations.append(words[-1])
    return variations


class TeamResolver:
    """Provider-backed team identity resolution with a long-lived cache."""

    def __init__(self, identity_cache: TTLCache[TeamIdentity]):
        self._cache = identity_cache

    def purge_expired(self) -> int:
        return self._cache.purge_expired()

    async def resolve(
        self, provider: EnrichmentProvider, team_name: str, family: str
    ) -> tuple[TeamIdentity, bool]:
        """Return (identity, from_cache). Raises TeamNotResolved on a miss.

        ProviderUnavailable from the search propagates unchanged.
        """
        cache_key = f"{family}:{team_key(team_name)}"
        hit = self._cache.get(cache_key)
        if hit is not None:
            return hit, True

        resolved_name = resolve_team_name(team_name, family)
        for variation in search_variations(team_name, family):
            candidates = await provider.search_teams(family, variation)
            if not candidates:
                continue
            chosen = self._pick(candidates, team_name, resolved_name)
            if chosen is not None:
                self._cache.set(cache_key, chosen)
                logger.debug("Resolved team %r (%s) -> %s #%d", team_name, family, chosen.name, chosen.id)
                return chosen, False

        logger.info("Team not resolved: %r (%s)", team_name, family)
        raise TeamNotResolved(team_name, family)

    @staticmethod
    def _pick(candidates: list[TeamIdentity], team_name: str, resolved_name: str) -> TeamIdentity | None:
        for target in (team_name, resolved_name):
            exact = [c for c in candidates if team_key(c.name) == team_key(target)]
            if exact:
                return exact[0]
        matching = [c for c in candidates if teams_match(c.name, resolved_name) or teams_match(c.name, team_name)]
        if matching:
            return max(matching, key=lambda c: similarity(c.name, resolved_name))
        return None
