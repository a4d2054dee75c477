"""
backend/app/services/sport_profiles.py

Purpose:
    Sport identifier handling shared by the enrichment, odds and analysis
    layers. Maps odds-provider sport keys (``soccer_epl``, ``basketball_nba``,
    ``icehockey_nhl``, ...) onto a sport family and carries the per-family
    tuning used by the signal normalizer.

Dependencies:
    - none
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

SportFamily = Literal["soccer", "basketball", "american_football", "hockey"]


@dataclass(frozen=True)
class SportProfile:
    family: SportFamily
    has_draw: bool
    tempo_low: float            # expected scoring per game below = low tempo
    tempo_high: float           # above = high tempo
    home_advantage: float       # base home edge as a fraction
    efficiency_threshold: float # min per-game scoring diff to declare an efficiency edge
    scoring_unit: str


SPORT_PROFILES: dict[str, SportProfile] = {
    "soccer": SportProfile("soccer", True, 1.2, 2.0, 0.04, 0.15, "goals"),
    "basketball": SportProfile("basketball", False, 100.0, 115.0, 0.055, 3.0, "points"),
    "american_football": SportProfile("american_football", False, 18.0, 28.0, 0.025, 2.0, "points"),
    "hockey": SportProfile("hockey", False, 2.3, 3.2, 0.035, 0.2, "goals"),
}

_FAMILY_MARKERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("basketball", ("basketball", "nba", "euroleague", "wnba")),
    ("american_football", ("americanfootball", "american_football", "nfl", "ncaaf")),
    ("hockey", ("icehockey", "hockey", "nhl", "khl", "shl")),
    ("soccer", ("soccer", "epl", "la_liga", "serie_a", "bundesliga", "ligue", "eredivisie")),
)


def detect_sport_family(sport: str) -> SportFamily | None:
    """Return the sport family for a sport key, or None when unsupported."""
    key = (sport or "").strip().lower().replace("-", "_").replace(" ", "_")
    if not key:
        return None
    if key == "football":
        return "soccer"
    for family, markers in _FAMILY_MARKERS:
        if any(marker in key for marker in markers):
            return family  # type: ignore[return-value]
    return None


def get_sport_profile(sport: str) -> SportProfile | None:
    family = detect_sport_family(sport)
    return SPORT_PROFILES.get(family) if family else None


def has_draw(sport: str) -> bool:
    """True when the sport's match-winner market carries a draw outcome."""
    profile = get_sport_profile(sport)
    return bool(profile and profile.has_draw)
