"""
backend/app/services/market_analyzer.py

Purpose:
    Market analysis for one match, all values in percentage points:

    1. implied probability per outcome = 100 / decimal odds
    2. margin = sum(implied) - 100, removed by proportional normalization
       (each implied value divided by the implied total). Deterministic and
       idempotent: de-vigging already fair probabilities is a no-op.
    3. model probability = MODEL_MARKET_WEIGHT * de-vigged market
                         + MODEL_SIGNAL_WEIGHT * signal probability,
       where the signal probability starts from a league-calibrated
       baseline adjusted by strength edge, form labels and efficiency edge.
       Two-way legs are clamped to [5, 90], the draw leg to [3, 90], then
       renormalized; rounding residue goes to the largest outcome.
    4. edge = model - de-vigged; best edge is the maximum (ties resolved
       home, away, draw), "neutral" when no edge is positive.
    5. favored = outcome ahead of every other by >= 5 points, else "even".

Dependencies:
    - app.config (blend weights)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from app.config import settings
from app.models.match_intel import (
    ComputedAnalysis,
    EdgeInfo,
    EdgeQuality,
    Favored,
    ImpliedProbability,
    MarketIntel,
    MatchIdentifier,
    OddsInfo,
    OutcomeValues,
    UniversalSignals,
)
from app.services.errors import InsufficientData
from app.services.sport_profiles import has_draw

logger = logging.getLogger("matchintel.market_analyzer")

OUTCOME_ORDER = ("home", "away", "draw")
TWO_WAY_BOUNDS = (5.0, 90.0)
DRAW_BOUNDS = (3.0, 90.0)
FAVORED_MARGIN = 5.0
HIGH_EDGE = 10.0
MEDIUM_EDGE = 5.0
ODDS_ONLY_CONFIDENCE = 0.3


@dataclass(frozen=True)
class LeagueProfile:
    key: str
    goals_per_game: float
    draw_rate: float
    home_win_rate: float
    away_win_rate: float


LEAGUE_CALIBRATION: dict[str, LeagueProfile] = {
    "default": LeagueProfile("default", 2.75, 0.240, 0.462, 0.298),
    "soccer_epl": LeagueProfile("soccer_epl", 2.84, 0.219, 0.479, 0.302),
    "soccer_spain_la_liga": LeagueProfile("soccer_spain_la_liga", 2.55, 0.253, 0.476, 0.271),
    "soccer_germany_bundesliga": LeagueProfile("soccer_germany_bundesliga", 3.16, 0.222, 0.444, 0.333),
    "soccer_italy_serie_a": LeagueProfile("soccer_italy_serie_a", 2.34, 0.288, 0.397, 0.314),
    "soccer_france_ligue_one": LeagueProfile("soccer_france_ligue_one", 2.85, 0.215, 0.514, 0.271),
}

LEAGUE_ALIASES: dict[str, str] = {
    "epl": "soccer_epl",
    "premier_league": "soccer_epl",
    "english_premier_league": "soccer_epl",
    "england": "soccer_epl",
    "la_liga": "soccer_spain_la_liga",
    "laliga": "soccer_spain_la_liga",
    "spain": "soccer_spain_la_liga",
    "bundesliga": "soccer_germany_bundesliga",
    "germany": "soccer_germany_bundesliga",
    "serie_a": "soccer_italy_serie_a",
    "seriea": "soccer_italy_serie_a",
    "italy": "soccer_italy_serie_a",
    "ligue_1": "soccer_france_ligue_one",
    "ligue1": "soccer_france_ligue_one",
    "ligue_one": "soccer_france_ligue_one",
    "france": "soccer_france_ligue_one",
}


def get_league_profile(*candidates: str | None) -> LeagueProfile:
    """First calibration profile matching any candidate (league name, sport key)."""
    for candidate in candidates:
        if not candidate:
            continue
        key = re.sub(r"[^a-z0-9_]", "_", candidate.strip().lower())
        if key in LEAGUE_ALIASES:
            return LEAGUE_CALIBRATION[LEAGUE_ALIASES[key]]
        if key in LEAGUE_CALIBRATION:
            return LEAGUE_CALIBRATION[key]
        # Suffix match only, "soccer_germany_bundesliga2" stays on default
        for alias, target in LEAGUE_ALIASES.items():
            if key.endswith(f"_{alias}"):
                return LEAGUE_CALIBRATION[target]
    return LEAGUE_CALIBRATION["default"]


# ---------------------------------------------------------------------------
# Probability arithmetic
# ---------------------------------------------------------------------------

def _as_dict(values: OutcomeValues) -> dict[str, float]:
    out = {"home": values.home, "away": values.away}
    if values.draw is not None:
        out["draw"] = values.draw
    return out


def _from_dict(values: dict[str, float]) -> OutcomeValues:
    return OutcomeValues(home=values["home"], away=values["away"], draw=values.get("draw"))


def implied_probabilities(odds: OddsInfo, with_draw: bool) -> ImpliedProbability:
    home = 100.0 / odds.home
    away = 100.0 / odds.away
    draw = 100.0 / odds.draw if with_draw and odds.draw is not None else None
    margin = home + away + (draw or 0.0) - 100.0
    return ImpliedProbability(home=home, away=away, draw=draw, margin=round(margin, 2))


def remove_margin(values: OutcomeValues) -> OutcomeValues:
    """Proportional normalization to a 100-point book."""
    raw = _as_dict(values)
    total = sum(raw.values())
    if total <= 0:
        raise ValueError("implied probabilities must be positive")
    return _from_dict({k: v / total * 100.0 for k, v in raw.items()})


def _bounds(outcome: str) -> tuple[float, float]:
    return DRAW_BOUNDS if outcome == "draw" else TWO_WAY_BOUNDS


def _clamp_and_normalize(values: dict[str, float]) -> dict[str, float]:
    """Normalize to 100, pin out-of-bounds outcomes and rescale the rest."""
    total = sum(values.values())
    result = {k: v / total * 100.0 for k, v in values.items()}
    pinned: dict[str, float] = {}
    while len(pinned) < len(result):
        free = [k for k in result if k not in pinned]
        budget = 100.0 - sum(pinned.values())
        free_total = sum(result[k] for k in free)
        for k in free:
            result[k] = result[k] / free_total * budget
        violations = {}
        for k in free:
            lo, hi = _bounds(k)
            if not lo <= result[k] <= hi:
                violations[k] = min(max(result[k], lo), hi)
        if not violations:
            return result
        pinned.update(violations)
        result.update(violations)

    # Everything pinned: spread the remainder over outcomes with room left
    remainder = 100.0 - sum(result.values())
    for k in sorted(result, key=result.get):
        lo, hi = _bounds(k)
        room = hi - result[k] if remainder > 0 else result[k] - lo
        step = min(abs(remainder), room)
        result[k] += step if remainder > 0 else -step
        remainder -= step if remainder > 0 else -step
        if abs(remainder) < 1e-9:
            break
    return result


def round_to_hundred(values: dict[str, float], ndigits: int = 1) -> dict[str, float]:
    """Round each outcome and push the residue onto the largest one."""
    rounded = {k: round(v, ndigits) for k, v in values.items()}
    residue = round(100.0 - sum(rounded.values()), ndigits)
    if residue:
        largest = max(OUTCOME_ORDER[: len(rounded)], key=lambda k: rounded[k])
        rounded[largest] = round(rounded[largest] + residue, ndigits)
    return rounded


def finalize_probabilities(values: OutcomeValues, *, clamp: bool = True) -> OutcomeValues:
    raw = _as_dict(values)
    if clamp:
        raw = _clamp_and_normalize(raw)
    else:
        total = sum(raw.values())
        raw = {k: v / total * 100.0 for k, v in raw.items()}
    return _from_dict(round_to_hundred(raw))


def signal_probability(signals: UniversalSignals, with_draw: bool, league: LeagueProfile) -> OutcomeValues:
    """League baseline nudged by strength edge, form labels and efficiency."""
    if with_draw:
        home = league.home_win_rate * 100
        away = league.away_win_rate * 100
        draw = league.draw_rate * 100
    else:
        decisive = league.home_win_rate + league.away_win_rate
        home = league.home_win_rate / decisive * 100
        away = league.away_win_rate / decisive * 100
        draw = 0.0

    edge = signals.strength_edge
    if edge.direction == "home":
        home += edge.percentage
        away -= edge.percentage * 0.6
        draw -= edge.percentage * 0.4
    elif edge.direction == "away":
        away += edge.percentage
        home -= edge.percentage * 0.6
        draw -= edge.percentage * 0.4

    home += {"strong": 8, "weak": -8}.get(signals.home_form_label, 0)
    away += {"strong": 8, "weak": -8}.get(signals.away_form_label, 0)

    if signals.efficiency_edge.winner == "home":
        home += 3
        away -= 2
    elif signals.efficiency_edge.winner == "away":
        away += 3
        home -= 2

    values = {"home": max(home, 0.1), "away": max(away, 0.1)}
    if with_draw:
        values["draw"] = max(draw, 0.1)
    total = sum(values.values())
    return _from_dict({k: v / total * 100.0 for k, v in values.items()})


def edge_quality(percentage: float) -> EdgeQuality:
    magnitude = abs(percentage)
    if magnitude >= HIGH_EDGE:
        return "HIGH"
    if magnitude >= MEDIUM_EDGE:
        return "MEDIUM"
    return "LOW"


def best_edge(edges: OutcomeValues) -> EdgeInfo:
    values = _as_dict(edges)
    best_outcome = None
    best_value = 0.0
    for outcome in OUTCOME_ORDER:
        if outcome in values and values[outcome] > best_value:
            best_outcome, best_value = outcome, values[outcome]
    if best_outcome is None:
        return EdgeInfo(direction="neutral", percentage=0.0, quality="LOW")
    return EdgeInfo(direction=best_outcome, percentage=round(best_value, 1), quality=edge_quality(best_value))


def favored_outcome(probabilities: OutcomeValues) -> Favored:
    values = _as_dict(probabilities)
    for outcome in OUTCOME_ORDER:
        if outcome not in values:
            continue
        others = [v for k, v in values.items() if k != outcome]
        if all(values[outcome] - other >= FAVORED_MARGIN for other in others):
            return outcome  # type: ignore[return-value]
    return "even"


def _check_odds(match: MatchIdentifier, odds: OddsInfo | None) -> tuple[OddsInfo, bool]:
    if odds is None:
        raise InsufficientData(["odds"])
    with_draw = has_draw(match.sport)
    if with_draw and odds.draw is None:
        raise InsufficientData(["odds.draw"])
    return odds, with_draw


class MarketAnalyzer:
    def __init__(self, market_weight: float | None = None, signal_weight: float | None = None):
        self.market_weight = settings.MODEL_MARKET_WEIGHT if market_weight is None else market_weight
        self.signal_weight = settings.MODEL_SIGNAL_WEIGHT if signal_weight is None else signal_weight
        if abs(self.market_weight + self.signal_weight - 1.0) > 1e-6:
            raise ValueError("market and signal weights must sum to 1.0")

    def analyze(self, match: MatchIdentifier, signals: UniversalSignals, odds: OddsInfo | None) -> MarketIntel:
        odds, with_draw = _check_odds(match, odds)
        league = get_league_profile(match.league, match.sport)

        implied = implied_probabilities(odds, with_draw)
        devigged = remove_margin(implied)
        signal = signal_probability(signals, with_draw, league)

        market = _as_dict(devigged)
        model_raw = {
            k: self.market_weight * market[k] + self.signal_weight * _as_dict(signal)[k]
            for k in market
        }
        model = finalize_probabilities(_from_dict(model_raw))
        devigged_rounded = _from_dict(round_to_hundred(market))

        model_d = _as_dict(model)
        edges = _from_dict({k: round(model_d[k] - market[k], 1) for k in market})
        logger.debug(
            "%s: margin=%.2f model=%s league=%s", match.cache_key, implied.margin, model_d, league.key,
        )

        return MarketIntel(
            implied_probability=ImpliedProbability(
                home=round(implied.home, 1),
                away=round(implied.away, 1),
                draw=round(implied.draw, 1) if implied.draw is not None else None,
                margin=implied.margin,
            ),
            devigged_probability=devigged_rounded,
            model_probability=model,
            edges=edges,
            best_edge=best_edge(edges),
            market_weight=self.market_weight,
            signal_weight=self.signal_weight,
            league_profile=league.key,
        )

    def compute_from_odds_only(self, match: MatchIdentifier, odds: OddsInfo) -> ComputedAnalysis:
        """Vig removal only; no form or head-to-head adjustment.

        Draw sports need a draw price: a two-way book for a soccer match
        would spread the draw share over home and away, so it raises
        InsufficientData(["odds.draw"]) and quick analysis answers None.
        """
        odds, with_draw = _check_odds(match, odds)
        probabilities = finalize_probabilities(
            remove_margin(implied_probabilities(odds, with_draw)), clamp=False,
        )
        return ComputedAnalysis(
            probabilities=probabilities,
            edge=EdgeInfo(direction="neutral", percentage=0.0, quality="LOW"),
            confidence=ODDS_ONLY_CONFIDENCE,
            data_quality="LOW",
            favored=favored_outcome(probabilities),
        )
