"""
backend/app/services/signal_normalizer.py

Purpose:
    Convert raw form rows, season aggregates and head-to-head meetings into
    cross-sport comparable signals (UniversalSignals). Fails closed: without
    season stats for both teams, or without odds, InsufficientData is raised
    and nothing is estimated.

    Strength edge (percentage points, clamped to +/-20, |edge| < 2 = even):
        40% weighted form-rating differential
      + 20% season win-rate differential
      + per-game scoring differential scaled by scoring unit
      + 10% head-to-head balance (only from 3 meetings on)
      + sport home advantage

    Confidence tag from sample sizes:
        high   both teams >= 5 recent games and >= 3 meetings
        medium both teams >= 3 recent games, or both some form and >= 1 meeting
        low    otherwise

Dependencies:
    - app.services.sport_profiles
"""

from __future__ import annotations

from app.models.match_intel import (
    ConfidenceTag,
    EfficiencyEdge,
    EnrichedData,
    FormRecord,
    OddsInfo,
    StrengthEdge,
    TeamStats,
    UniversalSignals,
)
from app.services.errors import InsufficientData
from app.services.sport_profiles import SPORT_PROFILES, SportProfile, get_sport_profile

FORM_WEIGHTS = (1.5, 1.3, 1.1, 1.0, 0.9)  # most recent first
STRONG_FORM = 60.0
WEAK_FORM = 40.0
MAX_STRENGTH_EDGE = 20.0
MIN_STRENGTH_EDGE = 2.0


def form_string(form: list[FormRecord] | None) -> str:
    return "".join(record.result for record in (form or [])[:5])


def form_rating(form: str, has_draw: bool) -> float:
    """Weighted 0-100 form rating, 50 when there is no form."""
    if not form:
        return 50.0
    per_game = 3 if has_draw else 1
    points = 0.0
    possible = 0.0
    for i, result in enumerate(form[:5].upper()):
        weight = FORM_WEIGHTS[i]
        possible += per_game * weight
        if result == "W":
            points += per_game * weight
        elif result == "D" and has_draw:
            points += weight
    return (points / possible) * 100 if possible else 50.0


def form_label(rating: float) -> str:
    if rating >= STRONG_FORM:
        return "strong"
    if rating <= WEAK_FORM:
        return "weak"
    return "neutral"


def games_played(stats: TeamStats, form: str) -> int:
    if stats.played:
        return stats.played
    counted = stats.wins + stats.losses + (stats.draws or 0)
    return counted or len(form) or 5


def _per_game(total: float, played: int) -> float:
    return total / played if played > 0 else 0.0


def strength_edge(
    home_rating: float,
    away_rating: float,
    home_stats: TeamStats,
    away_stats: TeamStats,
    home_played: int,
    away_played: int,
    h2h_total: int,
    h2h_home_wins: int,
    h2h_away_wins: int,
    profile: SportProfile,
) -> StrengthEdge:
    form_factor = (home_rating - away_rating) / 100 * 0.4

    home_win_rate = home_stats.wins / home_played if home_played > 0 else 0.5
    away_win_rate = away_stats.wins / away_played if away_played > 0 else 0.5
    win_rate_factor = (home_win_rate - away_win_rate) * 0.2

    home_gd = _per_game(home_stats.goals_scored - home_stats.goals_conceded, home_played)
    away_gd = _per_game(away_stats.goals_scored - away_stats.goals_conceded, away_played)
    gd_scale = 0.008 if profile.scoring_unit == "points" else 0.015
    gd_factor = (home_gd - away_gd) * gd_scale

    h2h_factor = (h2h_home_wins - h2h_away_wins) / h2h_total * 0.10 if h2h_total >= 3 else 0.0

    raw = (form_factor + win_rate_factor + gd_factor + h2h_factor + profile.home_advantage) * 100
    clamped = max(-MAX_STRENGTH_EDGE, min(MAX_STRENGTH_EDGE, raw))
    if abs(clamped) < MIN_STRENGTH_EDGE:
        return StrengthEdge(direction="even", percentage=0)
    return StrengthEdge(
        direction="home" if clamped > 0 else "away",
        percentage=round(abs(clamped)),
    )


def tempo(rates: tuple[float, float, float, float], profile: SportProfile) -> str:
    expected = sum(rates) / 4
    if expected < profile.tempo_low:
        return "low"
    if expected > profile.tempo_high:
        return "high"
    return "medium"


def efficiency_edge(
    home_scoring: float,
    away_scoring: float,
    home_conceding: float,
    away_conceding: float,
    profile: SportProfile,
) -> EfficiencyEdge:
    offense = home_scoring - away_scoring
    defense = away_conceding - home_conceding  # positive = home concedes less
    total = offense + defense
    if abs(total) < profile.efficiency_threshold:
        return EfficiencyEdge(winner="balanced")
    if abs(offense) > abs(defense) * 1.5:
        aspect = "offense"
    elif abs(defense) > abs(offense) * 1.5:
        aspect = "defense"
    else:
        aspect = "both"
    return EfficiencyEdge(winner="home" if total > 0 else "away", aspect=aspect)


def confidence_tag(home_sample: int, away_sample: int, h2h_sample: int) -> ConfidenceTag:
    if home_sample >= 5 and away_sample >= 5 and h2h_sample >= 3:
        return "high"
    if home_sample >= 3 and away_sample >= 3:
        return "medium"
    if home_sample > 0 and away_sample > 0 and h2h_sample >= 1:
        return "medium"
    return "low"


def clarity_score(form_trend_clear: bool, edge_clear: bool, efficiency_clear: bool) -> int:
    # Availability is not tracked, its 20 points are always granted
    return 20 + (25 if form_trend_clear else 0) + (30 if edge_clear else 0) + (25 if efficiency_clear else 0)


def normalize_signals(sport: str, enriched: EnrichedData, odds: OddsInfo | None) -> UniversalSignals:
    missing = []
    if enriched.home_stats is None:
        missing.append("homeStats")
    if enriched.away_stats is None:
        missing.append("awayStats")
    if odds is None:
        missing.append("odds")
    if missing:
        raise InsufficientData(missing)

    profile = get_sport_profile(sport) or SPORT_PROFILES["soccer"]
    home_stats = enriched.home_stats
    away_stats = enriched.away_stats

    home_form = form_string(enriched.home_form)
    away_form = form_string(enriched.away_form)
    home_rating = form_rating(home_form, profile.has_draw)
    away_rating = form_rating(away_form, profile.has_draw)

    home_played = games_played(home_stats, home_form)
    away_played = games_played(away_stats, away_form)
    home_scoring = _per_game(home_stats.goals_scored, home_played)
    away_scoring = _per_game(away_stats.goals_scored, away_played)
    home_conceding = _per_game(home_stats.goals_conceded, home_played)
    away_conceding = _per_game(away_stats.goals_conceded, away_played)

    summary = enriched.h2h_summary
    h2h_total = summary.total_matches if summary else len(enriched.head_to_head or [])
    h2h_home_wins = summary.home_wins if summary else 0
    h2h_away_wins = summary.away_wins if summary else 0

    edge = strength_edge(
        home_rating, away_rating, home_stats, away_stats,
        home_played, away_played, h2h_total, h2h_home_wins, h2h_away_wins, profile,
    )
    efficiency = efficiency_edge(home_scoring, away_scoring, home_conceding, away_conceding, profile)
    form_trend_clear = abs(home_rating - away_rating) > 10

    return UniversalSignals(
        home_form_win_rate=home_form.count("W") / len(home_form) if home_form else None,
        away_form_win_rate=away_form.count("W") / len(away_form) if away_form else None,
        home_form_rating=round(home_rating, 1),
        away_form_rating=round(away_rating, 1),
        home_form_label=form_label(home_rating),
        away_form_label=form_label(away_rating),
        home_scoring_rate=round(home_scoring, 3),
        away_scoring_rate=round(away_scoring, 3),
        home_conceding_rate=round(home_conceding, 3),
        away_conceding_rate=round(away_conceding, 3),
        h2h_win_rate=round(h2h_home_wins / h2h_total, 3) if h2h_total else None,
        strength_edge=edge,
        tempo=tempo((home_scoring, away_scoring, home_conceding, away_conceding), profile),
        efficiency_edge=efficiency,
        home_sample_size=len(home_form),
        away_sample_size=len(away_form),
        h2h_sample_size=h2h_total,
        clarity_score=clarity_score(form_trend_clear, edge.percentage >= 4, efficiency.winner != "balanced"),
        confidence=confidence_tag(len(home_form), len(away_form), h2h_total),
    )
