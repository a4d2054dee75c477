"""
backend/tests/test_signal_normalizer.py

Purpose:
    Cross-sport signal normalization: form rating, strength edge,
    confidence tags and the fail-closed rule on missing inputs.

Dependencies:
    - app.services.signal_normalizer
"""

from __future__ import annotations

import pytest

from app.models.match_intel import EnrichedData, FormRecord, H2HSummary, OddsInfo, TeamStats
from app.services.errors import InsufficientData
from app.services.signal_normalizer import (
    confidence_tag,
    form_label,
    form_rating,
    normalize_signals,
)


def _form(results: str) -> list[FormRecord]:
    return [FormRecord(result=r, opponent=f"Opp{i}", score="1-0") for i, r in enumerate(results)]


def test_form_rating_bounds_and_default():
    assert form_rating("WWWWW", has_draw=True) == 100.0
    assert form_rating("LLLLL", has_draw=True) == 0.0
    assert form_rating("", has_draw=True) == 50.0
    # draws earn a point only where the sport has them
    assert form_rating("DDDDD", has_draw=True) == pytest.approx(100 / 3)
    assert form_rating("DDDDD", has_draw=False) == 0.0
    # most recent game weighs most
    assert form_rating("WLLLL", has_draw=False) > form_rating("LLLLW", has_draw=False)


def test_form_labels():
    assert form_label(60.0) == "strong"
    assert form_label(40.0) == "weak"
    assert form_label(50.0) == "neutral"


def test_confidence_tags():
    assert confidence_tag(5, 5, 3) == "high"
    assert confidence_tag(5, 5, 2) == "medium"
    assert confidence_tag(3, 3, 0) == "medium"
    assert confidence_tag(1, 2, 1) == "medium"
    assert confidence_tag(1, 2, 0) == "low"
    assert confidence_tag(0, 0, 5) == "low"


def test_missing_stats_or_odds_fail_closed():
    with pytest.raises(InsufficientData) as exc_info:
        normalize_signals("soccer_epl", EnrichedData.unavailable(), None)
    assert exc_info.value.missing == ["homeStats", "awayStats", "odds"]

    stats = TeamStats(goals_scored=20, goals_conceded=20, wins=5, losses=5, draws=5)
    with pytest.raises(InsufficientData) as exc_info:
        normalize_signals("soccer_epl", EnrichedData(home_stats=stats, away_stats=stats), None)
    assert exc_info.value.missing == ["odds"]


def test_stronger_home_side_gets_home_edge():
    enriched = EnrichedData(
        home_form=_form("WWWWW"),
        away_form=_form("LLLLL"),
        home_stats=TeamStats(goals_scored=50, goals_conceded=15, wins=15, losses=2, draws=3),
        away_stats=TeamStats(goals_scored=18, goals_conceded=45, wins=3, losses=14, draws=3),
        h2h_summary=H2HSummary(total_matches=4, home_wins=3, away_wins=1, draws=0),
        data_source="LIVE",
    )
    signals = normalize_signals("soccer_epl", enriched, OddsInfo(home=1.4, away=7.0, draw=4.5))

    assert signals.strength_edge.direction == "home"
    assert signals.strength_edge.percentage == 20
    assert signals.home_form_label == "strong"
    assert signals.away_form_label == "weak"
    assert signals.efficiency_edge.winner == "home"
    assert signals.home_form_win_rate == 1.0
    assert signals.h2h_win_rate == 0.75
    assert signals.confidence == "high"
    assert signals.clarity_score == 100


def test_balanced_two_way_match_without_form():
    stats = TeamStats(goals_scored=4800, goals_conceded=4800, wins=20, losses=20)
    enriched = EnrichedData(home_stats=stats, away_stats=stats, data_source="LIVE")
    signals = normalize_signals("basketball_nba", enriched, OddsInfo(home=1.9, away=1.9))

    # only the home advantage separates identical teams
    assert signals.strength_edge.direction == "home"
    assert signals.strength_edge.percentage == pytest.approx(5.5, abs=0.5)
    assert signals.home_form_win_rate is None
    assert signals.h2h_win_rate is None
    assert signals.efficiency_edge.winner == "balanced"
    assert signals.tempo == "high"
    assert signals.confidence == "low"
