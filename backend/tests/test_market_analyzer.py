"""
backend/tests/test_market_analyzer.py

Purpose:
    Margin removal, model blend, edge selection and the odds-only path of
    the market analyzer.

Dependencies:
    - app.services.market_analyzer
"""

from __future__ import annotations

import pytest

from app.models.match_intel import (
    EfficiencyEdge,
    MatchIdentifier,
    OddsInfo,
    OutcomeValues,
    StrengthEdge,
    UniversalSignals,
)
from app.services.errors import InsufficientData
from app.services.market_analyzer import (
    MarketAnalyzer,
    best_edge,
    favored_outcome,
    finalize_probabilities,
    get_league_profile,
    implied_probabilities,
    remove_margin,
)


def _signals(**overrides) -> UniversalSignals:
    values = dict(
        home_form_rating=50.0,
        away_form_rating=50.0,
        home_form_label="neutral",
        away_form_label="neutral",
        home_scoring_rate=1.4,
        away_scoring_rate=1.4,
        home_conceding_rate=1.2,
        away_conceding_rate=1.2,
        strength_edge=StrengthEdge(direction="even", percentage=0),
        tempo="medium",
        efficiency_edge=EfficiencyEdge(winner="balanced"),
        home_sample_size=5,
        away_sample_size=5,
        h2h_sample_size=0,
        clarity_score=20,
        confidence="medium",
    )
    values.update(overrides)
    return UniversalSignals(**values)


def _total(values: OutcomeValues) -> float:
    return round(values.home + values.away + (values.draw or 0.0), 6)


def test_odds_only_soccer_keeps_draw_and_sums_to_hundred():
    match = MatchIdentifier(home_team="Arsenal", away_team="Chelsea", sport="soccer_epl")
    analysis = MarketAnalyzer().compute_from_odds_only(match, OddsInfo(home=1.75, away=4.50, draw=3.80))

    p = analysis.probabilities
    assert (p.home, p.away, p.draw) == (54.1, 21.0, 24.9)
    assert _total(p) == 100.0
    assert analysis.data_quality == "LOW"
    assert analysis.confidence == 0.3
    assert analysis.favored == "home"
    assert analysis.edge.direction == "neutral"
    assert analysis.market_intel is None


def test_implied_probability_reports_margin():
    implied = implied_probabilities(OddsInfo(home=1.75, away=4.50, draw=3.80), with_draw=True)
    assert implied.margin == pytest.approx(5.68, abs=0.01)
    two_way = implied_probabilities(OddsInfo(home=1.75, away=4.50, draw=3.80), with_draw=False)
    assert two_way.draw is None


@pytest.mark.parametrize(
    "odds",
    [
        OddsInfo(home=1.75, away=4.50, draw=3.80),
        OddsInfo(home=2.10, away=3.40, draw=3.25),
        OddsInfo(home=1.20, away=12.0, draw=7.5),
    ],
)
def test_remove_margin_is_idempotent(odds):
    devigged = remove_margin(implied_probabilities(odds, with_draw=True))
    again = remove_margin(devigged)
    assert _total(devigged) == pytest.approx(100.0)
    assert again.home == pytest.approx(devigged.home)
    assert again.away == pytest.approx(devigged.away)
    assert again.draw == pytest.approx(devigged.draw)


def test_analyze_blends_market_with_league_baseline():
    match = MatchIdentifier(home_team="Arsenal", away_team="Chelsea", sport="soccer_epl")
    intel = MarketAnalyzer(0.6, 0.4).analyze(match, _signals(), OddsInfo(home=1.75, away=4.50, draw=3.80))

    assert intel.league_profile == "soccer_epl"
    assert _total(intel.model_probability) == 100.0
    assert intel.model_probability.home == pytest.approx(51.6, abs=0.1)
    assert intel.edges.home < 0
    assert intel.best_edge.direction == "away"
    assert intel.best_edge.quality == "LOW"
    assert intel.market_weight == 0.6


def test_two_way_sport_has_no_draw_leg():
    match = MatchIdentifier(home_team="Lakers", away_team="Celtics", sport="basketball_nba")
    intel = MarketAnalyzer().analyze(
        match,
        _signals(strength_edge=StrengthEdge(direction="home", percentage=8)),
        OddsInfo(home=1.80, away=2.10),
    )
    assert intel.model_probability.draw is None
    assert intel.devigged_probability.draw is None
    assert intel.edges.draw is None
    assert intel.implied_probability.draw is None
    assert _total(intel.model_probability) == 100.0
    assert intel.best_edge.direction == "home"


def test_draw_sport_without_draw_odds_is_insufficient():
    match = MatchIdentifier(home_team="Arsenal", away_team="Chelsea", sport="soccer_epl")
    with pytest.raises(InsufficientData) as exc_info:
        MarketAnalyzer().analyze(match, _signals(), OddsInfo(home=1.75, away=4.50))
    assert exc_info.value.missing == ["odds.draw"]

    with pytest.raises(InsufficientData):
        MarketAnalyzer().analyze(match, _signals(), None)


def test_weights_must_sum_to_one():
    with pytest.raises(ValueError):
        MarketAnalyzer(0.7, 0.4)


def test_best_edge_tie_break_and_neutral():
    assert best_edge(OutcomeValues(home=4.0, away=4.0, draw=1.0)).direction == "home"
    assert best_edge(OutcomeValues(home=-1.0, away=6.0, draw=6.0)).direction == "away"

    neutral = best_edge(OutcomeValues(home=-1.0, away=-2.0, draw=0.0))
    assert neutral.direction == "neutral"
    assert neutral.percentage == 0.0
    assert neutral.quality == "LOW"

    assert best_edge(OutcomeValues(home=10.0, away=-10.0)).quality == "HIGH"
    assert best_edge(OutcomeValues(home=5.0, away=-5.0)).quality == "MEDIUM"


def test_favored_needs_five_point_lead():
    assert favored_outcome(OutcomeValues(home=50.0, away=45.0, draw=5.0)) == "home"
    assert favored_outcome(OutcomeValues(home=48.0, away=46.0, draw=6.0)) == "even"
    assert favored_outcome(OutcomeValues(home=30.0, away=30.0, draw=40.0)) == "draw"
    assert favored_outcome(OutcomeValues(home=40.0, away=60.0)) == "away"


def test_finalize_probabilities_respects_bounds():
    two_way = finalize_probabilities(OutcomeValues(home=97.0, away=3.0))
    assert (two_way.home, two_way.away) == (90.0, 10.0)

    three_way = finalize_probabilities(OutcomeValues(home=95.0, away=3.0, draw=2.0))
    assert three_way.home == 90.0
    assert three_way.away >= 5.0
    assert three_way.draw >= 3.0
    assert _total(three_way) == 100.0


def test_league_profile_lookup():
    assert get_league_profile("Premier League", "soccer_epl").key == "soccer_epl"
    assert get_league_profile(None, "soccer_germany_bundesliga").key == "soccer_germany_bundesliga"
    assert get_league_profile(None, "soccer_germany_bundesliga2").key == "default"
    assert get_league_profile(None, "basketball_nba").key == "default"
