"""
backend/tests/test_enrichment_service.py

Purpose:
    Enrichment aggregation (team resolution, form, head-to-head, season
    aggregates, cache provenance) and the API-Sports provider mapping.

Dependencies:
    - app.services.enrichment_service
    - app.providers.api_sports (httpx.MockTransport)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from app.models.match_intel import MatchIdentifier
from app.models.provider_payloads import ProviderGame, TeamIdentity
from app.providers.api_sports import ApiSportsProvider, current_season
from app.providers.base import EnrichmentProvider
from app.providers.http_client import ResilientClient
from app.services.enrichment_service import EnrichmentService, h2h_summary
from app.services.errors import ParseFailure, ProviderUnavailable
from app.services.team_resolver import resolve_team_name, search_variations
from app.utils.team_matching import teams_match

ARSENAL = TeamIdentity(id=42, name="Arsenal")
CHELSEA = TeamIdentity(id=49, name="Chelsea")
_T0 = datetime(2026, 10, 1, tzinfo=timezone.utc)


def _game(gid: int, home: TeamIdentity, away: TeamIdentity, hs: int, as_: int, days_ago: int) -> ProviderGame:
    return ProviderGame(
        id=gid, date=_T0 - timedelta(days=days_ago), status="FT",
        home_id=home.id, home_name=home.name, away_id=away.id, away_name=away.name,
        home_score=hs, away_score=as_,
    )


_OTHER = TeamIdentity(id=1, name="Everton")


class FakeEnrichmentProvider(EnrichmentProvider):
    name = "fake-stats"

    def __init__(self, teams=(ARSENAL, CHELSEA), *, configured=True, fail_with: Exception | None = None):
        self.teams = list(teams)
        self.configured = configured
        self.fail_with = fail_with
        self.calls: list[str] = []
        self.games = {
            ARSENAL.id: [
                _game(1, ARSENAL, _OTHER, 2, 0, 1),
                _game(2, _OTHER, ARSENAL, 1, 3, 8),
                _game(3, ARSENAL, _OTHER, 1, 1, 15),
                _game(4, _OTHER, ARSENAL, 2, 0, 22),
                _game(5, ARSENAL, _OTHER, 4, 1, 29),
            ],
            CHELSEA.id: [
                _game(6, CHELSEA, _OTHER, 0, 1, 2),
                _game(7, _OTHER, CHELSEA, 2, 2, 9),
                _game(8, CHELSEA, _OTHER, 3, 0, 16),
            ],
        }
        self.meetings = [
            _game(10, CHELSEA, ARSENAL, 0, 2, 100),
            _game(11, ARSENAL, CHELSEA, 1, 1, 300),
            _game(12, ARSENAL, CHELSEA, 0, 1, 500),
        ]

    @property
    def is_configured(self) -> bool:
        return self.configured

    def supports(self, family: str) -> bool:
        return family in {"soccer", "basketball"}

    async def search_teams(self, family, name):
        self.calls.append(f"search:{name}")
        return [t for t in self.teams if teams_match(t.name, name)]

    async def get_team_games(self, family, team_id, *, last=5):
        self.calls.append(f"form:{team_id}")
        if self.fail_with is not None:
            raise self.fail_with
        return self.games.get(team_id, [])[:last]

    async def get_season_games(self, family, team_id):
        self.calls.append(f"season:{team_id}")
        return self.games.get(team_id, [])

    async def get_head_to_head(self, family, home_id, away_id, *, last=10):
        self.calls.append(f"h2h:{home_id}-{away_id}")
        return self.meetings[:last]


def _match(home="Arsenal", away="Chelsea", sport="soccer_epl") -> MatchIdentifier:
    return MatchIdentifier(home_team=home, away_team=away, sport=sport)


@pytest.mark.asyncio
async def test_live_then_cached_enrichment():
    provider = FakeEnrichmentProvider()
    service = EnrichmentService(provider)

    data = await service.get_enriched_data(_match())
    assert data.data_source == "LIVE"
    assert [r.result for r in data.home_form] == ["W", "W", "D", "L", "W"]
    assert data.home_form[1].score == "3-1"
    assert data.home_form[1].home is False
    assert [r.result for r in data.away_form] == ["L", "D", "W"]
    assert data.home_stats.wins == 3
    assert data.home_stats.played == 5
    assert data.home_stats.goals_scored == 10
    assert data.away_stats.draws == 1
    assert len(data.head_to_head) == 3
    assert data.h2h_summary.model_dump() == {
        "total_matches": 3, "home_wins": 1, "away_wins": 1, "draws": 1,
    }

    calls_after_first = len(provider.calls)
    again = await service.get_enriched_data(_match())
    assert again.data_source == "CACHE"
    assert len(provider.calls) == calls_after_first
    assert again.home_form == data.home_form


@pytest.mark.asyncio
async def test_unresolved_team_degrades_to_unavailable():
    provider = FakeEnrichmentProvider(teams=[ARSENAL])
    data = await EnrichmentService(provider).get_enriched_data(_match(away="Nowhere Rovers"))
    assert data.data_source == "UNAVAILABLE"
    assert data.home_form is not None
    assert data.away_form is None
    assert data.away_stats is None
    assert data.head_to_head is None

    nobody = FakeEnrichmentProvider(teams=[])
    data = await EnrichmentService(nobody).get_enriched_data(_match())
    assert data.data_source == "UNAVAILABLE"
    assert data.home_stats is None


@pytest.mark.asyncio
async def test_unsupported_or_unconfigured_provider_makes_no_calls():
    provider = FakeEnrichmentProvider()
    data = await EnrichmentService(provider).get_enriched_data(_match(sport="tennis_atp"))
    assert data.data_source == "UNAVAILABLE"

    data = await EnrichmentService(provider).get_enriched_data(_match(sport="icehockey_nhl"))
    assert data.data_source == "UNAVAILABLE"

    unconfigured = FakeEnrichmentProvider(configured=False)
    data = await EnrichmentService(unconfigured).get_enriched_data(_match())
    assert data.data_source == "UNAVAILABLE"
    assert provider.calls == []
    assert unconfigured.calls == []


@pytest.mark.asyncio
async def test_provider_outage_propagates():
    provider = FakeEnrichmentProvider(fail_with=ProviderUnavailable("fake-stats", "HTTP 503"))
    with pytest.raises(ProviderUnavailable):
        await EnrichmentService(provider).get_enriched_data(_match())


def test_h2h_summary_counts_wins_regardless_of_venue():
    provider = FakeEnrichmentProvider()
    summary = h2h_summary(provider.meetings, CHELSEA.id)
    assert (summary.home_wins, summary.away_wins, summary.draws) == (1, 1, 1)


def test_team_name_resolution():
    assert resolve_team_name("Man Utd", "soccer") == "Manchester United"
    assert resolve_team_name("FC Bayern München", "soccer") == "Bayern Munich"
    assert resolve_team_name("Lakers", "basketball") == "Los Angeles Lakers"
    assert resolve_team_name("Spurs", "basketball") == "San Antonio Spurs"
    assert resolve_team_name("Some New Club", "soccer") == "Some New Club"
    assert search_variations("Arsenal FC", "soccer") == ["Arsenal FC", "Arsenal"]


# ---------------------------------------------------------------------------
# API-Sports provider
# ---------------------------------------------------------------------------

def _api_sports(handler, api_key: str = "key") -> ApiSportsProvider:
    client = ResilientClient("api-sports", max_retries=0, transport=httpx.MockTransport(handler))
    return ApiSportsProvider(api_key=api_key, client=client)


def test_current_season():
    assert current_season("soccer", datetime(2026, 3, 1, tzinfo=timezone.utc)) == 2025
    assert current_season("soccer", datetime(2026, 9, 1, tzinfo=timezone.utc)) == 2026
    assert current_season("basketball", datetime(2026, 3, 1, tzinfo=timezone.utc)) == "2025-2026"


@pytest.mark.asyncio
async def test_api_sports_team_search_and_quota_header():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"errors": [], "results": 1, "response": [{"team": {"id": 42, "name": "Arsenal"}}, {"team": {}}]},
            headers={"x-ratelimit-requests-remaining": "97"},
        )

    provider = _api_sports(handler)
    teams = await provider.search_teams("soccer", "Arsenal")
    assert teams == [TeamIdentity(id=42, name="Arsenal")]
    assert seen[0].url.host == "v3.football.api-sports.io"
    assert seen[0].headers["x-apisports-key"] == "key"
    assert provider.requests_remaining == 97


@pytest.mark.asyncio
async def test_api_sports_basketball_games_filtered_and_sorted():
    def game(gid, day, status, home_total):
        return {
            "id": gid,
            "date": f"2026-01-{day:02d}T01:00:00+00:00",
            "status": {"short": status},
            "teams": {"home": {"id": 1, "name": "Lakers"}, "away": {"id": 2, "name": "Celtics"}},
            "scores": {"home": {"total": home_total}, "away": {"total": 100}},
        }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"errors": [], "response": [
            game(1, 3, "FT", 110), game(2, 9, "NS", None), game(3, 7, "AOT", 99),
        ]})

    provider = _api_sports(handler)
    games = await provider.get_team_games("basketball", 1, last=5)
    assert [g.id for g in games] == [3, 1]
    assert games[0].home_score == 99


@pytest.mark.asyncio
async def test_api_sports_error_envelope_is_a_parse_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"errors": {"requests": "You have reached the request limit"}, "response": []})

    with pytest.raises(ParseFailure):
        await _api_sports(handler).search_teams("soccer", "Arsenal")


@pytest.mark.asyncio
async def test_api_sports_without_key_raises_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    provider = _api_sports(handler, api_key="")
    assert provider.is_configured is False
    with pytest.raises(ProviderUnavailable):
        await provider.search_teams("soccer", "Arsenal")
