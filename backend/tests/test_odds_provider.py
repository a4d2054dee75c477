"""
backend/tests/test_odds_provider.py

Purpose:
    TheOddsAPI provider (bounded stale-on-failure cache, payload validation), the
    resilient HTTP client error mapping and odds resolution by team names.

Dependencies:
    - httpx.MockTransport
    - app.providers.odds_api
    - app.services.odds_resolver
"""

from __future__ import annotations

import httpx
import pytest

from app.models.match_intel import MatchIdentifier, OddsInfo
from app.models.provider_payloads import parse_odds_events
from app.providers.http_client import ResilientClient
from app.providers.odds_api import TheOddsAPIProvider
from app.services.errors import ParseFailure, ProviderUnavailable, StaleData
from app.services.odds_resolver import OddsResolver, canonical_odds, find_event
from app.utils.team_matching import best_match, names_contain, teams_match


def _event(event_id: str, home: str, away: str, prices: dict[str, float], sport: str = "soccer_epl") -> dict:
    return {
        "id": event_id,
        "sport_key": sport,
        "commence_time": "2026-10-20T19:00:00Z",
        "home_team": home,
        "away_team": away,
        "bookmakers": [
            {
                "key": "pinnacle",
                "title": "Pinnacle",
                "markets": [
                    {"key": "h2h", "outcomes": [{"name": n, "price": p} for n, p in prices.items()]},
                ],
            }
        ],
    }


EPL_EVENTS = [
    _event("e1", "Manchester United", "Liverpool", {"Manchester United": 2.6, "Liverpool": 2.7, "Draw": 3.4}),
    _event("e2", "Arsenal", "Chelsea", {"Arsenal": 1.75, "Chelsea": 4.5, "Draw": 3.8}),
]


def _provider(handler, api_key: str = "test-key", **kwargs) -> TheOddsAPIProvider:
    client = ResilientClient("the-odds-api", max_retries=0, transport=httpx.MockTransport(handler))
    return TheOddsAPIProvider(api_key=api_key, client=client, base_url="https://odds.test/v4", **kwargs)


def test_team_matching_helpers():
    assert names_contain("Arsenal FC", "Arsenal")
    assert teams_match("Man United", "Manchester United")
    assert teams_match("Bayern München", "FC Bayern Muenchen")
    assert not teams_match("Arsenal", "Chelsea")
    assert best_match("Chelsea FC", ["Arsenal", "Chelsea", "Crystal Palace"]) == "Chelsea"
    assert best_match("Nowhere Town", ["Arsenal", "Chelsea"]) is None


def test_find_event_prefers_containment_then_alias_match():
    events = parse_odds_events("the-odds-api", EPL_EVENTS)
    match = MatchIdentifier(home_team="Arsenal FC", away_team="Chelsea", sport="soccer_epl")
    assert find_event(events, match).id == "e2"

    fuzzy = MatchIdentifier(home_team="Man United", away_team="Liverpool", sport="soccer_epl")
    assert find_event(events, fuzzy).id == "e1"

    missing = MatchIdentifier(home_team="Everton", away_team="Fulham", sport="soccer_epl")
    assert find_event(events, missing) is None


def test_find_event_never_pairs_clubs_sharing_a_city():
    events = parse_odds_events("the-odds-api", [
        _event("e3", "Manchester City", "Everton", {"Manchester City": 1.4, "Everton": 8.0, "Draw": 5.0}),
    ])

    united = MatchIdentifier(home_team="Manchester United", away_team="Everton", sport="soccer_epl")
    assert find_event(events, united) is None
    utd = MatchIdentifier(home_team="Man Utd", away_team="Everton", sport="soccer_epl")
    assert find_event(events, utd) is None

    city = MatchIdentifier(home_team="Man City", away_team="Everton FC", sport="soccer_epl")
    assert find_event(events, city).id == "e3"


def test_h2h_odds_requires_every_outcome():
    no_draw = parse_odds_events("p", [_event("e", "A Team", "B Team", {"A Team": 1.9, "B Team": 1.9})])[0]
    assert TheOddsAPIProvider.h2h_odds(no_draw, with_draw=True) is None
    assert TheOddsAPIProvider.h2h_odds(no_draw, with_draw=False) == OddsInfo(home=1.9, away=1.9)


def test_canonical_odds_drops_draw_for_two_way_sports():
    odds = OddsInfo(home=1.8, away=2.1, draw=15.0)
    assert canonical_odds(odds, "basketball_nba").draw is None
    assert canonical_odds(odds, "soccer_epl").draw == 15.0


def test_parse_odds_events_rejects_non_list_payload():
    with pytest.raises(ParseFailure):
        parse_odds_events("the-odds-api", {"message": "Invalid API key"})


@pytest.mark.asyncio
async def test_resolver_fetches_and_matches_event():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=EPL_EVENTS, headers={"x-requests-remaining": "499"})

    provider = _provider(handler)
    resolver = OddsResolver(provider)
    match = MatchIdentifier(home_team="Arsenal", away_team="Chelsea", sport="soccer_epl")

    odds = await resolver.fetch(match)
    assert odds == OddsInfo(home=1.75, away=4.5, draw=3.8)
    assert calls[0].url.path == "/v4/sports/soccer_epl/odds"
    assert calls[0].url.params["markets"] == "h2h"
    assert provider.api_usage["requests_remaining"] == 499

    # fresh cache, no second request
    await resolver.fetch(match)
    assert len(calls) == 1
    await provider.aclose()


@pytest.mark.asyncio
async def test_refresh_failure_raises_stale_data_with_last_good_events():
    responses = [httpx.Response(200, json=EPL_EVENTS), httpx.Response(500, text="oops")]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    provider = _provider(handler, max_stale_seconds=1800)
    first = await provider.get_events("soccer_epl")
    provider._cache._data["odds:soccer_epl"]["timestamp"] -= 1000

    with pytest.raises(StaleData) as exc_info:
        await provider.get_events("soccer_epl")
    stale = exc_info.value
    assert [e.id for e in stale.payload] == [e.id for e in first]
    assert stale.age_seconds >= 1000
    assert stale.status_code == 500
    assert responses == []


@pytest.mark.asyncio
async def test_stale_events_past_the_age_limit_are_dropped():
    responses = [
        httpx.Response(200, json=EPL_EVENTS),
        httpx.Response(503, text="down"),
        httpx.Response(503, text="down"),
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    provider = _provider(handler)
    await provider.get_events("soccer_epl")
    provider._cache._data["odds:soccer_epl"]["timestamp"] -= 3 * 86400

    for _ in range(2):
        with pytest.raises(ProviderUnavailable) as exc_info:
            await provider.get_events("soccer_epl")
        assert not isinstance(exc_info.value, StaleData)
        assert exc_info.value.status_code == 503
    assert responses == []


@pytest.mark.asyncio
async def test_resolver_narrows_stale_events_to_the_match():
    responses = [httpx.Response(200, json=EPL_EVENTS), httpx.Response(503, text="down")]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    provider = _provider(handler, max_stale_seconds=900)
    resolver = OddsResolver(provider)
    match = MatchIdentifier(home_team="Arsenal", away_team="Chelsea", sport="soccer_epl")
    await resolver.fetch(match)
    provider._cache._data["odds:soccer_epl"]["timestamp"] -= 600

    with pytest.raises(StaleData) as exc_info:
        await resolver.fetch(match)
    assert exc_info.value.payload == OddsInfo(home=1.75, away=4.5, draw=3.8)
    assert exc_info.value.age_seconds >= 600


@pytest.mark.asyncio
async def test_failure_without_stale_data_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="down")

    provider = _provider(handler)
    with pytest.raises(ProviderUnavailable) as exc_info:
        await provider.get_events("soccer_epl")
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_unconfigured_provider_is_skipped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    resolver = OddsResolver(_provider(handler, api_key=""))
    match = MatchIdentifier(home_team="Arsenal", away_team="Chelsea", sport="soccer_epl")
    assert await resolver.fetch(match) is None
    assert await OddsResolver(None).fetch(match) is None


@pytest.mark.asyncio
async def test_family_only_sport_is_not_fetched():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    resolver = OddsResolver(_provider(handler))
    match = MatchIdentifier(home_team="Arsenal", away_team="Chelsea", sport="soccer")
    assert await resolver.fetch(match) is None


@pytest.mark.asyncio
async def test_client_retries_transient_status_then_succeeds():
    statuses = [503, 200]

    def handler(request: httpx.Request) -> httpx.Response:
        status = statuses.pop(0)
        return httpx.Response(status, json={"ok": status == 200})

    client = ResilientClient("p", max_retries=1, base_delay=0, transport=httpx.MockTransport(handler))
    payload, resp = await client.get_json("https://p.test/x")
    assert payload == {"ok": True}
    assert resp.status_code == 200
    await client.aclose()


@pytest.mark.asyncio
async def test_client_maps_network_errors_and_bad_bodies():
    def broken(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = ResilientClient("p", max_retries=0, transport=httpx.MockTransport(broken))
    with pytest.raises(ProviderUnavailable) as exc_info:
        await client.get_json("https://p.test/x?apiKey=secret")
    assert not isinstance(exc_info.value, ParseFailure)

    def garbage(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    client = ResilientClient("p", max_retries=0, transport=httpx.MockTransport(garbage))
    with pytest.raises(ParseFailure):
        await client.get_json("https://p.test/x")
