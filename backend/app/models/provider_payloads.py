"""
backend/app/models/provider_payloads.py

Purpose:
    Validation boundary for untrusted upstream JSON. Each provider payload is
    parsed into an explicit schema here; anything that fails the schema is
    rejected with ParseFailure (whole payload) or dropped (single item) and
    never leaks into the pipeline as loosely typed dicts.

    API-Sports serves one JSON shape per sport family:
      - football:          fixture{id,date,status}, teams, goals{home,away}
      - basketball:        id, date, status, teams, scores{home{total},away{total}}
      - hockey:            id, date, status, teams, scores{home,away}
      - american football: game{id,date{date},status}, teams, scores{home{total},...}

Dependencies:
    - pydantic
    - app.services.errors
    - app.utils.parse_utc
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from app.services.errors import ParseFailure
from app.utils import parse_utc

logger = logging.getLogger("matchintel.provider_payloads")

# Status codes API-Sports uses for a finished game, per family
FINISHED_STATUSES: dict[str, frozenset[str]] = {
    "soccer": frozenset({"FT", "AET", "PEN"}),
    "basketball": frozenset({"FT", "AOT"}),
    "hockey": frozenset({"FT", "AOT", "AP"}),
    "american_football": frozenset({"FT", "AOT"}),
}


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# API-Sports
# ---------------------------------------------------------------------------

class ApiSportsEnvelope(_Lenient):
    errors: list[Any] | dict[str, Any] = Field(default_factory=list)
    results: int = 0
    response: list[dict[str, Any]] | dict[str, Any] = Field(default_factory=list)


class TeamIdentity(_Lenient):
    """Provider-canonical team identity."""
    id: int
    name: str


class _TeamRef(_Lenient):
    id: int
    name: str


class _Teams(_Lenient):
    home: _TeamRef
    away: _TeamRef


class _Status(_Lenient):
    short: str


class _ScoreTotal(_Lenient):
    total: int | None = None


class _FootballFixtureInfo(_Lenient):
    id: int
    date: datetime
    status: _Status


class _Goals(_Lenient):
    home: int | None = None
    away: int | None = None


class FootballFixture(_Lenient):
    fixture: _FootballFixtureInfo
    teams: _Teams
    goals: _Goals


class BasketballGame(_Lenient):
    id: int
    date: datetime
    status: _Status
    teams: _Teams
    scores: dict[str, _ScoreTotal]


class HockeyGame(_Lenient):
    id: int
    date: datetime
    status: _Status
    teams: _Teams
    scores: _Goals


class _GameDate(_Lenient):
    date: str
    time: str | None = None


class _AmericanFootballGameInfo(_Lenient):
    id: int
    date: _GameDate
    status: _Status


class AmericanFootballGame(_Lenient):
    game: _AmericanFootballGameInfo
    teams: _Teams
    scores: dict[str, _ScoreTotal]


class ProviderGame(_Lenient):
    """Sport-independent finished or scheduled game."""
    id: int
    date: datetime | None = None
    status: str
    home_id: int
    home_name: str
    away_id: int
    away_name: str
    home_score: int | None = None
    away_score: int | None = None

    def is_finished(self, family: str) -> bool:
        return (
            self.status in FINISHED_STATUSES.get(family, frozenset())
            and self.home_score is not None
            and self.away_score is not None
        )


def _game_from_raw(family: str, raw: dict[str, Any]) -> ProviderGame:
    if family == "soccer":
        f = FootballFixture.model_validate(raw)
        return ProviderGame(
            id=f.fixture.id, date=f.fixture.date, status=f.fixture.status.short,
            home_id=f.teams.home.id, home_name=f.teams.home.name,
            away_id=f.teams.away.id, away_name=f.teams.away.name,
            home_score=f.goals.home, away_score=f.goals.away,
        )
    if family == "basketball":
        g = BasketballGame.model_validate(raw)
        return ProviderGame(
            id=g.id, date=g.date, status=g.status.short,
            home_id=g.teams.home.id, home_name=g.teams.home.name,
            away_id=g.teams.away.id, away_name=g.teams.away.name,
            home_score=g.scores.get("home", _ScoreTotal()).total,
            away_score=g.scores.get("away", _ScoreTotal()).total,
        )
    if family == "hockey":
        h = HockeyGame.model_validate(raw)
        return ProviderGame(
            id=h.id, date=h.date, status=h.status.short,
            home_id=h.teams.home.id, home_name=h.teams.home.name,
            away_id=h.teams.away.id, away_name=h.teams.away.name,
            home_score=h.scores.home, away_score=h.scores.away,
        )
    if family == "american_football":
        a = AmericanFootballGame.model_validate(raw)
        try:
            game_date: datetime | None = parse_utc(a.game.date.date)
        except ValueError:
            game_date = None
        return ProviderGame(
            id=a.game.id, date=game_date, status=a.game.status.short,
            home_id=a.teams.home.id, home_name=a.teams.home.name,
            away_id=a.teams.away.id, away_name=a.teams.away.name,
            home_score=a.scores.get("home", _ScoreTotal()).total,
            away_score=a.scores.get("away", _ScoreTotal()).total,
        )
    raise ValueError(f"Unsupported sport family: {family}")


def parse_envelope(provider: str, payload: Any) -> ApiSportsEnvelope:
    """Validate the API-Sports envelope; provider-side errors count as outages."""
    try:
        envelope = ApiSportsEnvelope.model_validate(payload)
    except ValidationError as exc:
        raise ParseFailure(provider, f"invalid envelope: {exc.error_count()} errors") from exc
    if envelope.errors:
        # Quota exhaustion and bad keys arrive as 200 + errors object
        raise ParseFailure(provider, f"provider errors: {envelope.errors}")
    return envelope


def parse_games(provider: str, family: str, payload: Any) -> list[ProviderGame]:
    envelope = parse_envelope(provider, payload)
    items = envelope.response if isinstance(envelope.response, list) else []
    games: list[ProviderGame] = []
    for raw in items:
        try:
            games.append(_game_from_raw(family, raw))
        except ValidationError:
            logger.debug("[%s] dropping malformed %s game item", provider, family)
    return games


def parse_teams(provider: str, payload: Any) -> list[TeamIdentity]:
    """Team search results. Football wraps each item in ``team``."""
    envelope = parse_envelope(provider, payload)
    items = envelope.response if isinstance(envelope.response, list) else []
    teams: list[TeamIdentity] = []
    for raw in items:
        data = raw.get("team", raw) if isinstance(raw, dict) else raw
        try:
            teams.append(TeamIdentity.model_validate(data))
        except ValidationError:
            logger.debug("[%s] dropping malformed team item", provider)
    return teams


# ---------------------------------------------------------------------------
# TheOddsAPI
# ---------------------------------------------------------------------------

class OddsApiOutcome(_Lenient):
    name: str
    price: float = Field(gt=1.0)
    point: float | None = None


class OddsApiMarket(_Lenient):
    key: str
    outcomes: list[OddsApiOutcome]


class OddsApiBookmaker(_Lenient):
    key: str
    title: str | None = None
    markets: list[OddsApiMarket] = Field(default_factory=list)


class OddsApiEvent(_Lenient):
    id: str
    sport_key: str
    commence_time: datetime
    home_team: str
    away_team: str
    bookmakers: list[OddsApiBookmaker] = Field(default_factory=list)


_ODDS_EVENTS = TypeAdapter(list[OddsApiEvent])


def parse_odds_events(provider: str, payload: Any) -> list[OddsApiEvent]:
    try:
        return _ODDS_EVENTS.validate_python(payload)
    except ValidationError as exc:
        raise ParseFailure(provider, f"invalid odds payload: {exc.error_count()} errors") from exc
