from abc import ABC, abstractmethod

from app.models.match_intel import OddsInfo
from app.models.provider_payloads import OddsApiEvent, ProviderGame, TeamIdentity


class EnrichmentProvider(ABC):
    """Per-sport statistics source keyed by provider team identity.

    Implementations raise ProviderUnavailable (or ParseFailure) on outages
    and return empty results on a plain miss.
    """

    name: str = "enrichment"

    @property
    def is_configured(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None

    @abstractmethod
    def supports(self, family: str) -> bool:
        ...

    @abstractmethod
    async def search_teams(self, family: str, name: str) -> list[TeamIdentity]:
        """Candidate identities for a team name search."""
        ...

    @abstractmethod
    async def get_team_games(self, family: str, team_id: int, *, last: int = 5) -> list[ProviderGame]:
        """Most recent finished games of a team, newest first."""
        ...

    @abstractmethod
    async def get_head_to_head(
        self, family: str, home_id: int, away_id: int, *, last: int = 10
    ) -> list[ProviderGame]:
        """Most recent finished meetings between two teams, newest first."""
        ...

    @abstractmethod
    async def get_season_games(self, family: str, team_id: int) -> list[ProviderGame]:
        """All finished games of the current season for season aggregates."""
        ...


class OddsProvider(ABC):
    """Market odds source keyed by odds-provider sport key."""

    name: str = "odds"

    @property
    def is_configured(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None

    @abstractmethod
    async def get_events(self, sport_key: str) -> list[OddsApiEvent]:
        """Upcoming events with bookmaker h2h markets."""
        ...

    @staticmethod
    def h2h_odds(event: OddsApiEvent, with_draw: bool) -> OddsInfo | None:
        """First bookmaker h2h market that prices every required outcome."""
        for bookmaker in event.bookmakers:
            for market in bookmaker.markets:
                if market.key != "h2h":
                    continue
                prices = {o.name: o.price for o in market.outcomes}
                home = prices.get(event.home_team)
                away = prices.get(event.away_team)
                draw = prices.get("Draw")
                if home is None or away is None:
                    continue
                if with_draw and draw is None:
                    continue
                return OddsInfo(home=home, away=away, draw=draw if with_draw else None)
        return None
