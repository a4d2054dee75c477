"""
backend/app/services/errors.py

Purpose:
    Failure taxonomy for the match intelligence pipeline. Providers and
    services raise these; the pipeline converts every one of them into a
    degraded, structurally complete response plus metadata warnings.

Dependencies:
    - none
"""

from __future__ import annotations


class MatchIntelError(Exception):
    """Base class for all pipeline failures."""


class ProviderUnavailable(MatchIntelError):
    """Network error, 5xx, quota exhaustion or timeout on an upstream provider."""

    def __init__(self, provider: str, message: str = "", *, status_code: int | None = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"[{provider}] {message}" if message else f"[{provider}] unavailable")


class ParseFailure(ProviderUnavailable):
    """Upstream payload failed schema validation. Counts as an outage."""


class TeamNotResolved(MatchIntelError):
    def __init__(self, team_name: str, sport: str):
        self.team_name = team_name
        self.sport = sport
        super().__init__(f"Team not resolved: {team_name!r} ({sport})")


class InsufficientData(MatchIntelError):
    """Essential inputs (season stats, odds) are missing for an analysis."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(f"Insufficient data, missing: {', '.join(self.missing)}")


class CircuitOpen(MatchIntelError):
    def __init__(self, dependency: str, reason: str):
        self.dependency = dependency
        self.reason = reason
        super().__init__(f"Circuit open for {dependency}: {reason}")


class StaleData(ProviderUnavailable):
    """Refresh failed but a last good result is still within its stale limit.

    Counts as an outage for circuit breaking; callers may serve ``payload``
    as long as they label it as cached.
    """

    def __init__(
        self,
        provider: str,
        message: str = "",
        *,
        payload=None,
        age_seconds: float = 0.0,
        status_code: int | None = None,
    ):
        self.payload = payload
        self.age_seconds = age_seconds
        super().__init__(provider, message, status_code=status_code)
