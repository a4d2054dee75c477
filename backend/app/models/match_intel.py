"""
backend/app/models/match_intel.py

Purpose:
    Domain models for the unified match intelligence pipeline: match identity,
    enrichment payloads, normalized signals, market intel, the computed
    analysis, response metadata and the unified response envelope.
    Attributes are snake_case; JSON is emitted with camelCase aliases.

Dependencies:
    - pydantic
    - app.utils
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.utils import utcnow

EnrichmentSource = Literal["LIVE", "CACHE", "DATABASE", "UNAVAILABLE"]
SourceType = Literal["LIVE", "CACHE", "DATABASE", "FALLBACK"]
DataQuality = Literal["HIGH", "MEDIUM", "LOW", "INSUFFICIENT"]
EdgeQuality = Literal["HIGH", "MEDIUM", "LOW"]
EdgeDirection = Literal["home", "away", "draw", "neutral"]
Favored = Literal["home", "away", "draw", "even"]
ConfidenceTag = Literal["high", "medium", "low"]
FormLabel = Literal["strong", "neutral", "weak"]


class IntelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MatchIdentifier(IntelModel):
    home_team: str
    away_team: str
    sport: str
    league: str | None = None
    kickoff: datetime | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    @field_validator("home_team", "away_team", "sport")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @property
    def cache_key(self) -> str:
        return f"{self.home_team}:{self.away_team}:{self.sport}".lower()

    @property
    def match_name(self) -> str:
        return f"{self.home_team} vs {self.away_team}"


class OddsInfo(IntelModel):
    """Decimal odds per outcome; draw only for sports that have one."""
    home: float = Field(gt=1.0)
    away: float = Field(gt=1.0)
    draw: float | None = Field(default=None, gt=1.0)


class FormRecord(IntelModel):
    result: Literal["W", "D", "L"]
    opponent: str
    score: str
    date: datetime | None = None
    home: bool | None = None


class H2HRecord(IntelModel):
    home_team: str
    away_team: str
    home_score: int
    away_score: int
    date: datetime | None = None


class H2HSummary(IntelModel):
    """Meetings seen from the requested home team's perspective."""
    total_matches: int = 0
    home_wins: int = 0
    away_wins: int = 0
    draws: int = 0


class TeamStats(IntelModel):
    goals_scored: float
    goals_conceded: float
    wins: int
    losses: int
    draws: int | None = None
    played: int | None = None


class EnrichedData(IntelModel):
    home_form: list[FormRecord] | None = None
    away_form: list[FormRecord] | None = None
    head_to_head: list[H2HRecord] | None = None
    h2h_summary: H2HSummary | None = None
    home_stats: TeamStats | None = None
    away_stats: TeamStats | None = None
    data_source: EnrichmentSource = "UNAVAILABLE"

    @classmethod
    def unavailable(cls, data_source: EnrichmentSource = "UNAVAILABLE") -> "EnrichedData":
        return cls(data_source=data_source)


class StrengthEdge(IntelModel):
    direction: Literal["home", "away", "even"]
    percentage: float


class EfficiencyEdge(IntelModel):
    winner: Literal["home", "away", "balanced"]
    aspect: Literal["offense", "defense", "both"] | None = None


class UniversalSignals(IntelModel):
    home_form_win_rate: float | None = None  # None without recent games
    away_form_win_rate: float | None = None
    home_form_rating: float
    away_form_rating: float
    home_form_label: FormLabel
    away_form_label: FormLabel
    home_scoring_rate: float
    away_scoring_rate: float
    home_conceding_rate: float
    away_conceding_rate: float
    h2h_win_rate: float | None = None  # home side, None without meetings
    strength_edge: StrengthEdge
    tempo: Literal["low", "medium", "high"]
    efficiency_edge: EfficiencyEdge
    home_sample_size: int
    away_sample_size: int
    h2h_sample_size: int
    clarity_score: int
    confidence: ConfidenceTag


class OutcomeValues(IntelModel):
    home: float
    away: float
    draw: float | None = None


class ImpliedProbability(OutcomeValues):
    margin: float


class EdgeInfo(IntelModel):
    direction: EdgeDirection
    percentage: float
    quality: EdgeQuality


class MarketIntel(IntelModel):
    implied_probability: ImpliedProbability
    devigged_probability: OutcomeValues
    model_probability: OutcomeValues
    edges: OutcomeValues
    best_edge: EdgeInfo
    market_weight: float
    signal_weight: float
    league_profile: str


class ComputedAnalysis(IntelModel):
    probabilities: OutcomeValues
    edge: EdgeInfo
    confidence: float = Field(ge=0.0, le=1.0)
    data_quality: DataQuality
    favored: Favored
    market_intel: MarketIntel | None = None
    signals: UniversalSignals | None = None


class DataSource(IntelModel):
    name: str
    type: SourceType
    fetched_at: datetime = Field(default_factory=utcnow)
    latency_ms: int | None = None
    provider: str | None = None
    notes: str | None = None


class QualityFactor(IntelModel):
    name: str
    available: bool
    weight: float


class ResponseMetadata(IntelModel):
    sources: list[DataSource] = Field(default_factory=list)
    quality_factors: list[QualityFactor] = Field(default_factory=list)
    missing_fields: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    total_latency_ms: int = 0
    circuit_breaker_triggered: bool = False
    fallback_used: bool = False
    primary_source: str = "NONE"
    data_quality: DataQuality = "INSUFFICIENT"
    quality_score: int = 0
    fetched_at: datetime = Field(default_factory=utcnow)


class UnifiedMatchData(IntelModel):
    match: MatchIdentifier
    enriched_data: EnrichedData
    odds: OddsInfo | None = None
    analysis: ComputedAnalysis | None = None
    metadata: ResponseMetadata
    fetched_at: datetime = Field(default_factory=utcnow)
    cached: bool = False
    prediction_id: str | None = None


class UnifiedMatchRequest(IntelModel):
    match: MatchIdentifier
    include_odds: bool = True
    skip_cache: bool = False
    odds: OddsInfo | None = None


class QuickAnalysisRequest(IntelModel):
    match: MatchIdentifier
    odds: OddsInfo
