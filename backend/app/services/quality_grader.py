"""
backend/app/services/quality_grader.py

Purpose:
    Grade how much real signal backs an analysis and assemble the response
    metadata around it.

    Tier from input availability (monotonic, adding an input never lowers it):
        HIGH          recent form for both teams and head-to-head meetings
        MEDIUM        recent form for both teams, no head-to-head
        LOW           only season aggregates for both teams
        INSUFFICIENT  nothing usable

    Numeric confidence comes from the signal confidence tag
    (high 0.8, medium 0.5, low 0.3). The weighted quality factors give a
    0-100 quality score that is reported next to the tier.

Dependencies:
    - app.models.match_intel
    - app.services.market_analyzer (favored outcome)
"""

from __future__ import annotations

from app.models.match_intel import (
    ComputedAnalysis,
    ConfidenceTag,
    DataQuality,
    DataSource,
    EnrichedData,
    MarketIntel,
    OddsInfo,
    QualityFactor,
    ResponseMetadata,
    UniversalSignals,
)
from app.services.market_analyzer import favored_outcome

TIER_ORDER: tuple[DataQuality, ...] = ("INSUFFICIENT", "LOW", "MEDIUM", "HIGH")

CONFIDENCE_VALUES: dict[str, float] = {"high": 0.8, "medium": 0.5, "low": 0.3}

QUALITY_WEIGHTS: dict[str, float] = {
    "homeForm": 0.15,
    "awayForm": 0.15,
    "headToHead": 0.10,
    "homeStats": 0.10,
    "awayStats": 0.10,
    "odds": 0.20,
    "analysis": 0.20,
}

LIMITED_DATA_WARNING = "Limited data available for this match"


def tier_rank(tier: DataQuality) -> int:
    return TIER_ORDER.index(tier)


def grade_data_quality(enriched: EnrichedData) -> DataQuality:
    has_form = bool(enriched.home_form) and bool(enriched.away_form)
    has_h2h = bool(enriched.head_to_head)
    has_stats = enriched.home_stats is not None and enriched.away_stats is not None
    if has_form and has_h2h:
        return "HIGH"
    if has_form:
        return "MEDIUM"
    if has_stats:
        return "LOW"
    return "INSUFFICIENT"


def confidence_value(tag: ConfidenceTag) -> float:
    return CONFIDENCE_VALUES[tag]


def grade_analysis(
    enriched: EnrichedData,
    signals: UniversalSignals,
    intel: MarketIntel,
) -> ComputedAnalysis:
    """Wrap a market analysis with its tier, confidence and favored side."""
    return ComputedAnalysis(
        probabilities=intel.model_probability,
        edge=intel.best_edge,
        confidence=confidence_value(signals.confidence),
        data_quality=grade_data_quality(enriched),
        favored=favored_outcome(intel.model_probability),
        market_intel=intel,
        signals=signals,
    )


def _availability(
    enriched: EnrichedData, odds: OddsInfo | None, analysis: ComputedAnalysis | None
) -> dict[str, bool]:
    return {
        "homeForm": bool(enriched.home_form),
        "awayForm": bool(enriched.away_form),
        "headToHead": bool(enriched.head_to_head),
        "homeStats": enriched.home_stats is not None,
        "awayStats": enriched.away_stats is not None,
        "odds": odds is not None,
        "analysis": analysis is not None,
    }


def quality_factors(
    enriched: EnrichedData, odds: OddsInfo | None, analysis: ComputedAnalysis | None
) -> list[QualityFactor]:
    available = _availability(enriched, odds, analysis)
    return [
        QualityFactor(name=name, available=available[name], weight=weight)
        for name, weight in QUALITY_WEIGHTS.items()
    ]


def quality_score(factors: list[QualityFactor]) -> int:
    total = sum(f.weight for f in factors)
    if total <= 0:
        return 0
    return round(sum(f.weight for f in factors if f.available) / total * 100)


def missing_fields(enriched: EnrichedData, odds: OddsInfo | None) -> list[str]:
    available = _availability(enriched, odds, None)
    available.pop("analysis")
    return [name for name, present in available.items() if not present]


def primary_source(sources: list[DataSource]) -> str:
    if not sources:
        return "NONE"
    kinds = {s.type for s in sources}
    for kind in ("LIVE", "CACHE", "DATABASE"):
        if kind in kinds:
            return kind
    return "FALLBACK"


def build_metadata(
    *,
    enriched: EnrichedData,
    odds: OddsInfo | None,
    analysis: ComputedAnalysis | None,
    sources: list[DataSource],
    warnings: list[str],
    total_latency_ms: int,
    circuit_breaker_triggered: bool,
    fallback_used: bool,
) -> ResponseMetadata:
    factors = quality_factors(enriched, odds, analysis)
    data_quality: DataQuality = analysis.data_quality if analysis else "INSUFFICIENT"
    warnings = list(warnings)
    if data_quality == "LOW" and LIMITED_DATA_WARNING not in warnings:
        warnings.append(LIMITED_DATA_WARNING)
    return ResponseMetadata(
        sources=list(sources),
        quality_factors=factors,
        missing_fields=missing_fields(enriched, odds),
        warnings=warnings,
        total_latency_ms=total_latency_ms,
        circuit_breaker_triggered=circuit_breaker_triggered,
        fallback_used=fallback_used,
        primary_source=primary_source(sources),
        data_quality=data_quality,
        quality_score=quality_score(factors),
    )
