"""
backend/app/services/match_intel_service.py

Purpose:
    Unified match intelligence pipeline. One entry point returns form,
    head-to-head, season stats, odds and a quality-graded analysis for a
    match, degrading instead of failing:

        cache -> live fetch -> circuit-breaker fallback
              -> stored-prediction fallback -> odds-only computation

    Request flow:
        CACHE_CHECK (hit -> done)
        ENRICH (breaker gated, DB fallback when open) || ODDS_FETCH (breaker gated)
        ANALYZE (skipped on InsufficientData) -> DB fallback when no analysis
        GRADE -> ASSEMBLE -> CACHE_WRITE (+ detached snapshot write)

    Nothing raises to the caller: outages become warnings and null fields;
    an unexpected failure is logged and answered with an empty, structurally
    complete response.

Dependencies:
    - app.services.enrichment_service / odds_resolver (network)
    - app.services.circuit_breaker (one breaker per dependency)
    - app.services.signal_normalizer / market_analyzer / quality_grader
    - app.services.match_cache
    - app.services.prediction_fallback / snapshot_service / background_tasks
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from app.config import settings
from app.models.match_intel import (
    ComputedAnalysis,
    DataSource,
    EnrichedData,
    MatchIdentifier,
    OddsInfo,
    UnifiedMatchData,
)
from app.providers.api_sports import ApiSportsProvider
from app.providers.odds_api import TheOddsAPIProvider
from app.services.background_tasks import BackgroundTaskRegistry
from app.services.circuit_breaker import CircuitBreaker, circuit_health
from app.services.enrichment_service import EnrichmentService
from app.services.errors import CircuitOpen, InsufficientData, ProviderUnavailable, StaleData
from app.services.market_analyzer import MarketAnalyzer
from app.services.match_cache import MatchCache
from app.services.odds_resolver import OddsResolver, canonical_odds
from app.services.prediction_fallback import FallbackResult, PredictionFallback
from app.services.quality_grader import build_metadata, grade_analysis
from app.services.signal_normalizer import normalize_signals
from app.services.snapshot_service import MongoSnapshotStore, SnapshotStore
from app.services.sport_profiles import detect_sport_family

logger = logging.getLogger("matchintel.pipeline")

BREAKER_WARNING = "Using cached data due to API issues"
ENRICHMENT_WARNING = "Team statistics temporarily unavailable"
ODDS_WARNING = "Live odds temporarily unavailable"
STALE_ODDS_WARNING = "Live odds unavailable, showing last known prices"
UNEXPECTED_WARNING = "Match data temporarily unavailable"

DATABASE_SOURCE = "MongoDB"
ENRICHMENT_SOURCE = "API-Sports"
ODDS_SOURCE = "The Odds API"
PRELOADED_ODDS_SOURCE = "Pre-loaded odds"


@dataclass
class _Trace:
    """Per-request bookkeeping shared by the concurrent fetch branches."""
    sources: list[DataSource] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    circuit_breaker_triggered: bool = False
    fallback_used: bool = False
    fallback: FallbackResult | None = None
    fallback_attempted: bool = False


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def enrichment_breaker_key(match: MatchIdentifier) -> str:
    return detect_sport_family(match.sport) or match.sport.lower()


def odds_breaker_key(match: MatchIdentifier) -> str:
    return match.sport.lower()


class MatchIntelService:
    def __init__(
        self,
        *,
        enrichment: EnrichmentService,
        odds: OddsResolver,
        enrichment_breaker: CircuitBreaker | None = None,
        odds_breaker: CircuitBreaker | None = None,
        cache: MatchCache | None = None,
        analyzer: MarketAnalyzer | None = None,
        fallback: PredictionFallback | None = None,
        snapshots: SnapshotStore | None = None,
        tasks: BackgroundTaskRegistry | None = None,
        enrichment_timeout: float | None = None,
        odds_timeout: float | None = None,
    ):
        self.enrichment = enrichment
        self.odds = odds
        self.enrichment_breaker = enrichment_breaker or CircuitBreaker(
            "enrichment",
            failure_threshold=settings.ENRICHMENT_BREAKER_THRESHOLD,
            cooldown_seconds=settings.ENRICHMENT_BREAKER_COOLDOWN_SECONDS,
            reset_window_seconds=settings.ENRICHMENT_BREAKER_RESET_SECONDS,
            backoff_factor=settings.BREAKER_BACKOFF_FACTOR,
            max_cooldown_seconds=settings.BREAKER_MAX_COOLDOWN_SECONDS,
        )
        self.odds_breaker = odds_breaker or CircuitBreaker(
            "odds",
            failure_threshold=settings.ODDS_BREAKER_THRESHOLD,
            cooldown_seconds=settings.ODDS_BREAKER_COOLDOWN_SECONDS,
            reset_window_seconds=settings.ODDS_BREAKER_RESET_SECONDS,
            backoff_factor=settings.BREAKER_BACKOFF_FACTOR,
            max_cooldown_seconds=settings.BREAKER_MAX_COOLDOWN_SECONDS,
        )
        self.cache = cache or MatchCache()
        self.analyzer = analyzer or MarketAnalyzer()
        self.fallback = fallback or PredictionFallback()
        self.snapshots = snapshots
        self.tasks = tasks or BackgroundTaskRegistry()
        self.enrichment_timeout = (
            settings.ENRICHMENT_TIMEOUT_SECONDS if enrichment_timeout is None else enrichment_timeout
        )
        self.odds_timeout = settings.ODDS_TIMEOUT_SECONDS if odds_timeout is None else odds_timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def get_unified_match_data(
        self,
        match: MatchIdentifier,
        *,
        include_odds: bool = True,
        skip_cache: bool = False,
        odds: OddsInfo | None = None,
    ) -> UnifiedMatchData:
        started = time.monotonic()
        logger.info("Fetching: %s (%s)", match.match_name, match.sport)
        try:
            return await self.cache.get_or_compute(
                match,
                lambda: self._compute(match, include_odds=include_odds, preloaded_odds=odds),
                skip_cache=skip_cache,
            )
        except Exception:
            logger.exception("Unified pipeline failed for %s", match.match_name)
            return self._empty_response(match, started)

    async def get_quick_analysis(self, match: MatchIdentifier, odds: OddsInfo) -> ComputedAnalysis | None:
        """Full pipeline with caller odds; odds-only computation when it yields nothing."""
        data = await self.get_unified_match_data(match, odds=odds, include_odds=False)
        if data.analysis is not None:
            return data.analysis
        try:
            return self.analyzer.compute_from_odds_only(match, odds)
        except InsufficientData as e:
            logger.info("No quick analysis for %s: missing %s", match.match_name, ", ".join(e.missing))
            return None

    def health(self) -> dict[str, Any]:
        return {
            "breakers": circuit_health(self.enrichment_breaker, self.odds_breaker),
            "cache": {
                "entries": len(self.cache),
                "inflight": self.cache.inflight_count,
                "ttlSeconds": self.cache.ttl_seconds,
            },
            "backgroundTasks": self.tasks.stats(),
            "providers": {
                "enrichment": {
                    "name": self.enrichment.provider.name,
                    "configured": self.enrichment.provider.is_configured,
                },
                "odds": {
                    "name": self.odds.provider_name,
                    "configured": self.odds.provider is not None and self.odds.provider.is_configured,
                },
            },
        }

    def purge_expired(self) -> int:
        return self.cache.purge_expired() + self.enrichment.purge_expired()

    async def aclose(self) -> None:
        await self.tasks.stop()
        await self.enrichment.provider.aclose()
        if self.odds.provider is not None:
            await self.odds.provider.aclose()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    async def _compute(
        self,
        match: MatchIdentifier,
        *,
        include_odds: bool,
        preloaded_odds: OddsInfo | None,
    ) -> UnifiedMatchData:
        started = time.monotonic()
        trace = _Trace()

        enriched, odds = await asyncio.gather(
            self._fetch_enrichment(match, trace),
            self._fetch_odds(match, trace, include_odds=include_odds, preloaded=preloaded_odds),
        )

        analysis = self._analyze(match, enriched, odds)

        prediction_id: str | None = None
        if analysis is None:
            result = trace.fallback
            if result is None and not trace.fallback_attempted:
                result = await self.fallback.lookup(match)
            if result is not None:
                analysis = result.analysis
                prediction_id = result.prediction_id
                trace.fallback_used = True
                if not any(s.type == "DATABASE" for s in trace.sources):
                    trace.sources.append(DataSource(
                        name=DATABASE_SOURCE,
                        type="DATABASE",
                        notes="Analysis from stored prediction",
                    ))

        metadata = build_metadata(
            enriched=enriched,
            odds=odds,
            analysis=analysis,
            sources=trace.sources,
            warnings=trace.warnings,
            total_latency_ms=_elapsed_ms(started),
            circuit_breaker_triggered=trace.circuit_breaker_triggered,
            fallback_used=trace.fallback_used,
        )
        data = UnifiedMatchData(
            match=match,
            enriched_data=enriched,
            odds=odds,
            analysis=analysis,
            metadata=metadata,
            prediction_id=prediction_id,
        )
        logger.info(
            "Complete in %dms | Quality: %s | Sources: %s",
            metadata.total_latency_ms,
            metadata.data_quality,
            ", ".join(s.name for s in metadata.sources) or "none",
        )
        self._schedule_snapshot(data)
        return data

    async def _fetch_enrichment(self, match: MatchIdentifier, trace: _Trace) -> EnrichedData:
        key = enrichment_breaker_key(match)
        started = time.monotonic()
        decision = self.enrichment_breaker.should_allow_request(key)
        if not decision.allowed:
            logger.info("Enrichment circuit %s: %s", key, decision.reason)
            trace.circuit_breaker_triggered = True
            trace.warnings.append(BREAKER_WARNING)
            result = await self.fallback.lookup(match)
            trace.fallback_attempted = True
            if result is None:
                return EnrichedData.unavailable()
            trace.fallback = result
            trace.fallback_used = True
            trace.sources.append(DataSource(
                name=DATABASE_SOURCE,
                type="DATABASE",
                latency_ms=_elapsed_ms(started),
                notes="Circuit breaker active - database fallback",
            ))
            return EnrichedData.unavailable("DATABASE")

        try:
            enriched = await asyncio.wait_for(
                self.enrichment.get_enriched_data(match), self.enrichment_timeout,
            )
        except (ProviderUnavailable, TimeoutError) as e:
            self.enrichment_breaker.record_failure(key, e)
            logger.warning(
                "Enrichment failed for %s: %s", match.match_name, str(e) or type(e).__name__,
            )
            trace.warnings.append(ENRICHMENT_WARNING)
            return EnrichedData.unavailable()

        self.enrichment_breaker.record_success(key)
        if enriched.data_source in ("LIVE", "CACHE"):
            trace.sources.append(DataSource(
                name=ENRICHMENT_SOURCE,
                type=enriched.data_source,
                latency_ms=_elapsed_ms(started),
                provider=self.enrichment.provider.name,
            ))
        return enriched

    async def _fetch_odds(
        self,
        match: MatchIdentifier,
        trace: _Trace,
        *,
        include_odds: bool,
        preloaded: OddsInfo | None,
    ) -> OddsInfo | None:
        if preloaded is not None:
            trace.sources.append(DataSource(
                name=PRELOADED_ODDS_SOURCE,
                type="CACHE",
                latency_ms=0,
                notes="Odds provided by caller",
            ))
            return canonical_odds(preloaded, match.sport)
        if not include_odds:
            return None

        key = odds_breaker_key(match)
        started = time.monotonic()
        try:
            self.odds_breaker.ensure_allowed(key)
            odds = await asyncio.wait_for(self.odds.fetch(match), self.odds_timeout)
        except CircuitOpen as e:
            logger.info("%s (%s)", e, key)
            trace.warnings.append(ODDS_WARNING)
            return None
        except StaleData as e:
            self.odds_breaker.record_failure(key, e)
            logger.warning("Odds refresh failed for %s, %s", match.match_name, e)
            trace.warnings.append(STALE_ODDS_WARNING)
            if e.payload is not None:
                trace.sources.append(DataSource(
                    name=ODDS_SOURCE,
                    type="CACHE",
                    latency_ms=_elapsed_ms(started),
                    provider=self.odds.provider_name,
                    notes=f"Last known odds, {e.age_seconds:.0f}s old",
                ))
            return e.payload
        except (ProviderUnavailable, TimeoutError) as e:
            self.odds_breaker.record_failure(key, e)
            logger.warning("Odds fetch failed for %s: %s", match.match_name, str(e) or type(e).__name__)
            return None

        self.odds_breaker.record_success(key)
        if odds is not None:
            trace.sources.append(DataSource(
                name=ODDS_SOURCE,
                type="LIVE",
                latency_ms=_elapsed_ms(started),
                provider=self.odds.provider_name,
            ))
        return odds

    def _analyze(
        self, match: MatchIdentifier, enriched: EnrichedData, odds: OddsInfo | None
    ) -> ComputedAnalysis | None:
        if odds is None or enriched.data_source == "UNAVAILABLE":
            return None
        try:
            signals = normalize_signals(match.sport, enriched, odds)
            intel = self.analyzer.analyze(match, signals, odds)
        except InsufficientData as e:
            logger.info("Analysis skipped for %s: missing %s", match.match_name, ", ".join(e.missing))
            return None
        return grade_analysis(enriched, signals, intel)

    def _schedule_snapshot(self, data: UnifiedMatchData) -> None:
        if self.snapshots is None or not settings.SNAPSHOT_WRITES_ENABLED:
            return
        if data.metadata.primary_source != "LIVE":
            return
        self.tasks.spawn(self.snapshots.write(data), name=f"snapshot:{data.match.cache_key}")

    def _empty_response(self, match: MatchIdentifier, started: float) -> UnifiedMatchData:
        enriched = EnrichedData.unavailable()
        return UnifiedMatchData(
            match=match,
            enriched_data=enriched,
            metadata=build_metadata(
                enriched=enriched,
                odds=None,
                analysis=None,
                sources=[],
                warnings=[UNEXPECTED_WARNING],
                total_latency_ms=_elapsed_ms(started),
                circuit_breaker_triggered=False,
                fallback_used=False,
            ),
        )


_service_singleton: MatchIntelService | None = None


def get_match_intel_service() -> MatchIntelService:
    global _service_singleton
    if _service_singleton is None:
        _service_singleton = MatchIntelService(
            enrichment=EnrichmentService(ApiSportsProvider()),
            odds=OddsResolver(TheOddsAPIProvider()),
            snapshots=MongoSnapshotStore(),
        )
    return _service_singleton


async def shutdown_match_intel_service() -> None:
    global _service_singleton
    if _service_singleton is not None:
        await _service_singleton.aclose()
        _service_singleton = None
