"""
backend/app/services/prediction_fallback.py

Purpose:
    Database fallback for the unified pipeline. When the enrichment circuit
    is open, or no analysis could be computed, the most recent stored
    prediction mentioning either team is turned into an approximate
    ComputedAnalysis.

    Reconstruction from the stored call and conviction (0-10):
        called side      55/45 two-way, 50/25/25 with a draw
        no clear call    50/50 two-way, 37.5/37.5/25 with a draw
        edge             stored value-bet edge, else conviction * 2
        edge quality     HIGH conviction >= 7, MEDIUM >= 4, else LOW
        confidence       conviction / 10
        dataQuality      always MEDIUM

    Store failures (network, timeout, bad document) are logged and treated
    as "no fallback"; they never reach the caller.

Dependencies:
    - app.database (predictions collection via motor)
    - app.models.prediction
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import app.database as _db
from app.config import settings
from app.models.match_intel import ComputedAnalysis, EdgeInfo, EdgeQuality, MatchIdentifier, OutcomeValues
from app.models.prediction import PredictionInDB
from app.services.sport_profiles import has_draw

logger = logging.getLogger("matchintel.prediction_fallback")

FALLBACK_OUTCOMES = ("PENDING", "HIT", "MISS")
DEFAULT_CONVICTION = 5.0


class PredictionStore(Protocol):
    async def find_latest(self, match: MatchIdentifier) -> PredictionInDB | None: ...


def prediction_filter(match: MatchIdentifier) -> dict[str, Any]:
    """Case-insensitive containment of either team name in the match name."""
    return {
        "$or": [
            {"match_name": {"$regex": re.escape(match.home_team), "$options": "i"}},
            {"match_name": {"$regex": re.escape(match.away_team), "$options": "i"}},
        ],
        "outcome": {"$in": list(FALLBACK_OUTCOMES)},
    }


class MongoPredictionStore:
    """Reads the ``predictions`` collection of the connected database."""

    def __init__(self, collection_getter: Callable[[], Any] | None = None):
        self._collection_getter = collection_getter or (lambda: _db.db.predictions)

    async def find_latest(self, match: MatchIdentifier) -> PredictionInDB | None:
        collection = self._collection_getter()
        doc = await collection.find_one(prediction_filter(match), sort=[("created_at", -1)])
        if not isinstance(doc, dict):
            return None
        return PredictionInDB.from_doc(doc)


@dataclass(frozen=True)
class FallbackResult:
    analysis: ComputedAnalysis
    prediction_id: str


def _called_side(prediction: PredictionInDB, match: MatchIdentifier) -> str | None:
    text = (prediction.prediction or "").lower()
    if not text:
        return None
    if "home" in text or match.home_team.lower() in text:
        return "home"
    if "away" in text or match.away_team.lower() in text:
        return "away"
    return None


def _conviction_quality(conviction: float) -> EdgeQuality:
    if conviction >= 7:
        return "HIGH"
    if conviction >= 4:
        return "MEDIUM"
    return "LOW"


def reconstruct_analysis(prediction: PredictionInDB, match: MatchIdentifier) -> ComputedAnalysis:
    side = _called_side(prediction, match)
    with_draw = has_draw(match.sport)
    if with_draw:
        lead, trail, draw = 50.0, 25.0, 25.0
        even = 37.5
    else:
        lead, trail, draw = 55.0, 45.0, None
        even = 50.0

    if side == "home":
        probabilities = OutcomeValues(home=lead, away=trail, draw=draw)
    elif side == "away":
        probabilities = OutcomeValues(home=trail, away=lead, draw=draw)
    else:
        probabilities = OutcomeValues(home=even, away=even, draw=draw)

    conviction = prediction.conviction if prediction.conviction is not None else DEFAULT_CONVICTION
    percentage = prediction.value_bet_edge if prediction.value_bet_edge else conviction * 2
    return ComputedAnalysis(
        probabilities=probabilities,
        edge=EdgeInfo(
            direction=side or "neutral",
            percentage=round(float(percentage), 1),
            quality=_conviction_quality(prediction.conviction or 0.0),
        ),
        confidence=max(0.0, min(1.0, conviction / 10)),
        data_quality="MEDIUM",
        favored=side or "even",
    )


class PredictionFallback:
    def __init__(self, store: PredictionStore | None = None, *, timeout_seconds: float | None = None):
        self.store = store or MongoPredictionStore()
        self.timeout_seconds = (
            settings.DATABASE_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )

    async def lookup(self, match: MatchIdentifier) -> FallbackResult | None:
        try:
            prediction = await asyncio.wait_for(self.store.find_latest(match), self.timeout_seconds)
        except Exception as e:
            logger.warning("Prediction lookup failed for %s: %s", match.match_name, e)
            return None
        if prediction is None:
            return None
        logger.info("Using stored prediction %s for %s", prediction.id, match.match_name)
        return FallbackResult(
            analysis=reconstruct_analysis(prediction, match),
            prediction_id=prediction.id,
        )
