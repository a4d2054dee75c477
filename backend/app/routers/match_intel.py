"""
backend/app/routers/match_intel.py

Purpose:
    HTTP surface of the unified match intelligence pipeline. Bodies and
    responses use camelCase field names; request validation failures are
    answered with 422 by the app-level handler.

Dependencies:
    - app.services.match_intel_service
"""

from fastapi import APIRouter, Depends

from app.models.match_intel import (
    ComputedAnalysis,
    QuickAnalysisRequest,
    UnifiedMatchData,
    UnifiedMatchRequest,
)
from app.services.match_intel_service import MatchIntelService, get_match_intel_service

router = APIRouter(prefix="/api/match-intel", tags=["match-intel"])


@router.post("/unified", response_model=UnifiedMatchData)
async def unified_match_data(
    body: UnifiedMatchRequest,
    service: MatchIntelService = Depends(get_match_intel_service),
):
    """Form, head-to-head, stats, odds and graded analysis for one match."""
    return await service.get_unified_match_data(
        body.match,
        include_odds=body.include_odds,
        skip_cache=body.skip_cache,
        odds=body.odds,
    )


@router.post("/quick", response_model=ComputedAnalysis | None)
async def quick_analysis(
    body: QuickAnalysisRequest,
    service: MatchIntelService = Depends(get_match_intel_service),
):
    return await service.get_quick_analysis(body.match, body.odds)


@router.get("/health")
async def match_intel_health(service: MatchIntelService = Depends(get_match_intel_service)):
    return service.health()
