"""
backend/app/services/snapshot_service.py

Purpose:
    Persist one document per live-computed unified result into the
    ``match_snapshots`` collection. Called detached from the request path
    through the background task registry; a failed write only logs.

Dependencies:
    - app.database
    - app.models.prediction.MatchSnapshotInDB
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

import app.database as _db
from app.models.match_intel import UnifiedMatchData
from app.models.prediction import MatchSnapshotInDB
from app.utils import utcnow

logger = logging.getLogger("matchintel.snapshots")


class SnapshotStore(Protocol):
    async def write(self, data: UnifiedMatchData) -> None: ...


def build_snapshot(data: UnifiedMatchData) -> MatchSnapshotInDB:
    return MatchSnapshotInDB(
        cache_key=data.match.cache_key,
        match_name=data.match.match_name,
        sport=data.match.sport,
        data_quality=data.metadata.data_quality,
        quality_score=data.metadata.quality_score,
        fallback_used=data.metadata.fallback_used,
        circuit_breaker_triggered=data.metadata.circuit_breaker_triggered,
        payload=data.model_dump(mode="json", by_alias=True),
        created_at=utcnow(),
    )


class MongoSnapshotStore:
    def __init__(self, collection_getter: Callable[[], Any] | None = None):
        self._collection_getter = collection_getter or (lambda: _db.db.match_snapshots)

    async def write(self, data: UnifiedMatchData) -> None:
        snapshot = build_snapshot(data)
        await self._collection_getter().insert_one(snapshot.model_dump())
        logger.debug("Snapshot stored for %s (%s)", snapshot.match_name, snapshot.data_quality)
