from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict

PredictionOutcome = Literal["PENDING", "HIT", "MISS", "VOID"]


class PredictionInDB(BaseModel):
    """Stored prediction document (``predictions`` collection). Written by the publishing side, read here only."""
    model_config = ConfigDict(extra="ignore")

    id: str
    match_name: str  # "Home vs Away"
    sport: Optional[str] = None
    prediction: Optional[str] = None  # free-text call, e.g. "Home win" or a team name
    conviction: Optional[float] = None  # 0-10
    value_bet_edge: Optional[float] = None  # percentage points
    outcome: PredictionOutcome = "PENDING"
    created_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "PredictionInDB":
        return cls(id=str(doc["_id"]), **{k: v for k, v in doc.items() if k != "_id"})


class MatchSnapshotInDB(BaseModel):
    """One computed unified result (``match_snapshots`` collection)."""
    cache_key: str
    match_name: str
    sport: str
    data_quality: str
    quality_score: int
    fallback_used: bool
    circuit_breaker_triggered: bool
    payload: Dict[str, Any]  # UnifiedMatchData in its JSON (camelCase) form
    created_at: datetime
