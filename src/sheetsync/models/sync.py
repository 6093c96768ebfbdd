"""
Models for transform output and run requests.
"""

from datetime import datetime, timezone
from typing import List, Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class TransformResult(BaseModel):
    """Header plus ordered row values produced by the transform engine."""
    header: List[str] = Field(default_factory=list)
    rows: List[List[Any]] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.header and not self.rows


class RunRequest(BaseModel):
    """A fire-and-forget request to run one unit, or every unit when unit_id is None."""
    unit_id: Optional[str] = None
    triggered_by: str = "manual"
    requested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LedgerEvent(BaseModel):
    """A change notification from the ledger event stream."""
    model_config = ConfigDict(extra="allow")

    entity: Optional[str] = None
    type: Optional[str] = None
