"""
Models for per-unit run state and status reporting.
"""

from datetime import datetime
from typing import Dict, List, Any, Optional
from pydantic import BaseModel, Field

from .config import SyncMode


class RunError(BaseModel):
    """The last failure recorded for a unit."""
    message: str
    timestamp: datetime


class SyncUnitRunState(BaseModel):
    """
    Mutable run state for one sync unit.
    Owned and mutated only by the orchestrator.
    """
    running: bool = False
    last_run_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error: Optional[RunError] = None
    row_count: int = 0


class UnitStatus(BaseModel):
    """A unit's definition summary merged with its run state."""
    id: str
    title: str
    spreadsheet_id: str
    tab: str
    mode: SyncMode
    running: bool
    last_run_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error: Optional[RunError] = None
    row_count: int = 0


class StatusSnapshot(BaseModel):
    """Point-in-time view returned by the status surface."""
    warnings: List[str] = Field(default_factory=list)
    schedule: Dict[str, Any] = Field(default_factory=dict)
    sink: Dict[str, Any] = Field(default_factory=dict)
    units: List[UnitStatus] = Field(default_factory=list)

    def get_unit(self, unit_id: str) -> Optional[UnitStatus]:
        return next((unit for unit in self.units if unit.id == unit_id), None)
