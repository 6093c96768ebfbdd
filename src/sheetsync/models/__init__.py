"""
Models for the sheetsync system.
"""

from .config import (
    SyncMode, ColumnSpec, SortRule, PostProcess, TransformSpec, SourceSpec,
    EventSubscription, SinkTarget, SyncUnit, LedgerTarget, AppSettings, AppConfig
)
from .state import RunError, SyncUnitRunState, UnitStatus, StatusSnapshot
from .sync import TransformResult, RunRequest, LedgerEvent

__all__ = [
    # Configuration
    "SyncMode",
    "ColumnSpec",
    "SortRule",
    "PostProcess",
    "TransformSpec",
    "SourceSpec",
    "EventSubscription",
    "SinkTarget",
    "SyncUnit",
    "LedgerTarget",
    "AppSettings",
    "AppConfig",

    # Run state
    "RunError",
    "SyncUnitRunState",
    "UnitStatus",
    "StatusSnapshot",

    # Sync data
    "TransformResult",
    "RunRequest",
    "LedgerEvent",
]
