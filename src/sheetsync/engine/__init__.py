"""
Sync engine: transforms, upsert merge and orchestration.
"""

from .expressions import ExpressionEvaluator
from .sync import SyncOrchestrator
from .transforms import RowTransformer
from .upsert import apply_upsert

__all__ = [
    "ExpressionEvaluator",
    "SyncOrchestrator",
    "RowTransformer",
    "apply_upsert",
]
