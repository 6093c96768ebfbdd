"""
Connector framework for sheetsync.

Extractors read records from the ledger; sinks write rows to sheets.
"""

from .base import BaseSink, RecordExtractor
from .ledger import LedgerClient, LedgerExtractor, EXTRACTOR_REGISTRY
from .sheets import GoogleSheetsSink

__all__ = [
    "BaseSink",
    "RecordExtractor",
    "LedgerClient",
    "LedgerExtractor",
    "GoogleSheetsSink",
    "EXTRACTOR_REGISTRY",
]

# Sink registry for dynamic loading, keyed by SHEETS_MODE
SINK_REGISTRY = {
    "service-account": GoogleSheetsSink,
}
