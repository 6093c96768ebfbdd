"""
Custom exceptions for the sheetsync application.
"""

from typing import List, Tuple


class SheetSyncException(Exception):
    """Base exception for all application-specific errors."""
    pass

class ConfigurationError(SheetSyncException):
    """Error related to sync unit or environment configuration."""
    pass

class UnitNotFoundError(ConfigurationError):
    """A sync unit id did not match any configured unit."""
    pass

class UpsertError(ConfigurationError):
    """Upsert invariants (header, key columns) were violated."""
    pass

class ExtractionError(SheetSyncException):
    """Error while extracting records from the ledger."""
    pass

class LoadError(SheetSyncException):
    """Error while writing rows to a sink."""
    pass

class TransformationError(SheetSyncException):
    """Error during record transformation."""
    pass

class ExpressionError(TransformationError):
    """An embedded expression could not be parsed or evaluated."""
    pass

# Specific API error classes for collaborators
class LedgerAPIError(ExtractionError):
    """Exception raised for ledger REST API errors."""
    pass

class SheetsAPIError(LoadError):
    """Exception raised for Google Sheets API errors."""
    pass


class BatchSyncError(SheetSyncException):
    """One or more units failed during a run-all batch."""

    def __init__(self, failures: List[Tuple[str, Exception]]):
        self.failures = failures
        failed_ids = ", ".join(unit_id for unit_id, _ in failures)
        super().__init__(f"One or more sheets failed: {failed_ids}")

    @property
    def unit_ids(self) -> List[str]:
        return [unit_id for unit_id, _ in self.failures]
