"""
Base classes for the ledger extractors and sheet sinks.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Any, Optional, Sequence
import logging

from ..engine.upsert import apply_upsert, resolve_key_indexes
from ..exceptions import LoadError
from ..models.config import SinkTarget, SyncMode, SyncUnit

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class RecordExtractor(ABC):
    """Produces the records a sync unit transforms."""

    @abstractmethod
    def extract(self, unit: SyncUnit) -> List[Record]:
        """
        Extract records for a unit.

        Args:
            unit: The sync unit being run

        Returns:
            List of records as dictionaries
        """
        pass


class BaseSink(ABC):
    """Abstract base class for row sinks."""

    def __init__(self, enabled: bool = True, **kwargs):
        """
        Initialize the sink.

        Args:
            enabled: Whether uploads are performed at all
            **kwargs: Additional configuration parameters
        """
        self.enabled = enabled
        self.config = kwargs
        logger.info(f"Initialized {self.__class__.__name__} sink")

    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the sink has what it needs to authenticate."""
        pass

    def get_status(self) -> Dict[str, Any]:
        """Summary shown on the status surface."""
        return {
            "type": self.__class__.__name__,
            "enabled": self.enabled,
            "connected": self.enabled and self.is_connected(),
        }

    def load(
        self,
        target: SinkTarget,
        mode: SyncMode,
        header: Sequence[str],
        rows: Sequence[Sequence[Any]],
        key_columns: Optional[Sequence[str]] = None
    ) -> Dict[str, Any]:
        """
        Write rows to the target using the given mode.

        Returns:
            Dictionary describing the write

        Raises:
            LoadError: If the sink rejects the write
            UpsertError: If upsert invariants are violated
        """
        mode = SyncMode(mode)
        logger.info(
            f"Uploading {len(rows)} rows to {target.spreadsheet_id}/{target.tab} (mode={mode.value})"
        )

        if mode == SyncMode.REPLACE:
            self._replace(target, header, rows)
            written = len(rows)
        elif mode == SyncMode.APPEND:
            self._append(target, rows)
            written = len(rows)
        else:
            resolve_key_indexes(header, key_columns or [])
            try:
                existing = self.read_current_grid(target)
            except LoadError as e:
                logger.warning(f"Failed to read existing sheet values, assuming empty sheet: {e}")
                existing = []
            values = apply_upsert(existing, header, rows, key_columns or [])
            self._write_grid(target, values)
            written = len(values) - 1

        return {"mode": mode.value, "rows": written}

    @abstractmethod
    def read_current_grid(self, target: SinkTarget) -> List[List[Any]]:
        """Read the values currently in the target, header first."""
        pass

    @abstractmethod
    def _replace(self, target: SinkTarget, header: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        """Clear the target and write header plus rows."""
        pass

    @abstractmethod
    def _append(self, target: SinkTarget, rows: Sequence[Sequence[Any]]) -> None:
        """Append rows after the existing content."""
        pass

    @abstractmethod
    def _write_grid(self, target: SinkTarget, values: Sequence[Sequence[Any]]) -> None:
        """Overwrite the target starting at its first cell."""
        pass
