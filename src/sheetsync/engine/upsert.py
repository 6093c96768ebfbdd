"""
Upsert merge: reconcile new rows with the values already in a sheet.
"""

from typing import Any, Dict, List, Optional, Sequence

from ..exceptions import UpsertError

# Joins composite key parts; chosen so it cannot appear in ordinary cell text
KEY_SEPARATOR = "\u241f::\u241f"


def resolve_key_indexes(header: Sequence[str], key_columns: Sequence[str]) -> List[int]:
    """
    Map key column names to their positions in the header.

    Raises:
        UpsertError: If the header or key columns are missing, or a key
            column is not in the header
    """
    if not header:
        raise UpsertError("Upsert mode requires a header row")
    if not key_columns:
        raise UpsertError("Upsert mode requires keyColumns to be defined")
    indexes = []
    for column in key_columns:
        try:
            indexes.append(list(header).index(column))
        except ValueError:
            raise UpsertError(f"Upsert key column not found in header: {column}") from None
    return indexes


def _cell_text(row: Sequence[Any], index: int) -> str:
    if index >= len(row) or row[index] is None:
        return ""
    return str(row[index])


def build_key(row: Sequence[Any], indexes: Sequence[int]) -> Optional[str]:
    """Composite key for a row, or None when every key cell is blank."""
    parts = [_cell_text(row, index) for index in indexes]
    if not any(parts):
        return None
    return KEY_SEPARATOR.join(parts)


def apply_upsert(
    existing: Optional[Sequence[Sequence[Any]]],
    header: Sequence[str],
    rows: Sequence[Sequence[Any]],
    key_columns: Sequence[str]
) -> List[List[Any]]:
    """
    Merge rows into an existing grid by key.

    Row 0 of the result is always the new header. Rows whose key matches an
    existing row replace it in place; other rows are appended in input
    order. Existing rows with a blank key pass through untouched, and
    incoming rows with a blank key are dropped.

    Args:
        existing: Current sheet values, header first (may be empty)
        header: New header row
        rows: New data rows
        key_columns: Header labels forming the composite key

    Returns:
        The full grid to write back

    Raises:
        UpsertError: If the header or key columns are invalid
    """
    indexes = resolve_key_indexes(header, key_columns)

    values: List[List[Any]] = [list(row) if isinstance(row, (list, tuple)) else [] for row in (existing or [])]
    if values:
        values[0] = list(header)
    else:
        values.append(list(header))

    positions: Dict[str, int] = {}
    for position in range(1, len(values)):
        key = build_key(values[position], indexes)
        if key is not None:
            positions[key] = position

    for row in rows:
        key = build_key(row, indexes)
        if key is None:
            continue
        if key in positions:
            values[positions[key]] = list(row)
        else:
            values.append(list(row))
            positions[key] = len(values) - 1

    return values
