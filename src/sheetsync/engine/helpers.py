"""
Helper functions available to column expressions and callable column specs.
"""

import math
import re
from datetime import date, datetime, timezone
from types import SimpleNamespace
from typing import Any, Optional

# Date format tokens understood by format_date, mapped to strftime directives
DATE_TOKENS = {
    "yyyy": "%Y",
    "MMM": "%b",
    "MM": "%m",
    "dd": "%d",
    "HH": "%H",
    "mm": "%M",
    "ss": "%S",
}
_TOKEN_PATTERN = re.compile("|".join(sorted(DATE_TOKENS, key=len, reverse=True)))


def _coerce_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Numbers are epoch milliseconds
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def format_date(value: Any, fmt: str = "yyyy-MM-dd") -> str:
    """
    Format a date-like value.

    Args:
        value: datetime, date, ISO-8601 string or epoch milliseconds
        fmt: Pattern built from yyyy, MMM, MM, dd, HH, mm, ss, or "iso"

    Returns:
        The formatted date, or "" when the value is blank or unparseable
    """
    if not value:
        return ""
    parsed = _coerce_datetime(value)
    if parsed is None:
        return ""
    if fmt in ("iso", "ISO"):
        return parsed.isoformat()
    pattern = _TOKEN_PATTERN.sub(lambda m: DATE_TOKENS[m.group()], fmt.replace("%", "%%"))
    return parsed.strftime(pattern)


def coalesce(*values: Any) -> Any:
    """Return the first value that is not None or an empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return ""


def to_number(value: Any) -> float:
    """Coerce a value to a finite number, falling back to 0."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return 0
        return number if math.isfinite(number) else 0
    return 0


HELPER_FUNCTIONS = {
    "format_date": format_date,
    "coalesce": coalesce,
    "to_number": to_number,
    # camelCase names used by existing sheet definitions
    "formatDate": format_date,
    "toNumber": to_number,
}

# Namespace handed to callable column specs
helpers = SimpleNamespace(
    format_date=format_date,
    coalesce=coalesce,
    to_number=to_number,
)
