"""
Cron expression parsing and next-fire computation.

Supports the standard 5 fields (minute hour day month day-of-week) with
'*', '*/n', 'a', 'a,b,c', 'a-b' and 'a-b/n' in each field. When both day
of month and day of week are restricted, a day matches if either does.
Day of week 7 is accepted as Sunday.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import FrozenSet, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Bound on the search; covers a leap year
SEARCH_LIMIT = timedelta(days=370)


class CronParseError(ValueError):
    """The expression is malformed or never fires."""
    pass


@dataclass(frozen=True)
class CronSpec:
    minutes: FrozenSet[int]
    hours: FrozenSet[int]
    dom: FrozenSet[int]
    months: FrozenSet[int]
    dow: FrozenSet[int]  # 0=Sunday
    dom_any: bool
    dow_any: bool

    def day_matches(self, dt: datetime) -> bool:
        dom_match = dt.day in self.dom
        dow_match = (dt.weekday() + 1) % 7 in self.dow
        if self.dom_any and self.dow_any:
            return True
        if self.dom_any:
            return dow_match
        if self.dow_any:
            return dom_match
        return dom_match or dow_match


def _parse_field(token: str, min_v: int, max_v: int, sunday_alias: bool = False) -> FrozenSet[int]:
    values = set()
    upper = 7 if sunday_alias else max_v

    for part in token.split(","):
        part = part.strip()
        if not part:
            raise CronParseError(f"empty entry in field: {token!r}")

        step = 1
        if "/" in part:
            part, step_text = part.split("/", 1)
            if not step_text.isdigit() or int(step_text) == 0:
                raise CronParseError(f"invalid step in field: {token!r}")
            step = int(step_text)

        if part == "*":
            start, end = min_v, max_v
        elif "-" in part:
            start_text, end_text = part.split("-", 1)
            if not (start_text.isdigit() and end_text.isdigit()):
                raise CronParseError(f"invalid range in field: {token!r}")
            start, end = int(start_text), int(end_text)
            if start > end:
                raise CronParseError(f"range start > end in field: {token!r}")
        elif part.isdigit():
            start = end = int(part)
        else:
            raise CronParseError(f"invalid value in field: {token!r}")

        if start < min_v or end > upper:
            raise CronParseError(f"value out of bounds in field: {token!r}")

        for value in range(start, end + 1, step):
            values.add(0 if sunday_alias and value == 7 else value)

    return frozenset(values)


def parse_cron(expr: str) -> CronSpec:
    """
    Parse a 5-field cron expression.

    Raises:
        CronParseError: If the expression is invalid
    """
    parts = (expr or "").split()
    if len(parts) != 5:
        raise CronParseError(f"cron must have 5 fields, got {len(parts)}: {expr!r}")

    return CronSpec(
        minutes=_parse_field(parts[0], 0, 59),
        hours=_parse_field(parts[1], 0, 23),
        dom=_parse_field(parts[2], 1, 31),
        months=_parse_field(parts[3], 1, 12),
        dow=_parse_field(parts[4], 0, 6, sunday_alias=True),
        dom_any=parts[2] == "*",
        dow_any=parts[4] == "*",
    )


def _resolve_timezone(name: Optional[str], now: datetime) -> tzinfo:
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise CronParseError(f"unknown timezone: {name!r}") from e
    if now.tzinfo is not None:
        return now.tzinfo
    return now.astimezone().tzinfo


def next_fire_time(expr: str, now: Optional[datetime] = None, timezone: Optional[str] = None) -> datetime:
    """
    Compute the first time strictly after ``now`` matching the expression.

    Args:
        expr: Cron expression, e.g. "0 3 * * *"
        now: Reference time (defaults to the current time)
        timezone: IANA zone the expression is evaluated in (defaults to the
            zone of ``now``, or local time)

    Returns:
        Timezone-aware datetime of the next fire

    Raises:
        CronParseError: If the expression is invalid or never fires
    """
    spec = parse_cron(expr)
    now = now or datetime.now().astimezone()
    tz = _resolve_timezone(timezone, now)
    now = now.replace(tzinfo=tz) if now.tzinfo is None else now.astimezone(tz)

    cursor = now.replace(second=0, microsecond=0) + timedelta(minutes=1)
    limit = cursor + SEARCH_LIMIT

    while cursor <= limit:
        if cursor.month not in spec.months:
            cursor = (cursor.replace(day=1, hour=0, minute=0) + timedelta(days=32)).replace(day=1)
            continue
        if not spec.day_matches(cursor):
            cursor = (cursor + timedelta(days=1)).replace(hour=0, minute=0)
            continue
        if cursor.hour not in spec.hours:
            cursor = (cursor + timedelta(hours=1)).replace(minute=0)
            continue
        if cursor.minute not in spec.minutes:
            cursor += timedelta(minutes=1)
            continue
        return cursor

    raise CronParseError(f"cron expression produced no fire time within a year: {expr!r}")
