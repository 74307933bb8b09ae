"""
Cron expressions for repeatable jobs.

Standard 5 fields: ``minute hour day-of-month month day-of-week``.
Tokens per field: ``*``, ``*/n``, ``a``, ``a,b,c``, ``a-b``, ``a-b/n``.
Day-of-week accepts 0-7 (0 and 7 are Sunday). When both day fields are
restricted a time matches if either does, as in traditional cron.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from feedsync.exceptions import CronParseError

# 366 days plus slack for DST and leap years
_SEARCH_WINDOW = timedelta(days=370)


@dataclass(frozen=True)
class CronSchedule:
    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]  # 1-31
    months: frozenset[int]  # 1-12
    weekdays: frozenset[int]  # 0-6, 0=Sunday
    any_day: bool
    any_weekday: bool

    def day_matches(self, dt: datetime) -> bool:
        weekday = (dt.weekday() + 1) % 7
        dom = dt.day in self.days
        dow = weekday in self.weekdays
        if self.any_day and self.any_weekday:
            return True
        if self.any_day:
            return dow
        if self.any_weekday:
            return dom
        return dom or dow

    def matches(self, dt: datetime) -> bool:
        return (
            dt.month in self.months
            and self.day_matches(dt)
            and dt.hour in self.hours
            and dt.minute in self.minutes
        )


def parse_cron(expression: str) -> CronSchedule:
    """
    Parse a 5-field cron expression.

    Raises:
        CronParseError: If the expression is malformed or out of range
    """
    fields = expression.split()
    if len(fields) != 5:
        raise CronParseError(f"Cron expression must have 5 fields, got {len(fields)}: {expression!r}")
    minute, hour, day, month, weekday = fields

    weekdays = _parse_field(weekday, 0, 7)
    if 7 in weekdays:
        weekdays = (weekdays - {7}) | {0}

    return CronSchedule(
        expression=expression,
        minutes=_parse_field(minute, 0, 59),
        hours=_parse_field(hour, 0, 23),
        days=_parse_field(day, 1, 31),
        months=_parse_field(month, 1, 12),
        weekdays=frozenset(weekdays),
        any_day=day == "*",
        any_weekday=weekday == "*",
    )


def _parse_field(token: str, low: int, high: int) -> frozenset[int]:
    values: set[int] = set()
    for part in token.split(","):
        if not part:
            raise CronParseError(f"Empty list item in cron field {token!r}")

        base, _, step_s = part.partition("/")
        step = 1
        if step_s:
            if not step_s.isdigit() or int(step_s) == 0:
                raise CronParseError(f"Invalid step in cron field {token!r}")
            step = int(step_s)

        if base == "*":
            start, end = low, high
        elif "-" in base:
            a, _, b = base.partition("-")
            if not (a.isdigit() and b.isdigit()):
                raise CronParseError(f"Invalid range in cron field {token!r}")
            start, end = int(a), int(b)
            if start > end:
                raise CronParseError(f"Range start after end in cron field {token!r}")
        elif base.isdigit():
            start = int(base)
            # "5/15" means "from 5 to the end, every 15"
            end = high if step_s else start
        else:
            raise CronParseError(f"Invalid value in cron field {token!r}")

        if start < low or end > high:
            raise CronParseError(f"Value out of range {low}-{high} in cron field {token!r}")
        values.update(range(start, end + 1, step))
    return frozenset(values)


def _zone(timezone: str | None, now: datetime) -> ZoneInfo:
    if timezone:
        try:
            return ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise CronParseError(f"Unknown timezone {timezone!r}") from e
    if isinstance(now.tzinfo, ZoneInfo):
        return now.tzinfo
    return ZoneInfo("UTC")


def next_fire_time(expression: str | CronSchedule, *, now: datetime, timezone: str | None = None) -> datetime:
    """
    First time strictly after ``now`` (at minute resolution) matching the expression.

    Naive ``now`` values are interpreted in ``timezone`` (UTC by default). The
    result is timezone-aware in that zone.

    Raises:
        CronParseError: If the expression is invalid or never fires
    """
    schedule = expression if isinstance(expression, CronSchedule) else parse_cron(expression)
    tz = _zone(timezone, now)
    now = now.replace(tzinfo=tz) if now.tzinfo is None else now.astimezone(tz)

    cursor = now.replace(second=0, microsecond=0) + timedelta(minutes=1)
    limit = cursor + _SEARCH_WINDOW
    while cursor <= limit:
        if cursor.month not in schedule.months:
            # Jump to the first minute of the next month
            cursor = (cursor.replace(day=1, hour=0, minute=0) + timedelta(days=32)).replace(day=1)
        elif not schedule.day_matches(cursor):
            cursor = (cursor + timedelta(days=1)).replace(hour=0, minute=0)
        elif cursor.hour not in schedule.hours:
            cursor = (cursor + timedelta(hours=1)).replace(minute=0)
        elif cursor.minute not in schedule.minutes:
            cursor += timedelta(minutes=1)
        else:
            return cursor
    raise CronParseError(f"Cron expression {schedule.expression!r} has no fire time within a year")
