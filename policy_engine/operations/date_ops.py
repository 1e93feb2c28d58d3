"""
Date operations.

Dates may be ``datetime``/``date`` objects or ISO 8601 strings. Values
without a timezone are taken as UTC, and everything is normalised to UTC.
Every operation that depends on the current time reads it from the
evaluator's injected clock (``call.now()``) and is registered with
``pure=False``.
"""

from datetime import UTC, date, datetime
from typing import Any

from policy_engine.domain.enums import OperationCategory
from policy_engine.operations.base import CallContext, require_string, spec

DATE = OperationCategory.DATE

DEFAULT_DATE_FORMAT = "%Y-%m-%d"

_TIME_AGO_UNITS = (
    ("year", 365 * 24 * 3600),
    ("month", 30 * 24 * 3600),
    ("day", 24 * 3600),
    ("hour", 3600),
    ("minute", 60),
)


def to_datetime(call: CallContext, index: int, value: Any) -> datetime:
    """Coerce a date argument to an aware datetime, or raise TypeMismatch."""
    if isinstance(value, datetime):
        return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str):
        # Clients that forget to URL-encode '+' in offsets send a space
        normalized = value.strip().replace(" +", "+")
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError:
            raise call.mismatch(index, "ISO 8601 date", value) from None
        return parsed.astimezone(UTC) if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    raise call.mismatch(index, "date", value)


def _whole_months_between(start: datetime, end: datetime) -> int:
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if (end.day, end.time()) < (start.day, start.time()):
        months -= 1
    return months


def _signed_months(then: datetime, now: datetime) -> int:
    if then <= now:
        return _whole_months_between(then, now)
    return -_whole_months_between(now, then)


@spec("formatDate", DATE, 1, 2, ("date", "string"))
def format_date(args: list[Any], call: CallContext) -> str:
    """formatDate(date, format="%Y-%m-%d") using strftime directives"""
    value = to_datetime(call, 0, args[0])
    pattern = require_string(call, 1, args[1]) if len(args) > 1 else DEFAULT_DATE_FORMAT
    return value.strftime(pattern)


@spec("timeAgo", DATE, 1, 1, ("date",), pure=False)
def time_ago(args: list[Any], call: CallContext) -> str:
    """timeAgo(date) -> "3 days ago", "in 2 hours", "just now" """
    then = to_datetime(call, 0, args[0])
    seconds = (call.now() - then).total_seconds()
    future = seconds < 0
    seconds = abs(seconds)
    for unit, size in _TIME_AGO_UNITS:
        count = int(seconds // size)
        if count >= 1:
            label = unit if count == 1 else f"{unit}s"
            return f"in {count} {label}" if future else f"{count} {label} ago"
    return "just now"


@spec("yearsAgo", DATE, 1, 1, ("date",), pure=False)
def years_ago(args: list[Any], call: CallContext) -> int:
    """yearsAgo(date) -> whole calendar years elapsed (an age)"""
    then = to_datetime(call, 0, args[0])
    return int(_signed_months(then, call.now()) / 12)


@spec("monthsAgo", DATE, 1, 1, ("date",), pure=False)
def months_ago(args: list[Any], call: CallContext) -> int:
    """monthsAgo(date) -> whole calendar months elapsed"""
    return _signed_months(to_datetime(call, 0, args[0]), call.now())


@spec("daysAgo", DATE, 1, 1, ("date",), pure=False)
def days_ago(args: list[Any], call: CallContext) -> int:
    """daysAgo(date) -> whole days elapsed"""
    delta = call.now() - to_datetime(call, 0, args[0])
    days = abs(delta).days
    return days if delta.total_seconds() >= 0 else -days


@spec("now", DATE, 0, 0, pure=False)
def now(args: list[Any], call: CallContext) -> datetime:
    return call.now()


@spec("currentYear", DATE, 0, 0, pure=False)
def current_year(args: list[Any], call: CallContext) -> int:
    return call.now().year


@spec("parseDate", DATE, 1, 1, ("string",))
def parse_date(args: list[Any], call: CallContext) -> datetime:
    """parseDate("2024-01-15T12:00:00Z") -> aware datetime"""
    return to_datetime(call, 0, require_string(call, 0, args[0]))


@spec("isPast", DATE, 1, 1, ("date",), pure=False)
def is_past(args: list[Any], call: CallContext) -> bool:
    return to_datetime(call, 0, args[0]) < call.now()


@spec("isFuture", DATE, 1, 1, ("date",), pure=False)
def is_future(args: list[Any], call: CallContext) -> bool:
    return to_datetime(call, 0, args[0]) > call.now()


OPERATIONS = [
    format_date,
    time_ago,
    years_ago,
    months_ago,
    days_ago,
    now,
    current_year,
    parse_date,
    is_past,
    is_future,
]
