"""
Comparison operations.

Equality is structural and type-strict (see ``deep_equal``). Ordering
comparisons require both sides to be of the same kind: numbers with numbers,
strings with strings, dates with dates. Nothing is converted implicitly, so
comparing an ISO string with ``now()`` needs ``parseDate`` first.
"""

from datetime import UTC, date, datetime
from typing import Any

from policy_engine.domain.enums import OperationCategory
from policy_engine.expressions.paths import is_sequence
from policy_engine.operations.base import CallContext, deep_equal, is_number, spec

COMPARISON = OperationCategory.COMPARISON

# Operations a Condition node may name: binary comparisons only
BINARY_COMPARISONS = frozenset({"eq", "ne", "gt", "lt", "gte", "lte", "in"})


def _comparable(call: CallContext, index: int, value: Any) -> tuple[str, Any]:
    if is_number(value):
        return "number", value
    if isinstance(value, str):
        return "string", value
    if isinstance(value, datetime):
        return "date", value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return "date", datetime(value.year, value.month, value.day, tzinfo=UTC)
    raise call.mismatch(index, "number, string or date", value)


def _ordered(call: CallContext, left: Any, right: Any, right_index: int = 1) -> tuple[Any, Any]:
    left_kind, left_value = _comparable(call, 0, left)
    right_kind, right_value = _comparable(call, right_index, right)
    if left_kind != right_kind:
        raise call.mismatch(right_index, left_kind, right)
    return left_value, right_value


@spec("eq", COMPARISON, 2, 2)
def eq(args: list[Any], call: CallContext) -> bool:
    return deep_equal(args[0], args[1])


@spec("ne", COMPARISON, 2, 2)
def ne(args: list[Any], call: CallContext) -> bool:
    return not deep_equal(args[0], args[1])


@spec("gt", COMPARISON, 2, 2)
def gt(args: list[Any], call: CallContext) -> bool:
    left, right = _ordered(call, args[0], args[1])
    return left > right


@spec("lt", COMPARISON, 2, 2)
def lt(args: list[Any], call: CallContext) -> bool:
    left, right = _ordered(call, args[0], args[1])
    return left < right


@spec("gte", COMPARISON, 2, 2)
def gte(args: list[Any], call: CallContext) -> bool:
    left, right = _ordered(call, args[0], args[1])
    return left >= right


@spec("lte", COMPARISON, 2, 2)
def lte(args: list[Any], call: CallContext) -> bool:
    left, right = _ordered(call, args[0], args[1])
    return left <= right


@spec("in", COMPARISON, 2, 2)
def in_(args: list[Any], call: CallContext) -> bool:
    """in(value, collection) -> membership in an array, or substring of a string"""
    value, collection = args
    if collection is None:
        return False
    if isinstance(collection, str):
        if not isinstance(value, str):
            raise call.mismatch(0, "string", value)
        return value in collection
    if is_sequence(collection):
        return any(deep_equal(item, value) for item in collection)
    raise call.mismatch(1, "array or string", collection)


@spec("between", COMPARISON, 3, 3)
def between(args: list[Any], call: CallContext) -> bool:
    """between(value, low, high) -> low <= value <= high"""
    value, low = _ordered(call, args[0], args[1], 1)
    _, high = _ordered(call, args[0], args[2], 2)
    return low <= value <= high


OPERATIONS = [eq, ne, gt, lt, gte, lte, in_, between]
