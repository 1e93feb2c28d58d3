"""
Array operations.

Arrays usually come from a field path into ``record`` or a pre-loaded
relation in ``related``. A null collection behaves as an empty one (a
relation that was loaded but has no rows); any other non-array argument is a
type mismatch.

Item fields are addressed with a relative dot path, so
``sum(Field("lineItems"), "product.price")`` works on nested items.
"""

from typing import Any

from policy_engine.domain.enums import OperationCategory
from policy_engine.expressions.paths import MISSING, is_sequence, lookup_in
from policy_engine.operations.base import (
    CallContext,
    deep_equal,
    finite,
    is_number,
    is_truthy,
    require_int,
    require_sequence,
    require_string,
    spec,
    type_name,
)

ARRAY = OperationCategory.ARRAY


def _item_value(item: Any, path: str | None) -> Any:
    if path is None:
        return item
    value = lookup_in(item, path)
    return None if value is MISSING else value


def _values(args: list[Any], call: CallContext) -> list[Any]:
    items = require_sequence(call, 0, args[0])
    path = require_string(call, 1, args[1]) if len(args) > 1 else None
    return [_item_value(item, path) for item in items]


def _numeric_values(args: list[Any], call: CallContext) -> list[int | float]:
    numbers = []
    for value in _values(args, call):
        if value is None:
            continue
        if not is_number(value):
            raise call.mismatch(0, "array of numbers", value)
        numbers.append(value)
    return numbers


def _matcher(args: list[Any], call: CallContext):
    """Predicate from (path) -> truthy, or (path, value) -> equal to value."""
    path = require_string(call, 1, args[1])
    if len(args) > 2:
        expected = args[2]
        return lambda item: deep_equal(_item_value(item, path), expected)
    return lambda item: is_truthy(_item_value(item, path))


@spec("count", ARRAY, 1, 1, ("array",))
def count(args: list[Any], call: CallContext) -> int:
    return len(require_sequence(call, 0, args[0]))


@spec("sum", ARRAY, 1, 2, ("array", "string"))
def sum_(args: list[Any], call: CallContext) -> int | float:
    """sum(items) or sum(items, "price"); null entries are skipped"""
    return finite(call, sum(_numeric_values(args, call)))


@spec("avg", ARRAY, 1, 2, ("array", "string"))
def avg(args: list[Any], call: CallContext) -> int | float:
    """avg(items) or avg(items, "price"); 0 for an empty collection"""
    numbers = _numeric_values(args, call)
    if not numbers:
        return 0
    return finite(call, sum(numbers) / len(numbers))


@spec("first", ARRAY, 1, 1, ("array",))
def first(args: list[Any], call: CallContext) -> Any:
    items = require_sequence(call, 0, args[0])
    return items[0] if items else None


@spec("last", ARRAY, 1, 1, ("array",))
def last(args: list[Any], call: CallContext) -> Any:
    items = require_sequence(call, 0, args[0])
    return items[-1] if items else None


@spec("map", ARRAY, 2, 2, ("array", "string"))
def map_(args: list[Any], call: CallContext) -> list[Any]:
    """map(items, "author.name") -> the value at that path for every item"""
    return _values(args, call)


@spec("filter", ARRAY, 2, 3, ("array", "string", "any"))
def filter_(args: list[Any], call: CallContext) -> list[Any]:
    """filter(items, "published") or filter(items, "status", "active")"""
    items = require_sequence(call, 0, args[0])
    matches = _matcher(args, call)
    return [item for item in items if matches(item)]


@spec("find", ARRAY, 2, 3, ("array", "string", "any"))
def find(args: list[Any], call: CallContext) -> Any:
    items = require_sequence(call, 0, args[0])
    matches = _matcher(args, call)
    return next((item for item in items if matches(item)), None)


@spec("some", ARRAY, 2, 3, ("array", "string", "any"))
def some(args: list[Any], call: CallContext) -> bool:
    items = require_sequence(call, 0, args[0])
    matches = _matcher(args, call)
    return any(matches(item) for item in items)


@spec("every", ARRAY, 2, 3, ("array", "string", "any"))
def every(args: list[Any], call: CallContext) -> bool:
    """every(items, path[, value]); false for a null collection, true for []"""
    if args[0] is None:
        return False
    items = require_sequence(call, 0, args[0])
    matches = _matcher(args, call)
    return all(matches(item) for item in items)


@spec("slice", ARRAY, 2, 3, ("array", "integer", "integer"))
def slice_(args: list[Any], call: CallContext) -> list[Any]:
    """slice(items, start, end=len) with negative indices counting from the end"""
    items = require_sequence(call, 0, args[0])
    start = require_int(call, 1, args[1])
    end = require_int(call, 2, args[2]) if len(args) > 2 else None
    return items[start:end]


def _hash_key(value: Any) -> tuple[str, Any] | None:
    kind = type_name(value)
    if kind == "number":
        return kind, float(value)
    if kind in ("null", "boolean", "string"):
        return kind, value
    return None


@spec("unique", ARRAY, 1, 1, ("array",))
def unique(args: list[Any], call: CallContext) -> list[Any]:
    """unique(items) -> items without structural duplicates, first occurrence kept"""
    seen: set[tuple[str, Any]] = set()
    composite: list[Any] = []
    result = []
    for item in require_sequence(call, 0, args[0]):
        key = _hash_key(item)
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        else:
            if any(deep_equal(item, other) for other in composite):
                continue
            composite.append(item)
        result.append(item)
    return result


@spec("flatten", ARRAY, 1, 1, ("array",))
def flatten(args: list[Any], call: CallContext) -> list[Any]:
    """flatten([[1, 2], [3], 4]) -> [1, 2, 3, 4]; one level deep"""
    result: list[Any] = []
    for item in require_sequence(call, 0, args[0]):
        if is_sequence(item):
            result.extend(item)
        else:
            result.append(item)
    return result


OPERATIONS = [
    count,
    sum_,
    avg,
    first,
    last,
    map_,
    filter_,
    find,
    some,
    every,
    slice_,
    unique,
    flatten,
]
