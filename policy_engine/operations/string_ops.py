"""
String operations.

Only ``concat`` and ``join`` render non-string values, and only numbers:
``concat("Total: ", 5)`` is "Total: 5". ``None`` renders as the empty string
there so that an absent optional field does not break a display name.
Every other operation requires real strings.
"""

from collections.abc import Mapping
from typing import Any

from policy_engine.domain.enums import OperationCategory
from policy_engine.expressions.paths import is_sequence
from policy_engine.operations.base import (
    CallContext,
    deep_equal,
    is_number,
    require_int,
    require_sequence,
    require_string,
    spec,
)

STRING = OperationCategory.STRING


def _render(call: CallContext, index: int, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if is_number(value):
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    raise call.mismatch(index, "string or number", value)


@spec("concat", STRING, 1, None)
def concat(args: list[Any], call: CallContext) -> str:
    """concat(a, b, ...) -> joined text"""
    return "".join(_render(call, i, value) for i, value in enumerate(args))


@spec("upper", STRING, 1, 1, ("string",))
def upper(args: list[Any], call: CallContext) -> str:
    return require_string(call, 0, args[0]).upper()


@spec("lower", STRING, 1, 1, ("string",))
def lower(args: list[Any], call: CallContext) -> str:
    return require_string(call, 0, args[0]).lower()


@spec("capitalize", STRING, 1, 1, ("string",))
def capitalize(args: list[Any], call: CallContext) -> str:
    """capitalize("hello world") -> "Hello world"; the rest is left untouched."""
    text = require_string(call, 0, args[0])
    return text[:1].upper() + text[1:]


@spec("trim", STRING, 1, 1, ("string",))
def trim(args: list[Any], call: CallContext) -> str:
    return require_string(call, 0, args[0]).strip()


@spec("substring", STRING, 2, 3, ("string", "integer", "integer"))
def substring(args: list[Any], call: CallContext) -> str:
    """
    substring(text, start, end=len(text))

    Indices are clamped to the string bounds and swapped when start > end.
    """
    text = require_string(call, 0, args[0])
    start = require_int(call, 1, args[1])
    end = require_int(call, 2, args[2]) if len(args) > 2 else len(text)
    start = min(max(start, 0), len(text))
    end = min(max(end, 0), len(text))
    if start > end:
        start, end = end, start
    return text[start:end]


@spec("replace", STRING, 3, 3, ("string", "string", "string"))
def replace(args: list[Any], call: CallContext) -> str:
    """replace(text, search, replacement) -> text with the first match replaced"""
    text = require_string(call, 0, args[0])
    search = require_string(call, 1, args[1])
    replacement = require_string(call, 2, args[2])
    return text.replace(search, replacement, 1)


@spec("split", STRING, 1, 2, ("string", "string"))
def split(args: list[Any], call: CallContext) -> list[str]:
    """split(text, separator=",")"""
    text = require_string(call, 0, args[0])
    separator = require_string(call, 1, args[1]) if len(args) > 1 else ","
    if separator == "":
        return list(text)
    return text.split(separator)


@spec("join", STRING, 1, 2, ("array", "string"))
def join(args: list[Any], call: CallContext) -> str:
    """join(items, separator=",")"""
    items = require_sequence(call, 0, args[0])
    separator = require_string(call, 1, args[1]) if len(args) > 1 else ","
    return separator.join(_render(call, 0, item) for item in items)


@spec("contains", STRING, 2, 2)
def contains(args: list[Any], call: CallContext) -> bool:
    """contains(text, part) for strings, contains(items, value) for arrays"""
    haystack, needle = args
    if isinstance(haystack, str):
        return require_string(call, 1, needle) in haystack
    if is_sequence(haystack):
        return any(deep_equal(item, needle) for item in haystack)
    raise call.mismatch(0, "string or array", haystack)


@spec("startsWith", STRING, 2, 2, ("string", "string"))
def starts_with(args: list[Any], call: CallContext) -> bool:
    return require_string(call, 0, args[0]).startswith(require_string(call, 1, args[1]))


@spec("endsWith", STRING, 2, 2, ("string", "string"))
def ends_with(args: list[Any], call: CallContext) -> bool:
    return require_string(call, 0, args[0]).endswith(require_string(call, 1, args[1]))


@spec("length", STRING, 1, 1)
def length(args: list[Any], call: CallContext) -> int:
    """length(text | array | object); null has length 0"""
    value = args[0]
    if value is None:
        return 0
    if isinstance(value, (str, Mapping)) or is_sequence(value):
        return len(value)
    raise call.mismatch(0, "string, array or object", value)


OPERATIONS = [
    concat,
    upper,
    lower,
    capitalize,
    trim,
    substring,
    replace,
    split,
    join,
    contains,
    starts_with,
    ends_with,
    length,
]
