"""
Math operations.

All arguments must be numbers; booleans and numeric strings are rejected
rather than coerced. Division or modulo by zero raises DivisionByZero and no
operation ever returns NaN or an infinity.
"""

import math
from typing import Any

from policy_engine.core.errors import DivisionByZero
from policy_engine.domain.enums import OperationCategory
from policy_engine.expressions.paths import is_sequence
from policy_engine.operations.base import (
    CallContext,
    finite,
    require_int,
    require_number,
    spec,
)

MATH = OperationCategory.MATH

# Integer exponents above this are computed in floating point so that a
# single pow() cannot build an arbitrarily large integer.
_MAX_INT_EXPONENT = 1024

_MAX_ROUND_DIGITS = 15


def _numbers(args: list[Any], call: CallContext) -> list[int | float]:
    return [require_number(call, i, value) for i, value in enumerate(args)]


@spec("add", MATH, 1, None, ("number",))
def add(args: list[Any], call: CallContext) -> int | float:
    """add(a, b, ...) -> a + b + ..."""
    return finite(call, sum(_numbers(args, call)))


@spec("subtract", MATH, 2, 2, ("number", "number"))
def subtract(args: list[Any], call: CallContext) -> int | float:
    """subtract(a, b) -> a - b"""
    a, b = _numbers(args, call)
    return finite(call, a - b)


@spec("multiply", MATH, 1, None, ("number",))
def multiply(args: list[Any], call: CallContext) -> int | float:
    """multiply(a, b, ...) -> a * b * ..."""
    return finite(call, math.prod(_numbers(args, call)))


@spec("divide", MATH, 2, 2, ("number", "number"))
def divide(args: list[Any], call: CallContext) -> float:
    """divide(a, b) -> a / b"""
    a, b = _numbers(args, call)
    if b == 0:
        raise DivisionByZero(call.op, path=call.path)
    return finite(call, a / b)


@spec("mod", MATH, 2, 2, ("number", "number"))
def mod(args: list[Any], call: CallContext) -> int | float:
    """mod(a, b) -> remainder of a / b; the sign follows the dividend."""
    a, b = _numbers(args, call)
    if b == 0:
        raise DivisionByZero(call.op, path=call.path)
    if isinstance(a, int) and isinstance(b, int):
        remainder = abs(a) % abs(b)
        return remainder if a >= 0 else -remainder
    return math.fmod(a, b)


@spec("pow", MATH, 2, 2, ("number", "number"))
def power(args: list[Any], call: CallContext) -> int | float:
    """pow(base, exponent)"""
    base, exponent = _numbers(args, call)
    if base == 0 and exponent < 0:
        raise DivisionByZero(call.op, path=call.path)
    if isinstance(exponent, int) and abs(exponent) > _MAX_INT_EXPONENT:
        base = float(base)
    try:
        result = base**exponent
    except OverflowError:
        return finite(call, math.inf)
    if isinstance(result, complex):
        raise call.mismatch(0, "non-negative number for fractional exponent", base)
    return finite(call, result)


@spec("abs", MATH, 1, 1, ("number",))
def absolute(args: list[Any], call: CallContext) -> int | float:
    """abs(x)"""
    return abs(require_number(call, 0, args[0]))


@spec("round", MATH, 1, 2, ("number", "integer"))
def round_half_up(args: list[Any], call: CallContext) -> int | float:
    """round(x, digits=0) -> x rounded half away from zero."""
    value = require_number(call, 0, args[0])
    digits = require_int(call, 1, args[1]) if len(args) > 1 else 0
    if abs(digits) > _MAX_ROUND_DIGITS:
        expected = f"integer between -{_MAX_ROUND_DIGITS} and {_MAX_ROUND_DIGITS}"
        raise call.mismatch(1, expected, digits)
    factor = 10**digits
    rounded = math.floor(abs(value) * factor + 0.5) / factor
    rounded = math.copysign(rounded, value) if rounded else 0.0
    if digits <= 0:
        return int(rounded)
    return finite(call, rounded)


@spec("floor", MATH, 1, 1, ("number",))
def floor(args: list[Any], call: CallContext) -> int:
    """floor(x)"""
    return math.floor(require_number(call, 0, args[0]))


@spec("ceil", MATH, 1, 1, ("number",))
def ceil(args: list[Any], call: CallContext) -> int:
    """ceil(x)"""
    return math.ceil(require_number(call, 0, args[0]))


def _extremum_args(args: list[Any], call: CallContext) -> list[int | float]:
    # min([1, 2, 3]) and min(1, 2, 3) are both accepted
    if len(args) == 1 and is_sequence(args[0]):
        values = list(args[0])
        if not values:
            raise call.mismatch(0, "non-empty array", values)
        return [require_number(call, 0, value) for value in values]
    return _numbers(args, call)


@spec("min", MATH, 1, None)
def minimum(args: list[Any], call: CallContext) -> int | float:
    """min(a, b, ...) or min(array)"""
    return min(_extremum_args(args, call))


@spec("max", MATH, 1, None)
def maximum(args: list[Any], call: CallContext) -> int | float:
    """max(a, b, ...) or max(array)"""
    return max(_extremum_args(args, call))


OPERATIONS = [
    add,
    subtract,
    multiply,
    divide,
    mod,
    power,
    absolute,
    round_half_up,
    floor,
    ceil,
    minimum,
    maximum,
]
