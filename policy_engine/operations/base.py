"""
Operation descriptors, call context and shared argument checks.

Every operation, built-in or host-defined, is described by an
``OperationSpec``. Its implementation is called as ``impl(args, call)``
where ``args`` are the evaluated argument values (or zero-argument thunks
for lazy operations) and ``call`` is a ``CallContext``.
"""

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from policy_engine.core.errors import OperationFailed, TypeMismatch
from policy_engine.domain.enums import OperationCategory
from policy_engine.expressions.clock import Clock
from policy_engine.expressions.context import EvaluationContext
from policy_engine.expressions.paths import is_sequence

# Names accepted in OperationSpec.arg_types
ARG_TYPES = frozenset({"any", "number", "integer", "string", "boolean", "array", "object", "date"})


@dataclass(frozen=True)
class CallContext:
    """What an operation implementation may see besides its arguments."""

    op: str
    context: EvaluationContext
    clock: Clock
    path: str = "$"
    strict: bool = False

    def now(self) -> datetime:
        current = self.clock()
        if current.tzinfo is None:
            return current.replace(tzinfo=UTC)
        return current.astimezone(UTC)

    def mismatch(self, index: int, expected: str, value: Any) -> TypeMismatch:
        return TypeMismatch(self.op, index, expected, type_name(value), path=self.path)


Implementation = Callable[[list[Any], CallContext], Any]


@dataclass(frozen=True)
class OperationSpec:
    """
    Registry entry for one operation.

    Attributes:
        name: Operation name as written in expressions
        impl: ``impl(args, call) -> value``
        category: Operation category; PERMISSION makes it usable in permission checks
        min_args: Minimum number of arguments
        max_args: Maximum number of arguments (None = variadic)
        arg_types: Declared argument expectations; the last entry repeats
            for variadic tails. Used by the static validator on literals.
        pure: False for operations that read the clock
        lazy: True if the implementation receives thunks instead of values
    """

    name: str
    impl: Implementation
    category: OperationCategory = OperationCategory.CUSTOM
    min_args: int = 0
    max_args: int | None = None
    arg_types: tuple[str, ...] = ()
    pure: bool = True
    lazy: bool = False
    description: str = ""

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args

    def arity_label(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.min_args == self.max_args:
            return str(self.min_args)
        return f"{self.min_args}-{self.max_args}"

    def expected_type(self, index: int) -> str:
        if not self.arg_types:
            return "any"
        if index < len(self.arg_types):
            return self.arg_types[index]
        return self.arg_types[-1] if self.max_args is None else "any"


def spec(
    name: str,
    category: OperationCategory,
    min_args: int,
    max_args: int | None,
    arg_types: tuple[str, ...] = (),
    *,
    pure: bool = True,
    lazy: bool = False,
) -> Callable[[Implementation], OperationSpec]:
    """Decorator turning an implementation function into an OperationSpec."""

    def wrap(impl: Implementation) -> OperationSpec:
        return OperationSpec(
            name=name,
            impl=impl,
            category=category,
            min_args=min_args,
            max_args=max_args,
            arg_types=arg_types,
            pure=pure,
            lazy=lazy,
            description=(impl.__doc__ or "").strip(),
        )

    return wrap


# ============================================================================
# Type helpers
# ============================================================================


def type_name(value: Any) -> str:
    """JSON-flavoured type name used in TypeMismatch errors."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (datetime, date)):
        return "date"
    if isinstance(value, Mapping):
        return "object"
    if is_sequence(value):
        return "array"
    return type(value).__name__


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def matches_type(value: Any, expected: str) -> bool:
    if expected == "any":
        return True
    if expected == "number":
        return is_number(value)
    if expected == "integer":
        return is_number(value) and float(value).is_integer()
    if expected == "string":
        return isinstance(value, str)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "array":
        return is_sequence(value)
    if expected == "object":
        return isinstance(value, Mapping)
    if expected == "date":
        return isinstance(value, (str, datetime, date))
    return False


def require_number(call: CallContext, index: int, value: Any) -> int | float:
    if not is_number(value):
        raise call.mismatch(index, "number", value)
    return value


def require_int(call: CallContext, index: int, value: Any) -> int:
    if not is_number(value) or not float(value).is_integer():
        raise call.mismatch(index, "integer", value)
    return int(value)


def require_string(call: CallContext, index: int, value: Any) -> str:
    if not isinstance(value, str):
        raise call.mismatch(index, "string", value)
    return value


def require_sequence(call: CallContext, index: int, value: Any) -> list[Any]:
    """Sequences pass through as lists; None behaves as an empty collection."""
    if value is None:
        return []
    if not is_sequence(value):
        raise call.mismatch(index, "array", value)
    return list(value)


def finite(call: CallContext, value: int | float) -> int | float:
    """Reject NaN and infinities so they never leave an operation."""
    if isinstance(value, float) and not math.isfinite(value):
        raise OperationFailed(call.op, "result is not a finite number", path=call.path)
    return value


def deep_equal(left: Any, right: Any) -> bool:
    """
    Structural, type-strict equality.

    Booleans never equal numbers (``True != 1``); ints and floats compare by
    value (``1 == 1.0``); sequences and mappings compare element-wise
    regardless of list/tuple or dict/mapping-proxy flavour.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) and is_number(right):
        return left == right
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if left.keys() != right.keys():
            return False
        return all(deep_equal(left[k], right[k]) for k in left)
    if is_sequence(left) and is_sequence(right):
        if len(left) != len(right):
            return False
        return all(deep_equal(a, b) for a, b in zip(left, right))
    if type_name(left) != type_name(right):
        return False
    return left == right


def is_truthy(value: Any) -> bool:
    return bool(value)
