"""
Expression evaluator.

Walks an expression tree against an EvaluationContext and returns an
EvaluationResult. Evaluation errors never escape ``evaluate``: they are
returned in the result, and the caller decides the consequence (a fallback
display value for UI expressions, deny for policies).

Design notes:
- Recursion carries an explicit depth counter; a node deeper than
  ``max_depth`` yields DepthExceeded instead of exhausting the stack.
- Arguments are evaluated eagerly left to right, except for lazy operations
  (and, or, if, coalesce) which receive thunks.
- The evaluator holds no per-call state, so one instance can serve any
  number of threads.
- Time is read only through the injected clock.
"""

import copy
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from policy_engine.core.config import DEFAULT_MAX_DEPTH, MAX_DEPTH_CEILING
from policy_engine.core.errors import (
    ArityError,
    DepthExceeded,
    EvalError,
    OperationFailed,
    UnknownOperation,
)
from policy_engine.expressions.clock import Clock, system_clock
from policy_engine.expressions.context import EvaluationContext
from policy_engine.expressions.models import (
    ConditionExpression,
    Expression,
    FieldAccessExpression,
    LiteralExpression,
    OperationExpression,
    PermissionExpression,
)
from policy_engine.expressions.paths import resolve_field
from policy_engine.operations.base import CallContext, OperationSpec
from policy_engine.operations.comparison_ops import BINARY_COMPARISONS
from policy_engine.operations.registry import (
    CustomOperation,
    OperationRegistry,
    default_registry,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationOptions:
    """
    Per-call evaluation options.

    Attributes:
        max_depth: Override of the evaluator's maximum depth (None = use it)
        strict_field_access: Raise UnknownField for unresolvable paths
        allowed_operations: Optional whitelist of operation names
    """

    max_depth: int | None = None
    strict_field_access: bool = False
    allowed_operations: frozenset[str] | None = None


LENIENT = EvaluationOptions()
STRICT = EvaluationOptions(strict_field_access=True)


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of one evaluation: a value or an EvalError, never both."""

    value: Any = None
    error: EvalError | None = field(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return the value or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value

    def value_or(self, default: Any) -> Any:
        """Return the value, or ``default`` when evaluation failed."""
        return default if self.error is not None else self.value

    @classmethod
    def success(cls, value: Any) -> "EvaluationResult":
        return cls(value=value)

    @classmethod
    def failure(cls, error: EvalError) -> "EvaluationResult":
        return cls(error=error)


@dataclass(frozen=True)
class _Walk:
    """Immutable per-call settings threaded through the recursion."""

    context: EvaluationContext
    max_depth: int
    strict: bool
    allowed: frozenset[str] | None


class Evaluator:
    """
    Recursive-descent interpreter for expression trees.

    Args:
        registry: Operation registry (defaults to the built-ins)
        clock: Zero-argument callable returning the current datetime
        max_depth: Maximum node depth (default 50)
        custom_operations: Host operations to add on top of ``registry``
        options: Options used when a call passes none (lenient by default)

    Raises:
        RegistrationError: If a custom operation collides with a built-in
        ValueError: If max_depth is out of range
    """

    def __init__(
        self,
        registry: OperationRegistry | None = None,
        *,
        clock: Clock | None = None,
        max_depth: int | None = None,
        custom_operations: dict[str, CustomOperation] | None = None,
        options: EvaluationOptions | None = None,
    ):
        registry = registry or default_registry()
        if custom_operations:
            registry = registry.with_operations(custom_operations)
        self.registry = registry
        self.clock: Clock = clock or system_clock
        self.max_depth = _check_depth(max_depth if max_depth is not None else DEFAULT_MAX_DEPTH)
        self.options = options or LENIENT

    @classmethod
    def from_settings(cls, **kwargs: Any) -> "Evaluator":
        """Build an evaluator using depth and field-access mode from the engine settings."""
        from policy_engine.core.config import settings

        kwargs.setdefault("max_depth", settings.max_depth)
        kwargs.setdefault(
            "options", EvaluationOptions(strict_field_access=settings.strict_field_access)
        )
        return cls(**kwargs)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def evaluate(
        self,
        expr: Expression,
        context: EvaluationContext,
        options: EvaluationOptions | None = None,
    ) -> EvaluationResult:
        """
        Evaluate ``expr`` against ``context``.

        Returns:
            EvaluationResult holding either the value or the EvalError
        """
        options = options or self.options
        max_depth = options.max_depth if options.max_depth is not None else self.max_depth
        try:
            walk = _Walk(
                context=context,
                max_depth=_check_depth(max_depth),
                strict=options.strict_field_access,
                allowed=options.allowed_operations,
            )
            return EvaluationResult.success(self._eval(expr, walk, 1, "$"))
        except EvalError as exc:
            logger.debug("Evaluation failed: %s (%s)", exc.code, exc.path)
            return EvaluationResult.failure(exc)
        except RecursionError:
            logger.warning("Evaluation hit the interpreter recursion limit")
            return EvaluationResult.failure(DepthExceeded(max_depth, path="$"))
        except ValueError as exc:
            return EvaluationResult.failure(OperationFailed("evaluate", str(exc)))

    def evaluate_or_raise(
        self,
        expr: Expression,
        context: EvaluationContext,
        options: EvaluationOptions | None = None,
    ) -> Any:
        """Evaluate and return the value, raising the EvalError on failure."""
        return self.evaluate(expr, context, options).unwrap()

    def evaluate_many(
        self,
        expr: Expression,
        contexts: Iterable[EvaluationContext],
        options: EvaluationOptions | None = None,
    ) -> list[EvaluationResult]:
        """Evaluate one expression against several contexts."""
        return [self.evaluate(expr, context, options) for context in contexts]

    # ------------------------------------------------------------------
    # Tree walk
    # ------------------------------------------------------------------

    def _eval(self, expr: Expression, walk: _Walk, depth: int, path: str) -> Any:
        if depth > walk.max_depth:
            raise DepthExceeded(walk.max_depth, path=path)

        if isinstance(expr, LiteralExpression):
            value = expr.value
            # Hand out copies so callers cannot mutate the shared tree
            if isinstance(value, (list, dict)):
                return copy.deepcopy(value)
            return value

        if isinstance(expr, FieldAccessExpression):
            return resolve_field(walk.context, expr.path, strict=walk.strict, node_path=path)

        if isinstance(expr, OperationExpression):
            operation = self._lookup(expr.op, walk, path)
            return self._invoke(operation, expr.args, walk, depth, path, "args")

        if isinstance(expr, ConditionExpression):
            if expr.op not in BINARY_COMPARISONS:
                raise UnknownOperation(expr.op, path=path)
            operation = self._lookup(expr.op, walk, path)
            left = self._eval(expr.left, walk, depth + 1, f"{path}.left")
            right = self._eval(expr.right, walk, depth + 1, f"{path}.right")
            return self._call(operation, [left, right], walk, path)

        if isinstance(expr, PermissionExpression):
            if not self.registry.is_permission(expr.check):
                raise UnknownOperation(expr.check, path=path)
            operation = self._lookup(expr.check, walk, path)
            return self._invoke(operation, expr.args, walk, depth, path, "args")

        raise UnknownOperation(type(expr).__name__, path=path)

    def _lookup(self, name: str, walk: _Walk, path: str) -> OperationSpec:
        operation = self.registry.get(name)
        if operation is None:
            raise UnknownOperation(name, path=path)
        if walk.allowed is not None and name not in walk.allowed:
            raise UnknownOperation(name, path=path)
        return operation

    def _invoke(
        self,
        operation: OperationSpec,
        args: tuple[Expression, ...],
        walk: _Walk,
        depth: int,
        path: str,
        key: str,
    ) -> Any:
        if not operation.accepts(len(args)):
            raise ArityError(operation.name, operation.arity_label(), len(args), path=path)

        if operation.lazy:
            thunks = [
                self._thunk(arg, walk, depth + 1, f"{path}.{key}[{i}]")
                for i, arg in enumerate(args)
            ]
            return self._call(operation, thunks, walk, path)

        values = [
            self._eval(arg, walk, depth + 1, f"{path}.{key}[{i}]") for i, arg in enumerate(args)
        ]
        return self._call(operation, values, walk, path)

    def _thunk(self, arg: Expression, walk: _Walk, depth: int, path: str):
        return lambda: self._eval(arg, walk, depth, path)

    def _call(self, operation: OperationSpec, args: list[Any], walk: _Walk, path: str) -> Any:
        call = CallContext(
            op=operation.name,
            context=walk.context,
            clock=self.clock,
            path=path,
            strict=walk.strict,
        )
        try:
            return operation.impl(args, call)
        except EvalError:
            raise
        except RecursionError:
            raise DepthExceeded(walk.max_depth, path=path) from None
        except Exception as exc:
            # Host extensions and stdlib edge cases (overflow, bad strftime
            # patterns) must not escape as uncaught exceptions.
            logger.warning(
                "Operation '%s' raised %s at %s", operation.name, type(exc).__name__, path
            )
            raise OperationFailed(operation.name, type(exc).__name__, path=path) from exc


def _check_depth(max_depth: int) -> int:
    if max_depth < 1 or max_depth > MAX_DEPTH_CEILING:
        raise ValueError(f"max_depth must be between 1 and {MAX_DEPTH_CEILING}, got {max_depth}")
    return max_depth


_default_evaluator: Evaluator | None = None


def get_default_evaluator() -> Evaluator:
    """Shared evaluator with built-in operations and the system clock."""
    global _default_evaluator
    if _default_evaluator is None:
        _default_evaluator = Evaluator()
    return _default_evaluator


def evaluate(
    expr: Expression,
    context: EvaluationContext,
    options: EvaluationOptions | None = None,
) -> EvaluationResult:
    """Convenience function for one-off evaluations with the default evaluator."""
    return get_default_evaluator().evaluate(expr, context, options)
