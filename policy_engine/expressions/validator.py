"""
Static Validation for Expression Trees.

Checks a tree before it is installed (policy load, UI schema load), so that
structural mistakes surface at startup instead of during a request:
- Every operation and permission check names a registered operation
- Argument counts fit each operation's arity
- Conditions only use binary comparisons, permission checks only use
  permission operations
- Field paths have no empty segments
- The tree is no deeper than the evaluator will accept
- Literal arguments match the declared argument types

Values that only exist at evaluation time (fields, nested operations) are
not type-checked here; the evaluator reports those as TypeMismatch.
"""

import logging
from typing import Any

from policy_engine.core.config import DEFAULT_MAX_DEPTH
from policy_engine.core.errors import ValidationError
from policy_engine.expressions.models import (
    ConditionExpression,
    Expression,
    FieldAccessExpression,
    LiteralExpression,
    OperationExpression,
    PermissionExpression,
    parse_expression,
)
from policy_engine.expressions.paths import split_path
from policy_engine.operations.base import OperationSpec, matches_type, type_name
from policy_engine.operations.comparison_ops import BINARY_COMPARISONS
from policy_engine.operations.registry import OperationRegistry, default_registry

logger = logging.getLogger(__name__)


def validate_expression(
    expr: Expression | dict[str, Any],
    registry: OperationRegistry | None = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Expression:
    """
    Validate an expression tree against an operation registry.

    Args:
        expr: Expression node, or its tagged JSON form
        registry: Registry to resolve names against (defaults to built-ins)
        max_depth: Maximum node depth accepted

    Returns:
        The parsed expression tree

    Raises:
        ValidationError: If any check fails, with the JSONPath of the node

    Example:
        >>> validate_expression({"type": "operation", "op": "upper", "args": []})
        Traceback (most recent call last):
        ...
        ValidationError: Operation 'upper' expects 1 argument(s), got 0 at $
    """
    tree = parse_expression(expr)
    _validate_node(tree, registry or default_registry(), max_depth, depth=1, path="$")
    return tree


def _validate_node(
    node: Expression, registry: OperationRegistry, max_depth: int, depth: int, path: str
) -> None:
    """
    Recursively validate one node.

    Args:
        node: Current node
        registry: Operation registry
        max_depth: Maximum node depth
        depth: Depth of ``node`` (root is 1)
        path: JSONPath to current node (for error reporting)
    """
    if depth > max_depth:
        raise ValidationError(
            f"Expression exceeds maximum depth of {max_depth} at {path}",
            details={"path": path, "max_depth": max_depth},
        )

    if isinstance(node, LiteralExpression):
        return

    if isinstance(node, FieldAccessExpression):
        _validate_field_path(node.path, path)
        return

    if isinstance(node, ConditionExpression):
        if node.op not in BINARY_COMPARISONS:
            raise ValidationError(
                f"Condition operator '{node.op}' is not a comparison at {path}",
                details={
                    "path": path,
                    "op": node.op,
                    "allowed_operators": sorted(BINARY_COMPARISONS),
                },
            )
        operation = _resolve(node.op, registry, path)
        args = (node.left, node.right)
        _validate_literal_args(operation, args, path)
        _validate_node(node.left, registry, max_depth, depth + 1, f"{path}.left")
        _validate_node(node.right, registry, max_depth, depth + 1, f"{path}.right")
        return

    if isinstance(node, PermissionExpression):
        operation = _resolve(node.check, registry, path)
        if not registry.is_permission(node.check):
            raise ValidationError(
                f"'{node.check}' is not a permission check at {path}",
                details={"path": path, "check": node.check, "category": operation.category.value},
            )
        _validate_call(operation, node.args, registry, max_depth, depth, path)
        return

    if isinstance(node, OperationExpression):
        operation = _resolve(node.op, registry, path)
        _validate_call(operation, node.args, registry, max_depth, depth, path)
        return

    raise ValidationError(
        f"Unsupported expression node at {path}",
        details={"path": path, "type": type(node).__name__},
    )


def _resolve(name: str, registry: OperationRegistry, path: str) -> OperationSpec:
    operation = registry.get(name)
    if operation is None:
        raise ValidationError(
            f"Unknown operation '{name}' at {path}", details={"path": path, "op": name}
        )
    return operation


def _validate_call(
    operation: OperationSpec,
    args: tuple[Expression, ...],
    registry: OperationRegistry,
    max_depth: int,
    depth: int,
    path: str,
) -> None:
    if not operation.accepts(len(args)):
        raise ValidationError(
            f"Operation '{operation.name}' expects {operation.arity_label()} argument(s), "
            f"got {len(args)} at {path}",
            details={
                "path": path,
                "op": operation.name,
                "expected": operation.arity_label(),
                "actual": len(args),
            },
        )

    _validate_literal_args(operation, args, path)

    for i, arg in enumerate(args):
        _validate_node(arg, registry, max_depth, depth + 1, f"{path}.args[{i}]")


def _validate_literal_args(
    operation: OperationSpec, args: tuple[Expression, ...], path: str
) -> None:
    """Check literal arguments against the operation's declared types."""
    for i, arg in enumerate(args):
        if not isinstance(arg, LiteralExpression) or arg.value is None:
            # Allow None: operations treat null as empty or absent
            continue
        expected = operation.expected_type(i)
        if not matches_type(arg.value, expected):
            raise ValidationError(
                f"Operation '{operation.name}' expects {expected} for argument {i} at {path}",
                details={
                    "path": path,
                    "op": operation.name,
                    "arg_index": i,
                    "expected_type": expected,
                    "actual_type": type_name(arg.value),
                },
            )


def _validate_field_path(field_path: str, path: str) -> None:
    if any(not segment for segment in split_path(field_path)):
        raise ValidationError(
            f"Field path '{field_path}' has an empty segment at {path}",
            details={"path": path, "field_path": field_path},
        )
