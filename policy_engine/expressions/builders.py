"""Shorthand constructors for expression trees.

Plain Python values passed as arguments are wrapped as literals, so

    op("concat", field("firstName"), " ", field("lastName"))

builds the same tree as spelling out every ``LiteralExpression``.
"""

from typing import Any

from policy_engine.expressions.models import (
    ConditionExpression,
    Expression,
    FieldAccessExpression,
    LiteralExpression,
    OperationExpression,
    PermissionExpression,
    is_expression,
)


def _coerce(value: Any) -> Expression:
    if is_expression(value):
        return value
    return LiteralExpression(value=value)


def lit(value: Any) -> LiteralExpression:
    return LiteralExpression(value=value)


def field(path: str) -> FieldAccessExpression:
    return FieldAccessExpression(path=path)


def op(name: str, *args: Any) -> OperationExpression:
    return OperationExpression(op=name, args=tuple(_coerce(arg) for arg in args))


def cond(name: str, left: Any, right: Any) -> ConditionExpression:
    return ConditionExpression(op=name, left=_coerce(left), right=_coerce(right))


def perm(check: str, *args: Any) -> PermissionExpression:
    return PermissionExpression(check=check, args=tuple(_coerce(arg) for arg in args))
