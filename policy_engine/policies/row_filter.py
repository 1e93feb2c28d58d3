"""
Row filter compilation: turn a row read rule into a where-mapping the data
layer can apply at fetch time.

The mapping uses the shape common to ORM query builders:

    {"status": "published"}                      field equals value
    {"AND": [f1, f2]} / {"OR": [f1, f2]}         combinations
    {}                                           no constraint
    {"OR": []}                                   matches nothing

Field names are the dot paths used in the rule. A compiled filter never
excludes a row the rule would allow, but it may let through rows the rule
denies: parts of a rule that cannot be expressed as equality (comparisons
other than ``eq``, string or array operations) compile to "no constraint".
Fetched rows must therefore still go through ``PolicyEngine.filter_rows``.

Sub-rules that do not read the record at all (``hasRole("admin")``,
``isAuthenticated``) are evaluated up front and become either "no
constraint" or "matches nothing".
"""

import logging
from typing import Any

from policy_engine.expressions.context import EvaluationContext
from policy_engine.expressions.evaluator import STRICT, Evaluator
from policy_engine.expressions.models import (
    ConditionExpression,
    Expression,
    FieldAccessExpression,
    LiteralExpression,
    OperationExpression,
    PermissionExpression,
)
from policy_engine.expressions.paths import MISSING, USER_ROOT, WILDCARD, lookup, split_path

logger = logging.getLogger(__name__)


def match_all() -> dict[str, Any]:
    return {}


def match_none() -> dict[str, Any]:
    return {"OR": []}


# Permission checks that read the record
_RECORD_CHECKS = {"isOwner"}


def _is_user_path(path: str) -> bool:
    return path == USER_ROOT or path.startswith(USER_ROOT + ".")


def reads_record(expr: Expression) -> bool:
    """True if evaluating ``expr`` could depend on the current record."""
    if isinstance(expr, FieldAccessExpression):
        return not _is_user_path(expr.path)
    if isinstance(expr, LiteralExpression):
        return False
    if isinstance(expr, ConditionExpression):
        return reads_record(expr.left) or reads_record(expr.right)
    if isinstance(expr, PermissionExpression):
        if expr.check in _RECORD_CHECKS:
            return True
        return any(reads_record(arg) for arg in expr.args)
    if expr.op in _RECORD_CHECKS:
        return True
    return any(reads_record(arg) for arg in expr.args)


class RowFilterCompiler:
    """
    Compiles one rule for one caller.

    Args:
        evaluator: Evaluator used for the record-independent parts
        context: Context carrying the identity and related records (no record)
    """

    def __init__(self, evaluator: Evaluator, context: EvaluationContext):
        self.evaluator = evaluator
        self.context = context

    def compile(self, expr: Expression) -> dict[str, Any]:
        if not reads_record(expr):
            return self._constant(expr)

        if isinstance(expr, ConditionExpression):
            if expr.op == "eq":
                return self._equality(expr.left, expr.right)
        elif isinstance(expr, PermissionExpression):
            if expr.check == "isOwner":
                return self._owner(expr.args)
        elif isinstance(expr, OperationExpression):
            if expr.op == "eq" and len(expr.args) == 2:
                return self._equality(expr.args[0], expr.args[1])
            if expr.op == "isOwner":
                return self._owner(expr.args)
            if expr.op == "and":
                return self._and([self.compile(arg) for arg in expr.args])
            if expr.op == "or":
                return self._or([self.compile(arg) for arg in expr.args])

        logger.debug("Row filter left unconstrained for %s node", expr.type)
        return match_all()

    def _constant(self, expr: Expression) -> dict[str, Any]:
        result = self.evaluator.evaluate(expr, self.context, STRICT)
        return match_all() if result.ok and result.value is True else match_none()

    def _value(self, expr: Expression) -> Any:
        """Value of a record-independent operand, or MISSING."""
        if isinstance(expr, LiteralExpression):
            return expr.value
        if isinstance(expr, FieldAccessExpression) and _is_user_path(expr.path):
            return lookup(self.context, expr.path)
        if not reads_record(expr):
            result = self.evaluator.evaluate(expr, self.context, STRICT)
            return result.value if result.ok else MISSING
        return MISSING

    def _is_column(self, expr: Expression) -> bool:
        """A field read from the record itself, not the identity or a relation."""
        if not isinstance(expr, FieldAccessExpression) or _is_user_path(expr.path):
            return False
        segments = split_path(expr.path)
        return WILDCARD not in segments and segments[0] not in self.context.related

    def _equality(self, left: Expression, right: Expression) -> dict[str, Any]:
        for field_side, value_side in ((left, right), (right, left)):
            if self._is_column(field_side):
                if reads_record(value_side):
                    break
                value = self._value(value_side)
                if value is MISSING:
                    return match_none()
                return {field_side.path: value}
        return match_all()

    def _owner(self, args: tuple[Expression, ...]) -> dict[str, Any]:
        user = self.context.user
        if user is None or len(args) != 1:
            return match_none()
        field_path = self._value(args[0])
        if not isinstance(field_path, str):
            return match_none()
        return {field_path: user.id}

    @staticmethod
    def _and(filters: list[dict[str, Any]]) -> dict[str, Any]:
        if any(f == match_none() for f in filters):
            return match_none()
        constrained = [f for f in filters if f != match_all()]
        if not constrained:
            return match_all()
        if len(constrained) == 1:
            return constrained[0]
        return {"AND": constrained}

    @staticmethod
    def _or(filters: list[dict[str, Any]]) -> dict[str, Any]:
        if any(f == match_all() for f in filters):
            return match_all()
        reachable = [f for f in filters if f != match_none()]
        if not reachable:
            return match_none()
        if len(reachable) == 1:
            return reachable[0]
        return {"OR": reachable}
