"""
Logical operations.

``and``, ``or``, ``if`` and ``coalesce`` are lazy: they receive zero-argument
thunks and evaluate only the branches they need, so an untaken branch may
reference fields that are absent without failing the whole expression.

``and``/``or`` return the deciding operand like Python's own operators:
``or(false, X)`` is ``X``. The policy layer only grants on an exact ``True``.
"""

from collections.abc import Callable, Mapping
from typing import Any

from policy_engine.domain.enums import OperationCategory
from policy_engine.expressions.paths import is_sequence
from policy_engine.operations.base import CallContext, is_truthy, spec

LOGICAL = OperationCategory.LOGICAL

Thunk = Callable[[], Any]


@spec("and", LOGICAL, 1, None, lazy=True)
def and_(args: list[Thunk], call: CallContext) -> Any:
    """and(a, b, ...) -> first falsy operand, else the last one"""
    value: Any = True
    for thunk in args:
        value = thunk()
        if not is_truthy(value):
            return value
    return value


@spec("or", LOGICAL, 1, None, lazy=True)
def or_(args: list[Thunk], call: CallContext) -> Any:
    """or(a, b, ...) -> first truthy operand, else the last one"""
    value: Any = False
    for thunk in args:
        value = thunk()
        if is_truthy(value):
            return value
    return value


@spec("not", LOGICAL, 1, 1)
def not_(args: list[Any], call: CallContext) -> bool:
    return not is_truthy(args[0])


@spec("if", LOGICAL, 2, 3, lazy=True)
def if_(args: list[Thunk], call: CallContext) -> Any:
    """if(condition, then, else=null); only the taken branch is evaluated"""
    if is_truthy(args[0]()):
        return args[1]()
    if len(args) > 2:
        return args[2]()
    return None


@spec("coalesce", LOGICAL, 1, None, lazy=True)
def coalesce(args: list[Thunk], call: CallContext) -> Any:
    """coalesce(a, b, ...) -> first operand that is not null"""
    for thunk in args:
        value = thunk()
        if value is not None:
            return value
    return None


@spec("exists", LOGICAL, 1, 1)
def exists(args: list[Any], call: CallContext) -> bool:
    return args[0] is not None


@spec("isNull", LOGICAL, 1, 1)
def is_null(args: list[Any], call: CallContext) -> bool:
    return args[0] is None


@spec("isEmpty", LOGICAL, 1, 1)
def is_empty(args: list[Any], call: CallContext) -> bool:
    """isEmpty(x) -> true for null, "", [] and {}"""
    value = args[0]
    if value is None:
        return True
    if isinstance(value, (str, Mapping)) or is_sequence(value):
        return len(value) == 0
    return False


OPERATIONS = [and_, or_, not_, if_, coalesce, exists, is_null, is_empty]
