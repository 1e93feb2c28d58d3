"""
Expression tree models.

An expression is a closed tagged union of five node types, discriminated by
the ``type`` key of its JSON form:

    {"type": "literal", "value": 42}
    {"type": "field", "path": "author.name"}
    {"type": "operation", "op": "add", "args": [...]}
    {"type": "condition", "op": "eq", "left": {...}, "right": {...}}
    {"type": "permission", "check": "hasRole", "args": [...]}

Nodes are frozen pydantic models and argument lists are tuples, so a tree
cannot change after construction and may be shared between threads.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from policy_engine.core.errors import ValidationError


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class LiteralExpression(_Node):
    """A constant JSON value (scalar, array or object)."""

    type: Literal["literal"] = "literal"
    value: Any = None


class FieldAccessExpression(_Node):
    """A dot-delimited path into the record, related records or ``$user``."""

    type: Literal["field"] = "field"
    path: str = Field(min_length=1)


class OperationExpression(_Node):
    """Invocation of a registered operation with evaluated arguments."""

    type: Literal["operation"] = "operation"
    op: str = Field(min_length=1)
    args: tuple["Expression", ...] = ()


class ConditionExpression(_Node):
    """A binary comparison producing a boolean."""

    type: Literal["condition"] = "condition"
    op: str = Field(min_length=1)
    left: "Expression"
    right: "Expression"


class PermissionExpression(_Node):
    """
    Invocation of an identity check (role, ownership, authentication).

    Only operations registered in the permission category can be named here.
    Bare scalar arguments are accepted and treated as literals, which is the
    shape policy authors usually write: ``{"check": "hasRole", "args": ["admin"]}``.
    """

    type: Literal["permission"] = "permission"
    check: str = Field(min_length=1)
    args: tuple["Expression", ...] = ()

    @field_validator("args", mode="before")
    @classmethod
    def wrap_scalar_args(cls, v: Any) -> Any:
        if not isinstance(v, (list, tuple)):
            return v
        return [
            {"type": "literal", "value": arg}
            if arg is None or isinstance(arg, (str, int, float, bool))
            else arg
            for arg in v
        ]


Expression = Annotated[
    Union[
        LiteralExpression,
        FieldAccessExpression,
        OperationExpression,
        ConditionExpression,
        PermissionExpression,
    ],
    Field(discriminator="type"),
]

for _model in (OperationExpression, ConditionExpression, PermissionExpression):
    _model.model_rebuild()

EXPRESSION_TYPES = (
    LiteralExpression,
    FieldAccessExpression,
    OperationExpression,
    ConditionExpression,
    PermissionExpression,
)

_expression_adapter: TypeAdapter = TypeAdapter(Expression)


def is_expression(value: Any) -> bool:
    """Check whether ``value`` is an expression node."""
    return isinstance(value, EXPRESSION_TYPES)


def parse_expression(data: Any) -> Expression:
    """
    Build an expression tree from decoded JSON data.

    Args:
        data: A dict in the tagged JSON form, or an already built node

    Returns:
        The immutable expression tree

    Raises:
        ValidationError: If the data is not a well-formed expression

    Example:
        >>> parse_expression({"type": "field", "path": "status"})
        FieldAccessExpression(type='field', path='status')
    """
    if is_expression(data):
        return data
    try:
        return _expression_adapter.validate_python(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid expression",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def expression_to_dict(expr: Expression) -> dict[str, Any]:
    """Serialise an expression tree back to its tagged JSON form."""
    return expr.model_dump(mode="json")
