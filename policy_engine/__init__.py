"""
Policy Engine.

Evaluates JSON expression trees against records and identities, and uses
them as deny-by-default row, field and write policies.

Example:
    >>> from policy_engine import EvaluationContext, Evaluator, field, lit, op
    >>> expr = op("concat", field("firstName"), lit(" "), field("lastName"))
    >>> ctx = EvaluationContext(record={"firstName": "John", "lastName": "Doe"})
    >>> Evaluator().evaluate(expr, ctx).value
    'John Doe'
"""

from policy_engine.core.errors import (
    AuthorizationError,
    ConfigurationError,
    EvalError,
    PolicyEngineError,
    RegistrationError,
    ValidationError,
)
from policy_engine.domain.enums import OperationCategory, PolicyAction, PolicyScope
from policy_engine.expressions import (
    EvaluationContext,
    EvaluationOptions,
    EvaluationResult,
    Evaluator,
    Identity,
    cond,
    evaluate,
    field,
    lit,
    op,
    parse_expression,
    perm,
    validate_expression,
)
from policy_engine.operations import OperationRegistry, OperationSpec, spec
from policy_engine.policies import Page, Policy, PolicyEngine, PolicySet, load_policies

__version__ = "0.1.0"

__all__ = [
    "AuthorizationError",
    "ConfigurationError",
    "EvalError",
    "EvaluationContext",
    "EvaluationOptions",
    "EvaluationResult",
    "Evaluator",
    "Identity",
    "OperationCategory",
    "OperationRegistry",
    "OperationSpec",
    "Page",
    "Policy",
    "PolicyAction",
    "PolicyEngine",
    "PolicyEngineError",
    "PolicyScope",
    "PolicySet",
    "RegistrationError",
    "ValidationError",
    "cond",
    "evaluate",
    "field",
    "lit",
    "load_policies",
    "op",
    "parse_expression",
    "perm",
    "spec",
    "validate_expression",
]
