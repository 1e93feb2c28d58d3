"""
Expression trees and their evaluation.

Key Components:
- models: The five node types and the JSON parser
- builders: Short constructors for building trees in code
- evaluator: Recursive interpreter returning EvaluationResult
- validator: Static checks run before a tree is installed
- canonicalizer: Deterministic JSON and fingerprints

Design Principles:
- Trees are immutable and safe to share between threads
- Evaluation errors are values, never uncaught exceptions
- Time is read from an injected clock only
"""

from policy_engine.expressions.builders import cond, field, lit, op, perm
from policy_engine.expressions.context import EvaluationContext, Identity
from policy_engine.expressions.evaluator import (
    EvaluationOptions,
    EvaluationResult,
    Evaluator,
    evaluate,
)
from policy_engine.expressions.models import Expression, expression_to_dict, parse_expression
from policy_engine.expressions.validator import validate_expression

__all__ = [
    "EvaluationContext",
    "EvaluationOptions",
    "EvaluationResult",
    "Evaluator",
    "Expression",
    "Identity",
    "cond",
    "evaluate",
    "expression_to_dict",
    "field",
    "lit",
    "op",
    "parse_expression",
    "perm",
    "validate_expression",
]
