"""
Operation catalog for the expression evaluator.

Each category module exports ``OPERATIONS``, a list of OperationSpec
objects. The registry collects them into the closed built-in set and adds
host-defined operations on top.
"""

from policy_engine.operations.base import CallContext, OperationSpec, spec
from policy_engine.operations.registry import OperationRegistry, default_registry

__all__ = [
    "CallContext",
    "OperationSpec",
    "OperationRegistry",
    "default_registry",
    "spec",
]
