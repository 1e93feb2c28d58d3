"""
Canonical JSON for expression trees and policy sets.

Two trees that mean the same thing serialise to the same bytes, which makes
their SHA-256 a stable identity. Hosts compare fingerprints to notice that a
schema reload actually changed something and to key caches of validated
policy sets.
"""

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from policy_engine.expressions.models import Expression, expression_to_dict, is_expression


def canonicalize_json(obj: Any) -> dict | list | Any:
    """
    Produce a deterministic representation of a JSON-like value.

    Mapping keys are sorted at every level; tuples become lists; expression
    nodes are replaced by their tagged JSON form. Array order is preserved.

    Example:
        >>> canonicalize_json({"z": 1, "a": {"c": 2, "b": 3}})
        {'a': {'b': 3, 'c': 2}, 'z': 1}
    """
    if is_expression(obj):
        obj = expression_to_dict(obj)

    if isinstance(obj, Mapping):
        items = sorted(obj.items(), key=lambda kv: str(kv[0]))
        return {str(k): canonicalize_json(v) for k, v in items}

    if isinstance(obj, (list, tuple)):
        return [canonicalize_json(item) for item in obj]

    return obj


def to_canonical_json_string(obj: Any) -> str:
    """
    Serialise to a compact canonical JSON string.

    Example:
        >>> to_canonical_json_string({"type": "literal", "value": 1})
        '{"type":"literal","value":1}'
    """
    return json.dumps(
        canonicalize_json(obj), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def fingerprint(obj: Any) -> str:
    """Hex SHA-256 of the canonical JSON string."""
    return hashlib.sha256(to_canonical_json_string(obj).encode("utf-8")).hexdigest()


def expression_fingerprint(expr: Expression) -> str:
    """Stable identity of an expression tree."""
    return fingerprint(expression_to_dict(expr))
