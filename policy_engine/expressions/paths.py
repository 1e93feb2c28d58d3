"""
Field path resolution.

A path is a dot-delimited list of segments. The first segment selects the
root:

- a key of ``record``;
- otherwise a key of ``related`` (pre-loaded relations);
- ``$user`` addresses the acting identity (``$user.id``, ``$user.roles``,
  ``$user.attributes.department``). Record data can never shadow it.

Later segments walk mappings by key and sequences by integer index. A ``*``
segment projects the rest of the path over every element of a sequence:
``lineItems.*.price`` yields the list of prices.

Only mappings and sequences are traversed; attributes of arbitrary objects
are never read.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from policy_engine.core.errors import UnknownField
from policy_engine.expressions.context import EvaluationContext

USER_ROOT = "$user"
WILDCARD = "*"


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "<missing>"


MISSING = _Missing()


def split_path(path: str) -> list[str]:
    return path.split(".")


def is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def lookup(context: EvaluationContext, path: str) -> Any:
    """
    Resolve ``path`` and return the value, or ``MISSING`` when any segment
    cannot be resolved.
    """
    segments = split_path(path)
    if any(not segment for segment in segments):
        return MISSING

    head, rest = segments[0], segments[1:]
    if head == USER_ROOT:
        if context.user is None:
            return MISSING
        root: Any = context.user.as_mapping()
    elif head in context.record:
        root = context.record[head]
    elif head in context.related:
        root = context.related[head]
    else:
        return MISSING

    return _walk(root, rest)


def lookup_in(value: Any, path: str) -> Any:
    """Resolve a relative ``path`` inside ``value``; ``MISSING`` when unresolvable."""
    segments = split_path(path)
    if any(not segment for segment in segments):
        return MISSING
    return _walk(value, segments)


def _walk(value: Any, segments: list[str]) -> Any:
    for i, segment in enumerate(segments):
        if segment == WILDCARD:
            if not is_sequence(value):
                return MISSING
            rest = segments[i + 1 :]
            if not rest:
                return list(value)
            projected = []
            for item in value:
                resolved = _walk(item, rest)
                if resolved is MISSING:
                    return MISSING
                projected.append(resolved)
            return projected

        if isinstance(value, Mapping):
            if segment not in value:
                return MISSING
            value = value[segment]
        elif is_sequence(value) and segment.isdigit():
            index = int(segment)
            if index >= len(value):
                return MISSING
            value = value[index]
        else:
            return MISSING
    return value


def resolve_field(
    context: EvaluationContext, path: str, *, strict: bool, node_path: str = "$"
) -> Any:
    """
    Resolve a field path for the evaluator.

    Args:
        context: The evaluation context
        path: Dot-delimited field path
        strict: Raise instead of returning None for unresolvable paths
        node_path: JSONPath of the expression node (for error reporting)

    Returns:
        The resolved value; None when unresolvable in lenient mode

    Raises:
        UnknownField: If the path cannot be resolved and ``strict`` is set
    """
    value = lookup(context, path)
    if value is MISSING:
        if strict:
            raise UnknownField(path, path=node_path)
        return None
    return value
