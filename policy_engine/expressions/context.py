"""
Evaluation context: the record, identity and pre-loaded related records an
expression is evaluated against.

Contexts are built fresh by the caller for every evaluation and are read-only
to the engine. Related records must be loaded up front; the evaluator never
fetches anything.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

_EMPTY: Mapping[str, Any] = MappingProxyType({})


def _readonly(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if not mapping:
        return _EMPTY
    if isinstance(mapping, MappingProxyType):
        return mapping
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class Identity:
    """
    The acting identity.

    Attributes:
        id: Stable user identifier (compared against owner fields)
        roles: Role names granted to the identity
        permissions: Fine-grained permission strings (e.g. "posts.edit")
        attributes: Free-form claims, reachable as ``$user.attributes.<name>``
    """

    id: Any
    roles: frozenset[str] = frozenset()
    permissions: frozenset[str] = frozenset()
    attributes: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)

    def __post_init__(self) -> None:
        object.__setattr__(self, "roles", _as_frozenset(self.roles))
        object.__setattr__(self, "permissions", _as_frozenset(self.permissions))
        object.__setattr__(self, "attributes", _readonly(self.attributes))

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Identity":
        """
        Build an identity from a decoded token payload or session dict.

        Recognised keys: ``id`` (or ``sub``), ``roles``, ``permissions``.
        Every other key becomes an attribute.
        """
        known = {"id", "sub", "roles", "permissions"}
        user_id = claims.get("id", claims.get("sub"))
        return cls(
            id=user_id,
            roles=claims.get("roles") or (),
            permissions=claims.get("permissions") or (),
            attributes={k: v for k, v in claims.items() if k not in known},
        )

    @property
    def is_anonymous(self) -> bool:
        """An identity without a usable id stands for nobody."""
        return self.id is None or self.id == ""

    def as_mapping(self) -> Mapping[str, Any]:
        """View used by ``$user.*`` field paths."""
        return MappingProxyType(
            {
                "id": self.id,
                "roles": sorted(self.roles, key=str),
                "permissions": sorted(self.permissions, key=str),
                "attributes": self.attributes,
            }
        )


def _as_frozenset(values: Iterable[str] | str | None) -> frozenset[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        return frozenset({values})
    return frozenset(values)


@dataclass(frozen=True)
class EvaluationContext:
    """
    Everything an expression may read.

    Attributes:
        record: The current record (field name -> value)
        user: The acting identity, or None for anonymous callers. An
            identity without an id is stored as None.
        related: Pre-loaded related records keyed by relation name
    """

    record: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    user: Identity | None = None
    related: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)

    def __post_init__(self) -> None:
        object.__setattr__(self, "record", _readonly(self.record))
        if self.user is not None and self.user.is_anonymous:
            object.__setattr__(self, "user", None)
        object.__setattr__(self, "related", _readonly(self.related))

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None
