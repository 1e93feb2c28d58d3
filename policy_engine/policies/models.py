"""
Policy declarations.

A policy binds an expression to ``(model, action, scope[, field])``. Row
policies decide whether a record is visible or mutable at all; field
policies decide whether one attribute of an already visible record is. A
field policy for ``"*"`` applies to every field of the model that has no
policy of its own.

A PolicySet is built once per schema load and is read-only afterwards.
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from policy_engine.core.errors import ConfigurationError, ValidationError
from policy_engine.domain.enums import PolicyAction, PolicyScope
from policy_engine.expressions.canonicalizer import fingerprint
from policy_engine.expressions.models import Expression

logger = logging.getLogger(__name__)

WILDCARD_FIELD = "*"

PolicyKey = tuple[str, PolicyAction, PolicyScope, str | None]


class Policy(BaseModel):
    """
    One access rule.

    Attributes:
        model: Name of the protected model (e.g. "Post")
        action: read, write (update), create or delete
        scope: row or field
        field: Field name for field-scope policies, ``"*"`` for the fallback
        rule: Expression that must evaluate to exactly True to allow
        description: Free text for audit listings
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    model: str = Field(min_length=1)
    action: PolicyAction
    scope: PolicyScope = PolicyScope.ROW
    field: str | None = None
    rule: Expression
    description: str | None = None

    @field_validator("model", "field")
    @classmethod
    def strip_names(cls, v: str | None) -> str | None:
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_field_scope(self) -> "Policy":
        if self.scope == PolicyScope.FIELD and not self.field:
            raise ValueError("field is required for field-scope policies")
        if self.scope == PolicyScope.ROW and self.field is not None:
            raise ValueError("field must not be set for row-scope policies")
        return self

    @property
    def key(self) -> PolicyKey:
        return (self.model, self.action, self.scope, self.field)


class PolicySet:
    """
    Immutable index of policies keyed by ``(model, action, scope, field)``.

    Raises:
        ConfigurationError: If two policies share a key
    """

    def __init__(self, policies: Iterable[Policy] = ()):
        index: dict[PolicyKey, Policy] = {}
        for policy in policies:
            if policy.key in index:
                model, action, scope, field_name = policy.key
                raise ConfigurationError(
                    f"Duplicate {scope.value} policy for {model}.{action.value}"
                    + (f" on field '{field_name}'" if field_name else ""),
                    details={
                        "model": model,
                        "action": action.value,
                        "scope": scope.value,
                        "field": field_name,
                    },
                )
            index[policy.key] = policy

        self._index: Mapping[PolicyKey, Policy] = MappingProxyType(index)
        fields: dict[tuple[str, PolicyAction], dict[str, Policy]] = {}
        for policy in index.values():
            if policy.scope == PolicyScope.FIELD:
                fields.setdefault((policy.model, policy.action), {})[policy.field] = policy
        self._fields = MappingProxyType(
            {key: MappingProxyType(value) for key, value in fields.items()}
        )

    def row_policy(self, model: str, action: PolicyAction) -> Policy | None:
        return self._index.get((model, action, PolicyScope.ROW, None))

    def field_policies(self, model: str, action: PolicyAction) -> Mapping[str, Policy]:
        """Field name -> policy; empty when the model has no field policies."""
        return self._fields.get((model, action), MappingProxyType({}))

    def field_policy(self, model: str, action: PolicyAction, field_name: str) -> Policy | None:
        """The field's own policy, else the ``"*"`` fallback, else None."""
        policies = self.field_policies(model, action)
        return policies.get(field_name) or policies.get(WILDCARD_FIELD)

    def has_model(self, model: str) -> bool:
        return any(key[0] == model for key in self._index)

    def models(self) -> list[str]:
        return sorted({key[0] for key in self._index})

    def fingerprint(self) -> str:
        """SHA-256 of the canonical JSON of every policy, independent of order."""
        dumped = sorted(
            (policy.model_dump(mode="json") for policy in self._index.values()),
            key=lambda p: (p["model"], p["action"], p["scope"], p["field"] or ""),
        )
        return fingerprint(dumped)

    def __iter__(self) -> Iterator[Policy]:
        return iter(self._index.values())

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"PolicySet(policies={len(self._index)}, models={self.models()})"


def load_policies(data: Iterable[Mapping[str, Any]] | Mapping[str, Any]) -> PolicySet:
    """
    Build a PolicySet from decoded JSON.

    Accepts a list of policy objects, or a mapping with a ``policies`` list.

    Raises:
        ValidationError: If a policy is malformed (JSONPath in details)
        ConfigurationError: If two policies share a key
    """
    if isinstance(data, Mapping):
        if "policies" not in data:
            raise ValidationError("Policy document must contain 'policies'", details={"path": "$"})
        entries = data["policies"]
        base_path = "$.policies"
    else:
        entries = data
        base_path = "$"

    if isinstance(entries, (str, bytes)) or not isinstance(entries, Iterable):
        raise ValidationError(
            "Policies must be a list", details={"path": base_path, "type": type(entries).__name__}
        )

    policies = []
    for i, entry in enumerate(entries):
        try:
            policies.append(Policy.model_validate(entry))
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid policy at {base_path}[{i}]",
                details={
                    "path": f"{base_path}[{i}]",
                    "errors": exc.errors(include_url=False, include_context=False),
                },
            ) from exc

    policy_set = PolicySet(policies)
    logger.info("Loaded %d policies for %d model(s)", len(policy_set), len(policy_set.models()))
    return policy_set
