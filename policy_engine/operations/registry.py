"""
Operation registry.

The registry is built once, from the closed built-in catalog plus any
host-defined operations, and is read-only afterwards. Built-ins are
dispatched through the ``BuiltinOperation`` enum; host operations live in a
separate extension map that is validated at construction time, so a name
collision fails at startup rather than during an evaluation.

To add operations later, build a new registry with ``with_operations`` and a
new evaluator on top of it; in-flight evaluations keep using the old one.
"""

import logging
from collections.abc import Callable, Iterator, Mapping
from functools import lru_cache
from types import MappingProxyType

from policy_engine.core.errors import RegistrationError
from policy_engine.domain.enums import BuiltinOperation, OperationCategory
from policy_engine.operations import (
    array_ops,
    comparison_ops,
    date_ops,
    logical_ops,
    math_ops,
    permission_ops,
    string_ops,
)
from policy_engine.operations.base import ARG_TYPES, OperationSpec

logger = logging.getLogger(__name__)

_BUILTIN_MODULES = (
    math_ops,
    string_ops,
    date_ops,
    logical_ops,
    comparison_ops,
    array_ops,
    permission_ops,
)

CustomOperation = OperationSpec | Callable


def _load_builtins() -> dict[BuiltinOperation, OperationSpec]:
    builtins: dict[BuiltinOperation, OperationSpec] = {}
    for module in _BUILTIN_MODULES:
        for operation in module.OPERATIONS:
            builtins[BuiltinOperation(operation.name)] = operation

    missing = set(BuiltinOperation) - set(builtins)
    if missing:
        raise RuntimeError(f"Built-in operations without implementation: {sorted(missing)}")
    return builtins


_BUILTINS: Mapping[BuiltinOperation, OperationSpec] = MappingProxyType(_load_builtins())

RESERVED_NAMES = frozenset(member.value for member in BuiltinOperation)


def _coerce_custom(name: str, operation: CustomOperation) -> OperationSpec:
    if not isinstance(name, str) or not name or not name.isidentifier():
        raise RegistrationError(
            f"Invalid custom operation name: {name!r}", details={"name": name}
        )
    if name in RESERVED_NAMES:
        raise RegistrationError(
            f"Operation name '{name}' is reserved by a built-in operation",
            details={"name": name},
        )

    if isinstance(operation, OperationSpec):
        if operation.name != name:
            raise RegistrationError(
                f"Custom operation registered as '{name}' declares name '{operation.name}'",
                details={"name": name, "declared_name": operation.name},
            )
        spec = operation
    elif callable(operation):
        spec = OperationSpec(name=name, impl=operation)
    else:
        raise RegistrationError(
            f"Custom operation '{name}' must be callable or an OperationSpec",
            details={"name": name, "type": type(operation).__name__},
        )

    if spec.min_args < 0 or (spec.max_args is not None and spec.max_args < spec.min_args):
        raise RegistrationError(
            f"Invalid arity for custom operation '{name}'",
            details={"name": name, "min_args": spec.min_args, "max_args": spec.max_args},
        )
    unknown_types = set(spec.arg_types) - ARG_TYPES
    if unknown_types:
        raise RegistrationError(
            f"Unknown argument types for custom operation '{name}': {sorted(unknown_types)}",
            details={"name": name, "arg_types": list(spec.arg_types)},
        )
    if spec.lazy:
        raise RegistrationError(
            f"Custom operation '{name}' cannot be lazy",
            details={"name": name},
        )
    return spec


class OperationRegistry:
    """
    Immutable catalog of built-in and host-defined operations.

    Args:
        custom_operations: Mapping of name -> OperationSpec or callable
            ``impl(args, call)``. Bare callables are registered as pure,
            variadic, custom-category operations.

    Raises:
        RegistrationError: If a name is reserved or a spec is malformed
    """

    def __init__(self, custom_operations: Mapping[str, CustomOperation] | None = None):
        custom = {
            name: _coerce_custom(name, operation)
            for name, operation in (custom_operations or {}).items()
        }
        self._custom: Mapping[str, OperationSpec] = MappingProxyType(custom)
        if custom:
            logger.info("Registered %d custom operation(s): %s", len(custom), sorted(custom))

    def get(self, name: str) -> OperationSpec | None:
        """Look up an operation by name; None if it is not registered."""
        builtin = BuiltinOperation.lookup(name)
        if builtin is not None:
            return _BUILTINS[builtin]
        return self._custom.get(name)

    def is_permission(self, name: str) -> bool:
        """True if ``name`` may be used in a PermissionCheck node."""
        operation = self.get(name)
        return operation is not None and operation.category == OperationCategory.PERMISSION

    @property
    def custom_operations(self) -> Mapping[str, OperationSpec]:
        return self._custom

    def names(self) -> list[str]:
        return sorted([*RESERVED_NAMES, *self._custom])

    def by_category(self, category: OperationCategory) -> list[OperationSpec]:
        return [operation for operation in self if operation.category == category]

    def with_operations(
        self, custom_operations: Mapping[str, CustomOperation]
    ) -> "OperationRegistry":
        """Return a new registry with additional host operations."""
        duplicates = set(custom_operations) & set(self._custom)
        if duplicates:
            raise RegistrationError(
                f"Custom operations already registered: {sorted(duplicates)}",
                details={"names": sorted(duplicates)},
            )
        return OperationRegistry({**self._custom, **custom_operations})

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __iter__(self) -> Iterator[OperationSpec]:
        yield from _BUILTINS.values()
        yield from self._custom.values()

    def __len__(self) -> int:
        return len(_BUILTINS) + len(self._custom)

    def __repr__(self) -> str:
        return f"OperationRegistry(builtins={len(_BUILTINS)}, custom={sorted(self._custom)})"


@lru_cache(maxsize=1)
def default_registry() -> OperationRegistry:
    """Shared registry with the built-in operations only."""
    return OperationRegistry()
