"""
Permission operations.

These are the only operations a PermissionCheck node may name (together
with host operations registered in the permission category). With no
identity in the context every check returns False without looking at its
arguments: no identity means no privilege, never an error. An
identity without an id counts as no identity. The one exception is
``isAnonymous``, which is True exactly when there is no identity.
"""

from typing import Any

from policy_engine.domain.enums import OperationCategory
from policy_engine.expressions.context import Identity
from policy_engine.expressions.paths import MISSING, is_sequence, lookup_in
from policy_engine.operations.base import CallContext, deep_equal, require_string, spec

PERMISSION = OperationCategory.PERMISSION


def _names(args: list[Any], call: CallContext) -> list[str]:
    """Accept hasRole("a", "b") as well as hasRole(["a", "b"])."""
    if len(args) == 1 and is_sequence(args[0]):
        values = list(args[0])
    else:
        values = args
    # Report list elements against argument 0, variadic names by position
    return [
        require_string(call, i if len(args) > 1 else 0, value) for i, value in enumerate(values)
    ]


def _permissions(user: Identity) -> set[str]:
    granted = set(user.permissions)
    extra = user.attributes.get("permissions")
    if is_sequence(extra):
        granted.update(p for p in extra if isinstance(p, str))
    return granted


@spec("hasRole", PERMISSION, 1, None)
def has_role(args: list[Any], call: CallContext) -> bool:
    """hasRole("hr", "admin") -> identity holds at least one of the roles"""
    user = call.context.user
    if user is None:
        return False
    return any(role in user.roles for role in _names(args, call))


@spec("hasAnyRole", PERMISSION, 1, None)
def has_any_role(args: list[Any], call: CallContext) -> bool:
    """hasAnyRole(["editor", "admin"])"""
    user = call.context.user
    if user is None:
        return False
    return any(role in user.roles for role in _names(args, call))


@spec("hasAllRoles", PERMISSION, 1, None)
def has_all_roles(args: list[Any], call: CallContext) -> bool:
    """hasAllRoles(["editor", "reviewer"]); an empty list grants nothing"""
    user = call.context.user
    if user is None:
        return False
    roles = _names(args, call)
    return bool(roles) and all(role in user.roles for role in roles)


@spec("hasPermission", PERMISSION, 1, None)
def has_permission(args: list[Any], call: CallContext) -> bool:
    """hasPermission("posts.edit") -> identity holds at least one of the permissions"""
    user = call.context.user
    if user is None:
        return False
    granted = _permissions(user)
    return any(permission in granted for permission in _names(args, call))


@spec("isOwner", PERMISSION, 1, 1, ("string",))
def is_owner(args: list[Any], call: CallContext) -> bool:
    """isOwner("authorId") -> record.authorId equals the identity id"""
    user = call.context.user
    if user is None:
        return False
    field_path = require_string(call, 0, args[0])
    owner = lookup_in(call.context.record, field_path)
    if owner is MISSING or owner is None or user.id is None:
        return False
    return deep_equal(owner, user.id)


@spec("isAuthenticated", PERMISSION, 0, 0)
def is_authenticated(args: list[Any], call: CallContext) -> bool:
    return call.context.user is not None


@spec("isAnonymous", PERMISSION, 0, 0)
def is_anonymous(args: list[Any], call: CallContext) -> bool:
    return call.context.user is None


OPERATIONS = [
    has_role,
    has_any_role,
    has_all_roles,
    has_permission,
    is_owner,
    is_authenticated,
    is_anonymous,
]
