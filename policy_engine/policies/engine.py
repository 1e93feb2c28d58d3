"""
Policy engine: row, field and write authorization.

Every decision is deny-by-default and fail-closed:
- no policy for ``(model, action)`` denies, whoever the user is;
- every rule is evaluated with strict field access, so a typo in a field
  path denies instead of reading as null;
- an evaluation error of any kind denies;
- only a result that is exactly ``True`` allows. Truthy values such as
  ``1`` or ``"yes"`` do not.

Denials are indistinguishable to callers: hidden fields are absent keys,
hidden rows are absent from listings and totals, and rejected mutations
raise a generic AuthorizationError. Details go to the log only, and the log
carries error codes and node paths, never record values.

The engine is read-only after construction. To reload a schema, build a
new engine and swap the reference.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from policy_engine.core.errors import AuthorizationError, ValidationError
from policy_engine.domain.enums import MUTATING_ACTIONS, PolicyAction
from policy_engine.expressions.context import EvaluationContext, Identity
from policy_engine.expressions.evaluator import STRICT, Evaluator
from policy_engine.expressions.validator import validate_expression
from policy_engine.policies.models import Policy, PolicySet, load_policies
from policy_engine.policies.pagination import Page, paginate_rows
from policy_engine.policies.row_filter import RowFilterCompiler, match_none

logger = logging.getLogger(__name__)

INCOMING = "incoming"

Row = Mapping[str, Any]
User = Identity | Mapping[str, Any] | None


def _identity(user: User) -> Identity | None:
    if user is None or isinstance(user, Identity):
        return user
    return Identity.from_claims(user)


class PolicyEngine:
    """
    Evaluates policies against records and identities.

    Args:
        policies: A PolicySet, Policy objects, or decoded policy JSON
        evaluator: Evaluator to run rules with (defaults to built-ins only)

    Raises:
        ValidationError: If a policy rule references unknown operations,
            has the wrong arity, or is too deep
        ConfigurationError: If two policies share a key
    """

    def __init__(
        self,
        policies: PolicySet | Iterable[Policy | Mapping[str, Any]],
        evaluator: Evaluator | None = None,
    ):
        self.policies = policies if isinstance(policies, PolicySet) else load_policies(policies)
        self.evaluator = evaluator or Evaluator()
        self._validate_rules()

    def _validate_rules(self) -> None:
        for policy in self.policies:
            try:
                validate_expression(policy.rule, self.evaluator.registry, self.evaluator.max_depth)
            except ValidationError as exc:
                raise ValidationError(
                    f"Invalid rule in {policy.scope.value} policy for "
                    f"{policy.model}.{policy.action.value}: {exc.message}",
                    details={
                        "model": policy.model,
                        "action": policy.action.value,
                        "scope": policy.scope.value,
                        "field": policy.field,
                        **exc.details,
                    },
                ) from exc

    @property
    def fingerprint(self) -> str:
        return self.policies.fingerprint()

    # ------------------------------------------------------------------
    # Rule evaluation
    # ------------------------------------------------------------------

    def _allows(self, policy: Policy, context: EvaluationContext) -> bool:
        try:
            result = self.evaluator.evaluate(policy.rule, context, STRICT)
        except Exception:
            logger.exception(
                "Policy evaluation crashed for %s.%s (%s)",
                policy.model,
                policy.action.value,
                policy.field or policy.scope.value,
            )
            return False

        if not result.ok:
            logger.warning(
                "Policy evaluation failed for %s.%s (%s): %s at %s",
                policy.model,
                policy.action.value,
                policy.field or policy.scope.value,
                result.error.code,
                result.error.path,
            )
            return False
        return result.value is True

    @staticmethod
    def _context(
        record: Row | None, user: User, related: Mapping[str, Any] | None
    ) -> EvaluationContext:
        return EvaluationContext(record=record or {}, user=_identity(user), related=related or {})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def can_read_row(
        self, model: str, record: Row, user: User, related: Mapping[str, Any] | None = None
    ) -> bool:
        """True only if the model's row read policy evaluates to True."""
        policy = self.policies.row_policy(model, PolicyAction.READ)
        if policy is None:
            return False
        return self._allows(policy, self._context(record, user, related))

    def filter_fields(
        self, model: str, record: Row, user: User, related: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """
        Return a copy of ``record`` without the fields the user may not read.

        Denied fields are omitted, never set to None. A model with no read
        policies at all yields an empty dict. A model with a row policy but
        no field policies exposes every field. Once a model has field
        policies, a field without its own policy falls back to the ``"*"``
        policy, and without one it is hidden.
        """
        row_policy = self.policies.row_policy(model, PolicyAction.READ)
        field_policies = self.policies.field_policies(model, PolicyAction.READ)

        if row_policy is None and not field_policies:
            return {}
        if not field_policies:
            return dict(record)

        context = self._context(record, user, related)
        visible = {}
        for name, value in record.items():
            policy = self.policies.field_policy(model, PolicyAction.READ, name)
            if policy is not None and self._allows(policy, context):
                visible[name] = value
        return visible

    def readable_fields(
        self, model: str, record: Row, user: User, related: Mapping[str, Any] | None = None
    ) -> frozenset[str]:
        """Names of the fields of ``record`` the user may read."""
        return frozenset(self.filter_fields(model, record, user, related))

    def row_filter(
        self, model: str, user: User, related: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """
        Compile the model's row read policy into a where-mapping for the data layer.

        The filter may admit rows the policy denies but never drops one it
        allows, so fetched rows still go through ``filter_rows``. A model
        without a row read policy gets a filter that matches nothing.
        """
        policy = self.policies.row_policy(model, PolicyAction.READ)
        if policy is None:
            return match_none()
        compiler = RowFilterCompiler(self.evaluator, self._context(None, user, related))
        return compiler.compile(policy.rule)

    def filter_rows(
        self,
        model: str,
        rows: Iterable[Row],
        user: User,
        related: Mapping[str, Any] | None = None,
    ) -> list[Row]:
        """Readable rows only, in their original order."""
        return [row for row in rows if self.can_read_row(model, row, user, related)]

    def paginate(
        self,
        model: str,
        rows: Sequence[Row],
        user: User,
        limit: int,
        cursor: str | None = None,
        key: str = "id",
        redact: bool = True,
        related: Mapping[str, Any] | None = None,
    ) -> Page[dict[str, Any]]:
        """
        Page through the rows the user may read.

        Rows are filtered before paging, so totals, ``has_next`` and cursors
        are computed as if denied rows did not exist.

        Args:
            model: Model name
            rows: Candidate rows in listing order
            user: Acting identity
            limit: Page size
            cursor: Cursor from a previous page
            key: Row key the cursor refers to
            redact: Apply field policies to the returned items

        Raises:
            ValueError: If limit or cursor is invalid
        """
        visible = self.filter_rows(model, rows, user, related)
        page_rows, has_next, next_cursor = paginate_rows(visible, limit, cursor, key)
        if redact:
            items = [self.filter_fields(model, row, user, related) for row in page_rows]
        else:
            items = [dict(row) for row in page_rows]

        return Page[dict[str, Any]](
            items=items,
            total=len(visible),
            next_cursor=next_cursor,
            has_next=has_next,
            limit=limit,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def can_write(
        self,
        model: str,
        action: PolicyAction | str,
        existing: Row | None,
        incoming: Row | None,
        user: User,
        related: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Decide a create, write (update) or delete.

        The rule sees the current record as ``record`` (the incoming data for
        a create) and the proposed data as ``incoming``. For create and write,
        every incoming field must also pass the field policies when the model
        has any for that action.

        Raises:
            ValueError: If ``action`` is read or not an action at all
        """
        action = PolicyAction(action)
        if action == PolicyAction.READ:
            raise ValueError("can_write does not decide read access")

        policy = self.policies.row_policy(model, action)
        if policy is None:
            return False

        incoming = dict(incoming or {})
        if existing is not None:
            record = existing
        else:
            record = incoming if action == PolicyAction.CREATE else {}
        context = self._context(record, user, {**(related or {}), INCOMING: incoming})

        if not self._allows(policy, context):
            return False

        if action in MUTATING_ACTIONS and self.policies.field_policies(model, action):
            for name in incoming:
                field_policy = self.policies.field_policy(model, action, name)
                if field_policy is None or not self._allows(field_policy, context):
                    return False
        return True

    def authorize_write(
        self,
        model: str,
        action: PolicyAction | str,
        existing: Row | None,
        incoming: Row | None,
        user: User,
        related: Mapping[str, Any] | None = None,
    ) -> None:
        """
        Raise AuthorizationError unless the mutation is allowed.

        Raises:
            AuthorizationError: Always with the same generic message
        """
        if not self.can_write(model, action, existing, incoming, user, related):
            logger.info("Denied %s on %s", PolicyAction(action).value, model)
            raise AuthorizationError()

    def __repr__(self) -> str:
        return f"PolicyEngine({self.policies!r})"

