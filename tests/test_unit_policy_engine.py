"""
Unit tests for the policy engine.

Tests cover:
- Row read decisions, deny-by-default and fail-closed evaluation
- Field filtering (absent keys, wildcard fallback)
- Write, create and delete authorization
- Policy loading, duplicate detection and fingerprints
- Pagination that never reveals denied rows
"""

import logging
import uuid
from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from policy_engine.core.errors import AuthorizationError, ConfigurationError, ValidationError
from policy_engine.domain.enums import PolicyAction, PolicyScope
from policy_engine.expressions.builders import cond, field, lit, op, perm
from policy_engine.expressions.context import Identity
from policy_engine.expressions.paths import lookup_in
from policy_engine.policies.engine import PolicyEngine
from policy_engine.policies.models import Policy, PolicySet, load_policies
from policy_engine.policies.pagination import decode_cursor, encode_cursor


class TestRowAccess:
    """Tests for can_read_row and filter_rows."""

    def test_owner_can_read_draft(self, engine, author):
        assert engine.can_read_row("Post", {"status": "draft", "authorId": 5}, author) is True

    def test_non_owner_cannot_read_draft(self, engine, author):
        assert engine.can_read_row("Post", {"status": "draft", "authorId": 9}, author) is False

    def test_published_is_readable_by_anyone(self, engine):
        assert engine.can_read_row("Post", {"status": "published", "authorId": 9}, None) is True

    def test_no_policy_denies_even_admin(self, engine, admin):
        assert engine.can_read_row("Invoice", {"id": 1}, admin) is False

    def test_missing_field_denies_in_policies(self, engine, author, caplog):
        """A rule that reads an absent field is an error, and errors deny."""
        with caplog.at_level(logging.WARNING, logger="policy_engine"):
            assert engine.can_read_row("Post", {"authorId": 5}, author) is False
        assert "unknown_field" in caplog.text

    def test_error_logs_do_not_contain_record_values(self, evaluator, author, caplog):
        engine = PolicyEngine(
            [Policy(model="Doc", action="read", rule=cond("gt", field("secret"), 1))],
            evaluator=evaluator,
        )
        with caplog.at_level(logging.WARNING, logger="policy_engine"):
            assert engine.can_read_row("Doc", {"secret": "s3cr3t-value"}, author) is False
        assert "type_mismatch" in caplog.text
        assert "s3cr3t-value" not in caplog.text

    def test_only_exact_true_allows(self, evaluator, author):
        engine = PolicyEngine(
            [
                Policy(model="A", action="read", rule=lit(1)),
                Policy(model="B", action="read", rule=lit("yes")),
                Policy(model="C", action="read", rule=op("or", False, "truthy")),
            ],
            evaluator=evaluator,
        )
        for model in ("A", "B", "C"):
            assert engine.can_read_row(model, {}, author) is False

    def test_filter_rows_keeps_order(self, engine, author):
        rows = [
            {"id": 1, "status": "published", "authorId": 9},
            {"id": 2, "status": "draft", "authorId": 9},
            {"id": 3, "status": "draft", "authorId": 5},
        ]
        assert [r["id"] for r in engine.filter_rows("Post", rows, author)] == [1, 3]

    def test_claims_mapping_as_user(self, engine):
        record = {"status": "draft", "authorId": 5}
        assert engine.can_read_row("Post", record, {"id": 5, "roles": []}) is True

    def test_decisions_are_idempotent(self, engine, author):
        record = {"status": "draft", "authorId": 5}
        decisions = {engine.can_read_row("Post", record, author) for _ in range(5)}
        assert decisions == {True}



def _matches(where, row):
    if "AND" in where:
        return all(_matches(part, row) for part in where["AND"])
    if "OR" in where:
        return any(_matches(part, row) for part in where["OR"])
    return all(lookup_in(row, path) == value for path, value in where.items())


class TestRowFilter:
    """Tests for compiling row read policies into where-mappings."""

    ROWS = [
        {"id": 1, "status": "published", "authorId": 9},
        {"id": 2, "status": "draft", "authorId": 5},
        {"id": 3, "status": "draft", "authorId": 9},
    ]

    def test_owner_or_published(self, engine, author):
        where = engine.row_filter("Post", author)
        assert where == {"OR": [{"status": "published"}, {"authorId": 5}]}

    def test_anonymous_drops_owner_branch(self, engine):
        assert engine.row_filter("Post", None) == {"status": "published"}
        assert engine.row_filter("Post", {}) == {"status": "published"}

    def test_no_policy_matches_nothing(self, engine, admin):
        where = engine.row_filter("Invoice", admin)
        assert where == {"OR": []}
        assert not _matches(where, {"id": 1})

    def test_record_independent_rules_are_decided_up_front(self, engine, employee):
        assert engine.row_filter("Employee", employee) == {}
        assert engine.row_filter("Employee", None) == {"OR": []}

    def test_user_values_are_inlined(self, evaluator):
        rule = op(
            "and",
            cond("eq", field("tenantId"), field("$user.attributes.tenant")),
            perm("hasRole", "admin"),
        )
        engine = PolicyEngine([Policy(model="Doc", action="read", rule=rule)], evaluator=evaluator)
        admin = Identity(id=1, roles={"admin"}, attributes={"tenant": "t1"})
        clerk = Identity(id=2, roles={"clerk"}, attributes={"tenant": "t1"})
        assert engine.row_filter("Doc", admin) == {"tenantId": "t1"}
        assert engine.row_filter("Doc", clerk) == {"OR": []}

    @pytest.mark.parametrize(
        "rule",
        [
            cond("gt", field("age"), 18),
            op("contains", field("title"), "x"),
            cond("eq", field("org.plan"), "pro"),
            cond("eq", field("reviewerId"), field("authorId")),
        ],
    )
    def test_unsupported_parts_are_unconstrained(self, evaluator, author, rule):
        engine = PolicyEngine([Policy(model="Doc", action="read", rule=rule)], evaluator=evaluator)
        assert engine.row_filter("Doc", author, related={"org": {"plan": "pro"}}) == {}

    @pytest.mark.parametrize("user", [None, "author", "editor"])
    def test_filter_never_drops_readable_rows(self, engine, user, request):
        identity = request.getfixturevalue(user) if user else None
        where = engine.row_filter("Post", identity)
        for row in self.ROWS:
            if engine.can_read_row("Post", row, identity):
                assert _matches(where, row)

class TestFieldAccess:
    """Tests for filter_fields and readable_fields."""

    EMPLOYEE = {"id": 10, "name": "Ada", "salary": 100_000}

    def test_denied_field_is_absent(self, engine, employee):
        visible = engine.filter_fields("Employee", self.EMPLOYEE, employee)
        assert "salary" not in visible
        assert visible == {"id": 10, "name": "Ada"}

    def test_allowed_field_is_present(self, engine, hr_user):
        assert engine.filter_fields("Employee", self.EMPLOYEE, hr_user) == self.EMPLOYEE

    def test_null_values_are_kept_when_allowed(self, engine, employee):
        visible = engine.filter_fields("Employee", {"id": 1, "name": None}, employee)
        assert "name" in visible
        assert visible["name"] is None

    def test_row_policy_without_field_policies_exposes_all(self, engine, author):
        record = {"id": 1, "title": "t", "status": "published"}
        assert engine.filter_fields("Post", record, author) == record

    def test_model_without_read_policies_yields_nothing(self, engine, admin):
        assert engine.filter_fields("Invoice", {"id": 1, "total": 5}, admin) == {}

    def test_field_without_policy_or_wildcard_is_hidden(self, evaluator, admin):
        engine = PolicyEngine(
            [
                Policy(model="User", action="read", rule=lit(True)),
                Policy(model="User", action="read", scope="field", field="email", rule=lit(True)),
            ],
            evaluator=evaluator,
        )
        assert engine.filter_fields("User", {"email": "a@b.c", "password": "x"}, admin) == {
            "email": "a@b.c"
        }

    def test_readable_fields(self, engine, employee):
        assert engine.readable_fields("Employee", self.EMPLOYEE, employee) == {"id", "name"}

    def test_input_record_is_not_modified(self, engine, employee):
        record = dict(self.EMPLOYEE)
        engine.filter_fields("Employee", record, employee)
        assert record == self.EMPLOYEE


class TestWriteAccess:
    """Tests for can_write and authorize_write."""

    POST = {"id": 1, "title": "Draft", "status": "draft", "authorId": 5}

    def test_owner_can_update_title(self, engine, author):
        assert engine.can_write("Post", "write", self.POST, {"title": "New"}, author) is True

    def test_owner_cannot_change_status(self, engine, author):
        incoming = {"status": "published"}
        assert engine.can_write("Post", "write", self.POST, incoming, author) is False

    def test_editor_can_change_status(self, engine, editor):
        incoming = {"status": "published"}
        assert engine.can_write("Post", "write", self.POST, incoming, editor) is True

    def test_stranger_cannot_update(self, engine):
        stranger = Identity(id=99)
        assert engine.can_write("Post", "write", self.POST, {"title": "x"}, stranger) is False

    def test_create_requires_authentication(self, engine, author):
        assert engine.can_write("Post", "create", None, {"title": "New"}, author) is True
        assert engine.can_write("Post", "create", None, {"title": "New"}, None) is False

    @pytest.mark.parametrize("claims", [{}, {"roles": []}, {"id": "", "roles": ["admin"]}])
    def test_claims_without_id_are_anonymous(self, engine, claims):
        assert engine.can_write("Post", "create", None, {"title": "New"}, claims) is False
        assert engine.can_write("Post", "delete", self.POST, None, claims) is False

    def test_delete_requires_admin(self, engine, admin, author):
        assert engine.can_write("Post", PolicyAction.DELETE, self.POST, None, admin) is True
        assert engine.can_write("Post", PolicyAction.DELETE, self.POST, None, author) is False

    def test_no_write_policy_denies(self, engine, admin):
        assert engine.can_write("Invoice", "write", {"id": 1}, {"total": 0}, admin) is False

    def test_rule_sees_incoming_data(self, evaluator, author):
        engine = PolicyEngine(
            [
                Policy(
                    model="Order",
                    action="write",
                    rule=cond("lte", field("incoming.discount"), field("maxDiscount")),
                )
            ],
            evaluator=evaluator,
        )
        existing = {"maxDiscount": 10}
        assert engine.can_write("Order", "write", existing, {"discount": 5}, author) is True
        assert engine.can_write("Order", "write", existing, {"discount": 50}, author) is False

    def test_create_sees_incoming_as_record(self, evaluator, author):
        engine = PolicyEngine(
            [Policy(model="Post", action="create", rule=perm("isOwner", "authorId"))],
            evaluator=evaluator,
        )
        assert engine.can_write("Post", "create", None, {"authorId": 5}, author) is True
        assert engine.can_write("Post", "create", None, {"authorId": 6}, author) is False

    def test_read_action_rejected(self, engine, author):
        with pytest.raises(ValueError):
            engine.can_write("Post", "read", self.POST, {}, author)

    def test_authorize_write_raises_generic_error(self, engine, author):
        with pytest.raises(AuthorizationError) as exc_info:
            engine.authorize_write("Post", "write", self.POST, {"status": "published"}, author)
        assert exc_info.value.message == "Not authorized"
        assert exc_info.value.details == {}

    def test_authorize_write_passes(self, engine, editor):
        assert engine.authorize_write("Post", "write", self.POST, {"status": "x"}, editor) is None


class TestPolicyLoading:
    """Tests for policy models, loading and validation."""

    def test_field_scope_requires_field(self):
        with pytest.raises(PydanticValidationError):
            Policy(model="A", action="read", scope="field", rule=lit(True))

    def test_row_scope_forbids_field(self):
        with pytest.raises(PydanticValidationError):
            Policy(model="A", action="read", scope="row", field="x", rule=lit(True))

    def test_duplicate_policies_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            PolicySet(
                [
                    Policy(model="A", action="read", rule=lit(True)),
                    Policy(model="A", action="read", rule=lit(False)),
                ]
            )
        assert exc_info.value.details["model"] == "A"

    def test_load_policies_from_json(self):
        policy_set = load_policies(
            {
                "policies": [
                    {
                        "model": "Post",
                        "action": "read",
                        "rule": {"type": "permission", "check": "isAuthenticated", "args": []},
                    },
                    {
                        "model": "Post",
                        "action": "read",
                        "scope": "field",
                        "field": "email",
                        "rule": {"type": "literal", "value": False},
                    },
                ]
            }
        )
        assert len(policy_set) == 2
        assert policy_set.row_policy("Post", PolicyAction.READ) is not None
        email_policy = policy_set.field_policy("Post", PolicyAction.READ, "email")
        assert email_policy.scope == PolicyScope.FIELD
        assert policy_set.field_policy("Post", PolicyAction.READ, "other") is None

    def test_load_policies_reports_path(self):
        with pytest.raises(ValidationError) as exc_info:
            load_policies([{"model": "A", "action": "read", "rule": {"type": "literal"}}, {}])
        assert exc_info.value.details["path"] == "$[1]"

    def test_engine_rejects_invalid_rules(self, evaluator):
        with pytest.raises(ValidationError) as exc_info:
            PolicyEngine(
                [Policy(model="A", action="read", rule=op("frobnicate"))], evaluator=evaluator
            )
        assert exc_info.value.details["model"] == "A"
        assert exc_info.value.details["op"] == "frobnicate"

    def test_fingerprint_ignores_order(self, blog_policies):
        reordered = PolicySet(list(reversed(blog_policies)))
        assert PolicySet(blog_policies).fingerprint() == reordered.fingerprint()

    def test_fingerprint_detects_changes(self, blog_policies):
        changed = [*blog_policies[1:], Policy(model="Post", action="read", rule=lit(True))]
        assert PolicySet(blog_policies).fingerprint() != PolicySet(changed).fingerprint()


class TestPagination:
    """Tests for paginate: denied rows never influence listings."""

    ROWS = [
        {"id": 1, "status": "published", "authorId": 9},
        {"id": 2, "status": "draft", "authorId": 9},
        {"id": 3, "status": "published", "authorId": 9},
        {"id": 4, "status": "draft", "authorId": 5},
        {"id": 5, "status": "draft", "authorId": 9},
        {"id": 6, "status": "published", "authorId": 9},
    ]

    def test_totals_exclude_denied_rows(self, engine, author):
        page = engine.paginate("Post", self.ROWS, author, limit=10)
        assert page.total == 4
        assert [item["id"] for item in page.items] == [1, 3, 4, 6]
        assert page.has_next is False
        assert page.next_cursor is None

    def test_pages_skip_denied_rows(self, engine, author):
        first = engine.paginate("Post", self.ROWS, author, limit=2)
        assert [item["id"] for item in first.items] == [1, 3]
        assert first.has_next is True

        second = engine.paginate("Post", self.ROWS, author, limit=2, cursor=first.next_cursor)
        assert [item["id"] for item in second.items] == [4, 6]
        assert second.has_next is False
        assert second.total == first.total == 4

    def test_last_visible_row_ends_listing(self, engine):
        page = engine.paginate("Post", self.ROWS, None, limit=3)
        assert [item["id"] for item in page.items] == [1, 3, 6]
        assert page.has_next is False

    def test_cursor_for_hidden_row_is_rejected(self, engine, author):
        with pytest.raises(ValueError):
            engine.paginate("Post", self.ROWS, author, limit=2, cursor=encode_cursor(2))

    def test_malformed_cursor(self, engine, author):
        with pytest.raises(ValueError):
            engine.paginate("Post", self.ROWS, author, limit=2, cursor="%%%")

    def test_items_are_redacted(self, engine, employee):
        rows = [{"id": 1, "name": "Ada", "salary": 1}]
        page = engine.paginate("Employee", rows, employee, limit=5)
        assert page.items == [{"id": 1, "name": "Ada"}]
        raw = engine.paginate("Employee", rows, employee, limit=5, redact=False)
        assert raw.items == rows

    def test_invalid_limit(self, engine, author):
        with pytest.raises(ValueError):
            engine.paginate("Post", self.ROWS, author, limit=0)

    def test_cursor_round_trip(self):
        assert decode_cursor(encode_cursor("abc")) == "abc"

    def test_uuid_keys_page_through(self, engine):
        rows = [{"id": uuid.UUID(int=n), "status": "published"} for n in range(1, 6)]
        first = engine.paginate("Post", rows, None, limit=2)
        second = engine.paginate("Post", rows, None, limit=2, cursor=first.next_cursor)
        third = engine.paginate("Post", rows, None, limit=2, cursor=second.next_cursor)
        assert [item["id"] for item in second.items] == [rows[2]["id"], rows[3]["id"]]
        assert [item["id"] for item in third.items] == [rows[4]["id"]]
        assert third.has_next is False

    def test_datetime_keys_page_through(self, engine, fixed_now):
        rows = [
            {"createdAt": fixed_now + timedelta(minutes=n), "status": "published"} for n in range(3)
        ]
        first = engine.paginate("Post", rows, None, limit=1, key="createdAt")
        second = engine.paginate(
            "Post", rows, None, limit=1, cursor=first.next_cursor, key="createdAt"
        )
        assert second.items == [rows[1]]
