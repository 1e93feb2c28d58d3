"""
Unit tests for the operation registry and static expression validation.
"""

import pytest

from policy_engine.core.errors import RegistrationError, ValidationError
from policy_engine.domain.enums import BuiltinOperation, OperationCategory
from policy_engine.expressions.builders import cond, field, lit, op, perm
from policy_engine.expressions.validator import validate_expression
from policy_engine.operations.base import OperationSpec
from policy_engine.operations.registry import OperationRegistry, default_registry


def noop(args, call):
    return None


class TestBuiltinCatalog:
    """Tests for the closed set of built-in operations."""

    def test_every_builtin_is_registered(self):
        registry = default_registry()
        for member in BuiltinOperation:
            assert registry.get(member.value) is not None

    def test_lookup_of_unknown_name(self):
        assert default_registry().get("frobnicate") is None
        assert "frobnicate" not in default_registry()

    def test_permission_category(self):
        registry = default_registry()
        assert registry.is_permission("hasRole")
        assert not registry.is_permission("upper")
        names = {spec.name for spec in registry.by_category(OperationCategory.PERMISSION)}
        assert names == {
            "hasRole",
            "hasAnyRole",
            "hasAllRoles",
            "hasPermission",
            "isOwner",
            "isAuthenticated",
            "isAnonymous",
        }

    def test_clock_dependent_operations_are_impure(self):
        registry = default_registry()
        assert registry.get("now").pure is False
        assert registry.get("timeAgo").pure is False
        assert registry.get("parseDate").pure is True
        assert registry.get("add").pure is True

    def test_default_registry_is_shared(self):
        assert default_registry() is default_registry()


class TestCustomRegistration:
    """Tests for host-defined operations."""

    def test_register_callable(self):
        registry = OperationRegistry({"slugify": noop})
        assert "slugify" in registry
        assert registry.get("slugify").category == OperationCategory.CUSTOM
        assert len(registry) == len(BuiltinOperation) + 1

    def test_register_permission_spec(self):
        spec = OperationSpec(
            name="inTenant", impl=noop, category=OperationCategory.PERMISSION, max_args=0
        )
        registry = OperationRegistry({"inTenant": spec})
        assert registry.is_permission("inTenant")

    @pytest.mark.parametrize("name", ["add", "hasRole", "if", "now"])
    def test_reserved_names_rejected(self, name):
        with pytest.raises(RegistrationError) as exc_info:
            OperationRegistry({name: noop})
        assert exc_info.value.details["name"] == name

    @pytest.mark.parametrize("name", ["", "has space", "1abc"])
    def test_invalid_names_rejected(self, name):
        with pytest.raises(RegistrationError):
            OperationRegistry({name: noop})

    def test_mismatched_spec_name_rejected(self):
        with pytest.raises(RegistrationError):
            OperationRegistry({"a": OperationSpec(name="b", impl=noop)})

    def test_non_callable_rejected(self):
        with pytest.raises(RegistrationError):
            OperationRegistry({"a": 42})

    def test_bad_arity_rejected(self):
        with pytest.raises(RegistrationError):
            OperationRegistry({"a": OperationSpec(name="a", impl=noop, min_args=2, max_args=1)})

    def test_lazy_custom_rejected(self):
        with pytest.raises(RegistrationError):
            OperationRegistry({"a": OperationSpec(name="a", impl=noop, lazy=True)})

    def test_with_operations_returns_new_registry(self):
        base = OperationRegistry({"a": noop})
        extended = base.with_operations({"b": noop})
        assert "b" in extended
        assert "b" not in base

    def test_with_operations_rejects_duplicates(self):
        with pytest.raises(RegistrationError):
            OperationRegistry({"a": noop}).with_operations({"a": noop})


class TestValidateExpression:
    """Tests for static validation before a tree is installed."""

    def test_valid_tree_passes(self):
        expr = op(
            "or",
            cond("eq", field("status"), "published"),
            perm("isOwner", "authorId"),
        )
        assert validate_expression(expr) == expr

    def test_accepts_json_form(self):
        tree = validate_expression({"type": "field", "path": "title"})
        assert tree == field("title")

    def test_unknown_operation(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_expression(op("and", True, op("frobnicate")))
        assert exc_info.value.details["path"] == "$.args[1]"
        assert exc_info.value.details["op"] == "frobnicate"

    def test_arity(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_expression(op("substring", "abc"))
        assert exc_info.value.details["expected"] == "2-3"

    def test_condition_requires_comparison(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_expression(cond("between", 1, 2))
        assert "allowed_operators" in exc_info.value.details

    def test_permission_namespace(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_expression(perm("upper", "x"))
        assert exc_info.value.details["category"] == "string"

    def test_empty_path_segment(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_expression(op("upper", field("author..name")))
        assert exc_info.value.details["path"] == "$.args[0]"

    def test_depth(self):
        expr = lit(1)
        for _ in range(5):
            expr = op("not", expr)
        with pytest.raises(ValidationError):
            validate_expression(expr, max_depth=5)
        validate_expression(expr, max_depth=6)

    def test_literal_argument_types(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_expression(op("upper", 5))
        assert exc_info.value.details["expected_type"] == "string"
        assert exc_info.value.details["actual_type"] == "number"

    def test_null_literals_allowed(self):
        validate_expression(op("count", None))

    def test_custom_registry(self):
        registry = OperationRegistry({"slugify": noop})
        validate_expression(op("slugify", field("title")), registry)
        with pytest.raises(ValidationError):
            validate_expression(op("slugify", field("title")))
