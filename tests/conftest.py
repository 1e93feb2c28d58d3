"""
Pytest configuration and shared fixtures.

Provides:
- A fixed clock so date operations are deterministic
- An evaluator bound to that clock and a ``run`` helper that builds the
  evaluation context
- Sample identities (author, editor, admin, HR)
- A blog policy set exercising row, field and write policies
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import pytest

from policy_engine.expressions.builders import cond, field, lit, op, perm
from policy_engine.expressions.clock import FixedClock
from policy_engine.expressions.context import EvaluationContext, Identity
from policy_engine.expressions.evaluator import EvaluationOptions, EvaluationResult, Evaluator
from policy_engine.policies.engine import PolicyEngine
from policy_engine.policies.models import Policy

FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _propagate_engine_logs():
    """Let caplog see package logs even after configure_logging() ran."""
    package_logger = logging.getLogger("policy_engine")
    original = package_logger.propagate
    package_logger.propagate = True
    yield
    package_logger.propagate = original


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(FIXED_NOW)


@pytest.fixture
def evaluator(clock) -> Evaluator:
    return Evaluator(clock=clock)


@pytest.fixture
def run(evaluator):
    """Evaluate an expression against a freshly built context."""

    def _run(
        expr,
        record: dict[str, Any] | None = None,
        user: Identity | None = None,
        related: dict[str, Any] | None = None,
        options: EvaluationOptions | None = None,
    ) -> EvaluationResult:
        context = EvaluationContext(record=record or {}, user=user, related=related or {})
        return evaluator.evaluate(expr, context, options)

    return _run


@pytest.fixture
def author() -> Identity:
    return Identity(id=5, roles={"author"})


@pytest.fixture
def editor() -> Identity:
    return Identity(id=7, roles={"editor"}, permissions={"posts.publish"})


@pytest.fixture
def admin() -> Identity:
    return Identity(id=1, roles={"admin"})


@pytest.fixture
def hr_user() -> Identity:
    return Identity(id=3, roles={"hr"})


@pytest.fixture
def employee() -> Identity:
    return Identity(id=4, roles={"employee"})


def published_or_owner():
    return op(
        "or",
        cond("eq", field("status"), "published"),
        perm("isOwner", "authorId"),
    )


@pytest.fixture
def blog_policies() -> list[Policy]:
    """Posts: readable when published or owned; owners and editors may update."""
    return [
        Policy(model="Post", action="read", rule=published_or_owner()),
        Policy(
            model="Post",
            action="write",
            rule=op("or", perm("isOwner", "authorId"), perm("hasRole", "editor")),
        ),
        Policy(model="Post", action="create", rule=perm("isAuthenticated")),
        Policy(model="Post", action="delete", rule=perm("hasRole", "admin")),
        Policy(
            model="Post",
            action="write",
            scope="field",
            field="status",
            rule=perm("hasRole", "editor"),
        ),
        Policy(
            model="Post",
            action="write",
            scope="field",
            field="*",
            rule=lit(True),
        ),
        Policy(model="Employee", action="read", rule=perm("isAuthenticated")),
        Policy(
            model="Employee",
            action="read",
            scope="field",
            field="salary",
            rule=perm("hasRole", "hr", "admin"),
        ),
        Policy(model="Employee", action="read", scope="field", field="*", rule=lit(True)),
    ]


@pytest.fixture
def engine(blog_policies, evaluator) -> PolicyEngine:
    return PolicyEngine(blog_policies, evaluator=evaluator)
