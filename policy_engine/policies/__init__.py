"""
Row, field and write authorization built on expression rules.

Policies are deny-by-default: no policy, an evaluation error, or any result
other than ``True`` denies.
"""

from policy_engine.policies.engine import PolicyEngine
from policy_engine.policies.models import Policy, PolicySet, load_policies
from policy_engine.policies.pagination import Page

__all__ = ["Page", "Policy", "PolicyEngine", "PolicySet", "load_policies"]
