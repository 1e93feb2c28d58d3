"""
Cross-cutting infrastructure for the policy engine.

Contains configuration, the error taxonomy and logging setup shared by the
expression and policy layers.
"""
