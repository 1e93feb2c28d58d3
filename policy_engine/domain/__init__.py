"""Enumerations shared by the expression and policy layers."""
