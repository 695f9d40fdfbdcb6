"""
Policy declaration.

Subclass Policy, list Role declarations, and register predicates with
@condition and @operation.
"""

from .base import Policy, condition, operation

__all__ = ["Policy", "condition", "operation"]
