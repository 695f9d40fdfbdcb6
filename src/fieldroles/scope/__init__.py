"""
Scope resolution.

Scopes never merge: the first satisfied role's scope wins.
"""

from .selector import ScopeSelector

__all__ = ["ScopeSelector"]
