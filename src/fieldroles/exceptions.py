"""
Authorization errors.

Four kinds of failure can come out of a resolution:

- ConfigurationError: the policy itself is wrong (bad role declaration,
  missing predicate, no schema for a wildcard). Never retried.
- NotAuthorizedError: the subject is not allowed. Callers usually map it to 403.
- NotFoundError: an association name could not be resolved to a resource type.
- ValidationError: the requested association tree is malformed.
"""

from typing import Any


class AuthorizationError(Exception):
    """Base class for all fieldroles errors."""


class ConfigurationError(AuthorizationError, ValueError):
    """Malformed policy or role declaration."""


class NotAuthorizedError(AuthorizationError):
    """
    The subject is not allowed to perform the query on the record.

    Attributes:
        query: Operation name that was resolved (e.g. "show")
        record: The resource (or resource type) being authorized
        policy: The policy instance or class that denied access
    """

    def __init__(
        self,
        message: str | None = None,
        *,
        query: str | None = None,
        record: Any = None,
        policy: Any = None,
    ):
        self.query = query
        self.record = record
        self.policy = policy

        if message is None:
            policy_name = getattr(policy, "__name__", type(policy).__name__)
            record_name = record.__name__ if isinstance(record, type) else type(record).__name__
            message = f"not allowed to {query} this {record_name} ({policy_name})"

        super().__init__(message)


class NotFoundError(AuthorizationError, LookupError):
    """An association or its policy could not be found."""


class ValidationError(AuthorizationError, ValueError):
    """Malformed association request."""
