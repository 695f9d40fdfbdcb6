"""
Scope selector.

Picks which role's scope applies to a request and evaluates it. A scope is
a callable taking the policy instance, so it can read both the subject
and the resource:

    Role("author", scope=lambda policy: select(Post).where(Post.author_id == policy.user.id))

Unlike attribute grants, scopes are not merged. Candidates are tried in
order and the first role whose predicate holds supplies the scope.
"""

from typing import Any

import structlog

from ..config import settings
from ..evaluator import Evaluator, PredicateSource
from ..interfaces import GUEST
from ..registry import RegisteredRole

logger = structlog.get_logger()


class ScopeSelector:
    """
    Resolves an operation predicate result into a scope.

    Usage:
        selector = ScopeSelector(policy)
        scope = selector.resolve_scope(policy.index())
    """

    def __init__(self, policy: PredicateSource, evaluator: Evaluator | None = None):
        self.policy = policy
        self.evaluator = evaluator or Evaluator(policy)

    def resolve_scope(self, predicate_result: Any) -> Any:
        """
        Evaluate the scope of the first satisfied role.

        Returns:
            The boolean predicate result verbatim, False when no role is
            satisfied, True when the selected role declares no scope,
            otherwise whatever the role's scope returns
        """
        candidates = self.evaluator.candidates(predicate_result)
        if isinstance(candidates, bool):
            return candidates

        if self.evaluator.guest_applies():
            if GUEST not in candidates:
                self._denied("guest not permitted", candidates)
                return False
            return self.evaluate(self.evaluator.registry.lookup(GUEST))

        entry = self.evaluator.first_satisfied_role(candidates)
        if entry is None:
            self._denied("no role satisfied", candidates)
            return False

        return self.evaluate(entry)

    def evaluate(self, entry: RegisteredRole) -> Any:
        if entry.scope is None:
            return True

        logger.debug("Resolving scope", role=entry.name, policy=self.evaluator.registry.owner)
        return entry.scope(self.policy)

    def _denied(self, reason: str, candidates: list[str]) -> None:
        if settings.log_denials:
            logger.info(
                "Scope denied",
                policy=self.evaluator.registry.owner,
                reason=reason,
                candidates=candidates,
            )
