"""
Role evaluation and merging.

Given the result of an operation predicate, decides which declared roles
the subject satisfies and combines their grants:

    True / False         -> returned as is, roles are not consulted
    ["guest", ...]       -> anonymous subject gets exactly the guest grant
    ["reader", "editor"] -> every satisfied role's grant, union-merged

Merging is a set union per action that keeps first-seen order, so the
same inputs always produce the same lists.
"""

from collections.abc import Iterable, Sequence
from typing import Any, Protocol

import structlog

from .config import settings
from .exceptions import ConfigurationError
from .interfaces import GUEST, PermissionSet, RoleSet, unique
from .registry import RegisteredRole, RoleRegistry

logger = structlog.get_logger()


class PredicateSource(Protocol):
    """What the evaluator needs from a policy instance."""

    registry: RoleRegistry

    def test_condition(self, role: str) -> bool:
        ...


# ============================================================
# MERGE
# ============================================================

def merge(entries: Iterable[RegisteredRole], actions: Iterable[str] | None = None) -> PermissionSet:
    """
    Union-merge the grants of several roles.

    Args:
        entries: Registered roles, in candidate order
        actions: If given, only these actions are kept from each grant

    Returns:
        PermissionSet listing every merged role in for_current_model
    """
    wanted = list(actions) if actions is not None else None
    merged = PermissionSet(roles=RoleSet())

    for entry in entries:
        grant = entry.grant if wanted is None else entry.grant.filtered(wanted)

        if entry.name not in merged.roles.for_current_model:
            merged.roles.for_current_model.append(entry.name)

        for action, fields in grant.attributes.items():
            merged.attributes[action] = unique([*merged.attributes.get(action, []), *fields])

        for action, fields in grant.associations.items():
            merged.associations[action] = unique([*merged.associations.get(action, []), *fields])

        for association, roles in entry.associated_as.items():
            current = merged.roles.for_associated_models.get(association, [])
            merged.roles.for_associated_models[association] = unique([*current, *roles])

    return merged


# ============================================================
# EVALUATOR
# ============================================================

class Evaluator:
    """
    Resolves an operation predicate result into permissions.

    Usage:
        evaluator = Evaluator(policy)
        result = evaluator.resolve(policy.show())   # PermissionSet | bool
    """

    def __init__(self, policy: PredicateSource):
        self.policy = policy
        self.registry = policy.registry

    def resolve(self, predicate_result: Any) -> PermissionSet | bool:
        """
        Run guest check, role scan and merge.

        Returns:
            The boolean predicate result verbatim, False when no role is
            satisfied, otherwise the merged PermissionSet

        Raises:
            ConfigurationError: Unknown candidate role or missing predicate
        """
        candidates = self.candidates(predicate_result)
        if isinstance(candidates, bool):
            return candidates

        if self.guest_applies():
            if GUEST not in candidates:
                self._denied("guest not permitted", candidates)
                return False
            return self._single(self.registry.lookup(GUEST))

        satisfied = self.satisfied_roles(candidates)

        if not satisfied:
            self._denied("no role satisfied", candidates)
            return False

        if len(satisfied) == 1:
            return self._single(satisfied[0])

        return merge(satisfied)

    def resolve_as_association(
        self,
        roles: Sequence[str],
        actions: Iterable[str],
    ) -> PermissionSet | None:
        """
        Merge roles handed down from a parent resource.

        Predicates are not evaluated, the parent already proved the
        entitlement. Roles unknown to this policy are skipped, as are roles
        with nothing granted for the requested actions.

        Returns:
            The merged PermissionSet, or None if no role contributes anything
        """
        actions = list(actions)
        contributing = []

        for name in unique(roles):
            entry = self.registry.get(name)
            if entry is None:
                logger.debug(
                    "Associated role not declared",
                    role=name,
                    policy=self.registry.owner,
                )
                continue
            if entry.grant.filtered(actions).is_empty():
                continue
            contributing.append(entry)

        if not contributing:
            return None

        return merge(contributing, actions)

    # ============================================================
    # STEPS
    # ============================================================

    @staticmethod
    def candidates(predicate_result: Any) -> list[str] | bool:
        """Validate an operation predicate result."""
        if isinstance(predicate_result, bool):
            return predicate_result

        if isinstance(predicate_result, str):
            return [predicate_result]

        if isinstance(predicate_result, (list, tuple)) and all(
            isinstance(role, str) for role in predicate_result
        ):
            return unique(predicate_result)

        raise ConfigurationError(
            "Operation predicates must return a boolean or a list of role names, "
            f"got {predicate_result!r}"
        )

    def guest_applies(self) -> bool:
        return bool(self.policy.test_condition(GUEST))

    def satisfied_roles(self, candidates: Iterable[str]) -> list[RegisteredRole]:
        """Every non-guest candidate whose predicate holds, in candidate order."""
        satisfied = []
        for name in candidates:
            if name == GUEST:
                continue
            entry = self.registry.lookup(name)
            if self.policy.test_condition(name):
                satisfied.append(entry)
        return satisfied

    def first_satisfied_role(self, candidates: Iterable[str]) -> RegisteredRole | None:
        """Like satisfied_roles, but stops at the first match."""
        for name in candidates:
            if name == GUEST:
                continue
            entry = self.registry.lookup(name)
            if self.policy.test_condition(name):
                return entry
        return None

    @staticmethod
    def _single(entry: RegisteredRole) -> PermissionSet:
        return PermissionSet(
            attributes={action: list(fields) for action, fields in entry.grant.attributes.items()},
            associations={action: list(fields) for action, fields in entry.grant.associations.items()},
            roles=RoleSet(
                for_current_model=[entry.name],
                for_associated_models={k: list(v) for k, v in entry.associated_as.items()},
            ),
        )

    def _denied(self, reason: str, candidates: list[str]) -> None:
        if settings.log_denials:
            logger.info(
                "Authorization denied",
                policy=self.registry.owner,
                reason=reason,
                candidates=candidates,
            )
