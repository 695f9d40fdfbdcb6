"""
Association authorization.

Walks a caller-supplied association request tree and authorizes every
node against the policy of the associated resource:

    ["author", {"comments": ["likes"]}]

For each node the roles held on the parent are translated through their
associated_as aliases (or the child policy's default_associated_roles)
and merged on the child policy, limited to the actions the parent grants
the association for. The result is a flat table keyed by association
name plus, per action, the request-shaped list of granted nodes.

Outcomes per node:
- not granted by the parent: silently absent
- no alias and no default role: NotAuthorizedError (or dropped, if asked)
- aliases resolve to nothing granted on the child: absent
- association name cannot be resolved: NotFoundError, aborts the request
"""

from __future__ import annotations

from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from .config import settings
from .exceptions import NotAuthorizedError, NotFoundError, ValidationError
from .interfaces import ACTIONS, AssociationNode, AssociationPermissionTable, PermissionSet, unique
from .registry import AuthRegistry

logger = structlog.get_logger()


@dataclass
class RequestNode:
    """Validated association request node."""
    name: str
    children: list["RequestNode"] = field(default_factory=list)
    nested: bool = False
    permissions: PermissionSet | None = None

    def to_node(self, children: list[AssociationNode] | None = None) -> AssociationNode:
        if not self.nested:
            return self.name
        return {self.name: children if children is not None else []}


def parse_request(requested: Any, max_depth: int | None = None, depth: int = 1) -> list[RequestNode]:
    """
    Validate an association request tree.

    Raises:
        ValidationError: Multi-key nodes, wrong value types, or a tree
            deeper than max_depth
    """
    if max_depth is None:
        max_depth = settings.max_association_depth

    if depth > max_depth:
        raise ValidationError(f"Association request is nested deeper than {max_depth} levels")

    if isinstance(requested, str):
        requested = [requested]

    if not isinstance(requested, (list, tuple)):
        raise ValidationError(
            f"Expected a list of associations, got {requested!r} of kind {type(requested).__name__}"
        )

    nodes = []
    for node in requested:
        if isinstance(node, str):
            nodes.append(RequestNode(node))
        elif isinstance(node, dict):
            if len(node) != 1:
                raise ValidationError(
                    "There can be only one key for each nested association, "
                    f"ex: {{'posts': ['comments', 'likes']}}, got {node!r} with {len(node)} keys"
                )
            name, children = next(iter(node.items()))
            if not isinstance(name, str):
                raise ValidationError(f"Association names must be strings, got {name!r}")
            nodes.append(RequestNode(name, parse_request(children, max_depth, depth + 1), nested=True))
        else:
            raise ValidationError(
                "Invalid association parameter, expected a name or a single-key mapping, "
                f"got {node!r} of kind {type(node).__name__}"
            )
    return nodes


class AssociationAuthorizer:
    """
    Authorizes requested associations below a resolved permission set.

    Usage:
        permissions = policy.resolve_query("show")
        authorizer = AssociationAuthorizer(user, query="show")
        table = authorizer.authorize(["author", {"comments": ["likes"]}], permissions)
        table["comments"].attributes["show"]
    """

    def __init__(
        self,
        user: Any,
        *,
        query: str | None = None,
        raise_on_denied: bool = True,
        max_depth: int | None = None,
    ):
        self.user = user
        self.query = query
        self.raise_on_denied = raise_on_denied
        self.max_depth = settings.max_association_depth if max_depth is None else max_depth

    def authorize(
        self,
        requested: Any,
        parent: PermissionSet,
        resource_type: Any = None,
    ) -> AssociationPermissionTable:
        """
        Authorize an association request tree.

        Args:
            requested: Association request tree
            parent: Permissions resolved on the primary resource
            resource_type: Primary resource type, defaults to the parent's policy model

        Raises:
            ValidationError: Malformed request, or parent without a policy
            NotFoundError: Unknown association
            NotAuthorizedError: Association with no role to present
        """
        if not isinstance(parent, PermissionSet):
            raise ValidationError("Associations can only be authorized below a resolved PermissionSet")
        if parent.policy is None:
            raise ValidationError("The parent PermissionSet does not record the policy that produced it")

        nodes = parse_request(requested, self.max_depth)
        resource_type = resource_type if resource_type is not None else parent.policy.model

        table = AssociationPermissionTable()
        allowed = self._walk(nodes, parent, resource_type, table)
        table.tree = allowed
        table.permitted = {action: self._permitted_for(allowed, parent, action) for action in ACTIONS}
        return table

    # ============================================================
    # TRAVERSAL
    # ============================================================

    def _walk(
        self,
        nodes: Sequence[RequestNode],
        parent: PermissionSet,
        resource_type: Any,
        table: AssociationPermissionTable,
    ) -> list[RequestNode]:
        """
        Authorize the request level by level.

        Each authorized node is copied with its own PermissionSet, so a
        name requested at several depths keeps a separate grant per
        position. The flat table keeps the shallowest one.
        """
        allowed: list[RequestNode] = []
        queue = deque([(nodes, parent, resource_type, allowed)])

        while queue:
            level, parent, resource_type, into = queue.popleft()
            granted = parent.granted_associations()

            for node in level:
                actions = granted.get(node.name)
                if not actions:
                    logger.debug("Association not granted", association=node.name, policy=parent.policy.__name__)
                    continue

                target = self.resolve_target(parent.policy, resource_type, node.name)
                child_policy_class = AuthRegistry.policy_for(target)

                roles = self.associated_roles(parent, node.name, child_policy_class)
                if not roles:
                    self._deny(node.name, target, child_policy_class)
                    continue

                child_policy = child_policy_class(self.user, target)
                permissions = child_policy.resolve_as_association(roles, actions)
                if permissions is None:
                    logger.debug(
                        "Associated roles grant nothing",
                        association=node.name,
                        roles=roles,
                        policy=child_policy_class.__name__,
                    )
                    continue

                table.entries.setdefault(node.name, permissions)
                entry = RequestNode(node.name, nested=node.nested, permissions=permissions)
                into.append(entry)
                if node.children:
                    queue.append((node.children, permissions, target, entry.children))

        return allowed

    def resolve_target(self, policy_class: type, resource_type: Any, name: str) -> Any:
        """
        Resource type behind an association.

        Asks the schema provider first, then the policy's explicit
        association_aliases table.

        Raises:
            NotFoundError: If neither knows the association
        """
        target = None
        provider = policy_class.get_schema_provider()
        if provider is not None and resource_type is not None:
            target = provider.resolve_association_type(resource_type, name)

        if target is None:
            target = policy_class.association_aliases.get(name)

        if target is None:
            owner = getattr(resource_type, "__name__", resource_type)
            raise NotFoundError(
                f"Could not find the resource type of association '{name}', "
                f"{owner} does not include any association named {name} "
                f"and {policy_class.__name__} declares no alias for it"
            )
        return target

    def associated_roles(self, parent: PermissionSet, association: str, child_policy_class: type) -> list[str]:
        """
        Roles to present on an associated resource.

        Each parent role contributes its associated_as entry for the
        association, or the child policy's default roles when it has none.
        """
        registry = parent.policy.role_registry()
        roles: list[str] = []

        for role in parent.roles.for_current_model:
            aliases = registry.aliases_for(role, association)
            if aliases is None:
                aliases = tuple(child_policy_class.default_associated_roles)
            roles.extend(aliases)

        return unique(roles)

    def _deny(self, association: str, target: Any, policy_class: type) -> None:
        if settings.log_denials:
            logger.info(
                "Association denied",
                association=association,
                policy=policy_class.__name__,
                reason="no associated role",
            )

        if self.raise_on_denied:
            raise NotAuthorizedError(
                f"No role can be presented on association '{association}' ({policy_class.__name__})",
                query=self.query,
                record=target,
                policy=policy_class,
            )

    # ============================================================
    # AGGREGATION
    # ============================================================

    def _permitted_for(
        self,
        allowed: Sequence[RequestNode],
        parent: PermissionSet,
        action: str,
    ) -> list[AssociationNode]:
        """Request-shaped nodes granted for one action."""
        granted = parent.associations.get(action, [])
        permitted: list[AssociationNode] = []

        for node in allowed:
            if node.name not in granted:
                continue
            children = None
            if node.nested:
                children = self._permitted_for(node.children, node.permissions, action)
            permitted.append(node.to_node(children))

        return permitted
