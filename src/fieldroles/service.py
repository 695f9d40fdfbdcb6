"""
Authorization service - Main facade for field-level authorization.

This is the primary entry point. It finds the policy for a resource,
resolves the operation, optionally authorizes nested associations, and
keeps the results of the request for the selector helpers.

Usage:
    auth = AuthorizationService(user=current_user)

    permissions = auth.authorize(post, "update", associations=["comments"])
    payload = {k: v for k, v in body.items() if k in auth.permitted_attributes("update")}

    query = auth.authorize_scope(Post, "index")
"""

from __future__ import annotations

from typing import Any

import structlog

from .associations import AssociationAuthorizer
from .config import settings
from .exceptions import NotAuthorizedError, NotFoundError
from .interfaces import SHOW, AssociationNode, AssociationPermissionTable, PermissionSet
from .policy import Policy
from .registry import AuthRegistry

logger = structlog.get_logger()


def resource_type_of(resource: Any) -> type:
    return resource if isinstance(resource, type) else type(resource)


def policy_class_for(resource: Any) -> type[Policy]:
    """
    Policy class governing a resource instance or type.

    Base classes of the resource type are consulted too, nearest first.

    Raises:
        NotFoundError: If no policy declares the type or one of its bases
    """
    resource_type = resource_type_of(resource)
    for klass in resource_type.__mro__:
        if AuthRegistry.has_policy(klass):
            return AuthRegistry.policy_for(klass)
    raise NotFoundError(f"No policy declares {resource_type.__name__} or any of its bases")


class AuthorizationService:
    """
    Per-request authorization facade.

    Holds the subject and the permissions resolved during the request.
    Not shared between requests.

    Usage:
        auth = AuthorizationService(user=current_user)
        auth.authorize(post, "show", associations=[{"comments": ["author"]}])
        auth.association_permissions["comments"]
    """

    def __init__(self, user: Any = None):
        self.user = user
        self.permissions: PermissionSet | bool | None = None
        self.association_permissions: AssociationPermissionTable | None = None
        self.primary_resource: Any = None

    def policy(self, resource: Any, policy_class: type[Policy] | None = None) -> Policy:
        """Instantiate the policy for a resource."""
        policy_class = policy_class or policy_class_for(resource)
        return policy_class(self.user, resource)

    # ============================================================
    # AUTHORIZATION
    # ============================================================

    def authorize(
        self,
        resource: Any,
        operation: str,
        *,
        associations: Any = None,
        policy: type[Policy] | None = None,
        raise_on_denied: bool = True,
    ) -> PermissionSet | bool:
        """
        Resolve an operation or raise.

        Args:
            resource: Resource instance (or type)
            operation: Operation name, e.g. "show"
            associations: Optional association request tree to authorize too
            policy: Policy class to use instead of looking one up
            raise_on_denied: Passed to association authorization

        Returns:
            The PermissionSet, or True if the operation returned True

        Raises:
            NotAuthorizedError: If the operation denies access
        """
        policy_instance = self.policy(resource, policy)
        permissions = policy_instance.resolve_query(operation)

        if not permissions:
            raise NotAuthorizedError(query=operation, record=resource, policy=policy_instance)

        table = None
        if associations and isinstance(permissions, PermissionSet):
            authorizer = AssociationAuthorizer(self.user, query=operation, raise_on_denied=raise_on_denied)
            table = authorizer.authorize(associations, permissions)

        # Nothing is kept from a request that fails part way.
        self.permissions = permissions
        self.primary_resource = resource
        self.association_permissions = table

        logger.debug(
            "Authorization granted",
            operation=operation,
            policy=type(policy_instance).__name__,
            roles=permissions.roles.for_current_model if isinstance(permissions, PermissionSet) else None,
        )

        return permissions

    def authorize_scope(
        self,
        resource: Any,
        operation: str,
        *,
        policy: type[Policy] | None = None,
    ) -> Any:
        """
        Resolve the scope for an operation or raise.

        Returns:
            The first satisfied role's scope, or the resource itself when
            the operation returned True or the role has no scope

        Raises:
            NotAuthorizedError: If the operation denies access
        """
        policy_instance = self.policy(resource, policy)
        scope = policy_instance.resolve_scope(operation)

        if scope is False:
            raise NotAuthorizedError(query=operation, record=resource, policy=policy_instance)

        if scope is True:
            return resource
        return scope

    def authorize_associations(
        self,
        permissions: PermissionSet,
        requested: Any,
        *,
        query: str | None = None,
        raise_on_denied: bool = True,
    ) -> AssociationPermissionTable:
        """Authorize an association request tree below resolved permissions."""
        authorizer = AssociationAuthorizer(self.user, query=query, raise_on_denied=raise_on_denied)
        table = authorizer.authorize(requested, permissions)

        if permissions is self.permissions:
            self.association_permissions = table
        return table

    def can(self, resource: Any, operation: str, *, policy: type[Policy] | None = None) -> bool:
        """
        Check if operation is allowed (returns bool, no exception).

        Usage:
            if auth.can(post, "destroy"):
                # show delete button
        """
        return bool(self.policy(resource, policy).resolve_query(operation))

    # ============================================================
    # SELECTORS
    # ============================================================

    def permitted_attributes(self, action: str) -> list[str]:
        """Attributes of the primary resource permitted for an action."""
        if not isinstance(self.permissions, PermissionSet):
            return []
        return list(self.permissions.attributes.get(action, []))

    def permitted_association_names(self, action: str) -> list[AssociationNode]:
        """
        Associations of the primary resource permitted for an action.

        After association authorization only requested and granted
        associations are listed, in request shape.
        """
        if self.association_permissions is not None:
            return list(self.association_permissions.permitted.get(action, []))
        if not isinstance(self.permissions, PermissionSet):
            return []
        return list(self.permissions.associations.get(action, []))

    @property
    def permitted_associations(self) -> dict[str, list[AssociationNode]]:
        if self.association_permissions is None:
            return {}
        return dict(self.association_permissions.permitted)

    def association_attributes(self, action: str) -> dict[str, list[str]]:
        """association name -> its attributes permitted for an action."""
        if self.association_permissions is None:
            return {}
        return {
            name: list(perms.attributes.get(action, []))
            for name, perms in self.association_permissions.items()
        }

    def association_associations(self, action: str) -> dict[str, list[str]]:
        """association name -> its associations permitted for an action."""
        if self.association_permissions is None:
            return {}
        return {
            name: list(perms.associations.get(action, []))
            for name, perms in self.association_permissions.items()
        }

    def show_fields(self) -> list[Any]:
        """Own show attributes, followed by {association: show attributes}."""
        fields: list[Any] = self.permitted_attributes(SHOW)
        nested = self.association_attributes(SHOW)
        if nested:
            fields.append(nested)
        return fields

    def nested_attributes(self, action: str) -> list[Any]:
        """
        Write structure including granted nested associations.

        Usage:
            auth.authorize(post, "update", associations=[{"comments": ["likes"]}])
            auth.nested_attributes("update")
            # ["title", {"comments_attributes": ["body", {"likes_attributes": [...]}]}]
        """
        fields: list[Any] = self.permitted_attributes(action)
        if self.association_permissions is None:
            return fields
        return fields + self._nested(self.association_permissions.tree, self.permissions, action)

    def _nested(self, nodes: list[Any], parent: PermissionSet, action: str) -> list[dict[str, list[Any]]]:
        granted = parent.associations.get(action, [])
        nested = []
        for node in nodes:
            if node.name not in granted:
                continue
            fields: list[Any] = list(node.permissions.attributes.get(action, []))
            fields.extend(self._nested(node.children, node.permissions, action))
            nested.append({f"{node.name}{settings.nested_attributes_suffix}": fields})
        return nested


# ============================================================
# MODULE-LEVEL SHORTCUTS
# ============================================================

def authorize(user: Any, resource: Any, operation: str, **kwargs: Any) -> PermissionSet | bool:
    """Resolve permissions for an operation or raise NotAuthorizedError."""
    return AuthorizationService(user).authorize(resource, operation, **kwargs)


def authorize_scope(user: Any, resource: Any, operation: str, **kwargs: Any) -> Any:
    """Resolve the scope for an operation or raise NotAuthorizedError."""
    return AuthorizationService(user).authorize_scope(resource, operation, **kwargs)


def authorize_associations(
    permissions: PermissionSet,
    requested: Any,
    user: Any = None,
    **kwargs: Any,
) -> AssociationPermissionTable:
    """Authorize an association request tree below resolved permissions."""
    return AuthorizationService(user).authorize_associations(permissions, requested, **kwargs)
