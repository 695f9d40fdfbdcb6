"""
fieldroles - Field-level, role-based authorization.

Decides whether a subject may perform an operation on a resource and
exactly which attributes and associations it may see or write, merging
the grants of every role the subject satisfies.

Usage Levels:
=============

Level 1: Roles and operations
-----------------------------
    from fieldroles import Policy, Role, condition, operation

    class PostPolicy(Policy):
        model = Post
        roles = [
            Role("reader", attributes={"show": ["title", "body"]}),
            Role("author", attributes={"show": ["title", "body", "draft"], "save": ["title", "body"]}),
        ]

        @condition("reader")
        def is_reader(self):
            return self.user is not None

        @condition("author")
        def is_author(self):
            return self.resource.author_id == self.user.id

        @operation
        def show(self):
            return self.allow("reader", "author")

Level 2: Authorize
------------------
    from fieldroles import authorize

    permissions = authorize(user, post, "show")
    permissions.attributes["show"]        # every satisfied role, merged

Level 3: Wildcards and restricted fields
----------------------------------------
    Role("admin", attributes="save_all")                 # every column, minus id/timestamps on writes
    Role("editor", attributes={"update": ["all_minus", "author_id"]})

Level 4: Scopes
---------------
    Role("author", scope=lambda policy: select(Post).where(Post.author_id == policy.user.id))
    query = authorize_scope(user, Post, "index")          # first satisfied role's scope

Level 5: Associations
---------------------
    Role("author", associations={"show": ["comments"]}, associated_as={"comments": "moderator"})

    auth = AuthorizationService(user)
    auth.authorize(post, "show", associations=[{"comments": ["likes"]}])
    auth.association_permissions["comments"]

Configuration:
==============

Environment variables (or in config):
- FIELDROLES_SCHEMA_PROVIDER: "sqlalchemy" (default), "mapping"
- FIELDROLES_RESTRICTED_WRITE_ATTRIBUTES: '["id", "created_at", "updated_at"]' (default)
- FIELDROLES_MAX_ASSOCIATION_DEPTH: 8 (default)

FastAPI integration lives in fieldroles.dependencies.
"""

# Core data model
from .interfaces import (
    AssociationPermissionTable,
    PermissionSet,
    ResolvedGrant,
    Restrictions,
    Role,
    RoleSet,
    SchemaProvider,
)

# Errors
from .exceptions import (
    AuthorizationError,
    ConfigurationError,
    NotAuthorizedError,
    NotFoundError,
    ValidationError,
)

# Registries
from .registry import AuthRegistry, RoleRegistry

# Engine
from .grants import GrantBuilder
from .evaluator import Evaluator, merge
from .scope import ScopeSelector
from .associations import AssociationAuthorizer

# Declaration
from .policy import Policy, condition, operation

# Schema providers (auto-registered)
from .schema import MappingSchemaProvider, ResourceSchema, SQLAlchemySchemaProvider

# Service (main facade)
from .service import (
    AuthorizationService,
    authorize,
    authorize_associations,
    authorize_scope,
)

__all__ = [
    # Data model
    "AssociationPermissionTable",
    "PermissionSet",
    "ResolvedGrant",
    "Restrictions",
    "Role",
    "RoleSet",
    "SchemaProvider",
    # Errors
    "AuthorizationError",
    "ConfigurationError",
    "NotAuthorizedError",
    "NotFoundError",
    "ValidationError",
    # Registries
    "AuthRegistry",
    "RoleRegistry",
    # Engine
    "GrantBuilder",
    "Evaluator",
    "merge",
    "ScopeSelector",
    "AssociationAuthorizer",
    # Declaration
    "Policy",
    "condition",
    "operation",
    # Schema providers
    "MappingSchemaProvider",
    "ResourceSchema",
    "SQLAlchemySchemaProvider",
    # Service
    "AuthorizationService",
    "authorize",
    "authorize_associations",
    "authorize_scope",
]
