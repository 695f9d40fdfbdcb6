"""
Policy base class.

A policy declares the roles a subject can hold on one resource type, the
predicate deciding each role, and the operations (show, create, ...)
naming which roles are eligible:

    class PostPolicy(Policy):
        model = Post

        roles = [
            Role("reader", attributes={"show": ["title", "body"]}),
            Role("author", attributes="save_all", associations={"show": ["comments"]},
                 associated_as={"comments": "moderator"}),
        ]

        @condition("reader")
        def is_reader(self) -> bool:
            return self.user is not None

        @condition("author")
        def is_author(self) -> bool:
            return self.resource.author_id == self.user.id

        @operation
        def show(self):
            return self.allow("guest", "reader", "author")

Roles are inherited and may be redeclared by name in a subclass. The role
table is expanded once, on first use, and is read-only afterwards.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from types import MappingProxyType
from typing import Any, Callable, TypeVar

from .. import schema  # noqa: F401  (registers the built-in schema providers)
from ..evaluator import Evaluator
from ..exceptions import ConfigurationError
from ..grants import GrantBuilder
from ..interfaces import GUEST, PermissionSet, Restrictions, Role, SchemaProvider
from ..registry import AuthRegistry, RoleRegistry, get_default_schema_provider
from ..scope import ScopeSelector

F = TypeVar("F", bound=Callable[..., Any])

_CONDITION_MARK = "__fieldroles_condition__"
_OPERATION_MARK = "__fieldroles_operation__"


# ============================================================
# DECLARATION DECORATORS
# ============================================================

def condition(role: str) -> Callable[[F], F]:
    """
    Register a method as the test predicate of a role.

    Usage:
        @condition("owner")
        def is_owner(self) -> bool:
            return self.resource.owner_id == self.user.id
    """
    def decorator(func: F) -> F:
        setattr(func, _CONDITION_MARK, role)
        return func
    return decorator


def operation(func: F | None = None, *, name: str | None = None) -> Any:
    """
    Register a method as an operation predicate.

    The method returns a boolean, or the role names eligible for the
    operation (usually via self.allow(...)).

    Usage:
        @operation
        def show(self):
            return self.allow("reader", "editor")

        @operation(name="publish")
        def can_publish(self):
            return self.allow("editor")
    """
    def decorator(f: F) -> F:
        setattr(f, _OPERATION_MARK, name or f.__name__)
        return f

    if func is not None:
        return decorator(func)
    return decorator


# ============================================================
# POLICY
# ============================================================

class Policy:
    """
    Base class for all policies.

    Class attributes:
        model: Resource type governed by this policy (enables wildcards and
            association lookup)
        schema_provider: Overrides the configured default provider
        restrictions: Fields subtracted from wildcard expansions
        association_aliases: association name -> resource type, consulted
            when the schema provider cannot resolve an association
        default_associated_roles: Roles used on this resource when a parent
            role declares no associated_as entry for it
        roles: Role declarations of this class
    """

    model: Any = None
    schema_provider: SchemaProvider | None = None
    restrictions: Restrictions = Restrictions.defaults()
    association_aliases: Mapping[str, Any] = MappingProxyType({})
    default_associated_roles: Sequence[str] = ()

    roles: Sequence[Role] = (Role(GUEST),)

    _declarations: dict[str, Role]
    _conditions: dict[str, str | Callable[[Any], bool]]
    _operations: dict[str, str]

    def __init__(self, user: Any, resource: Any):
        self.user = user
        self.resource = resource

    def __init_subclass__(cls, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        cls._collect_declarations()

    @classmethod
    def _collect_declarations(cls) -> None:
        declarations: dict[str, Role] = {}
        conditions: dict[str, str | Callable[[Any], bool]] = {}
        operations: dict[str, str] = {}

        for klass in reversed(cls.__mro__):
            own_roles = klass.__dict__.get("roles", ())
            for role in own_roles:
                if not isinstance(role, Role):
                    raise ConfigurationError(f"Expected Role declarations on {klass.__name__}, got {role!r}")

            names = [role.name for role in own_roles]
            duplicates = sorted({name for name in names if names.count(name) > 1})
            if duplicates:
                raise ConfigurationError(f"Roles {duplicates} are declared twice on {klass.__name__}")

            for role in own_roles:
                declarations[role.name] = role

            for attr_name, value in klass.__dict__.items():
                role_name = getattr(value, _CONDITION_MARK, None)
                if role_name is not None:
                    conditions[role_name] = attr_name
                operation_name = getattr(value, _OPERATION_MARK, None)
                if operation_name is not None:
                    operations[operation_name] = attr_name

        for role in declarations.values():
            if role.condition is not None:
                conditions[role.name] = role.condition

        cls._declarations = declarations
        cls._conditions = conditions
        cls._operations = operations
        cls._registry = None
        cls._registry_lock = threading.Lock()

        if cls.__dict__.get("model") is not None:
            AuthRegistry.register_policy(cls.model, cls)

    # ============================================================
    # ROLE REGISTRY
    # ============================================================

    @classmethod
    def role_registry(cls) -> RoleRegistry:
        """
        Expanded, frozen role table of this class.

        Built on first use, once; concurrent first callers wait on a
        per-class lock, later callers never lock.
        """
        registry = cls.__dict__.get("_registry")
        if registry is None:
            with cls._registry_lock:
                registry = cls.__dict__.get("_registry")
                if registry is None:
                    builder = GrantBuilder(
                        cls.model,
                        cls.get_schema_provider(),
                        cls.restrictions,
                        owner=cls.__name__,
                    )
                    registry = RoleRegistry.build(cls._declarations.values(), builder, owner=cls.__name__)
                    cls._registry = registry
        return registry

    @classmethod
    def get_schema_provider(cls) -> SchemaProvider | None:
        if cls.schema_provider is not None:
            return cls.schema_provider
        if cls.model is None:
            return None
        return get_default_schema_provider()

    @classmethod
    def declared_roles(cls) -> list[str]:
        return list(cls._declarations)

    @property
    def registry(self) -> RoleRegistry:
        return type(self).role_registry()

    # ============================================================
    # PREDICATES
    # ============================================================

    def allow(self, *roles: str) -> list[str]:
        """Candidate roles for an operation."""
        return list(roles)

    def test_condition(self, role: str) -> bool:
        """
        Evaluate the predicate registered for a role.

        Raises:
            ConfigurationError: If no predicate is registered
        """
        predicate = self._conditions.get(role)
        if predicate is None:
            raise ConfigurationError(
                f"{type(self).__name__} has no condition for role '{role}'. "
                f"Decorate a method with @condition('{role}') or pass condition= to the Role"
            )
        if isinstance(predicate, str):
            return bool(getattr(self, predicate)())
        return bool(predicate(self))

    def query(self, name: str) -> Any:
        """
        Run an operation predicate by name.

        Raises:
            ConfigurationError: If the operation is not registered
        """
        attr_name = self._operations.get(name)
        if attr_name is None:
            raise ConfigurationError(
                f"{type(self).__name__} has no operation '{name}'. "
                f"Available: {sorted(self._operations)}"
            )
        return getattr(self, attr_name)()

    @operation
    def index(self) -> Any:
        return False

    @operation
    def show(self) -> Any:
        return False

    @operation
    def create(self) -> Any:
        return False

    @operation
    def update(self) -> Any:
        return False

    @operation
    def destroy(self) -> Any:
        return False

    @condition(GUEST)
    def is_guest(self) -> bool:
        return self.user is None

    # ============================================================
    # RESOLUTION
    # ============================================================

    def resolve_query(self, name: str) -> PermissionSet | bool:
        """Permissions for an operation, or the boolean it returned."""
        result = Evaluator(self).resolve(self.query(name))
        if isinstance(result, PermissionSet):
            return result.with_policy(type(self))
        return result

    def resolve_scope(self, name: str) -> Any:
        """Scope of the first satisfied role for an operation."""
        return ScopeSelector(self).resolve_scope(self.query(name))

    def resolve_as_association(self, roles: Sequence[str], actions: Sequence[str]) -> PermissionSet | None:
        """Permissions for roles handed down from a parent resource."""
        result = Evaluator(self).resolve_as_association(roles, actions)
        if result is None:
            return None
        return result.with_policy(type(self))


Policy._collect_declarations()
