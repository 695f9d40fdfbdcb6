"""
Role and component registries.

RoleRegistry is the per-policy-class table of declared roles. It is built
once, then frozen; every request reads it without locking.

AuthRegistry lets schema providers register themselves by name and maps
resource types to the policy class that governs them:

    @AuthRegistry.schema_provider("my_orm")
    class MyOrmSchemaProvider(SchemaProvider):
        ...

    provider = AuthRegistry.get_schema_provider("my_orm")
    policy_class = AuthRegistry.policy_for(Post)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Callable, Type

from .config import settings
from .exceptions import ConfigurationError, NotFoundError
from .grants import GrantBuilder
from .interfaces import SELF, ResolvedGrant, Role, SchemaProvider, unique

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredRole:
    """What the registry keeps for one role."""
    role: Role
    grant: ResolvedGrant
    associated_as: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.role.name

    @property
    def scope(self) -> Callable[[Any], Any] | None:
        return self.role.scope


class RoleRegistry:
    """
    Table of role name -> (grant, scope, association aliases).

    Usage:
        registry = RoleRegistry(builder, owner="PostPolicy")
        registry.register(Role("reader", attributes={"show": ["title"]}))
        registry.freeze()

        entry = registry.lookup("reader")
    """

    def __init__(self, builder: GrantBuilder, owner: str = "policy"):
        self.builder = builder
        self.owner = owner
        self._roles: dict[str, RegisteredRole] = {}
        self._frozen = False

    @classmethod
    def build(cls, roles: Iterable[Role], builder: GrantBuilder, owner: str = "policy") -> "RoleRegistry":
        """Register every role and freeze."""
        registry = cls(builder, owner=owner)
        for role in roles:
            registry.register(role)
        registry.freeze()
        return registry

    # ============================================================
    # REGISTRATION
    # ============================================================

    def register(self, role: Role) -> RegisteredRole:
        """
        Expand and store a role declaration.

        Raises:
            ConfigurationError: If frozen, duplicated, or malformed
        """
        if self._frozen:
            raise ConfigurationError(f"Roles of {self.owner} are frozen, cannot register '{role.name}'")

        if role.name in self._roles:
            raise ConfigurationError(f"Role '{role.name}' is declared twice on {self.owner}")

        grant = self.builder.build_grant(role)
        entry = RegisteredRole(
            role=role,
            grant=grant,
            associated_as=MappingProxyType(self._normalize_aliases(role, grant)),
        )
        self._roles[role.name] = entry

        logger.debug(f"Registered role {role.name} on {self.owner}")
        return entry

    def freeze(self) -> None:
        self._roles = MappingProxyType(self._roles)  # type: ignore[assignment]
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _normalize_aliases(self, role: Role, grant: ResolvedGrant) -> dict[str, tuple[str, ...]]:
        """
        Normalize associated_as into association -> role names.

        Accepted shapes:
            "self"                          every granted association keeps the role name
            ["viewer", "self"]              every granted association
            {"comments": "viewer"}          one association
            {"comments": ["viewer", "self"]}
        """
        spec = role.associated_as
        if spec is None:
            return {}

        if isinstance(spec, Mapping):
            return {
                str(assoc): self._alias_names(role, value, assoc)
                for assoc, value in spec.items()
            }

        names = self._alias_names(role, spec, "*")
        granted = unique(name for names_ in grant.associations.values() for name in names_)
        return {assoc: names for assoc in granted}

    @staticmethod
    def _alias_names(role: Role, value: Any, assoc: str) -> tuple[str, ...]:
        if isinstance(value, str):
            value = [value]

        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            raise ConfigurationError(
                f"associated_as for role '{role.name}' ({assoc}) must be a role name, a list of "
                f"role names or 'self', got {value!r}"
            )

        return tuple(unique(role.name if v == SELF else v for v in value))

    # ============================================================
    # LOOKUP
    # ============================================================

    def lookup(self, name: str) -> RegisteredRole:
        """
        Get a registered role.

        Raises:
            ConfigurationError: If the role was never declared
        """
        entry = self._roles.get(name)
        if entry is None:
            raise ConfigurationError(
                f"Role '{name}' is not declared on {self.owner}. Available: {list(self._roles)}"
            )
        return entry

    def get(self, name: str) -> RegisteredRole | None:
        return self._roles.get(name)

    def aliases_for(self, name: str, association: str) -> tuple[str, ...] | None:
        """Explicit aliases of a role for an association, None if it has none."""
        entry = self._roles.get(name)
        if entry is None:
            return None
        return entry.associated_as.get(association)

    def names(self) -> list[str]:
        return list(self._roles)

    def __contains__(self, name: object) -> bool:
        return name in self._roles

    def __len__(self) -> int:
        return len(self._roles)


class AuthRegistry:
    """
    Central registry for schema providers and resource -> policy lookup.

    Components register themselves using decorators, policies register
    themselves when they declare a model.
    """

    _schema_providers: dict[str, Type[SchemaProvider]] = {}
    _policies: dict[Any, type] = {}

    # ============================================================
    # REGISTRATION DECORATORS
    # ============================================================

    @classmethod
    def schema_provider(cls, name: str) -> Callable[[Type[SchemaProvider]], Type[SchemaProvider]]:
        """
        Decorator to register a schema provider.

        Usage:
            @AuthRegistry.schema_provider("sqlalchemy")
            class SQLAlchemySchemaProvider(SchemaProvider):
                ...
        """
        def decorator(provider_class: Type[SchemaProvider]) -> Type[SchemaProvider]:
            cls._schema_providers[name] = provider_class
            return provider_class
        return decorator

    @classmethod
    def register_policy(cls, model: Any, policy_class: type) -> None:
        """Record the policy governing a resource type."""
        existing = cls._policies.get(model)
        if existing is not None and existing is not policy_class:
            logger.warning(
                f"Overwriting policy for {getattr(model, '__name__', model)}: "
                f"{existing.__name__} -> {policy_class.__name__}"
            )
        cls._policies[model] = policy_class

    # ============================================================
    # GETTERS
    # ============================================================

    @classmethod
    def get_schema_provider(cls, name: str, **kwargs: Any) -> SchemaProvider:
        """
        Get a schema provider by name.

        Raises:
            ConfigurationError: If provider not found
        """
        provider_class = cls._schema_providers.get(name)
        if not provider_class:
            available = list(cls._schema_providers.keys())
            raise ConfigurationError(
                f"Unknown schema provider: '{name}'. "
                f"Available: {available}"
            )
        return provider_class(**kwargs)

    @classmethod
    def policy_for(cls, model: Any) -> type:
        """
        Get the policy class for a resource type.

        Raises:
            NotFoundError: If no policy declares this model
        """
        policy_class = cls._policies.get(model)
        if policy_class is None:
            raise NotFoundError(
                f"No policy declares model {getattr(model, '__name__', model)!s}"
            )
        return policy_class

    # ============================================================
    # INTROSPECTION
    # ============================================================

    @classmethod
    def list_schema_providers(cls) -> list[str]:
        """List all registered schema provider names."""
        return list(cls._schema_providers.keys())

    @classmethod
    def has_schema_provider(cls, name: str) -> bool:
        return name in cls._schema_providers

    @classmethod
    def has_policy(cls, model: Any) -> bool:
        return model in cls._policies


@lru_cache
def get_default_schema_provider() -> SchemaProvider:
    """
    Get configured schema provider.

    Reads from FIELDROLES_SCHEMA_PROVIDER environment variable.
    Default: "sqlalchemy"
    """
    return AuthRegistry.get_schema_provider(settings.schema_provider)
