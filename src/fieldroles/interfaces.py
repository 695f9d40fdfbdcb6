"""
Authorization interfaces - Core data model and abstractions.

These define the values that flow through a resolution and the contracts
external collaborators (schema discovery) must follow. Resolution code
depends ONLY on these, never on a concrete ORM.

Lifecycle:
- Role / ResolvedGrant: created once per policy class, shared, read-only
- PermissionSet / AssociationPermissionTable: created per request, owned by the caller
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from .config import settings
from .exceptions import ConfigurationError


# ============================================================
# VOCABULARY
# ============================================================

SHOW = "show"
CREATE = "create"
UPDATE = "update"
SAVE = "save"

# Actions a grant can carry. "save" is shorthand for create + update.
ACTIONS = (SHOW, CREATE, UPDATE)
DECLARABLE_ACTIONS = (SHOW, CREATE, UPDATE, SAVE)

ATTRIBUTES = "attributes"
ASSOCIATIONS = "associations"
GRANT_TYPES = (ATTRIBUTES, ASSOCIATIONS)

ALL = "all"
ALL_MINUS = "all_minus"
SELF = "self"
GUEST = "guest"

# Implicit declarations and the actions they expand to
WILDCARDS: dict[str, tuple[str, ...]] = {
    "show_all": (SHOW,),
    "save_all": (SHOW, CREATE, UPDATE),
    "create_all": (SHOW, CREATE),
    "update_all": (SHOW, UPDATE),
}


def unique(values: Iterable[Any]) -> list[Any]:
    """Drop duplicates, keeping first-seen order."""
    return list(dict.fromkeys(values))


# ============================================================
# ROLE DECLARATION
# ============================================================

@dataclass(frozen=True)
class Role:
    """
    Declaration of one role on a policy class.

    Attributes:
        name: Role identifier, unique within a policy class
        attributes: Wildcard token ("show_all", ...) or {action: fields | "all" | ["all_minus", ...]}
        associations: Same shape as attributes, for associations
        scope: Callable taking the policy instance, evaluated by scope resolution
        associated_as: Roles this role is presented as on associated resources
        condition: Optional predicate taking the policy instance

    Examples:
        Role("owner", attributes="save_all", associations={"show": ["comments"]})
        Role("reader", attributes={"show": ["title", "body"]}, associated_as={"comments": "reader"})
    """
    name: str
    attributes: Any = None
    associations: Any = None
    scope: Callable[[Any], Any] | None = None
    associated_as: Any = None
    condition: Callable[[Any], bool] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError(f"Expected a non-empty string for role name, got {self.name!r}")

        for type_ in GRANT_TYPES:
            spec = getattr(self, type_)
            if spec is not None and not isinstance(spec, (str, Mapping)):
                raise ConfigurationError(
                    f"Permitted {type_} for role '{self.name}', if declared, must be a wildcard "
                    f"or a mapping like {{'show': ['id', 'name'], 'update': 'all'}}, got {spec!r}"
                )

        if self.scope is not None and not callable(self.scope):
            raise ConfigurationError(f"Scope for role '{self.name}' must be callable")

        if self.condition is not None and not callable(self.condition):
            raise ConfigurationError(f"Condition for role '{self.name}' must be callable")


# ============================================================
# RESOLVED GRANT
# ============================================================

@dataclass(frozen=True)
class ResolvedGrant:
    """
    Expanded, restriction-applied output of one role.

    Both maps are action -> ordered unique field tuple.
    """
    attributes: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    associations: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def filtered(self, actions: Iterable[str]) -> "ResolvedGrant":
        """Keep only the given actions."""
        wanted = set(actions)
        return ResolvedGrant(
            attributes={k: v for k, v in self.attributes.items() if k in wanted},
            associations={k: v for k, v in self.associations.items() if k in wanted},
        )

    def is_empty(self) -> bool:
        return not any(self.attributes.values()) and not any(self.associations.values())


# ============================================================
# PERMISSION SET
# ============================================================

@dataclass
class RoleSet:
    """Roles a permission set was built from."""
    for_current_model: list[str] = field(default_factory=list)
    for_associated_models: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "for_current_model": list(self.for_current_model),
            "for_associated_models": {k: list(v) for k, v in self.for_associated_models.items()},
        }


@dataclass
class PermissionSet:
    """
    Result of a successful resolution, returned to the caller.

    Attributes:
        attributes: action -> permitted attribute names
        associations: action -> permitted association names
        roles: roles satisfied on this resource and their aliases for associations
        policy: policy class that produced it (not part of equality)
    """
    attributes: dict[str, list[str]] = field(default_factory=dict)
    associations: dict[str, list[str]] = field(default_factory=dict)
    roles: RoleSet = field(default_factory=RoleSet)
    policy: type | None = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attributes": {k: list(v) for k, v in self.attributes.items()},
            "associations": {k: list(v) for k, v in self.associations.items()},
            "roles": self.roles.to_dict(),
        }

    def actions_for_association(self, name: str) -> list[str]:
        """Actions under which the association is granted, in grant order."""
        return [action for action, names in self.associations.items() if name in names]

    def granted_associations(self) -> dict[str, list[str]]:
        """Association name -> actions it is granted for."""
        table: dict[str, list[str]] = {}
        for action, names in self.associations.items():
            for name in names:
                table.setdefault(name, [])
                if action not in table[name]:
                    table[name].append(action)
        return table

    def with_policy(self, policy: type | None) -> "PermissionSet":
        return replace(self, policy=policy)


# ============================================================
# ASSOCIATION PERMISSION TABLE
# ============================================================

# A requested association: "name" or {"name": [child nodes]}
AssociationNode = str | dict[str, list[Any]]


@dataclass
class AssociationPermissionTable(Mapping[str, PermissionSet]):
    """
    Permissions for every association that was requested and authorized.

    Unauthorized associations are absent, not present as empty entries.

    The mapping is flat and filled breadth-first. When a name is requested
    at more than one depth, the shallowest occurrence owns the entry; the
    deeper grants stay reachable through the tree.

    Attributes:
        entries: association name -> PermissionSet
        permitted: action -> request-shaped nodes that are granted for that action
        tree: authorized request nodes, each carrying its own PermissionSet
    """
    entries: dict[str, PermissionSet] = field(default_factory=dict)
    permitted: dict[str, list[AssociationNode]] = field(default_factory=dict)
    tree: list[Any] = field(default_factory=list)

    def __getitem__(self, key: str) -> PermissionSet:
        return self.entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {name: perms.to_dict() for name, perms in self.entries.items()}


# ============================================================
# RESTRICTIONS
# ============================================================

@dataclass(frozen=True)
class Restrictions:
    """
    Fields subtracted from wildcard expansions, per action and grant type.

    Instances are immutable; subclasses compose from their parent:

        class SecretPolicy(AppPolicy):
            restrictions = AppPolicy.restrictions.override(
                show_attributes=["password_digest"],
            ).extend(create_attributes=["owner_id"])
    """
    show_attributes: tuple[str, ...] = ()
    create_attributes: tuple[str, ...] = ()
    update_attributes: tuple[str, ...] = ()
    show_associations: tuple[str, ...] = ()
    create_associations: tuple[str, ...] = ()
    update_associations: tuple[str, ...] = ()

    @classmethod
    def defaults(cls) -> "Restrictions":
        """Identity/timestamp fields are never granted by write wildcards."""

        write = tuple(settings.restricted_write_attributes)
        return cls(create_attributes=write, update_attributes=write)

    def fields_for(self, action: str, type_: str) -> tuple[str, ...]:
        return getattr(self, self._key(action, type_))

    def override(self, **fields: Iterable[str]) -> "Restrictions":
        """Replace the listed entries."""
        self._check_keys(fields)
        return replace(self, **{k: tuple(v) for k, v in fields.items()})

    def extend(self, **fields: Iterable[str]) -> "Restrictions":
        """Add to the listed entries."""
        self._check_keys(fields)
        return replace(
            self,
            **{k: tuple(unique([*getattr(self, k), *v])) for k, v in fields.items()},
        )

    @staticmethod
    def _key(action: str, type_: str) -> str:
        if action not in ACTIONS or type_ not in GRANT_TYPES:
            raise ConfigurationError(f"No restriction entry for {action} {type_}")
        return f"{action}_{type_}"

    def _check_keys(self, fields: Mapping[str, Any]) -> None:
        valid = {f"{a}_{t}" for a in ACTIONS for t in GRANT_TYPES}
        unknown = set(fields) - valid
        if unknown:
            raise ConfigurationError(
                f"Unknown restriction entries: {sorted(unknown)}. Available: {sorted(valid)}"
            )


# ============================================================
# SCHEMA PROVIDER
# ============================================================

class SchemaProvider(ABC):
    """
    Abstract schema discovery interface.

    Answers "what fields and associations does this resource type have"
    so wildcards can be expanded, and "what type sits behind this
    association" so nested policies can be found.

    Implementations:
    - MappingSchemaProvider: explicit table (default for tests / plain objects)
    - SQLAlchemySchemaProvider: introspects mapped classes
    """

    @abstractmethod
    def full_field_list(self, resource_type: Any) -> list[str]:
        """
        All attribute names of a resource type.

        Raises:
            ConfigurationError: If the type has no discoverable schema
        """
        pass

    @abstractmethod
    def full_association_list(self, resource_type: Any) -> list[str]:
        """
        All association names of a resource type.

        Raises:
            ConfigurationError: If the type has no discoverable schema
        """
        pass

    @abstractmethod
    def resolve_association_type(self, resource_type: Any, name: str) -> Any | None:
        """
        Resource type behind an association, or None if unknown.
        """
        pass

    def full_list(self, resource_type: Any, type_: str) -> list[str]:
        """Dispatch on grant type."""
        if type_ == ATTRIBUTES:
            return self.full_field_list(resource_type)
        if type_ == ASSOCIATIONS:
            return self.full_association_list(resource_type)
        raise ConfigurationError(f"Unknown grant type: {type_!r}")
