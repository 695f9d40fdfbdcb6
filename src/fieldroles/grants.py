"""
Grant expansion.

Turns one role's raw attribute/association declaration into a concrete
action -> field tuple map:

    "show_all"                  -> {"show": all - restricted show}
    "save_all"                  -> show, create and update, each restricted
    {"save": ["title"]}         -> {"create": ["title"], "update": ["title"]}
    {"update": "all"}           -> {"update": all - restricted update}
    {"show": ["all_minus", "x"]}-> {"show": all - ["x"]}   (no restriction applied)

Literal field lists are taken verbatim; only "all" and wildcard
expansions have restricted fields subtracted.
"""

from collections.abc import Mapping
from typing import Any

from .exceptions import ConfigurationError
from .interfaces import (
    ALL,
    ALL_MINUS,
    CREATE,
    DECLARABLE_ACTIONS,
    GRANT_TYPES,
    SAVE,
    UPDATE,
    WILDCARDS,
    ResolvedGrant,
    Restrictions,
    Role,
    SchemaProvider,
    unique,
)


class GrantBuilder:
    """
    Expands role declarations for a single resource type.

    Full field/association lists are fetched from the schema provider only
    when a declaration needs them, and at most once per grant type.

    Usage:
        builder = GrantBuilder(Post, provider, Restrictions.defaults())
        grant = builder.build_grant(Role("editor", attributes="save_all"))
    """

    def __init__(
        self,
        resource_type: Any,
        schema_provider: SchemaProvider | None,
        restrictions: Restrictions,
        owner: str = "policy",
    ):
        self.resource_type = resource_type
        self.schema_provider = schema_provider
        self.restrictions = restrictions
        self.owner = owner
        self._full: dict[str, list[str]] = {}

    def build_grant(self, role: Role) -> ResolvedGrant:
        """Expand both declarations of a role."""
        return ResolvedGrant(
            attributes=self.build(role.attributes, "attributes", role.name),
            associations=self.build(role.associations, "associations", role.name),
        )

    def build(self, spec: Any, type_: str, role_name: str = "?") -> dict[str, tuple[str, ...]]:
        """
        Expand one declaration.

        Args:
            spec: None, a wildcard token, or an action mapping
            type_: "attributes" or "associations"
            role_name: Used in error messages only

        Raises:
            ConfigurationError: On unknown tokens/actions, bad value shapes,
                or when a wildcard needs a schema that cannot be discovered
        """
        if type_ not in GRANT_TYPES:
            raise ConfigurationError(f"Unknown grant type: {type_!r}")

        if spec is None:
            return {}

        if isinstance(spec, str):
            return self._expand_wildcard(spec, type_, role_name)

        if not isinstance(spec, Mapping):
            raise ConfigurationError(
                f"Permitted {type_} for role '{role_name}', if declared, must be a wildcard or a "
                f"mapping, got {spec!r}"
            )

        parsed: dict[str, list[str]] = {}
        for key, value in spec.items():
            if key not in DECLARABLE_ACTIONS:
                raise ConfigurationError(
                    f"Permitted {type_} keys for role '{role_name}' can only be "
                    f"{list(DECLARABLE_ACTIONS)}, got {key!r}"
                )

            actions = (CREATE, UPDATE) if key == SAVE else (key,)
            for action in actions:
                fields = self._expand_value(value, action, type_, role_name, key)
                parsed[action] = unique([*parsed.get(action, []), *fields])

        return {action: tuple(fields) for action, fields in parsed.items()}

    # ============================================================
    # EXPANSION
    # ============================================================

    def _expand_wildcard(self, token: str, type_: str, role_name: str) -> dict[str, tuple[str, ...]]:
        if token not in WILDCARDS:
            raise ConfigurationError(
                f"Permitted options for implicit declaration are {list(WILDCARDS)}, "
                f"got {token!r} for role '{role_name}'"
            )
        return {action: tuple(self.restricted_all(action, type_)) for action in WILDCARDS[token]}

    def _expand_value(
        self,
        value: Any,
        action: str,
        type_: str,
        role_name: str,
        key: str,
    ) -> list[str]:
        if value == ALL:
            return self.restricted_all(action, type_)

        if isinstance(value, (list, tuple)):
            if value and value[0] == ALL_MINUS:
                excluded = set(self._check_names(value[1:], role_name, key))
                return [name for name in self.full_list(type_) if name not in excluded]
            return unique(self._check_names(value, role_name, key))

        raise ConfigurationError(
            f"Expected 'all', ['all_minus', ...] or a list of names for {key} {type_} "
            f"of role '{role_name}', got {value!r} of kind {type(value).__name__}"
        )

    def restricted_all(self, action: str, type_: str) -> list[str]:
        """Every field of the type, minus the restricted ones for the action."""
        restricted = set(self.restrictions.fields_for(action, type_))
        return [name for name in self.full_list(type_) if name not in restricted]

    def full_list(self, type_: str) -> list[str]:
        if type_ not in self._full:
            if self.resource_type is None or self.schema_provider is None:
                raise ConfigurationError(
                    f"{self.owner} does not declare a model with a discoverable schema, "
                    f"implicit {type_} declarations are not allowed"
                )
            self._full[type_] = unique(self.schema_provider.full_list(self.resource_type, type_))
        return self._full[type_]

    @staticmethod
    def _check_names(values: Any, role_name: str, key: str) -> list[str]:
        for name in values:
            if not isinstance(name, str):
                raise ConfigurationError(
                    f"Expected field names as strings for {key} of role '{role_name}', got {name!r}"
                )
        return list(values)
