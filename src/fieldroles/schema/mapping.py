"""
Mapping schema provider.

Schema is declared up front, which suits plain objects and tests:

    provider = MappingSchemaProvider({
        Post: ResourceSchema(
            fields=["id", "title", "body"],
            associations={"comments": Comment, "author": User},
        ),
    })
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import ConfigurationError
from ..interfaces import SchemaProvider
from ..registry import AuthRegistry


@dataclass
class ResourceSchema:
    """Fields and associations (name -> target type) of one resource type."""
    fields: list[str] = field(default_factory=list)
    associations: dict[str, Any] = field(default_factory=dict)


@AuthRegistry.schema_provider("mapping")
class MappingSchemaProvider(SchemaProvider):
    """
    Schema provider backed by an explicit table.

    Configuration:
        schemas: resource type -> ResourceSchema (or a plain dict with
            "fields" and "associations" keys)
    """

    def __init__(self, schemas: Mapping[Any, Any] | None = None, **kwargs: Any):
        self.schemas: dict[Any, ResourceSchema] = {}
        for resource_type, schema in (schemas or {}).items():
            self.add(resource_type, schema)

    def add(self, resource_type: Any, schema: Any) -> None:
        if isinstance(schema, Mapping):
            schema = ResourceSchema(
                fields=list(schema.get("fields", [])),
                associations=dict(schema.get("associations", {})),
            )
        self.schemas[resource_type] = schema

    def full_field_list(self, resource_type: Any) -> list[str]:
        return list(self._schema(resource_type).fields)

    def full_association_list(self, resource_type: Any) -> list[str]:
        return list(self._schema(resource_type).associations)

    def resolve_association_type(self, resource_type: Any, name: str) -> Any | None:
        schema = self.schemas.get(resource_type)
        if schema is None:
            return None
        return schema.associations.get(name)

    def _schema(self, resource_type: Any) -> ResourceSchema:
        schema = self.schemas.get(resource_type)
        if schema is None:
            raise ConfigurationError(
                f"No schema declared for {getattr(resource_type, '__name__', resource_type)!s}"
            )
        return schema
