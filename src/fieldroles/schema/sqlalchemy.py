"""
SQLAlchemy schema provider - DEFAULT implementation.

Reads columns and relationships straight from the mapper, so
"show_all" on a mapped class grants every column attribute.

Usage:
    # This is used automatically when no schema provider is configured
    # Or explicitly:
    FIELDROLES_SCHEMA_PROVIDER=sqlalchemy
"""

from typing import Any

from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import Mapper

from ..exceptions import ConfigurationError
from ..interfaces import SchemaProvider
from ..registry import AuthRegistry


@AuthRegistry.schema_provider("sqlalchemy")
class SQLAlchemySchemaProvider(SchemaProvider):
    """
    Schema provider for SQLAlchemy mapped classes.

    Fields are column attribute keys (the Python attribute names, which
    may differ from column names). Associations are relationship keys.
    """

    def __init__(self, **kwargs: Any):
        pass

    def full_field_list(self, resource_type: Any) -> list[str]:
        return [attr.key for attr in self._mapper(resource_type).column_attrs]

    def full_association_list(self, resource_type: Any) -> list[str]:
        return [rel.key for rel in self._mapper(resource_type).relationships]

    def resolve_association_type(self, resource_type: Any, name: str) -> Any | None:
        try:
            mapper = self._mapper(resource_type)
        except ConfigurationError:
            return None

        relationship = mapper.relationships.get(name)
        if relationship is None:
            return None
        return relationship.mapper.class_

    @staticmethod
    def _mapper(resource_type: Any) -> Mapper:
        try:
            mapper = inspect(resource_type)
        except NoInspectionAvailable:
            raise ConfigurationError(
                f"{getattr(resource_type, '__name__', resource_type)!s} is not a mapped class, "
                "its schema cannot be discovered"
            )

        if not isinstance(mapper, Mapper):
            raise ConfigurationError(f"{resource_type!r} is not a mapped class")
        return mapper
