"""
Schema providers for wildcard expansion and association lookup.

Available providers:
- mapping: explicit resource -> fields/associations table
- sqlalchemy: introspects mapped classes (default)
"""

from .mapping import MappingSchemaProvider, ResourceSchema
from .sqlalchemy import SQLAlchemySchemaProvider

__all__ = ["MappingSchemaProvider", "ResourceSchema", "SQLAlchemySchemaProvider"]
