"""
Library configuration using Pydantic Settings.

Environment variables use the FIELDROLES_ prefix, e.g.:

    FIELDROLES_SCHEMA_PROVIDER=mapping
    FIELDROLES_MAX_ASSOCIATION_DEPTH=4
"""

from functools import lru_cache
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthSettings(BaseSettings):
    """Authorization resolver configuration."""

    model_config = SettingsConfigDict(env_prefix="FIELDROLES_")

    schema_provider: str = Field(
        default="sqlalchemy",
        description="Registered schema provider used when a policy declares none",
    )

    # Subtracted from wildcard create/update attribute expansions
    restricted_write_attributes: list[str] = Field(
        default_factory=lambda: ["id", "created_at", "updated_at"],
        description="Attributes never granted by create/update wildcards",
    )

    max_association_depth: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Deepest association request that will be traversed",
    )
    nested_attributes_suffix: str = Field(
        default="_attributes",
        description="Suffix for nested write keys, e.g. posts_attributes",
    )
    log_denials: bool = Field(default=True, description="Log every denied resolution")

    @field_validator("schema_provider")
    @classmethod
    def validate_schema_provider(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("schema_provider must not be empty")
        return v


@lru_cache
def get_settings() -> AuthSettings:
    """Get cached settings instance."""
    return AuthSettings()


# Shorthand
settings = get_settings()
