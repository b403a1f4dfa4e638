"""Base Pydantic models for configuration structures.

This module defines the foundational model classes used by the config
schema and by environment-driven settings. It enforces immutability so
that a resolved configuration stays the same for the whole run.
"""

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaModel(BaseModel):
    """Base immutable model for config sections.

    Design principles enforced by this model:
        - Immutability: sections can not be modified after validation.
        - Strict schema validation: unknown or extra fields are rejected
          to avoid silent errors caused by typos in config files.

    Fields whose names clash with Python keywords declare an alias and
    can be populated by either name.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
        populate_by_name=True,
    )


class SettingsModel(BaseSettings):
    """Base immutable model for environment-driven settings.

    Design principles enforced by this model:
        - Immutability: resolved settings can not be modified after creation.
        - Tolerant schema handling: unknown variables are ignored, so the
          surrounding environment may contain unrelated values.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )
