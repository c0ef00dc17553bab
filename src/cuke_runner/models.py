"""Base Pydantic models for engine elements.

This module defines the foundational model classes used by all document,
spec, result and event structures. It enforces immutability and strict
schema validation to guarantee that expanded scenarios are deterministic,
explicit, and safe to execute concurrently.
"""

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaModel(BaseModel):
    """Base immutable model for all engine elements.

    Design principles enforced by this model:
        - Immutability: documents, specs and results cannot be modified
          after creation. This ensures a `ScenarioSpec` never mutates
          after outline expansion and results can be shared with
          formatters running in any task.
        - Strict schema validation: unknown or extra fields are rejected
          to avoid silent errors caused by typos in input documents.

    All engine models must inherit from this class.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
    )


class SettingsModel(BaseSettings):
    """Base immutable model for runtime settings.

    Design principles enforced by this model:
        - Immutability: resolved settings cannot be modified after creation.
          This guarantees consistent behavior during a run.
        - Tolerant schema handling: unknown or extra fields are ignored.
          This allows the surrounding environment to contain unrelated
          variables without breaking configuration resolution.

    All runtime settings models must inherit from this class.
    """

    model_config = SettingsConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='ignore',
    )
