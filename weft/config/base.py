"""Base class for weft configuration models."""

from pydantic import BaseModel, ConfigDict


class WeftBaseConfig(BaseModel):
    """Shared pydantic settings: unknown keys are rejected, assignments are validated."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)
