"""Base model configuration for all Pydantic models."""

from pydantic import BaseModel, ConfigDict


class RealtimeBaseModel(BaseModel):
    """Base model with common configuration.

    Conventions:
    - All timestamps are ISO 8601 format with timezone (UTC preferred)
    - Field names are lowercase snake_case
    - Unknown keys coming from the transport are ignored
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
    )
