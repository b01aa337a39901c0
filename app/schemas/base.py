from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema for API and service values."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)
