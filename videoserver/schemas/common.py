"""Common schemas used across multiple endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Response model for errors."""
    error: str
    code: str


class HealthResponse(BaseModel):
    """Response model for the health endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    status: str
    service: str
    object_store: str = Field(alias="objectStore")
