from enum import Enum
from pydantic import BaseModel, Field
from typing import Any


class EventType(str, Enum):
    ASSIGNMENT = "assignment"
    CONVERSION = "conversion"
    CLICK = "click"


class ConversionCreate(BaseModel):
    """Schema for POST /events/conversion."""
    experiment_id: int
    variant_id: int
    data: dict[str, Any] | None = Field(default_factory=dict, description="Flexible JSON for extra context.")


class ClickCreate(BaseModel):
    """Schema for POST /events/click."""
    experiment_id: int
    variant_id: int
    element: str = Field(..., description="Identifier of the clicked element, e.g. 'hero_cta'.")
    data: dict[str, Any] | None = Field(default_factory=dict)


class EventQueuedResponse(BaseModel):
    status: str = "success"
    task_id: str | None = None
