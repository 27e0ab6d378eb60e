from enum import Enum
from typing import Any
from pydantic import BaseModel, Field
from datetime import datetime


class ExperimentStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


# --- Targeting ---

class TargetAudience(BaseModel):
    """
    Audience rules for an experiment. A missing or empty list means
    "no restriction on that axis".
    """
    geo: list[str] | None = Field(default=None, description="Country codes, e.g. ['MX', 'US'].")
    device: list[str] | None = Field(default=None, description="Device types: mobile, tablet, desktop.")
    language: list[str] | None = None
    referrer: list[str] | None = Field(default=None, description="Substrings matched against the referrer.")
    utm_source: list[str] | None = None


class VisitorContext(BaseModel):
    """What the HTTP layer knows about the visitor. Every field is optional."""
    country: str | None = None
    device: str | None = None
    language: str | None = None
    referrer: str | None = None
    utm_source: str | None = Field(default=None, alias="utmSource")

    class Config:
        populate_by_name = True


# --- Catalog snapshot consumed by the assignment engine ---

class VariantConfig(BaseModel):
    id: int
    name: str
    is_control: bool = False
    traffic_percentage: float = Field(..., ge=0, le=100)
    components: list[dict[str, Any]] = Field(default_factory=list)
    theme_overrides: dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True


class ExperimentConfig(BaseModel):
    id: int
    name: str
    status: ExperimentStatus = ExperimentStatus.DRAFT
    traffic_percentage: float = Field(default=100, ge=0, le=100)
    target_audience: TargetAudience | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    created_at: datetime | None = None
    variants: list[VariantConfig] = Field(default_factory=list)

    class Config:
        from_attributes = True


# --- Assignment ---

class VisitorAssignment(BaseModel):
    experiment_id: int
    variant_id: int
    assigned_at: datetime


class Evaluation(BaseModel):
    """The variant a visitor sees, returned by POST /evaluate."""
    experiment_id: int
    variant_id: int
    variant_name: str
    components: list[dict[str, Any]] = Field(default_factory=list)
    theme_overrides: dict[str, Any] = Field(default_factory=dict)
    is_new: bool = Field(default=False, description="False when a prior assignment was returned.")
    assignment: VisitorAssignment


# --- Pydantic Models for Requests/Responses ---

class VariantCreate(BaseModel):
    """Defines a variant and its traffic share."""
    name: str = Field(..., description="Variant name, e.g. 'Control' or 'Variant A'.")
    description: str | None = None
    is_control: bool = False
    traffic_percentage: float = Field(..., ge=0, le=100, description="Traffic percentage (e.g., 50).")
    components: list[dict[str, Any]] = Field(default_factory=list)
    theme_overrides: dict[str, Any] = Field(default_factory=dict)


class ExperimentCreate(BaseModel):
    """Schema for creating a new experiment via POST /experiments."""
    name: str
    description: str | None = None
    hypothesis: str | None = None
    primary_metric: str = "signup_rate"
    status: ExperimentStatus = ExperimentStatus.DRAFT
    traffic_percentage: float = Field(default=100, ge=0, le=100)
    target_audience: TargetAudience | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    variants: list[VariantCreate]


class VariantResponse(BaseModel):
    id: int
    name: str
    is_control: bool
    traffic_percentage: float

    class Config:
        from_attributes = True


class ExperimentResponse(BaseModel):
    """Schema for the response after creating or updating an experiment."""
    id: int
    name: str
    status: ExperimentStatus
    traffic_percentage: float
    created_at: datetime
    variants: list[VariantResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True


class StatusUpdate(BaseModel):
    status: ExperimentStatus
