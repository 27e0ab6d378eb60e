from pydantic import BaseModel, Field, model_validator
import datetime


class DailyCounts(BaseModel):
    # visitors are bucketed by assignment day and conversions by event day,
    # so a day can hold more conversions than new visitors
    date: datetime.date
    visitors: int = Field(default=0, ge=0)
    conversions: int = Field(default=0, ge=0)


class VariantCounts(BaseModel):
    """Aggregated visitor/conversion counts for one variant."""
    variant_id: int
    name: str = ""
    is_control: bool = False
    visitors: int = Field(default=0, ge=0)
    conversions: int = Field(default=0, ge=0)
    daily: list[DailyCounts] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_conversions(self):
        if self.conversions > self.visitors:
            raise ValueError(f"variant {self.variant_id}: conversions cannot exceed visitors")
        return self


class VariantResult(BaseModel):
    """Detailed statistics for a single variant."""
    variant_id: int
    visitors: int
    conversions: int
    conversion_rate: float  # conversions / visitors * 100
    confidence_interval: tuple[float, float]  # (lower, upper) in percentage points
    uplift: float  # relative to control, in percent
    p_value: float


class ExperimentResults(BaseModel):
    """Schema returned by GET /experiments/{id}/results."""
    variant_results: list[VariantResult]
    winner: int | None = None
    confidence: float = 0.0
    improvement_percentage: float = 0.0
    statistical_significance: bool = False
    total_visitors: int = 0
    total_conversions: int = 0
    duration_days: int = 0
    required_sample_size: int | None = None


class TimelineEntry(BaseModel):
    date: datetime.date
    visitors: int
    conversions: int
