from typing import Sequence

from models.experiments import VariantConfig
from services.errors import AllocationError

MAX_TOTAL_PERCENTAGE = 100


def allocate(variants: Sequence[VariantConfig], bucket: int) -> VariantConfig | None:
    """
    Resolve a bucket in [0, 100) to a variant using cumulative weights.

    Variants are walked in their defined order; the first variant whose
    cumulative upper bound exceeds the bucket wins. A bucket that falls in the
    unallocated remainder (variants summing to less than 100) returns None,
    which means the experiment does not apply to this visitor.
    """
    cumulative = 0.0
    for variant in variants:
        cumulative += variant.traffic_percentage
        if bucket < cumulative:
            return variant
    return None


def validate_allocation(variants: Sequence) -> None:
    """Raise AllocationError unless the split is usable: one control, total <= 100."""
    if not variants:
        raise AllocationError("Experiment must have at least one variant.")

    for variant in variants:
        if not 0 <= variant.traffic_percentage <= MAX_TOTAL_PERCENTAGE:
            raise AllocationError(
                f"Variant '{variant.name}' traffic percentage must be between 0 and 100."
            )

    total = sum(v.traffic_percentage for v in variants)
    if total > MAX_TOTAL_PERCENTAGE:
        raise AllocationError(
            f"Total traffic allocation cannot exceed 100%. Current total: {total:g}"
        )

    controls = [v for v in variants if v.is_control]
    if len(controls) != 1:
        raise AllocationError(
            f"Experiment must have exactly 1 control variant, found {len(controls)}."
        )
