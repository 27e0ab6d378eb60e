from typing import Sequence

from models.results import ExperimentResults, VariantCounts, VariantResult
from services.stats import (
    ApproximateNormal,
    NormalDistribution,
    required_sample_size,
    two_proportion_p_value,
    wald_interval,
)
import logging

logger = logging.getLogger(__name__)

SIGNIFICANCE_LEVEL = 0.05
DECIMALS = 2


def _rate(conversions: int, visitors: int) -> float:
    return conversions / visitors * 100 if visitors > 0 else 0.0


def _uplift(rate: float, control_rate: float) -> float:
    # undefined against a zero control rate, reported as 0
    if control_rate == 0:
        return 0.0
    return (rate - control_rate) / control_rate * 100


def _duration_days(variants: Sequence[VariantCounts]) -> int:
    days = {entry.date for v in variants for entry in v.daily}
    if not days:
        return 0
    return (max(days) - min(days)).days + 1


def compute_results(
    variants: Sequence[VariantCounts],
    distribution: NormalDistribution | None = None,
    minimum_detectable_effect: float | None = None,
) -> ExperimentResults | None:
    """
    Compare every variant against the control.

    Returns None unless exactly one variant is flagged as control; callers
    treat that as "nothing to report yet", not as a failure. A winner is the
    non-control variant with the largest positive uplift among those whose
    p-value is below 0.05.
    """
    controls = [v for v in variants if v.is_control]
    if len(controls) != 1:
        logger.info("compute_results: expected exactly one control, found %d", len(controls))
        return None

    distribution = distribution or ApproximateNormal()
    control = controls[0]
    control_rate = _rate(control.conversions, control.visitors)

    variant_results: list[VariantResult] = []
    winner: VariantResult | None = None
    winner_uplift = 0.0

    for counts in variants:
        rate = _rate(counts.conversions, counts.visitors)
        lower, upper = wald_interval(counts.conversions, counts.visitors)

        if counts is control:
            uplift = 0.0
            p_value = 1.0
        else:
            uplift = _uplift(rate, control_rate)
            p_value = two_proportion_p_value(
                control.conversions, control.visitors,
                counts.conversions, counts.visitors,
                distribution,
            )

        result = VariantResult(
            variant_id=counts.variant_id,
            visitors=counts.visitors,
            conversions=counts.conversions,
            conversion_rate=round(rate, DECIMALS),
            confidence_interval=(round(lower, DECIMALS), round(upper, DECIMALS)),
            uplift=round(uplift, DECIMALS),
            p_value=p_value,
        )
        variant_results.append(result)

        if counts is not control and p_value < SIGNIFICANCE_LEVEL and uplift > winner_uplift:
            winner = result
            winner_uplift = uplift

    sample_size = None
    if minimum_detectable_effect and 0 < control.visitors and 0 < control_rate < 100:
        try:
            sample_size = required_sample_size(
                control_rate / 100, minimum_detectable_effect, distribution
            )
        except ValueError as e:
            logger.info("no sample size for mde=%s: %s", minimum_detectable_effect, e)

    summary = ExperimentResults(
        variant_results=variant_results,
        total_visitors=sum(v.visitors for v in variants),
        total_conversions=sum(v.conversions for v in variants),
        duration_days=_duration_days(variants),
        required_sample_size=sample_size,
    )

    if winner is not None:
        summary.winner = winner.variant_id
        summary.statistical_significance = True
        summary.confidence = round((1 - winner.p_value) * 100, DECIMALS)
        summary.improvement_percentage = winner.uplift
        logger.info("winner variant %d: uplift %.2f%%, p=%.4f",
                    winner.variant_id, winner.uplift, winner.p_value)

    return summary
