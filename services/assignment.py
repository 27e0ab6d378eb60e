"""
Visitor assignment.

For each candidate experiment, in the order supplied by the caller (newest
first), the visitor ends up in one of these states:

    PRIOR_ASSIGNMENT      a stored assignment exists, it is returned as is
    NOT_TARGETED          the audience rules exclude the visitor
    OUTSIDE_TRAFFIC_GATE  hash(visitor-experiment) >= experiment traffic %
    UNALLOCATED           hash(visitor-experiment-variant) falls past the variants' total
    ALLOCATED             a new assignment is produced

The first experiment that yields an assignment wins. Experiments are never
combined: a visitor sees at most one landing-page experiment per evaluation.
This is a product limitation, not a technical one.

Nothing here touches storage. The caller supplies prior assignments and is
responsible for persisting new ones and emitting exactly one "assignment"
event per new assignment.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Mapping

from models.experiments import (
    Evaluation,
    ExperimentConfig,
    ExperimentStatus,
    VariantConfig,
    VisitorAssignment,
    VisitorContext,
)
from services import allocation, hashing, targeting
import logging

logger = logging.getLogger(__name__)

PriorAssignmentLookup = Callable[[str, int], VisitorAssignment | None]


class Outcome(str, Enum):
    PRIOR_ASSIGNMENT = "prior_assignment"
    NOT_TARGETED = "not_targeted"
    OUTSIDE_TRAFFIC_GATE = "outside_traffic_gate"
    UNALLOCATED = "unallocated"
    ALLOCATED = "allocated"


def lookup_from_mapping(assignments: Mapping[int, VisitorAssignment]) -> PriorAssignmentLookup:
    """Adapt a {experiment_id: assignment} mapping (e.g. a decoded cookie) to a lookup."""
    def lookup(visitor_id: str, experiment_id: int) -> VisitorAssignment | None:
        return assignments.get(experiment_id)
    return lookup


def _no_prior(visitor_id: str, experiment_id: int) -> None:
    return None


def _evaluation(experiment: ExperimentConfig, variant: VariantConfig,
                assignment: VisitorAssignment, is_new: bool) -> Evaluation:
    return Evaluation(
        experiment_id=experiment.id,
        variant_id=variant.id,
        variant_name=variant.name,
        components=variant.components,
        theme_overrides=variant.theme_overrides,
        is_new=is_new,
        assignment=assignment,
    )


def evaluate_experiment(
    experiment: ExperimentConfig,
    visitor_id: str,
    visitor_context: VisitorContext | None,
    prior: VisitorAssignment | None = None,
    now: datetime | None = None,
) -> tuple[Outcome, Evaluation | None]:
    """Run one experiment through the assignment states."""
    if prior is not None:
        variant = next((v for v in experiment.variants if v.id == prior.variant_id), None)
        if variant is not None:
            return Outcome.PRIOR_ASSIGNMENT, _evaluation(experiment, variant, prior, is_new=False)
        # the stored variant was removed from the experiment
        logger.warning("Stale assignment for visitor %s on EID %d: variant %d no longer exists.",
                       visitor_id, experiment.id, prior.variant_id)

    if not targeting.matches(experiment.target_audience, visitor_context):
        return Outcome.NOT_TARGETED, None

    gate_bucket = hashing.hash_to_bucket(hashing.experiment_key(visitor_id, experiment.id))
    if gate_bucket >= experiment.traffic_percentage:
        return Outcome.OUTSIDE_TRAFFIC_GATE, None

    variant_bucket = hashing.hash_to_bucket(hashing.variant_key(visitor_id, experiment.id))
    variant = allocation.allocate(experiment.variants, variant_bucket)
    if variant is None:
        return Outcome.UNALLOCATED, None

    assignment = VisitorAssignment(
        experiment_id=experiment.id,
        variant_id=variant.id,
        assigned_at=now or datetime.now(timezone.utc),
    )
    return Outcome.ALLOCATED, _evaluation(experiment, variant, assignment, is_new=True)


def evaluate(
    experiments: Iterable[ExperimentConfig],
    visitor_id: str,
    visitor_context: VisitorContext | None = None,
    get_prior_assignment: PriorAssignmentLookup | None = None,
    now: datetime | None = None,
) -> Evaluation | None:
    """
    Return the variant for the first experiment that applies to the visitor,
    or None when no experiment applies. ``experiments`` must already be in
    evaluation order.
    """
    get_prior_assignment = get_prior_assignment or _no_prior

    for experiment in experiments:
        prior = get_prior_assignment(visitor_id, experiment.id)
        outcome, evaluation = evaluate_experiment(experiment, visitor_id, visitor_context, prior, now)
        logger.debug("visitor %s on EID %d: %s", visitor_id, experiment.id, outcome.value)
        if evaluation is not None:
            return evaluation

    return None


def _in_window(experiment: ExperimentConfig, now: datetime) -> bool:
    start, end = experiment.start_date, experiment.end_date
    if start is not None and _aware(start) > now:
        return False
    if end is not None and _aware(end) < now:
        return False
    return True


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored in UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def select_candidates(experiments: Iterable[ExperimentConfig], now: datetime | None = None) -> list[ExperimentConfig]:
    """Active experiments whose window contains ``now``, newest first."""
    now = _aware(now or datetime.now(timezone.utc))
    running = [
        e for e in experiments
        if e.status == ExperimentStatus.ACTIVE and _in_window(e, now)
    ]
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(running, key=lambda e: _aware(e.created_at) if e.created_at else oldest, reverse=True)


def is_component_enabled(evaluation: Evaluation | None, component_type: str, variant_name: str) -> bool:
    """True when the evaluated variant renders a visible component of that type and variant."""
    if evaluation is None:
        return False
    for component in evaluation.components:
        if component.get("type") == component_type and component.get("variant") == variant_name:
            return bool(component.get("visible", False))
    return False
