"""
Caller side of visitor evaluation: everything around the pure assigner that
touches storage. Prior assignments are looked up in the request cookie, then
the cache, then the assignments table. A new assignment is persisted, cached
and reported with exactly one "assignment" event.
"""
from datetime import datetime
from urllib.parse import quote, unquote
import logging
import uuid

from fastapi import HTTPException
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from celery_tasks.event_tasks import queue_event
from data import repository
from models.events import EventType
from models.experiments import Evaluation, ExperimentConfig, VisitorAssignment, VisitorContext
from services import assignment as assigner
from services.cache import CacheClient

logger = logging.getLogger(__name__)

# Define the maximum number of times to retry the insert
MAX_RETRIES = 3

_cookie_adapter = TypeAdapter(dict[int, VisitorAssignment])


# --- Cookie codec ---

def new_visitor_id() -> str:
    return str(uuid.uuid4())


def decode_assignments_cookie(raw: str | None) -> dict[int, VisitorAssignment]:
    if not raw:
        return {}
    try:
        return _cookie_adapter.validate_json(unquote(raw))
    except (ValidationError, ValueError) as e:
        logger.warning("Failed to parse experiment assignments cookie: %s", e)
        return {}


def encode_assignments_cookie(assignments: dict[int, VisitorAssignment]) -> str:
    return quote(_cookie_adapter.dump_json(assignments).decode(), safe="")


# --- Catalog ---

def get_candidate_experiments(db: Session, cache: CacheClient, now: datetime | None = None) -> list[ExperimentConfig]:
    snapshot = cache.get_active_experiments()
    if snapshot is None:
        snapshot = repository.get_active_experiments(db, now)
        cache.set_active_experiments(snapshot)
        logger.debug("active catalog cache miss, loaded %d experiments", len(snapshot))
    # A cached snapshot can outlive an experiment's window
    return assigner.select_candidates(snapshot, now)


# --- Persistence ---

def persist_assignment(db: Session, cache: CacheClient, visitor_id: str,
                       new_assignment: VisitorAssignment) -> tuple[VisitorAssignment, bool]:
    """
    Store a new assignment, safely handling concurrent requests with the
    unique constraint + retry pattern. Returns the stored assignment and
    whether this call created it; when a competing request won the race its
    row is returned instead.
    """
    experiment_id = new_assignment.experiment_id

    for attempt in range(MAX_RETRIES):
        existing = repository.get_assignment(db, experiment_id, visitor_id)
        if existing:
            logger.info("Found persistent assignment for visitor %s on EID %d: variant %d",
                        visitor_id, experiment_id, existing.variant_id)
            cache.set_assignment(visitor_id, existing)
            return existing, False

        try:
            repository.save_assignment(db, visitor_id, new_assignment)
            cache.set_assignment(visitor_id, new_assignment)
            logger.info("SUCCESS: Visitor %s newly assigned to variant %d (EID %d) on attempt %d.",
                        visitor_id, new_assignment.variant_id, experiment_id, attempt + 1)
            return new_assignment, True

        except IntegrityError:
            # A concurrent transaction beat us to the INSERT; the next read finds it
            db.rollback()
            logger.warning("RACE DETECTED: IntegrityError on visitor %s (EID %d). Retrying (Attempt %d/%d)...",
                           visitor_id, experiment_id, attempt + 2, MAX_RETRIES)

        except Exception:
            db.rollback()
            logger.exception("An unexpected error occurred during assignment for visitor %s.", visitor_id)
            raise HTTPException(status_code=400, detail=f"Experiment ID {experiment_id} unable to create assignment.")

    logger.warning("Failed to persist assignment for visitor %s after %d attempts.", visitor_id, MAX_RETRIES)
    raise HTTPException(status_code=400, detail=f"Experiment ID {experiment_id} unable to create assignment.")


# --- Evaluation ---

def evaluate_visitor(
    db: Session,
    cache: CacheClient,
    visitor_id: str,
    visitor_context: VisitorContext | None,
    cookie_assignments: dict[int, VisitorAssignment] | None = None,
    now: datetime | None = None,
) -> Evaluation | None:
    cookie_assignments = cookie_assignments or {}
    candidates = get_candidate_experiments(db, cache, now)
    looked_up: dict[int, VisitorAssignment] = {}

    def get_prior_assignment(visitor_id: str, experiment_id: int) -> VisitorAssignment | None:
        prior = (
            cookie_assignments.get(experiment_id)
            or cache.get_assignment(experiment_id, visitor_id)
            or repository.get_assignment(db, experiment_id, visitor_id)
        )
        if prior is not None:
            looked_up[experiment_id] = prior
        return prior

    evaluation = assigner.evaluate(candidates, visitor_id, visitor_context, get_prior_assignment, now)
    if evaluation is None or not evaluation.is_new:
        return evaluation

    experiment_id = evaluation.experiment_id
    if experiment_id in looked_up:
        # The prior pointed at a variant that no longer exists
        stored = repository.replace_assignment(db, visitor_id, evaluation.assignment)
        cache.set_assignment(visitor_id, stored)
    else:
        stored, created = persist_assignment(db, cache, visitor_id, evaluation.assignment)
        if not created:
            # A competing request stored (and reported) the assignment first; its row wins
            experiment = next(e for e in candidates if e.id == experiment_id)
            _, evaluation = assigner.evaluate_experiment(experiment, visitor_id, visitor_context, stored, now)
            return evaluation

    context = visitor_context.model_dump(exclude_none=True) if visitor_context else {}
    queue_event(
        EventType.ASSIGNMENT,
        visitor_id=visitor_id,
        experiment_id=experiment_id,
        variant_id=evaluation.variant_id,
        properties={"visitor_context": context},
    )
    return evaluation


def record_conversion(visitor_id: str, experiment_id: int, variant_id: int, data: dict | None = None):
    return queue_event(EventType.CONVERSION, visitor_id, experiment_id, variant_id, data or {})


def record_click(visitor_id: str, experiment_id: int, variant_id: int, element: str, data: dict | None = None):
    properties = {"element": element, **(data or {})}
    return queue_event(EventType.CLICK, visitor_id, experiment_id, variant_id, properties)
