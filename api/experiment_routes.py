from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone

from data import repository
from models.experiments import ExperimentConfig, ExperimentCreate, ExperimentResponse, StatusUpdate
from models.results import ExperimentResults, TimelineEntry
from services import results, timeline
from services.cache import CacheClient
from services.errors import AllocationError, ExperimentNotFoundError, InvalidStatusTransitionError
from services.stats import NormalDistribution
from api.depends import CLIENT_AUTH, DB_DEPENDENCY, CACHE_CLIENT, STATS_DISTRIBUTION

import logging

logger = logging.getLogger(__name__)

# Operator-facing routes: catalog management and reporting
experiment_router = APIRouter(
    prefix="/experiments",
    tags=["experiments"],
    dependencies=[CLIENT_AUTH],
)


def _not_found(e: ExperimentNotFoundError) -> HTTPException:
    logger.info("%s", e)
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# POST /experiments
@experiment_router.post(
    "",
    response_model=ExperimentResponse,
    status_code=status.HTTP_201_CREATED
)
def create_experiment_route(
    experiment_data: ExperimentCreate,
    db: Session = DB_DEPENDENCY,
    cache: CacheClient = CACHE_CLIENT
):
    """Create a new experiment with variants and traffic allocation."""
    try:
        experiment = repository.create_experiment(db, experiment_data)
    except AllocationError as e:
        logger.info("rejected experiment %s: %s", experiment_data.name, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_catalog()
    return experiment


# GET /experiments/active
@experiment_router.get("/active", response_model=list[ExperimentConfig])
def list_active_experiments_route(db: Session = DB_DEPENDENCY):
    """Active experiments inside their scheduling window, newest first."""
    return repository.get_active_experiments(db)


# GET /experiments/{experiment_id}
@experiment_router.get("/{experiment_id}", response_model=ExperimentResponse)
def get_experiment_route(experiment_id: int, db: Session = DB_DEPENDENCY):
    try:
        return repository.get_experiment(db, experiment_id)
    except ExperimentNotFoundError as e:
        raise _not_found(e)


# PATCH /experiments/{experiment_id}/status
@experiment_router.patch("/{experiment_id}/status", response_model=ExperimentResponse)
def update_status_route(
    experiment_id: int,
    update: StatusUpdate,
    db: Session = DB_DEPENDENCY,
    cache: CacheClient = CACHE_CLIENT
):
    """Move an experiment through its lifecycle (activate, pause, complete, archive)."""
    try:
        experiment = repository.update_status(db, experiment_id, update.status)
    except ExperimentNotFoundError as e:
        raise _not_found(e)
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    cache.invalidate_catalog()
    return experiment


# GET /experiments/{id}/results
@experiment_router.get("/{experiment_id}/results", response_model=ExperimentResults | None)
def get_experiment_results_route(
    experiment_id: int,
    db: Session = DB_DEPENDENCY,
    distribution: NormalDistribution = STATS_DISTRIBUTION,
    start_date: str | None = None,      # YYYY-MM-DDTHH:MM:SS
    last_day: int | None = None,        # eg: 7 for 7day
    mde: float | None = Query(default=None, gt=0, description="Relative minimum detectable effect, e.g. 0.1"),
):
    """
    Significance summary per variant against the control. Returns null when the
    experiment has no single control variant.
    """
    start_datetime = None

    try:
        # last days will override start_date
        if last_day:
            start_datetime = datetime.now(timezone.utc) - timedelta(days=last_day)
        elif start_date:
            start_datetime = datetime.fromisoformat(start_date)
    except ValueError as e:
        logger.info("datetime conversion ValueError error: %s", str(e))
        return JSONResponse(content={"status": "failed", "error": str(e)}, status_code=status.HTTP_400_BAD_REQUEST)

    try:
        counts = repository.load_variant_counts(db, experiment_id, start_datetime)
    except ExperimentNotFoundError as e:
        raise _not_found(e)

    return results.compute_results(counts, distribution=distribution, minimum_detectable_effect=mde)


# GET /experiments/{id}/timeline
@experiment_router.get("/{experiment_id}/timeline", response_model=list[TimelineEntry])
def get_experiment_timeline_route(
    experiment_id: int,
    db: Session = DB_DEPENDENCY,
    range_: str = Query(default="7d", alias="range", description="7d, 14d, 30d or all"),
):
    """Daily visitors and conversions across all variants, zero-filled."""
    try:
        range_days = timeline.parse_range(range_)
    except ValueError as e:
        return JSONResponse(content={"status": "failed", "error": str(e)}, status_code=status.HTTP_400_BAD_REQUEST)

    try:
        counts = repository.load_variant_counts(db, experiment_id)
    except ExperimentNotFoundError as e:
        raise _not_found(e)

    return timeline.build_timeline(counts, range_days)
