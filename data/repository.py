from datetime import date, datetime, timezone
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session, selectinload

from data.database import Assignment, Event, Experiment, Variant
from models.experiments import (
    ExperimentConfig,
    ExperimentCreate,
    ExperimentStatus,
    VisitorAssignment,
)
from models.events import EventType
from models.results import DailyCounts, VariantCounts
from services.allocation import validate_allocation
from services.errors import ExperimentNotFoundError, InvalidStatusTransitionError
import logging

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    ExperimentStatus.DRAFT: {ExperimentStatus.ACTIVE, ExperimentStatus.ARCHIVED},
    ExperimentStatus.ACTIVE: {ExperimentStatus.PAUSED, ExperimentStatus.COMPLETED},
    ExperimentStatus.PAUSED: {ExperimentStatus.ACTIVE, ExperimentStatus.COMPLETED},
    ExperimentStatus.COMPLETED: {ExperimentStatus.ARCHIVED},
    ExperimentStatus.ARCHIVED: set(),
}


def _naive_utc(value: datetime | None) -> datetime | None:
    """Columns are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _as_date(value) -> date:
    # SQLite returns date() as text, Postgres as a date
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


# --- Experiment catalog ---

def create_experiment(db: Session, experiment_data: ExperimentCreate) -> Experiment:
    """Creates a new experiment and its associated variants."""
    validate_allocation(experiment_data.variants)

    db_experiment = Experiment(
        name=experiment_data.name,
        description=experiment_data.description,
        hypothesis=experiment_data.hypothesis,
        primary_metric=experiment_data.primary_metric,
        status=experiment_data.status.value,
        traffic_percentage=experiment_data.traffic_percentage,
        target_audience=(
            experiment_data.target_audience.model_dump(exclude_none=True)
            if experiment_data.target_audience else None
        ),
        start_date=_naive_utc(experiment_data.start_date),
        end_date=_naive_utc(experiment_data.end_date),
    )
    db.add(db_experiment)
    db.flush()  # Flush to get the experiment ID before adding variants

    for v in experiment_data.variants:
        db.add(Variant(
            experiment_id=db_experiment.id,
            name=v.name,
            description=v.description,
            is_control=v.is_control,
            traffic_percentage=v.traffic_percentage,
            components=v.components,
            theme_overrides=v.theme_overrides,
        ))

    db.commit()
    db.refresh(db_experiment)
    logger.info("create new experiment %s success with experiment id: %d", experiment_data.name, db_experiment.id)
    return db_experiment


def get_experiment(db: Session, experiment_id: int) -> Experiment:
    experiment = db.query(Experiment).filter(Experiment.id == experiment_id).one_or_none()
    if experiment is None:
        raise ExperimentNotFoundError(experiment_id)
    return experiment


def update_status(db: Session, experiment_id: int, status: ExperimentStatus) -> Experiment:
    experiment = get_experiment(db, experiment_id)
    current = ExperimentStatus(experiment.status)
    if status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(current.value, status.value)

    experiment.status = status.value
    db.commit()
    db.refresh(experiment)
    logger.info("experiment %d moved from %s to %s", experiment_id, current.value, status.value)
    return experiment


def get_active_experiments(db: Session, now: datetime | None = None) -> list[ExperimentConfig]:
    """Active experiments inside their start/end window, newest first."""
    now = _naive_utc(now or datetime.now(timezone.utc))
    rows = (
        db.query(Experiment)
        .options(selectinload(Experiment.variants))
        .filter(
            Experiment.status == ExperimentStatus.ACTIVE.value,
            or_(Experiment.start_date.is_(None), Experiment.start_date <= now),
            or_(Experiment.end_date.is_(None), Experiment.end_date >= now),
        )
        .order_by(Experiment.created_at.desc(), Experiment.id.desc())
        .all()
    )
    return [ExperimentConfig.model_validate(row) for row in rows]


# --- Assignments ---

def get_assignment(db: Session, experiment_id: int, visitor_id: str) -> VisitorAssignment | None:
    row = db.query(Assignment).filter(
        Assignment.visitor_id == visitor_id,
        Assignment.experiment_id == experiment_id,
    ).first()
    if row is None:
        return None
    return VisitorAssignment(
        experiment_id=row.experiment_id,
        variant_id=row.variant_id,
        assigned_at=row.assigned_at,
    )


def save_assignment(db: Session, visitor_id: str, assignment: VisitorAssignment) -> Assignment:
    """Insert the assignment. Raises IntegrityError when the visitor is already assigned."""
    row = Assignment(
        experiment_id=assignment.experiment_id,
        variant_id=assignment.variant_id,
        visitor_id=visitor_id,
        assigned_at=_naive_utc(assignment.assigned_at),
    )
    db.add(row)
    db.commit()  # This is where the database constraint check happens
    db.refresh(row)
    return row


def replace_assignment(db: Session, visitor_id: str, assignment: VisitorAssignment) -> VisitorAssignment:
    """Overwrite a stale assignment (its variant was removed), inserting it if missing."""
    row = db.query(Assignment).filter(
        Assignment.visitor_id == visitor_id,
        Assignment.experiment_id == assignment.experiment_id,
    ).first()
    if row is None:
        save_assignment(db, visitor_id, assignment)
        return assignment

    row.variant_id = assignment.variant_id
    row.assigned_at = _naive_utc(assignment.assigned_at)
    db.commit()
    logger.info("Replaced stale assignment for visitor %s on EID %d with variant %d",
                visitor_id, assignment.experiment_id, assignment.variant_id)
    return assignment


# --- Analytics ---

def load_variant_counts(
    db: Session,
    experiment_id: int,
    start_datetime: datetime | None = None,
) -> list[VariantCounts]:
    """
    Per-variant visitors (assignments) and converted visitors, with a per-day
    breakdown. Conversions only count when they happened after the visitor's
    assignment.
    """
    experiment = get_experiment(db, experiment_id)
    start_datetime = _naive_utc(start_datetime)

    assignment_day = func.date(Assignment.assigned_at)
    visitors_query = db.query(
        Assignment.variant_id,
        assignment_day,
        func.count(Assignment.id),
    ).filter(Assignment.experiment_id == experiment_id)

    conversion_join = and_(
        Event.visitor_id == Assignment.visitor_id,
        Event.experiment_id == Assignment.experiment_id,
    )
    conversion_filters = [
        Assignment.experiment_id == experiment_id,
        Event.type == EventType.CONVERSION.value,
        Event.timestamp >= Assignment.assigned_at,
    ]

    if start_datetime:
        logger.debug("load_variant_counts from start_datetime %s", start_datetime)
        visitors_query = visitors_query.filter(Assignment.assigned_at >= start_datetime)
        conversion_filters.append(Assignment.assigned_at >= start_datetime)

    event_day = func.date(Event.timestamp)
    daily_conversions = (
        db.query(Assignment.variant_id, event_day, func.count(func.distinct(Event.visitor_id)))
        .join(Event, conversion_join)
        .filter(*conversion_filters)
        .group_by(Assignment.variant_id, event_day)
        .all()
    )
    # A visitor converting on several days is still one converted visitor
    total_conversions = dict(
        db.query(Assignment.variant_id, func.count(func.distinct(Event.visitor_id)))
        .join(Event, conversion_join)
        .filter(*conversion_filters)
        .group_by(Assignment.variant_id)
        .all()
    )

    daily: dict[int, dict[date, DailyCounts]] = {v.id: {} for v in experiment.variants}
    visitors: dict[int, int] = {v.id: 0 for v in experiment.variants}

    for variant_id, day, count in visitors_query.group_by(Assignment.variant_id, assignment_day).all():
        day = _as_date(day)
        visitors[variant_id] = visitors.get(variant_id, 0) + count
        daily.setdefault(variant_id, {})[day] = DailyCounts(date=day, visitors=count)

    for variant_id, day, count in daily_conversions:
        day = _as_date(day)
        entry = daily.setdefault(variant_id, {}).setdefault(day, DailyCounts(date=day))
        entry.conversions = count

    return [
        VariantCounts(
            variant_id=v.id,
            name=v.name,
            is_control=v.is_control,
            visitors=visitors.get(v.id, 0),
            conversions=total_conversions.get(v.id, 0),
            daily=sorted(daily.get(v.id, {}).values(), key=lambda d: d.date),
        )
        for v in experiment.variants
    ]
