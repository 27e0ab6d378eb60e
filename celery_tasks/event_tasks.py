from celery_config import celery_app
from data.database import Event, SessionLocal
from models.events import EventType
from typing import Any
from datetime import datetime, timezone
import json
import logging

logger = logging.getLogger(__name__)


def get_db_session():
    """Provides a fresh database session for asynchronous task execution."""
    try:
        return SessionLocal()
    except Exception as e:
        logger.error(f"Failed to create database session in Celery task: {e}")
        return None


# results are never read, skip storing them in the backend
@celery_app.task(bind=True, max_retries=3, default_retry_delay=30, ignore_result=True)
def insert_event_to_db(self, event_data_dict: dict[str, Any]):
    """
    Asynchronously inserts a landing page analytics event (assignment,
    conversion or click). This function handles its own database session.
    """
    db = None
    db_event = None
    try:
        db = get_db_session()
        if not db:
            # Raise an exception to trigger Celery retry
            raise ConnectionError("Could not establish database session.")

        db_event = Event(
            visitor_id=event_data_dict['visitor_id'],
            experiment_id=event_data_dict['experiment_id'],
            variant_id=event_data_dict['variant_id'],
            type=event_data_dict['type'],
            timestamp=datetime.fromisoformat(event_data_dict['timestamp']),
            properties_json=event_data_dict['properties_json']
        )

        db.add(db_event)
        db.commit()

        logger.info(f"Task {self.name}[{self.request.id}]. Inserted {db_event.type} event for visitor {db_event.visitor_id} on EID {db_event.experiment_id}.")
    except ConnectionError as exc:
        logger.error("Database connection failed in Celery task. Retrying...")
        raise self.retry(exc=exc)
    except Exception as exc:
        logger.error(f"Failed to insert event to DB: {exc}. Event payload: {event_data_dict}")
        raise  # re-raise so Celery marks FAILURE

    finally:
        if db:
            db.close()


def queue_event(
    event_type: EventType,
    visitor_id: str,
    experiment_id: int,
    variant_id: int,
    properties: dict[str, Any] | None = None,
):
    """Build a JSON-serializable payload and hand it to the worker. Returns the AsyncResult."""
    task_payload: dict[str, Any] = {
        'visitor_id': visitor_id,
        'experiment_id': experiment_id,
        'variant_id': variant_id,
        'type': event_type.value,
        # Celery requires simple serializable types (like string for datetime)
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'properties_json': json.dumps(properties, default=str) if properties else None,
    }
    task = insert_event_to_db.delay(task_payload)
    logger.debug("insert_event_to_db %s task queued: %s", event_type.value, task.id)
    return task
