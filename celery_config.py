from celery import Celery
from config import config

# Analytics events are written by a worker; the API process only publishes them.
EVENTS_QUEUE = "experiment_events"

celery_app = Celery(
    "landing_experiments",
    broker=config.celery_broker_url,
    backend=config.celery_backend_url,
    include=["celery_tasks.event_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue=EVENTS_QUEUE,

    # An event is only acknowledged once it is in the database
    task_acks_late=True,
    worker_prefetch_multiplier=4,

    # Keep publishing while the broker restarts instead of dropping the event
    task_publish_retry=True,
    task_publish_retry_policy={
        "max_retries": 10,
        "interval_start": 0.5,
        "interval_step": 0.5,
        "interval_max": 5,
    },
)
