from fastapi import APIRouter, Cookie, Response, status

from models.events import ClickCreate, ConversionCreate, EventQueuedResponse
from services import visitors
from api.visitor_routes import set_visitor_cookie
from config import config

import logging

logger = logging.getLogger(__name__)

# Called from landing pages, so no bearer token
events_router = APIRouter(
    prefix="/events",
    tags=["events"],
)


# POST /events/conversion
@events_router.post("/conversion", response_model=EventQueuedResponse, status_code=status.HTTP_200_OK)
def record_conversion_route(
    event_data: ConversionCreate,
    response: Response,
    visitor_id: str | None = Cookie(default=None, alias=config.visitor_cookie_name),
):
    """
    Record a conversion for the visitor's variant. The event goes straight to a
    celery worker; the worker inserts it into the events table.
    """
    visitor_id = set_visitor_cookie(response, visitor_id)
    task = visitors.record_conversion(visitor_id, event_data.experiment_id, event_data.variant_id, event_data.data)
    return EventQueuedResponse(task_id=task.id)


# POST /events/click
@events_router.post("/click", response_model=EventQueuedResponse, status_code=status.HTTP_200_OK)
def record_click_route(
    event_data: ClickCreate,
    response: Response,
    visitor_id: str | None = Cookie(default=None, alias=config.visitor_cookie_name),
):
    """Record a click on a landing page element."""
    visitor_id = set_visitor_cookie(response, visitor_id)
    task = visitors.record_click(
        visitor_id, event_data.experiment_id, event_data.variant_id, event_data.element, event_data.data
    )
    return EventQueuedResponse(task_id=task.id)
