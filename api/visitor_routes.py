from fastapi import APIRouter, Body, Cookie, Query, Response
from sqlalchemy.orm import Session

from models.experiments import Evaluation, VisitorAssignment, VisitorContext
from services import assignment, visitors
from services.cache import CacheClient
from api.depends import DB_DEPENDENCY, CACHE_CLIENT
from config import config

import logging

logger = logging.getLogger(__name__)

# Visitor-facing routes; identity comes from cookies, not bearer tokens
visitor_router = APIRouter(tags=["visitors"])


def _set_cookie(response: Response, key: str, value: str):
    response.set_cookie(
        key,
        value,
        max_age=config.cookie_max_age,
        httponly=True,
        secure=config.cookie_secure,
        samesite="lax",
        path="/",
    )

def set_visitor_cookie(response: Response, visitor_id: str | None) -> str:
    """Return the visitor id, minting and setting one when the request had none."""
    if not visitor_id:
        visitor_id = visitors.new_visitor_id()
        logger.debug("new visitor %s", visitor_id)
    _set_cookie(response, config.visitor_cookie_name, visitor_id)
    return visitor_id

def _evaluate(response, visitor_context, visitor_id, assignments_cookie, db, cache) -> Evaluation | None:
    visitor_id = set_visitor_cookie(response, visitor_id)
    stored = visitors.decode_assignments_cookie(assignments_cookie)

    evaluation = visitors.evaluate_visitor(db, cache, visitor_id, visitor_context, stored)

    if evaluation is not None and stored.get(evaluation.experiment_id) != evaluation.assignment:
        stored[evaluation.experiment_id] = evaluation.assignment
        _set_cookie(response, config.experiment_cookie_name, visitors.encode_assignments_cookie(stored))
    return evaluation

# POST /evaluate
@visitor_router.post("/evaluate", response_model=Evaluation | None)
def evaluate_route(
    response: Response,
    visitor_context: VisitorContext | None = Body(default=None),
    visitor_id: str | None = Cookie(default=None, alias=config.visitor_cookie_name),
    assignments_cookie: str | None = Cookie(default=None, alias=config.experiment_cookie_name),
    db: Session = DB_DEPENDENCY,
    cache: CacheClient = CACHE_CLIENT,
):
    """
    Pick the landing page variant for this visitor. Returns null when no
    experiment applies, which is a normal outcome.
    """
    return _evaluate(response, visitor_context, visitor_id, assignments_cookie, db, cache)

# POST /evaluate/feature
@visitor_router.post("/evaluate/feature")
def feature_enabled_route(
    response: Response,
    component_type: str = Query(..., description="Component type, e.g. 'hero'."),
    variant_name: str = Query(..., description="Component variant, e.g. 'bold'."),
    visitor_context: VisitorContext | None = Body(default=None),
    visitor_id: str | None = Cookie(default=None, alias=config.visitor_cookie_name),
    assignments_cookie: str | None = Cookie(default=None, alias=config.experiment_cookie_name),
    db: Session = DB_DEPENDENCY,
    cache: CacheClient = CACHE_CLIENT,
):
    """Whether the visitor's variant renders a visible component of that type and variant."""
    evaluation = _evaluate(response, visitor_context, visitor_id, assignments_cookie, db, cache)
    return {"enabled": assignment.is_component_enabled(evaluation, component_type, variant_name)}

# GET /assignments
@visitor_router.get("/assignments", response_model=dict[int, VisitorAssignment])
def get_assignments_route(assignments_cookie: str | None = Cookie(default=None, alias=config.experiment_cookie_name)):
    """Assignments stored in the visitor's cookie, keyed by experiment id."""
    return visitors.decode_assignments_cookie(assignments_cookie)

# DELETE /assignments
@visitor_router.delete("/assignments", status_code=204)
def clear_assignments_route(response: Response):
    """Forget the cookie-stored assignments (handy when QA-ing variants)."""
    response.delete_cookie(config.experiment_cookie_name, path="/")
    return None
