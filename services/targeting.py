"""
Audience targeting.

An experiment without a target audience (or with every axis empty) matches
every visitor. Each populated axis must be satisfied:

- geo, device, language, utm_source: the visitor's value must be one of the
  configured values (exact match);
- referrer: any configured substring must appear in the visitor's referrer.

Missing visitor data is conservative: if an axis is populated and the
visitor's corresponding value is missing or empty, the visitor does not
match. Visitors we cannot classify are never assigned.
"""
import logging

from models.experiments import TargetAudience, VisitorContext

logger = logging.getLogger(__name__)

# (audience axis, visitor context field)
_EXACT_AXES = (
    ("geo", "country"),
    ("device", "device"),
    ("language", "language"),
    ("utm_source", "utm_source"),
)


def matches(target_audience: TargetAudience | None, visitor_context: VisitorContext | None) -> bool:
    if target_audience is None:
        return True

    context = visitor_context or VisitorContext()

    for axis, field in _EXACT_AXES:
        allowed = getattr(target_audience, axis)
        if not allowed:
            continue
        value = getattr(context, field)
        if not value or value not in allowed:
            logger.debug("targeting miss on %s: %r not in %s", axis, value, allowed)
            return False

    if target_audience.referrer:
        referrer = context.referrer
        if not referrer or not any(fragment in referrer for fragment in target_audience.referrer):
            logger.debug("targeting miss on referrer: %r", referrer)
            return False

    return True
