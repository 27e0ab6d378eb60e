from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Sequence

from models.results import TimelineEntry, VariantCounts

# Range tokens used by the reporting surface
RANGE_DAYS = {
    "7d": 7,
    "14d": 14,
    "30d": 30,
    "all": 365,
}


def parse_range(value: str | int) -> int:
    if isinstance(value, int):
        days = value
    elif value in RANGE_DAYS:
        days = RANGE_DAYS[value]
    elif value.endswith("d") and value[:-1].isdigit():
        days = int(value[:-1])
    else:
        raise ValueError(f"Invalid range '{value}'. Use one of {', '.join(RANGE_DAYS)} or '<n>d'.")

    if days < 0:
        raise ValueError("range must not be negative")
    return days


def build_timeline(
    variants: Sequence[VariantCounts],
    range_days: int,
    today: date | None = None,
) -> list[TimelineEntry]:
    """
    One entry per calendar day from ``today - range_days`` to ``today``
    inclusive, summing every variant's per-day counts. Days without data are
    zero-filled.
    """
    if range_days < 0:
        raise ValueError("range_days must not be negative")
    today = today or datetime.now(timezone.utc).date()

    visitors: dict[date, int] = defaultdict(int)
    conversions: dict[date, int] = defaultdict(int)
    for variant in variants:
        for day in variant.daily:
            visitors[day.date] += day.visitors
            conversions[day.date] += day.conversions

    start = today - timedelta(days=range_days)
    return [
        TimelineEntry(date=day, visitors=visitors.get(day, 0), conversions=conversions.get(day, 0))
        for day in (start + timedelta(days=offset) for offset in range(range_days + 1))
    ]
