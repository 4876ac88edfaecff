"""Selection of the single country whose rate governs a calendar date.

The country where the greater part of the day is spent governs. When the legs
after the first one add up to the partial-day threshold, the last leg's
destination wins; otherwise the first leg decides.
"""

from __future__ import annotations

from typing import Optional, Sequence

from .models import Leg, TripType
from .settings import DEFAULT_RULES, DEFAULT_TIME, DOMESTIC_COUNTRY_CODE
from .stay_duration import stay_hours


def leg_stay_hours(leg: Leg, default_time: str = DEFAULT_TIME) -> float:
    if not leg.has_span:
        return 24.0
    return stay_hours(leg.date, leg, default_time)


def _normalize_code(code: Optional[str]) -> Optional[str]:
    if not code or not code.strip():
        return None
    return code.strip().upper()


def _leg_country(leg: Leg, use_arrival: bool) -> Optional[str]:
    if leg.trip_type is TripType.DOMESTIC:
        return DOMESTIC_COUNTRY_CODE
    code = leg.arrival_country_code if use_arrival else leg.departure_country_code
    return _normalize_code(code)


def resolve_base_country(
    legs: Sequence[Leg],
    day_stay_hours: float = 24.0,
    min_hours: float = DEFAULT_RULES.partial_day_min_hours,
    default_time: str = DEFAULT_TIME,
) -> Optional[str]:
    """Return the governing country code for one date's legs, or None."""
    if not any(leg.trip_type is not None for leg in legs):
        return None

    first, rest = legs[0], legs[1:]
    rest_stay_hours = sum(leg_stay_hours(leg, default_time) for leg in rest)

    if rest_stay_hours >= min_hours:
        return _leg_country(legs[-1], use_arrival=True)

    use_arrival = first.trip_type is TripType.INTERNATIONAL and day_stay_hours >= min_hours
    return _leg_country(first, use_arrival=use_arrival)
