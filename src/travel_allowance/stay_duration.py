"""Hours of stay attributable to a single calendar date of a trip."""

from __future__ import annotations

import re
from datetime import date
from typing import Optional, Protocol, Tuple

from .settings import DEFAULT_TIME


_TIME_RE = re.compile(r"^\s*([01]?\d|2[0-3]):([0-5]\d)\s*$")


class Span(Protocol):
    start_date: Optional[date]
    end_date: Optional[date]
    start_time: Optional[str]
    end_time: Optional[str]


def parse_time(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse ``HH:MM``; returns None for missing or malformed values."""
    if not value:
        return None
    match = _TIME_RE.match(value)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def is_malformed_time(value: Optional[str]) -> bool:
    return bool(value) and parse_time(value) is None


def clock_hours(value: Optional[str], default: str = DEFAULT_TIME) -> float:
    parsed = parse_time(value) or parse_time(default) or (0, 0)
    hour, minute = parsed
    return hour + minute / 60


def stay_hours(day: date, span: Span, default_time: str = DEFAULT_TIME) -> float:
    """Unrounded hours of ``day`` covered by ``span``, clamped to [0, 24].

    The caller only asks for dates inside the span.
    """
    is_first = day == span.start_date
    is_last = day == span.end_date

    if is_first and is_last:
        hours = clock_hours(span.end_time, default_time) - clock_hours(span.start_time, default_time)
    elif is_first:
        hours = 24 - clock_hours(span.start_time, default_time)
    elif is_last:
        hours = clock_hours(span.end_time, default_time)
    else:
        hours = 24.0

    return min(24.0, max(0.0, hours))


def display_hours(hours: float) -> float:
    return round(hours, 1)
