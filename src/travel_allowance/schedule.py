"""Cut user-entered schedule entries into per-date legs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from .models import Leg, Trip, TripType
from .settings import DEFAULT_TIME
from .stay_duration import parse_time


@dataclass(frozen=True)
class ScheduleEntry:
    start_date: date
    end_date: date
    trip_type: Optional[TripType] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    departure_country_code: Optional[str] = None
    departure_city: Optional[str] = None
    arrival_country_code: Optional[str] = None
    arrival_city: Optional[str] = None

    def boundaries(self, default_time: str = DEFAULT_TIME) -> Tuple[datetime, datetime]:
        return (
            _combine(self.start_date, self.start_time, default_time),
            _combine(self.end_date, self.end_time, default_time),
        )


def _combine(day: date, value: Optional[str], default_time: str) -> datetime:
    hour, minute = parse_time(value) or parse_time(default_time) or (0, 0)
    return datetime.combine(day, time(hour, minute))


def expand_schedule(
    trip: Trip,
    entries: Sequence[ScheduleEntry],
    default_time: str = DEFAULT_TIME,
) -> Dict[date, List[Leg]]:
    """Build ``legs_by_date`` for the engine.

    Entries are ordered by their start; every date an entry touches inside the
    trip span receives one leg carrying the entry's span.
    """
    legs_by_date: Dict[date, List[Leg]] = {}
    ordered = sorted(entries, key=lambda entry: entry.boundaries(default_time)[0])

    for entry in ordered:
        if entry.end_date < entry.start_date:
            continue
        current = max(entry.start_date, trip.start_date)
        last = min(entry.end_date, trip.end_date)
        while current <= last:
            legs_by_date.setdefault(current, []).append(
                Leg(
                    date=current,
                    trip_type=entry.trip_type,
                    departure_country_code=entry.departure_country_code,
                    departure_city=entry.departure_city,
                    arrival_country_code=entry.arrival_country_code,
                    arrival_city=entry.arrival_city,
                    is_first_day_of_trip=current == trip.start_date,
                    is_last_day_of_trip=current == trip.end_date,
                    start_date=entry.start_date,
                    start_time=entry.start_time,
                    end_date=entry.end_date,
                    end_time=entry.end_time,
                )
            )
            current += timedelta(days=1)

    return legs_by_date


def find_overlapping_entries(
    entries: Sequence[ScheduleEntry],
    default_time: str = DEFAULT_TIME,
) -> List[Tuple[int, int]]:
    """Index pairs of entries whose time spans overlap."""
    indexed = sorted(enumerate(entries), key=lambda item: item[1].boundaries(default_time)[0])
    overlaps: List[Tuple[int, int]] = []
    for position, (prev_index, prev) in enumerate(indexed):
        _, prev_end = prev.boundaries(default_time)
        for current_index, current in indexed[position + 1:]:
            current_start, _ = current.boundaries(default_time)
            if current_start >= prev_end:
                break
            overlaps.append(tuple(sorted((prev_index, current_index))))
    return overlaps
