from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Mapping, Optional, Sequence

from travel_allowance.base_country import resolve_base_country
from travel_allowance.german_travel_rules import MealsInput, compute_trip_allowance, trip_dates
from travel_allowance.models import CountryRate, Leg, Trip, TripAllowanceSummary
from travel_allowance.rates import RateCache, RateSource
from travel_allowance.repositories import CountryAllowanceRepository
from travel_allowance.settings import DEFAULT_RULES, AllowanceRules
from travel_allowance.stay_duration import stay_hours

logger = logging.getLogger(__name__)


class AllowanceService:
    """Prefetches the rates a trip needs, then runs the pure engine."""

    def __init__(
        self,
        source: RateSource,
        rules: AllowanceRules = DEFAULT_RULES,
        cache: Optional[RateCache] = None,
    ):
        self.rules = rules
        self.cache = cache or RateCache(source)

    def required_country_codes(self, trip: Trip, legs_by_date: Mapping[date, Sequence[Leg]]) -> set[str]:
        codes: set[str] = set()
        for day in trip_dates(trip):
            hours = stay_hours(day, trip, self.rules.default_time)
            if hours < self.rules.partial_day_min_hours:
                continue
            code = resolve_base_country(
                list(legs_by_date.get(day) or ()),
                day_stay_hours=hours,
                min_hours=self.rules.partial_day_min_hours,
                default_time=self.rules.default_time,
            )
            if code:
                codes.add(code)
        return codes

    async def calculate(
        self,
        trip: Trip,
        legs_by_date: Mapping[date, Sequence[Leg]],
        meals_by_date: MealsInput = None,
    ) -> TripAllowanceSummary:
        codes = self.required_country_codes(trip, legs_by_date)
        rate_table = await self.cache.table_for(codes, default_rate=self.rules.default_rate)
        summary = compute_trip_allowance(trip, legs_by_date, meals_by_date, rate_table, self.rules)
        logger.info(
            "Calculated meal allowance %s for %s..%s (%d day(s), %d warning(s)).",
            summary.total_allowance,
            trip.start_date,
            trip.end_date,
            len(summary.days),
            len(summary.warnings),
        )
        return summary


class CountryAllowanceAdminService:
    """Maintenance of the per-diem table."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.rates = CountryAllowanceRepository(conn)

    def save_rate(self, rate: CountryRate) -> CountryRate:
        with self.conn:
            self.rates.upsert(rate)
        return rate

    def delete_rate(self, country_code: str) -> bool:
        with self.conn:
            return self.rates.delete(country_code)

    def import_rates(self, rates: Sequence[CountryRate]) -> dict[str, list[str]]:
        seen: set[str] = set()
        duplicates: list[str] = []
        with self.conn:
            for rate in rates:
                if rate.country_code in seen:
                    duplicates.append(rate.country_code)
                seen.add(rate.country_code)
                self.rates.upsert(rate)

        logger.info("Imported %d country allowance row(s).", len(seen))
        return {"imported": sorted(seen), "duplicates": sorted(set(duplicates))}
