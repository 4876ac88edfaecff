from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .base_country import resolve_base_country
from .meal_deductions import apply_meal_deductions, merge_meal_records
from .models import (
    NO_MEALS,
    AllowanceWarning,
    DailyAllowanceResult,
    Leg,
    MealRecord,
    ProvidedMeals,
    Trip,
    TripAllowanceSummary,
    TripType,
    WarningKind,
)
from .rates import CountryRateTable
from .settings import DEFAULT_RULES, DOMESTIC_COUNTRY_CODE, AllowanceRules
from .stay_duration import display_hours, is_malformed_time, stay_hours

logger = logging.getLogger(__name__)

MealsInput = Union[Mapping[date, ProvidedMeals], Iterable[MealRecord], None]


class TravelRuleValidationError(ValueError):
    """Raised when travel data violates rule preconditions."""


class MissingTripBoundsError(TravelRuleValidationError):
    """Raised when a trip has no usable start/end date."""


def validate_trip_bounds(trip: Trip) -> None:
    if trip.start_date is None or trip.end_date is None:
        raise MissingTripBoundsError("Trip has missing start/end date.")
    if trip.end_date < trip.start_date:
        raise MissingTripBoundsError(
            f"Trip ends ({trip.end_date}) before it starts ({trip.start_date})."
        )


def trip_dates(trip: Trip) -> List[date]:
    validate_trip_bounds(trip)
    days = (trip.end_date - trip.start_date).days
    return [trip.start_date + timedelta(days=offset) for offset in range(days + 1)]


def _normalize_meals(meals: MealsInput) -> Mapping[date, ProvidedMeals]:
    if meals is None:
        return {}
    if isinstance(meals, Mapping):
        return meals
    return merge_meal_records(meals)


def compute_trip_allowance(
    trip: Trip,
    legs_by_date: Mapping[date, Sequence[Leg]],
    meals_by_date: MealsInput,
    rate_table: CountryRateTable,
    rules: AllowanceRules = DEFAULT_RULES,
) -> TripAllowanceSummary:
    """Compute the meal allowance for every calendar date of ``trip``.

    Bad per-day input never aborts the trip: the affected day gets a zero
    allowance and a warning. Only a trip without usable bounds raises.
    """
    days = trip_dates(trip)
    meals = _normalize_meals(meals_by_date)
    warnings: List[AllowanceWarning] = []
    steps: List[str] = [f"Applying rule version: {rules.rule_version}"]

    for boundary, value, day in (
        ("start", trip.start_time, trip.start_date),
        ("end", trip.end_time, trip.end_date),
    ):
        if is_malformed_time(value):
            warnings.append(
                _warn(
                    WarningKind.MALFORMED_TIME,
                    f"Trip {boundary} time {value!r} is not HH:MM, using {rules.default_time}.",
                    day,
                )
            )

    results: List[DailyAllowanceResult] = []
    for day in days:
        result, day_steps = _calculate_day(
            day,
            trip,
            list(legs_by_date.get(day) or ()),
            meals.get(day) or NO_MEALS,
            rate_table,
            rules,
            warnings,
        )
        results.append(result)
        steps.extend(day_steps)

    total = sum((result.final_allowance for result in results), Decimal("0.00"))
    steps.append(f"Overall total = {_money(total)} over {len(results)} day(s).")

    return TripAllowanceSummary(
        days=tuple(results),
        total_allowance=_money(total),
        rule_version=rules.rule_version,
        warnings=tuple(warnings),
        calculation_steps=tuple(steps),
    )


def _calculate_day(
    day: date,
    trip: Trip,
    legs: List[Leg],
    meals: ProvidedMeals,
    rate_table: CountryRateTable,
    rules: AllowanceRules,
    warnings: List[AllowanceWarning],
) -> tuple[DailyAllowanceResult, List[str]]:
    hours = stay_hours(day, trip, rules.default_time)
    shown_hours = display_hours(hours)

    if hours < rules.partial_day_min_hours:
        return (
            _zero_result(day, shown_hours, None, meals),
            [f"{day}: absence {shown_hours}h < {rules.partial_day_min_hours:g}h, no per diem."],
        )

    country_code = resolve_base_country(
        legs,
        day_stay_hours=hours,
        min_hours=rules.partial_day_min_hours,
        default_time=rules.default_time,
    )
    if country_code is None:
        warnings.append(
            _warn(
                WarningKind.UNRESOLVED_COUNTRY,
                f"No base country could be resolved for {day}; allowance set to 0.",
                day,
            )
        )
        return _zero_result(day, shown_hours, None, meals), [f"{day}: base country unresolved, no per diem."]

    if rate_table.has_rate(country_code):
        rate = rate_table.lookup(country_code)
    else:
        warnings.append(
            _warn(
                WarningKind.UNKNOWN_COUNTRY_RATE,
                f"No per-diem rate for {country_code}; {DOMESTIC_COUNTRY_CODE} rates applied.",
                day,
            )
        )
        rate = rate_table.default_rate

    is_full_day = hours >= rules.full_day_hours
    rate_for_bracket = rate.full_day_amount if is_full_day else rate.partial_day_amount
    bracket = "full-day" if is_full_day else "partial-day"
    steps = [f"{day}: stay {shown_hours}h in {country_code}, {bracket} rate {rate_for_bracket}."]

    is_international = any(leg.trip_type is TripType.INTERNATIONAL for leg in legs)
    base_amount = rate_for_bracket
    if not is_full_day and is_international and country_code != DOMESTIC_COUNTRY_CODE:
        base_amount = _money(rate_for_bracket * rules.international_partial_day_factor)
        steps.append(
            f"{day}: international partial day, "
            f"{rules.international_partial_day_factor * 100:.0f}% of {rate_for_bracket} = {base_amount}."
        )

    meal_deduction = apply_meal_deductions(
        base_amount,
        meals,
        deduction_base=rate_for_bracket,
        rates=rules.meal_deduction_rates,
    )
    if meal_deduction.deduction:
        steps.append(
            f"{day}: meal deduction on {rate_for_bracket} = {meal_deduction.deduction}, "
            f"net {meal_deduction.net}."
        )

    return (
        DailyAllowanceResult(
            date=day,
            stay_hours=shown_hours,
            base_country_code=country_code,
            base_amount=_money(base_amount),
            deduction_amount=meal_deduction.deduction,
            final_allowance=meal_deduction.net,
            meals_provided=meals,
            is_full_day=is_full_day,
        ),
        steps,
    )


def _zero_result(
    day: date, shown_hours: float, country_code: Optional[str], meals: ProvidedMeals
) -> DailyAllowanceResult:
    zero = Decimal("0.00")
    return DailyAllowanceResult(
        date=day,
        stay_hours=shown_hours,
        base_country_code=country_code,
        base_amount=zero,
        deduction_amount=zero,
        final_allowance=zero,
        meals_provided=meals,
    )


def _warn(kind: WarningKind, message: str, day: Optional[date]) -> AllowanceWarning:
    logger.warning(message)
    return AllowanceWarning(kind=kind, message=message, date=day)


class GermanTravelRulesService:
    """Calculation service with versioned logic and traceable steps."""

    def __init__(self, rate_table: CountryRateTable, rules: AllowanceRules = DEFAULT_RULES):
        self.rate_table = rate_table
        self.rules = rules

    @property
    def rule_version(self) -> str:
        return self.rules.rule_version

    def calculate(
        self,
        trip: Trip,
        legs_by_date: Mapping[date, Sequence[Leg]],
        meals_by_date: MealsInput = None,
    ) -> TripAllowanceSummary:
        return compute_trip_allowance(trip, legs_by_date, meals_by_date, self.rate_table, self.rules)

    def calculate_and_persist(
        self,
        trip: Trip,
        legs_by_date: Mapping[date, Sequence[Leg]],
        meals_by_date: MealsInput = None,
    ) -> Dict[str, object]:
        """
        Calculate the trip allowance and return a payload suitable for persistence.

        The returned payload includes `rule_version` to keep historic legal context.
        """
        summary = self.calculate(trip, legs_by_date, meals_by_date)
        payload = summary.to_dict()
        payload["trip"] = {
            "start_date": trip.start_date.isoformat(),
            "end_date": trip.end_date.isoformat(),
            "start_time": trip.start_time,
            "end_time": trip.end_time,
        }
        return payload


def _money(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


__all__ = [
    "GermanTravelRulesService",
    "MissingTripBoundsError",
    "TravelRuleValidationError",
    "compute_trip_allowance",
    "trip_dates",
    "validate_trip_bounds",
]
