from .base_country import resolve_base_country
from .german_travel_rules import (
    GermanTravelRulesService,
    MissingTripBoundsError,
    TravelRuleValidationError,
    compute_trip_allowance,
)
from .meal_deductions import MealDeduction, apply_meal_deductions, merge_meal_records
from .models import (
    AllowanceWarning,
    CountryRate,
    DailyAllowanceResult,
    Leg,
    MealRecord,
    ProvidedMeals,
    Trip,
    TripAllowanceSummary,
    TripType,
    WarningKind,
)
from .rates import CountryRateTable, RateCache
from .settings import DEFAULT_RULES, AllowanceRules, load_rules
from .stay_duration import stay_hours

__all__ = [
    "AllowanceRules",
    "AllowanceWarning",
    "CountryRate",
    "CountryRateTable",
    "DEFAULT_RULES",
    "DailyAllowanceResult",
    "GermanTravelRulesService",
    "Leg",
    "MealDeduction",
    "MealRecord",
    "MissingTripBoundsError",
    "ProvidedMeals",
    "RateCache",
    "TravelRuleValidationError",
    "Trip",
    "TripAllowanceSummary",
    "TripType",
    "WarningKind",
    "apply_meal_deductions",
    "compute_trip_allowance",
    "load_rules",
    "merge_meal_records",
    "resolve_base_country",
    "stay_hours",
]
