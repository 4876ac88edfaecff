from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class TripType(Enum):
    DOMESTIC = "domestic"
    INTERNATIONAL = "international"


class WarningKind(Enum):
    UNRESOLVED_COUNTRY = "unresolved_country"
    UNKNOWN_COUNTRY_RATE = "unknown_country_rate"
    MALFORMED_TIME = "malformed_time"


@dataclass(frozen=True)
class Trip:
    start_date: Optional[date]
    end_date: Optional[date]
    start_time: Optional[str] = None
    end_time: Optional[str] = None


@dataclass(frozen=True)
class Leg:
    """One travel leg recorded against a calendar date.

    ``start_date``/``end_date``/``start_time``/``end_time`` describe the span of
    the schedule entry the leg was cut from. A leg without a span claims the
    whole day.
    """

    date: date
    trip_type: Optional[TripType] = None
    departure_country_code: Optional[str] = None
    departure_city: Optional[str] = None
    arrival_country_code: Optional[str] = None
    arrival_city: Optional[str] = None
    is_first_day_of_trip: bool = False
    is_last_day_of_trip: bool = False
    start_date: Optional[date] = None
    start_time: Optional[str] = None
    end_date: Optional[date] = None
    end_time: Optional[str] = None

    @property
    def has_span(self) -> bool:
        return self.start_date is not None and self.end_date is not None


@dataclass(frozen=True)
class CountryRate:
    country_code: str
    full_day_amount: Decimal
    partial_day_amount: Decimal
    country_name_de: Optional[str] = None
    country_name_ko: Optional[str] = None
    accommodation_amount: Decimal = Decimal("0.00")

    def __post_init__(self) -> None:
        for name in ("full_day_amount", "partial_day_amount", "accommodation_amount"):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, Decimal(str(value)))
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative for {self.country_code}")
        object.__setattr__(self, "country_code", self.country_code.strip().upper())

    def to_dict(self) -> dict[str, Any]:
        return {
            "country_code": self.country_code,
            "country_name_de": self.country_name_de,
            "country_name_ko": self.country_name_ko,
            "full_day_amount": str(self.full_day_amount),
            "partial_day_amount": str(self.partial_day_amount),
            "accommodation_amount": str(self.accommodation_amount),
        }


@dataclass(frozen=True)
class ProvidedMeals:
    breakfast: bool = False
    lunch: bool = False
    dinner: bool = False

    def merge(self, other: "ProvidedMeals") -> "ProvidedMeals":
        return ProvidedMeals(
            breakfast=self.breakfast or other.breakfast,
            lunch=self.lunch or other.lunch,
            dinner=self.dinner or other.dinner,
        )

    def to_dict(self) -> dict[str, bool]:
        return {"breakfast": self.breakfast, "lunch": self.lunch, "dinner": self.dinner}


NO_MEALS = ProvidedMeals()


@dataclass(frozen=True)
class MealRecord:
    """A raw entertainment record; several may exist for the same date."""

    date: date
    breakfast: bool = False
    lunch: bool = False
    dinner: bool = False


@dataclass(frozen=True)
class AllowanceWarning:
    kind: WarningKind
    message: str
    date: Optional[date] = None

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "date": self.date.isoformat() if self.date else None,
        }


@dataclass(frozen=True)
class DailyAllowanceResult:
    date: date
    stay_hours: float
    base_country_code: Optional[str]
    base_amount: Decimal
    deduction_amount: Decimal
    final_allowance: Decimal
    meals_provided: ProvidedMeals = NO_MEALS
    is_full_day: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "stay_hours": self.stay_hours,
            "base_country_code": self.base_country_code,
            "is_full_day": self.is_full_day,
            "base_amount": str(self.base_amount),
            "deduction_amount": str(self.deduction_amount),
            "final_allowance": str(self.final_allowance),
            "meals_provided": self.meals_provided.to_dict(),
        }


@dataclass(frozen=True)
class TripAllowanceSummary:
    days: tuple[DailyAllowanceResult, ...]
    total_allowance: Decimal
    rule_version: str
    warnings: tuple[AllowanceWarning, ...] = field(default_factory=tuple)
    calculation_steps: tuple[str, ...] = field(default_factory=tuple)

    @property
    def incomplete_days(self) -> int:
        return len({w.date for w in self.warnings if w.kind is WarningKind.UNRESOLVED_COUNTRY})

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_version": self.rule_version,
            "total_allowance": str(self.total_allowance),
            "days": [day.to_dict() for day in self.days],
            "warnings": [warning.to_dict() for warning in self.warnings],
            "calculation_steps": list(self.calculation_steps),
        }
