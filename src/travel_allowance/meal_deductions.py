from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Mapping, Optional

from .models import NO_MEALS, MealRecord, ProvidedMeals
from .settings import MEAL_DEDUCTION_RATES


@dataclass(frozen=True)
class MealDeduction:
    deduction: Decimal
    net: Decimal


def apply_meal_deductions(
    base_amount: Decimal,
    meals: Optional[ProvidedMeals],
    deduction_base: Optional[Decimal] = None,
    rates: Mapping[str, Decimal] = MEAL_DEDUCTION_RATES,
) -> MealDeduction:
    """Deduct provided meals from ``base_amount``.

    Percentages apply to ``deduction_base`` (the statutory bracket rate) and
    default to ``base_amount`` when no separate base is given.
    """
    meals = meals or NO_MEALS
    deduction_base = base_amount if deduction_base is None else deduction_base

    ratio = sum(
        (rate for meal_key, rate in rates.items() if getattr(meals, meal_key)),
        Decimal("0"),
    )
    deduction = _money(deduction_base * ratio)
    net = max(Decimal("0.00"), _money(base_amount) - deduction)
    return MealDeduction(deduction=deduction, net=_money(net))


def merge_meal_records(records: Iterable[MealRecord]) -> Dict[date, ProvidedMeals]:
    """OR-reduce raw entertainment records into one ProvidedMeals per date."""
    merged: Dict[date, ProvidedMeals] = {}
    for record in records:
        provided = ProvidedMeals(breakfast=record.breakfast, lunch=record.lunch, dinner=record.dinner)
        merged[record.date] = merged.get(record.date, NO_MEALS).merge(provided)
    return merged


def _money(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
