from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict

import yaml

from .models import CountryRate


DATA_DIR = Path(__file__).resolve().parent / "data"
RULES_PATH = DATA_DIR / "allowance_rules.yaml"
SEED_RATES_PATH = DATA_DIR / "country_allowances.yaml"

RULE_VERSION = "DE_TRAVEL_RULES_2026_01"
DEFAULT_TIME = "08:00"

DOMESTIC_COUNTRY_CODE = "DE"
DOMESTIC_FULL_DAY_RATE = Decimal("28.00")
DOMESTIC_PARTIAL_DAY_RATE = Decimal("14.00")

MEAL_DEDUCTION_RATES = {
    "breakfast": Decimal("0.20"),
    "lunch": Decimal("0.40"),
    "dinner": Decimal("0.40"),
}


@dataclass(frozen=True)
class AllowanceRules:
    """Versioned rule constants used by the allowance engine."""

    rule_version: str = RULE_VERSION
    default_time: str = DEFAULT_TIME
    partial_day_min_hours: float = 8.0
    full_day_hours: float = 24.0
    international_partial_day_factor: Decimal = Decimal("0.80")
    meal_deduction_rates: Dict[str, Decimal] = field(default_factory=lambda: dict(MEAL_DEDUCTION_RATES))
    default_rate: CountryRate = field(
        default_factory=lambda: CountryRate(
            country_code=DOMESTIC_COUNTRY_CODE,
            full_day_amount=DOMESTIC_FULL_DAY_RATE,
            partial_day_amount=DOMESTIC_PARTIAL_DAY_RATE,
            country_name_de="Deutschland",
        )
    )


DEFAULT_RULES = AllowanceRules()


def _load_yaml(path: Path) -> dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle)

    if not isinstance(loaded, dict):
        msg = f"Configuration file must contain a dictionary at root: {path}"
        raise ValueError(msg)

    return loaded


def load_rules(path: Path | str = RULES_PATH) -> AllowanceRules:
    raw = _load_yaml(Path(path))
    defaults = AllowanceRules()

    deduction_rates = raw.get("meal_deduction_rates") or {}
    unknown = set(deduction_rates) - set(MEAL_DEDUCTION_RATES)
    if unknown:
        raise ValueError(f"Unknown meal types in meal_deduction_rates: {sorted(unknown)}")

    rate = raw.get("default_rate") or {}
    default_rate = defaults.default_rate
    if rate:
        default_rate = CountryRate(
            country_code=str(rate.get("country_code", DOMESTIC_COUNTRY_CODE)),
            full_day_amount=Decimal(str(rate["full_day_amount"])),
            partial_day_amount=Decimal(str(rate["partial_day_amount"])),
            country_name_de=default_rate.country_name_de,
        )

    return AllowanceRules(
        rule_version=str(raw.get("rule_version", defaults.rule_version)),
        default_time=str(raw.get("default_time", defaults.default_time)),
        partial_day_min_hours=float(raw.get("partial_day_min_hours", defaults.partial_day_min_hours)),
        full_day_hours=float(raw.get("full_day_hours", defaults.full_day_hours)),
        international_partial_day_factor=Decimal(
            str(raw.get("international_partial_day_factor", defaults.international_partial_day_factor))
        ),
        meal_deduction_rates={
            meal: Decimal(str(deduction_rates.get(meal, ratio)))
            for meal, ratio in MEAL_DEDUCTION_RATES.items()
        },
        default_rate=default_rate,
    )


def load_seed_rates(path: Path | str = SEED_RATES_PATH) -> list[CountryRate]:
    raw = _load_yaml(Path(path))
    entries = raw.get("country_allowances")
    if not isinstance(entries, list):
        raise ValueError(f"country_allowances must be a list in {path}")

    return [
        CountryRate(
            country_code=str(entry["country_code"]),
            full_day_amount=Decimal(str(entry["full_day_amount"])),
            partial_day_amount=Decimal(str(entry["partial_day_amount"])),
            country_name_de=entry.get("country_name_de"),
            country_name_ko=entry.get("country_name_ko"),
            accommodation_amount=Decimal(str(entry.get("accommodation_amount", "0.00"))),
        )
        for entry in entries
    ]
