from __future__ import annotations

import sqlite3
from decimal import Decimal
from typing import Any, Optional

from travel_allowance.models import CountryRate
from travel_allowance.rates import CountryRateTable, normalize_code
from travel_allowance.settings import DEFAULT_RULES


def _normalize_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    return value


def _row_to_rate(row: sqlite3.Row) -> CountryRate:
    return CountryRate(
        country_code=row["country_code"],
        full_day_amount=Decimal(row["full_day_amount"]),
        partial_day_amount=Decimal(row["partial_day_amount"]),
        country_name_de=row["country_name_de"],
        country_name_ko=row["country_name_ko"],
        accommodation_amount=Decimal(row["accommodation_amount"]),
    )


class CountryAllowanceRepository:
    """sqlite-backed per-diem table; also serves as a rate source."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get_rate(self, country_code: str) -> Optional[CountryRate]:
        code = normalize_code(country_code)
        if not code:
            return None
        row = self.conn.execute(
            "SELECT * FROM country_allowances WHERE country_code = ?",
            (code,),
        ).fetchone()
        return _row_to_rate(row) if row else None

    def list_all(self) -> list[CountryRate]:
        rows = self.conn.execute("SELECT * FROM country_allowances ORDER BY country_code").fetchall()
        return [_row_to_rate(row) for row in rows]

    def search(self, term: str) -> list[CountryRate]:
        pattern = f"%{term.strip()}%"
        rows = self.conn.execute(
            """
            SELECT * FROM country_allowances
            WHERE country_code LIKE ? OR country_name_de LIKE ? OR country_name_ko LIKE ?
            ORDER BY country_code
            """,
            (pattern, pattern, pattern),
        ).fetchall()
        return [_row_to_rate(row) for row in rows]

    def upsert(self, rate: CountryRate) -> None:
        self.conn.execute(
            """
            INSERT INTO country_allowances(
                country_code, country_name_de, country_name_ko,
                full_day_amount, partial_day_amount, accommodation_amount
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(country_code) DO UPDATE SET
                country_name_de = excluded.country_name_de,
                country_name_ko = excluded.country_name_ko,
                full_day_amount = excluded.full_day_amount,
                partial_day_amount = excluded.partial_day_amount,
                accommodation_amount = excluded.accommodation_amount,
                updated_at = CURRENT_TIMESTAMP
            """,
            (
                rate.country_code,
                rate.country_name_de,
                rate.country_name_ko,
                _normalize_value(rate.full_day_amount),
                _normalize_value(rate.partial_day_amount),
                _normalize_value(rate.accommodation_amount),
            ),
        )

    def delete(self, country_code: str) -> bool:
        cursor = self.conn.execute(
            "DELETE FROM country_allowances WHERE country_code = ?",
            (normalize_code(country_code),),
        )
        return cursor.rowcount > 0

    def load_table(self) -> CountryRateTable:
        return CountryRateTable(self.list_all(), default_rate=DEFAULT_RULES.default_rate)
