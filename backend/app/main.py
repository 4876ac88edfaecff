from __future__ import annotations

import logging
import os
import sqlite3
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Iterator, Literal, Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field

from backend.services.rate_workbook import RateWorkbookService
from travel_allowance.db import apply_migrations, connect_sqlite
from travel_allowance.german_travel_rules import TravelRuleValidationError
from travel_allowance.models import CountryRate, Leg, MealRecord, Trip, TripType
from travel_allowance.rates import CountryRateTable, normalize_code
from travel_allowance.repositories import CountryAllowanceRepository
from travel_allowance.schedule import ScheduleEntry, expand_schedule, find_overlapping_entries
from travel_allowance.services import AllowanceService, CountryAllowanceAdminService
from travel_allowance.settings import RULES_PATH, load_rules

logger = logging.getLogger(__name__)

app = FastAPI(title="Travel Allowance API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

DATABASE_PATH = Path(os.environ.get("TRAVEL_ALLOWANCE_DB", "data/travel_allowance.db"))
RULES = load_rules(os.environ.get("TRAVEL_ALLOWANCE_RULES", RULES_PATH))

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def get_connection() -> Iterator[sqlite3.Connection]:
    DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = connect_sqlite(DATABASE_PATH, check_same_thread=False)
    try:
        apply_migrations(conn)
        yield conn
    finally:
        conn.close()


def get_workbook_service() -> RateWorkbookService:
    return RateWorkbookService()


TripTypeName = Literal["domestic", "international"]


class TripIn(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class ScheduleEntryIn(BaseModel):
    start_date: date
    end_date: date
    trip_type: Optional[TripTypeName] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    departure_country: Optional[str] = None
    departure_city: Optional[str] = None
    arrival_country: Optional[str] = None
    arrival_city: Optional[str] = None


class MealRecordIn(BaseModel):
    date: date
    breakfast: bool = False
    lunch: bool = False
    dinner: bool = False


class AllowanceRequest(BaseModel):
    trip: TripIn
    schedule: list[ScheduleEntryIn] = Field(default_factory=list)
    meals: list[MealRecordIn] = Field(default_factory=list)


class CountryAllowanceIn(BaseModel):
    country_name_de: Optional[str] = None
    country_name_ko: Optional[str] = None
    full_day_amount: Decimal = Field(ge=0)
    partial_day_amount: Decimal = Field(ge=0)
    accommodation_amount: Decimal = Field(default=Decimal("0.00"), ge=0)


class ThreadedRateSource:
    """Runs blocking repository lookups off the event loop."""

    def __init__(self, repository: CountryAllowanceRepository):
        self.repository = repository

    async def get_rate(self, country_code: str) -> Optional[CountryRate]:
        return await run_in_threadpool(self.repository.get_rate, country_code)


def _trip_type(value: Optional[str]) -> Optional[TripType]:
    return TripType(value) if value else None


def _country_code(table: CountryRateTable, value: Optional[str]) -> Optional[str]:
    # Unknown names pass through so the rate lookup reports them.
    return table.code_for(value) or normalize_code(value) or None


@app.post("/allowances/calculate")
async def calculate_allowance(payload: AllowanceRequest, conn: sqlite3.Connection = Depends(get_connection)):
    repository = CountryAllowanceRepository(conn)
    table = await run_in_threadpool(repository.load_table)
    entries = [
        ScheduleEntry(
            start_date=item.start_date,
            end_date=item.end_date,
            trip_type=_trip_type(item.trip_type),
            start_time=item.start_time,
            end_time=item.end_time,
            departure_country_code=_country_code(table, item.departure_country),
            departure_city=item.departure_city,
            arrival_country_code=_country_code(table, item.arrival_country),
            arrival_city=item.arrival_city,
        )
        for item in payload.schedule
    ]

    overlaps = find_overlapping_entries(entries)
    if overlaps:
        detail = [f"Schedule entries {a + 1} and {b + 1} overlap." for a, b in overlaps]
        raise HTTPException(status_code=422, detail=detail)

    trip = Trip(**payload.trip.model_dump())
    service = AllowanceService(ThreadedRateSource(repository), rules=RULES)
    try:
        legs_by_date: dict[date, list[Leg]] = {}
        if trip.start_date is not None and trip.end_date is not None:
            legs_by_date = expand_schedule(trip, entries)
        summary = await service.calculate(
            trip,
            legs_by_date,
            [MealRecord(**meal.model_dump()) for meal in payload.meals],
        )
    except TravelRuleValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return summary.to_dict()


@app.get("/country-allowances")
def list_country_allowances(q: Optional[str] = None, conn: sqlite3.Connection = Depends(get_connection)):
    repository = CountryAllowanceRepository(conn)
    rates = repository.search(q) if q else repository.list_all()
    return [rate.to_dict() for rate in rates]


@app.get("/country-allowances/export.xlsx")
def export_country_allowances(
    conn: sqlite3.Connection = Depends(get_connection),
    workbook: RateWorkbookService = Depends(get_workbook_service),
):
    content = workbook.export_bytes(CountryAllowanceRepository(conn).list_all())
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="country-allowances.xlsx"'},
    )


@app.post("/country-allowances/import")
async def import_country_allowances(
    file: UploadFile = File(...),
    conn: sqlite3.Connection = Depends(get_connection),
    workbook: RateWorkbookService = Depends(get_workbook_service),
):
    content = await file.read()
    try:
        parsed = workbook.read_rates(content)
    except (ValueError, OSError) as exc:
        raise HTTPException(status_code=422, detail=f"Unreadable workbook: {exc}") from exc

    if parsed.errors:
        logger.warning("Skipped %d invalid row(s) in %s.", len(parsed.errors), file.filename)
    result = CountryAllowanceAdminService(conn).import_rates(parsed.rates)
    return {**result, "errors": parsed.errors}


@app.get("/country-allowances/{country_code}")
def get_country_allowance(country_code: str, conn: sqlite3.Connection = Depends(get_connection)):
    rate = CountryAllowanceRepository(conn).get_rate(country_code)
    if rate is None:
        raise HTTPException(status_code=404, detail="Country allowance not found")
    return rate.to_dict()


@app.put("/country-allowances/{country_code}")
def put_country_allowance(
    country_code: str,
    payload: CountryAllowanceIn,
    conn: sqlite3.Connection = Depends(get_connection),
):
    try:
        rate = CountryRate(country_code=country_code, **payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    CountryAllowanceAdminService(conn).save_rate(rate)
    return rate.to_dict()


@app.delete("/country-allowances/{country_code}", status_code=204)
def delete_country_allowance(country_code: str, conn: sqlite3.Connection = Depends(get_connection)):
    if not CountryAllowanceAdminService(conn).delete_rate(country_code):
        raise HTTPException(status_code=404, detail="Country allowance not found")
    return Response(status_code=204)


@app.get("/health")
def health():
    return {"status": "ok"}
