from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Dict, Iterable, Optional, Protocol, Union

from .models import CountryRate
from .settings import DEFAULT_RULES, DOMESTIC_COUNTRY_CODE

logger = logging.getLogger(__name__)


class RateSource(Protocol):
    """Anything that can fetch one country's rate; absence is not an error."""

    def get_rate(
        self, country_code: str
    ) -> Union[Optional[CountryRate], Awaitable[Optional[CountryRate]]]:
        ...


def normalize_code(country_code: Optional[str]) -> str:
    return (country_code or "").strip().upper()


class CountryRateTable:
    """Read-only per-diem table with a guaranteed ``DE`` entry."""

    def __init__(self, rates: Iterable[CountryRate] = (), default_rate: Optional[CountryRate] = None):
        self._rates: Dict[str, CountryRate] = {rate.country_code: rate for rate in rates}
        default_rate = default_rate or DEFAULT_RULES.default_rate
        self._rates.setdefault(DOMESTIC_COUNTRY_CODE, default_rate)

    def __contains__(self, country_code: object) -> bool:
        return isinstance(country_code, str) and normalize_code(country_code) in self._rates

    def __len__(self) -> int:
        return len(self._rates)

    @property
    def default_rate(self) -> CountryRate:
        return self._rates[DOMESTIC_COUNTRY_CODE]

    def rates(self) -> list[CountryRate]:
        return [self._rates[code] for code in sorted(self._rates)]

    def _find(self, country_code: str) -> Optional[CountryRate]:
        code = normalize_code(country_code)
        rate = self._rates.get(code)
        if rate is None and "-" in code:
            # City codes such as US-NYC fall back to their country.
            rate = self._rates.get(code.split("-", 1)[0])
        return rate

    def has_rate(self, country_code: str) -> bool:
        return self._find(country_code) is not None

    def lookup(self, country_code: str) -> CountryRate:
        rate = self._find(country_code)
        if rate is None:
            logger.warning(
                "No per-diem rate for country code %s, using %s rates.",
                normalize_code(country_code) or "<empty>",
                DOMESTIC_COUNTRY_CODE,
            )
            return self.default_rate
        return rate

    def code_for(self, value: Optional[str]) -> Optional[str]:
        """Map a country code, city code or German/Korean country name to a code."""
        if not value or not value.strip():
            return None
        text = value.strip()
        code = text.upper()
        if code in self._rates:
            return code
        if len(code) == 2 and code.isalpha():
            return code
        if len(code) == 6 and code[2] == "-":
            return code

        lowered = text.casefold()
        for rate in self._rates.values():
            names = (rate.country_name_de, rate.country_name_ko)
            if any(name and name.strip().casefold() == lowered for name in names):
                return rate.country_code
        return None


class RateCache:
    """Memoizing async front for a rate source.

    Entries are never invalidated. Concurrent requests for the same uncached
    code share a single in-flight fetch.
    """

    def __init__(self, source: RateSource):
        self._source = source
        self._entries: Dict[str, Optional[CountryRate]] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}

    def __contains__(self, country_code: object) -> bool:
        return isinstance(country_code, str) and normalize_code(country_code) in self._entries

    async def get(self, country_code: str) -> Optional[CountryRate]:
        code = normalize_code(country_code)
        if code in self._entries:
            return self._entries[code]

        task = self._in_flight.get(code)
        if task is None:
            task = asyncio.ensure_future(self._fetch(code))
            self._in_flight[code] = task
        return await asyncio.shield(task)

    async def _fetch(self, code: str) -> Optional[CountryRate]:
        try:
            result = self._source.get_rate(code)
            if inspect.isawaitable(result):
                result = await result
            self._entries[code] = result
            if result is None:
                logger.info("Rate source has no entry for %s.", code)
            return result
        finally:
            self._in_flight.pop(code, None)

    async def _get_or_none(self, code: str) -> Optional[CountryRate]:
        try:
            return await self.get(code)
        except Exception:
            logger.warning("Rate source failed for %s, using %s rates.", code, DOMESTIC_COUNTRY_CODE, exc_info=True)
            return None

    async def table_for(
        self, country_codes: Iterable[str], default_rate: Optional[CountryRate] = None
    ) -> CountryRateTable:
        """Fetch every code concurrently and snapshot them into a table.

        A failing source only drops that code from the snapshot; the table
        then answers it with the default rate. Failures are not cached.
        """
        codes = {normalize_code(code) for code in country_codes if code}
        codes.add(DOMESTIC_COUNTRY_CODE)
        for code in list(codes):
            if "-" in code:
                codes.add(code.split("-", 1)[0])

        ordered = sorted(codes)
        fetched = await asyncio.gather(*(self._get_or_none(code) for code in ordered))
        return CountryRateTable(
            (rate for rate in fetched if rate is not None),
            default_rate=default_rate,
        )
