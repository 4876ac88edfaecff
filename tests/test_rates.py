import asyncio
from decimal import Decimal
import unittest

from travel_allowance.models import CountryRate
from travel_allowance.rates import CountryRateTable, RateCache


FR = CountryRate("FR", Decimal("53.00"), Decimal("35.00"), country_name_de="Frankreich", country_name_ko="프랑스")
US = CountryRate("US", Decimal("59.00"), Decimal("40.00"), country_name_de="Vereinigte Staaten")
US_NYC = CountryRate("US-NYC", Decimal("66.00"), Decimal("44.00"), country_name_de="New York City")


class CountryRateTableTestCase(unittest.TestCase):
    def test_germany_is_always_present(self):
        table = CountryRateTable()
        rate = table.lookup("DE")
        self.assertEqual(rate.full_day_amount, Decimal("28.00"))
        self.assertEqual(rate.partial_day_amount, Decimal("14.00"))

    def test_exact_match_is_case_insensitive(self):
        table = CountryRateTable([FR])
        self.assertEqual(table.lookup("fr"), FR)
        self.assertTrue(table.has_rate(" fr "))

    def test_unknown_code_falls_back_to_germany_with_warning(self):
        table = CountryRateTable([FR])
        self.assertFalse(table.has_rate("ZZ"))
        with self.assertLogs("travel_allowance.rates", level="WARNING") as captured:
            rate = table.lookup("ZZ")
        self.assertEqual(rate.country_code, "DE")
        self.assertIn("ZZ", captured.output[0])

    def test_source_supplied_germany_row_wins_over_default(self):
        table = CountryRateTable([CountryRate("DE", Decimal("30.00"), Decimal("15.00"))])
        self.assertEqual(table.lookup("XX").full_day_amount, Decimal("30.00"))

    def test_city_code_falls_back_to_country(self):
        table = CountryRateTable([US, US_NYC])
        self.assertEqual(table.lookup("US-NYC"), US_NYC)
        self.assertEqual(table.lookup("US-BOS"), US)
        self.assertTrue(table.has_rate("US-BOS"))

    def test_code_for_names_and_codes(self):
        table = CountryRateTable([FR, US_NYC])
        self.assertEqual(table.code_for("Frankreich"), "FR")
        self.assertEqual(table.code_for("프랑스"), "FR")
        self.assertEqual(table.code_for("fr"), "FR")
        self.assertEqual(table.code_for("jp"), "JP")
        self.assertEqual(table.code_for("us-nyc"), "US-NYC")
        self.assertIsNone(table.code_for("Atlantis"))
        self.assertIsNone(table.code_for("  "))

    def test_negative_amounts_are_rejected(self):
        with self.assertRaises(ValueError):
            CountryRate("FR", Decimal("-1.00"), Decimal("35.00"))


class CountingSource:
    def __init__(self, rates, delay=0.01):
        self.rates = {rate.country_code: rate for rate in rates}
        self.delay = delay
        self.calls = []

    async def get_rate(self, country_code):
        self.calls.append(country_code)
        await asyncio.sleep(self.delay)
        return self.rates.get(country_code)


class SyncSource:
    def __init__(self, rates):
        self.rates = {rate.country_code: rate for rate in rates}
        self.calls = 0

    def get_rate(self, country_code):
        self.calls += 1
        return self.rates.get(country_code)


class FlakySource:
    def __init__(self):
        self.calls = 0

    async def get_rate(self, country_code):
        self.calls += 1
        if self.calls == 1:
            raise ConnectionError("rate store unavailable")
        return FR


class DownSource:
    def __init__(self):
        self.calls = 0

    async def get_rate(self, country_code):
        self.calls += 1
        raise ConnectionError("rate store unavailable")


class RateCacheTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_concurrent_lookups_share_one_fetch(self):
        source = CountingSource([FR])
        cache = RateCache(source)

        results = await asyncio.gather(*(cache.get("FR") for _ in range(5)))

        self.assertEqual(source.calls, ["FR"])
        self.assertTrue(all(result == FR for result in results))
        self.assertEqual(await cache.get("fr"), FR)
        self.assertEqual(source.calls, ["FR"])

    async def test_absent_rates_are_memoized(self):
        source = CountingSource([])
        cache = RateCache(source)
        self.assertIsNone(await cache.get("ZZ"))
        self.assertIsNone(await cache.get("ZZ"))
        self.assertEqual(source.calls, ["ZZ"])
        self.assertIn("ZZ", cache)

    async def test_sync_sources_are_supported(self):
        source = SyncSource([FR])
        cache = RateCache(source)
        self.assertEqual(await cache.get("FR"), FR)
        self.assertEqual(await cache.get("FR"), FR)
        self.assertEqual(source.calls, 1)

    async def test_failed_fetch_is_not_cached(self):
        source = FlakySource()
        cache = RateCache(source)
        with self.assertRaises(ConnectionError):
            await cache.get("FR")
        self.assertEqual(await cache.get("FR"), FR)
        self.assertEqual(source.calls, 2)

    async def test_table_for_includes_germany_and_city_parents(self):
        source = CountingSource([FR, US, US_NYC])
        cache = RateCache(source)

        table = await cache.table_for(["US-NYC", "FR", "FR"])

        self.assertEqual(sorted(source.calls), ["DE", "FR", "US", "US-NYC"])
        self.assertEqual(table.lookup("US-NYC"), US_NYC)
        self.assertEqual(table.lookup("DE").full_day_amount, Decimal("28.00"))


    async def test_table_for_survives_failing_source(self):
        source = DownSource()
        cache = RateCache(source)

        with self.assertLogs("travel_allowance.rates", level="WARNING"):
            table = await cache.table_for(["FR"])

        self.assertFalse(table.has_rate("FR"))
        self.assertEqual(table.default_rate.partial_day_amount, Decimal("14.00"))
        self.assertNotIn("FR", cache)

        await cache.table_for(["FR"])
        self.assertEqual(source.calls, 4)

if __name__ == "__main__":
    unittest.main()
