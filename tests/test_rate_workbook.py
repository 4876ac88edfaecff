from decimal import Decimal
from pathlib import Path
import tempfile
import unittest

from openpyxl import Workbook

from backend.services.rate_workbook import RateWorkbookService
from travel_allowance.settings import load_seed_rates


class RateWorkbookTestCase(unittest.TestCase):
    def setUp(self):
        self.service = RateWorkbookService()

    def test_exported_table_reads_back(self):
        rates = load_seed_rates()
        with tempfile.TemporaryDirectory() as tmp:
            path = self.service.export_file(rates, Path(tmp) / "rates.xlsx")
            result = self.service.read_rates(path)

        self.assertEqual(result.errors, [])
        self.assertEqual(result.rates, rates)

    def test_export_bytes_reads_back(self):
        rates = load_seed_rates()[:2]
        result = self.service.read_rates(self.service.export_bytes(rates))
        self.assertEqual([r.country_code for r in result.rates], [r.country_code for r in rates])

    def test_invalid_rows_are_reported(self):
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = self.service.sheet_name
        sheet.append(["Country code", "Country (DE)", "Country (KO)", "Full day", "Partial day", "Accommodation"])
        sheet.append(["fr", "Frankreich", None, 53, "35,00", None])
        sheet.append([None, "Nirgendwo", None, 10, 5, None])
        sheet.append(["AT", "Österreich", None, "viel", 27, None])
        sheet.append(["CH", "Schweiz", None, -1, 43, None])
        sheet.append([None, None, None, None, None, None])

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "edited.xlsx"
            workbook.save(path)
            result = self.service.read_rates(path)

        self.assertEqual(len(result.rates), 1)
        self.assertEqual(result.rates[0].country_code, "FR")
        self.assertEqual(result.rates[0].partial_day_amount, Decimal("35.00"))
        self.assertEqual(len(result.errors), 3)
        self.assertTrue(result.errors[0].startswith("Row 3: missing country_code"))

    def test_missing_sheet_is_rejected(self):
        workbook = Workbook()
        workbook.active.title = "Other"
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "other.xlsx"
            workbook.save(path)
            with self.assertRaises(ValueError):
                self.service.read_rates(path)


if __name__ == "__main__":
    unittest.main()
