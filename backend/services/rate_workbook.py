from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from io import BytesIO
from pathlib import Path
from typing import Any, BinaryIO, Iterable, Union
from zipfile import BadZipFile

import yaml
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from travel_allowance.models import CountryRate

DEFAULT_MAPPING_PATH = Path(__file__).resolve().parent.parent / "config" / "rate_workbook.yaml"

AMOUNT_FIELDS = ("full_day_amount", "partial_day_amount", "accommodation_amount")


@dataclass
class WorkbookImportResult:
    rates: list[CountryRate] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class RateWorkbookService:
    """Export the per-diem table to a workbook and read edited workbooks back."""

    mapping_path: Path = DEFAULT_MAPPING_PATH

    def __post_init__(self) -> None:
        self.mapping = self._load_mapping(self.mapping_path)

    @staticmethod
    def _load_mapping(mapping_path: Path) -> dict[str, Any]:
        with Path(mapping_path).open("r", encoding="utf-8") as mapping_file:
            loaded = yaml.safe_load(mapping_file)

        if not isinstance(loaded, dict):
            msg = f"Mapping file must contain a dictionary at root: {mapping_path}"
            raise ValueError(msg)

        return loaded

    @property
    def sheet_name(self) -> str:
        return self.mapping["workbook"]["sheet_name"]

    def build_workbook(self, rates: Iterable[CountryRate]) -> Workbook:
        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = self.sheet_name

        section = self.mapping["workbook"]
        columns = self.mapping["columns"]
        header_row = int(section["header_row"])
        for key, column in columns.items():
            cell = worksheet[f"{column}{header_row}"]
            cell.value = self.mapping["headers"].get(key, key)
            cell.font = Font(bold=True)

        start_row = int(section["start_row"])
        for offset, rate in enumerate(rates):
            row = start_row + offset
            values = rate.to_dict()
            for key, column in columns.items():
                value = values.get(key)
                if key in AMOUNT_FIELDS and value is not None:
                    value = float(value)
                worksheet[f"{column}{row}"] = value

        return workbook

    def export_bytes(self, rates: Iterable[CountryRate]) -> bytes:
        buffer = BytesIO()
        self.build_workbook(rates).save(buffer)
        return buffer.getvalue()

    def export_file(self, rates: Iterable[CountryRate], output_path: Path | str) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.build_workbook(rates).save(output_path)
        return output_path

    def read_rates(self, source: Union[Path, str, bytes, BinaryIO]) -> WorkbookImportResult:
        if isinstance(source, bytes):
            source = BytesIO(source)
        try:
            workbook = load_workbook(source, data_only=True)
        except (BadZipFile, InvalidFileException, KeyError) as exc:
            raise ValueError(f"Not a readable .xlsx workbook: {exc}") from exc
        if self.sheet_name not in workbook.sheetnames:
            raise ValueError(f"Workbook has no sheet named {self.sheet_name!r}")
        return self._read_sheet(workbook[self.sheet_name])

    def _read_sheet(self, sheet: Worksheet) -> WorkbookImportResult:
        result = WorkbookImportResult()
        columns = self.mapping["columns"]
        mandatory = self.get_mandatory_columns()
        start_row = int(self.mapping["workbook"]["start_row"])

        for row in range(start_row, sheet.max_row + 1):
            values = {key: sheet[f"{column}{row}"].value for key, column in columns.items()}
            if all(value in (None, "") for value in values.values()):
                continue

            missing = [key for key in mandatory if values.get(key) in (None, "")]
            if missing:
                result.errors.append(f"Row {row}: missing {', '.join(missing)}")
                continue

            try:
                amounts = {
                    key: _to_decimal(values.get(key))
                    for key in AMOUNT_FIELDS
                    if values.get(key) not in (None, "")
                }
                rate = CountryRate(
                    country_code=str(values["country_code"]),
                    country_name_de=_to_text(values.get("country_name_de")),
                    country_name_ko=_to_text(values.get("country_name_ko")),
                    **amounts,
                )
            except ValueError as exc:
                result.errors.append(f"Row {row}: {exc}")
                continue

            result.rates.append(rate)

        return result

    def get_mandatory_columns(self) -> list[str]:
        verification = self.mapping.get("verification", {})
        mandatory = verification.get("mandatory_columns", [])
        if not isinstance(mandatory, list):
            msg = "verification.mandatory_columns must be a list of column keys"
            raise ValueError(msg)
        return mandatory


def _to_decimal(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value).replace(",", ".").strip())
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"not a number: {value!r}")
    return amount.quantize(Decimal("0.01"))


def _to_text(value: Any) -> str | None:
    if value in (None, ""):
        return None
    return str(value).strip()
