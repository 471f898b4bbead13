"""
CSV import service.

Handles:
  1. Locating CSV files in the trade-data tree (year/<YYYY>/<CC>/<tradeflow>/)
  2. Discovering the countries available for a year
  3. Tolerant parsing of CSV files into TradeImportRecord rows
  4. Pre-flight validation of a country/tradeflow folder
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import chardet

from tradedb.core.exceptions import ConfigurationError, RecordParseError
from tradedb.services.records import TradeImportRecord

logger = logging.getLogger("tradedb.csv_import")

DATA_FILE_EXTENSION = ".csv"
COUNTRY_CODE_LENGTH = 2
EXPECTED_FILES = ("trade.csv", "trade_employment.csv", "trade_factor.csv")

TEXT_FIELDS = ("region1", "region2", "industry1", "industry2")


@dataclass
class CsvValidationResult:
    is_valid: bool = True
    error_message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    file_count: int = 0


# ═══════════════════════════════════════════════════════════════════
#  Parsing helpers
# ═══════════════════════════════════════════════════════════════════

def _detect_encoding(file_bytes: bytes) -> str:
    """Detect file encoding using chardet."""
    result = chardet.detect(file_bytes[:50000])
    return result.get("encoding", "utf-8") or "utf-8"


def _decode(file_bytes: bytes, file_path: str) -> str:
    """UTF-8 (with or without BOM) first; chardet only for files that are not valid UTF-8."""
    try:
        return file_bytes.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass

    encoding = _detect_encoding(file_bytes)
    try:
        return file_bytes.decode(encoding)
    except (UnicodeDecodeError, LookupError) as e:
        raise RecordParseError(file_path, 1, f"cannot decode file as {encoding}: {e}") from None


def _detect_delimiter(sample: str) -> str:
    try:
        return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
    except csv.Error:
        return ","


def _normalize_header(name: Optional[str]) -> str:
    return (name or "").replace("\ufeff", "").strip().lower()


def _parse_amount(raw: Optional[str], file_path: str, line: int) -> Decimal:
    value = (raw or "").strip()
    if not value:
        return Decimal("0")
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise RecordParseError(file_path, line, f"amount '{value}' is not a valid number") from None
    if not amount.is_finite():
        raise RecordParseError(file_path, line, f"amount '{value}' is not a finite number")
    return amount


def parse_trade_rows(text: str, file_path: str = "<memory>") -> List[TradeImportRecord]:
    """
    Parse CSV text (header row required) into records.

    Headers are matched case-insensitively, column order does not matter,
    unknown columns are ignored and missing ones fall back to defaults.
    """
    reader = csv.DictReader(io.StringIO(text), delimiter=_detect_delimiter(text[:5000]))
    if reader.fieldnames is None:
        return []
    header_map: Dict[str, str] = {}
    for raw_name in reader.fieldnames:
        header_map.setdefault(_normalize_header(raw_name), raw_name)

    records: List[TradeImportRecord] = []
    for row in reader:
        values = {
            name: (row.get(header_map[name]) or "").strip() if name in header_map else ""
            for name in TEXT_FIELDS
        }
        raw_amount = row.get(header_map["amount"]) if "amount" in header_map else None
        records.append(TradeImportRecord(
            amount=_parse_amount(raw_amount, file_path, reader.line_num),
            **values,
        ))
    return records


# ═══════════════════════════════════════════════════════════════════
#  Service
# ═══════════════════════════════════════════════════════════════════

class CsvImportService:
    """Reads the trade-data repository checkout rooted at ``data_root``."""

    def __init__(self, data_root: Optional[str], excluded_file_names: Iterable[str] = ("runnote.md",)):
        if not data_root:
            raise ConfigurationError("TRADE_DATA_REPO_PATH is not set")
        root = Path(data_root)
        if not root.is_dir():
            raise ConfigurationError(f"Trade data directory not found: {root}")

        self.data_root = root
        self.excluded_file_names = {name.lower() for name in excluded_file_names}
        logger.info("CsvImportService initialized with path: %s", root)

    # ── File discovery ─────────────────────────────────────────────

    def get_csv_files_for_import(self, year: int, country: str, tradeflow_type: str) -> List[Path]:
        """
        CSV files for one country/year/tradeflow, e.g. (2022, "US", "imports")
        → [.../trade.csv, .../trade_employment.csv, ...]. Missing folder → [].
        """
        folder = self.data_root / "year" / str(year) / country / tradeflow_type
        if not folder.is_dir():
            logger.warning("CSV folder not found: %s", folder)
            return []

        csv_files = sorted(
            p for p in folder.iterdir()
            if p.is_file()
            and p.suffix.lower() == DATA_FILE_EXTENSION
            and p.name.lower() not in self.excluded_file_names
        )
        logger.info("Found %d CSV files in %s", len(csv_files), folder)
        return csv_files

    def get_available_countries(self, year: int) -> List[str]:
        """Two-letter country folders under year/<year>/, sorted."""
        year_folder = self.data_root / "year" / str(year)
        if not year_folder.is_dir():
            logger.warning("Year folder not found: %s", year_folder)
            return []

        countries = sorted(
            d.name for d in year_folder.iterdir()
            if d.is_dir() and len(d.name) == COUNTRY_CODE_LENGTH
        )
        logger.info("Found %d countries for year %d: %s", len(countries), year, ", ".join(countries))
        return countries

    def validate_csv_files(self, year: int, country: str, tradeflow_type: str) -> CsvValidationResult:
        """Check a folder has CSV files and warn about expected ones that are missing."""
        result = CsvValidationResult()
        csv_files = self.get_csv_files_for_import(year, country, tradeflow_type)

        if not csv_files:
            result.is_valid = False
            result.error_message = f"No CSV files found for {year}/{country}/{tradeflow_type}"
            return result

        file_names = {p.name.lower() for p in csv_files}
        for expected in EXPECTED_FILES:
            if expected not in file_names:
                result.warnings.append(f"Expected file not found: {expected}")

        result.file_count = len(csv_files)
        return result

    # ── Parsing ────────────────────────────────────────────────────

    def read_csv_file(self, file_path) -> List[TradeImportRecord]:
        """Read and parse a whole CSV file. Raises FileNotFoundError if it does not exist."""
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"CSV file not found: {path}")

        try:
            file_bytes = path.read_bytes()
            text = _decode(file_bytes, str(path))
            records = parse_trade_rows(text, str(path))
        except Exception as e:
            logger.error("Error reading CSV file %s: %s", path, e)
            raise

        logger.info("Read %d records from %s", len(records), path.name)
        return records
