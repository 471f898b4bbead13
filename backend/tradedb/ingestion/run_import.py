"""
Trade CSV Import Script
Runs one import job synchronously, without the API server.

Usage:
  python -m tradedb.ingestion.run_import --year 2022
  python -m tradedb.ingestion.run_import --year 2022 --countries US,IN
  python -m tradedb.ingestion.run_import --year 2022 --clear
"""
import argparse
import logging
import sys
from typing import List, Optional

from tradedb.core.config import settings
from tradedb.schemas.trade_import import ImportProgress, JobStatus
from tradedb.services.import_engine import build_orchestrator
from tradedb.services.table_registry import validate_registry

logger = logging.getLogger("tradedb.ingestion.run_import")


def _run_inline(func, job_id, kwargs):
    func(**kwargs)


def run_trade_import(
    year: int,
    countries: Optional[List[str]] = None,
    clear_existing_data: bool = False,
) -> ImportProgress:
    """Import one year in the current process and return the final progress record."""
    validate_registry()
    orchestrator = build_orchestrator(submit=_run_inline)

    logger.info(f"Starting trade import: year={year}, countries={countries or 'all'}, "
                f"clear={clear_existing_data}, root={settings.trade_data_repo_path}")
    progress = orchestrator.start_import(year, countries, clear_existing_data)

    for failure in progress.failed_files:
        logger.warning(f"  failed: {failure.source_file} ({failure.rows_written} rows written): {failure.error}")
    logger.info(f"Import {progress.status.value}: {progress.records_imported} records, "
                f"{progress.files_processed} files, {progress.files_failed} failed")
    return progress


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)-25s | %(levelname)-7s | %(message)s",
    )

    parser = argparse.ArgumentParser(description="tradedb CSV import")
    parser.add_argument("--year", type=int, required=True, help="Year folder to import")
    parser.add_argument("--countries", type=str, default=None,
                        help="Comma-separated 2-letter codes (default: every country folder)")
    parser.add_argument("--clear", action="store_true",
                        help="Delete existing rows for the year before importing")
    args = parser.parse_args()

    if not settings.min_import_year <= args.year <= settings.max_import_year:
        parser.error(f"--year must be between {settings.min_import_year} and {settings.max_import_year}")

    country_list = [c.strip() for c in args.countries.split(",") if c.strip()] if args.countries else None
    result = run_trade_import(year=args.year, countries=country_list, clear_existing_data=args.clear)
    sys.exit(0 if result.status == JobStatus.COMPLETED else 1)
