"""
Import engine service.

Handles:
  1. Starting import jobs (registered as Pending, executed on the worker pool)
  2. The country × tradeflow × file import matrix for one year
  3. Per-file outcomes folded into the job's progress record
  4. Job status lookups
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from tradedb.core.config import settings
from tradedb.core.database import SessionLocal
from tradedb.core.exceptions import ClearYearDataError
from tradedb.core.scheduler import submit_import
from tradedb.schemas.trade_import import FileFailure, ImportProgress, JobStatus
from tradedb.services.bulk_loader import BulkLoader
from tradedb.services.csv_import import CsvImportService
from tradedb.services.job_store import JobStore, job_store as default_job_store
from tradedb.services.records import TRADEFLOW_TYPES, Trade
from tradedb.services.repository import TradeDataRepository
from tradedb.services.table_registry import resolve_table

logger = logging.getLogger("tradedb.import_engine")

Submitter = Callable[[Callable[..., Any], str, Dict[str, Any]], None]


@dataclass(frozen=True)
class FileResult:
    """Outcome of importing one CSV file."""
    source_file: str
    table: Optional[str] = None
    rows_written: int = 0
    error: Optional[str] = None
    skipped: bool = False  # parsed to zero rows

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ImportTotals:
    """Running aggregate of FileResults for one job."""
    records_imported: int = 0
    files_processed: int = 0
    failed_files: List[FileFailure] = field(default_factory=list)

    def add(self, result: FileResult) -> None:
        self.records_imported += result.rows_written
        self.files_processed += 1
        if not result.ok:
            self.failed_files.append(FileFailure(
                source_file=result.source_file,
                table=result.table,
                rows_written=result.rows_written,
                error=result.error,
            ))

    def progress_fields(self) -> Dict[str, Any]:
        return {
            "records_imported": self.records_imported,
            "files_processed": self.files_processed,
            "files_failed": len(self.failed_files),
            "failed_files": list(self.failed_files),
        }


def fold_results(results: Sequence[FileResult]) -> ImportTotals:
    totals = ImportTotals()
    for result in results:
        totals.add(result)
    return totals


class ImportOrchestrator:
    """Runs year imports: clear (optional) → discover → parse → map → bulk load."""

    def __init__(
        self,
        csv_service: CsvImportService,
        repository: TradeDataRepository,
        loader: BulkLoader,
        job_store: Optional[JobStore] = None,
        submit: Submitter = submit_import,
    ):
        self.csv_service = csv_service
        self.repository = repository
        self.loader = loader
        self.job_store = job_store if job_store is not None else default_job_store
        self.submit = submit

    # ═══════════════════════════════════════════════════════════════
    #  1. JOB CONTROL
    # ═══════════════════════════════════════════════════════════════

    def start_import(
        self,
        year: int,
        countries: Optional[Sequence[str]] = None,
        clear_existing_data: bool = False,
    ) -> ImportProgress:
        """Register a Pending job and hand it to the worker pool. Returns without waiting."""
        country_list = list(countries) if countries else None
        job = self.job_store.create(year, country_list, clear_existing_data)
        logger.info(
            "Import job %s created: year=%d, countries=%s, clear=%s",
            job.job_id, year, country_list or "all", clear_existing_data,
        )

        try:
            self.submit(
                self.run_import,
                job.job_id,
                {
                    "job_id": job.job_id,
                    "year": year,
                    "countries": country_list,
                    "clear_existing_data": clear_existing_data,
                },
            )
        except Exception as e:
            logger.error("Could not start import job %s: %s", job.job_id, e, exc_info=True)
            return self.job_store.fail(job.job_id, f"Could not start import: {e}")

        return self.job_store.get(job.job_id) or job

    def get_status(self, job_id: str) -> Optional[ImportProgress]:
        return self.job_store.get(job_id)

    def list_jobs(self, limit: int = 20, status: Optional[JobStatus] = None) -> List[ImportProgress]:
        return self.job_store.list(limit=limit, status=status)

    # ═══════════════════════════════════════════════════════════════
    #  2. IMPORT RUN
    # ═══════════════════════════════════════════════════════════════

    def run_import(
        self,
        job_id: str,
        year: int,
        countries: Optional[Sequence[str]] = None,
        clear_existing_data: bool = False,
    ) -> Optional[ImportProgress]:
        """
        Execute the full import for one job. Per-file failures are recorded
        and skipped; anything else that escapes marks the job Failed.
        """
        self.job_store.update(
            job_id,
            status=JobStatus.RUNNING,
            started_at=datetime.now(timezone.utc),
            current_step="Starting import",
        )

        try:
            if clear_existing_data:
                self._step(job_id, "Clearing existing data...")
                try:
                    deleted = self.repository.clear_year_data(year)
                except Exception as e:
                    raise ClearYearDataError(str(e)) from e
                for table, count in deleted.items():
                    logger.info("Cleared %d rows from %s for year %d", count, table, year)

            target_countries = self._resolve_countries(year, countries)
            if not target_countries:
                logger.warning("Import job %s: no countries found for year %d", job_id, year)
                return self.job_store.fail(job_id, f"No countries found for year {year}")

            self._step(job_id, f"Found {len(target_countries)} countries to import")

            totals = ImportTotals()
            countries_processed = 0

            def publish(result: FileResult) -> None:
                totals.add(result)
                self.job_store.update(job_id, **totals.progress_fields())

            for country in target_countries:
                self._step(job_id, f"Processing country: {country}")

                for tradeflow_type in TRADEFLOW_TYPES:
                    self._step(job_id, f"Processing {country}/{tradeflow_type}")
                    self.import_country_data(year, country, tradeflow_type, job_id=job_id, on_result=publish)
                    countries_processed += 1
                    self.job_store.update(job_id, countries_processed=countries_processed)

            progress = self.job_store.update(
                job_id,
                status=JobStatus.COMPLETED,
                current_step=f"Import completed. Total records: {totals.records_imported}",
                countries_processed=countries_processed,
                **totals.progress_fields(),
            )
            logger.info(
                "Import job %s completed. Year: %d, Records: %d, Files: %d (%d failed)",
                job_id, year, totals.records_imported, totals.files_processed, len(totals.failed_files),
            )
            return progress

        except Exception as e:
            logger.error("Import job %s failed: %s", job_id, e, exc_info=True)
            return self.job_store.fail(job_id, str(e))

    def _step(self, job_id: str, step: str) -> None:
        logger.info("Import job %s: %s", job_id, step)
        self.job_store.update(job_id, current_step=step)

    def _resolve_countries(self, year: int, countries: Optional[Sequence[str]]) -> List[str]:
        """Requested codes matched to the country folders on disk, ignoring case."""
        available = self.csv_service.get_available_countries(year)
        if not countries:
            return available
        on_disk = {c.upper(): c for c in available}
        return [on_disk.get(c.upper(), c) for c in countries]

    # ═══════════════════════════════════════════════════════════════
    #  3. PER-FOLDER / PER-FILE IMPORT
    # ═══════════════════════════════════════════════════════════════

    def import_country_data(
        self,
        year: int,
        country: str,
        tradeflow_type: str,
        job_id: Optional[str] = None,
        on_result: Optional[Callable[[FileResult], None]] = None,
    ) -> List[FileResult]:
        """Import every CSV file of one country/tradeflow folder, one file at a time."""
        csv_files = self.csv_service.get_csv_files_for_import(year, country, tradeflow_type)
        if not csv_files:
            logger.warning("No CSV files found for %d/%s/%s", year, country, tradeflow_type)
            return []

        results = []
        for csv_file in csv_files:
            result = self.import_file(year, country, tradeflow_type, csv_file, job_id=job_id)
            results.append(result)
            if on_result is not None:
                on_result(result)
        return results

    def import_file(
        self,
        year: int,
        country: str,
        tradeflow_type: str,
        csv_file,
        job_id: Optional[str] = None,
    ) -> FileResult:
        """Resolve table, parse, enrich and bulk load one file. Never raises."""
        csv_path = Path(csv_file)
        source_file = f"{year}/{country}/{tradeflow_type}/{csv_path.name}"
        started_at = datetime.now(timezone.utc)
        table: Optional[str] = None

        try:
            spec = resolve_table(csv_path.name)
            table = spec.table_name
            records = self.csv_service.read_csv_file(csv_path)

            if not records:
                logger.warning("CSV file is empty: %s", csv_path)
                result = FileResult(source_file, table, skipped=True)
            else:
                trades = [Trade.from_record(r, year, tradeflow_type, source_file) for r in records]
                load = self.loader.load(trades, spec)
                result = FileResult(source_file, table, load.rows_written, load.error)
                if load.ok:
                    logger.info("Imported %d records from %s into %s", load.rows_written, csv_path.name, table)
                else:
                    logger.error(
                        "Import of %s into %s stopped after %d records: %s",
                        source_file, table, load.rows_written, load.error,
                    )
        except Exception as e:
            logger.error("Error importing CSV file %s: %s", csv_path, e, exc_info=True)
            result = FileResult(source_file, table, 0, str(e))

        if job_id is not None:
            self._record_file_status(job_id, year, country, tradeflow_type, csv_path.name, result, started_at)
        return result

    def _record_file_status(
        self,
        job_id: str,
        year: int,
        country: str,
        tradeflow_type: str,
        file_name: str,
        result: FileResult,
        started_at: datetime,
    ) -> None:
        try:
            self.repository.record_file_status(
                job_id=job_id,
                year=year,
                country=country,
                tradeflow_type=tradeflow_type,
                file_name=file_name,
                table_name=result.table,
                records_imported=result.rows_written,
                error_message=result.error,
                started_at=started_at,
            )
        except Exception as e:
            logger.warning("Could not write import log for %s: %s", result.source_file, e)


# ═══════════════════════════════════════════════════════════════════
#  4. DEFAULT INSTANCE
# ═══════════════════════════════════════════════════════════════════

_orchestrator: Optional[ImportOrchestrator] = None
_orchestrator_lock = threading.Lock()


def build_orchestrator(submit: Submitter = submit_import) -> ImportOrchestrator:
    """Wire an orchestrator from settings. Raises ConfigurationError if the data root is unusable."""
    return ImportOrchestrator(
        csv_service=CsvImportService(settings.trade_data_repo_path, settings.excluded_file_names),
        repository=TradeDataRepository(SessionLocal),
        loader=BulkLoader.from_settings(SessionLocal),
        submit=submit,
    )


def get_orchestrator() -> ImportOrchestrator:
    """FastAPI dependency: the process-wide orchestrator (built on first use)."""
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            _orchestrator = build_orchestrator()
        return _orchestrator
