"""
Trade Import API
────────────────
Endpoints:
  POST /api/tradeimport/create-database                  Start a background import for a year
  GET  /api/tradeimport/status/{job_id}                  Progress of one import job
  GET  /api/tradeimport/jobs                             Recent import jobs
  GET  /api/tradeimport/statistics/{year}                Per-region stats, table counts, countries
  GET  /api/tradeimport/table-counts                     Row counts per table (optional year)
  GET  /api/tradeimport/countries/{year}                 Countries available in the CSV tree
  GET  /api/tradeimport/validate/{year}/{cc}/{flow}      Pre-flight check of one CSV folder
  GET  /api/tradeimport/history                          Per-file import log
  GET  /api/tradeimport/test-connection                  Database connectivity probe
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from tradedb.core.config import settings
from tradedb.core.rate_limit import limiter
from tradedb.schemas.trade_import import (
    ConnectionTestResponse,
    CsvValidationResponse,
    DatabaseCreationRequest,
    ImportProgress,
    ImportStartedResponse,
    JobStatus,
    StatisticsResponse,
    TableCountRow,
)
from tradedb.services.import_engine import ImportOrchestrator, get_orchestrator
from tradedb.services.records import TRADEFLOW_TYPES
from tradedb.services.repository import TradeDataRepository, get_repository

logger = logging.getLogger("tradedb.api.trade_import")
router = APIRouter(prefix="/api/tradeimport", tags=["Trade Import"])


def _check_year(year: int):
    if year < settings.min_import_year or year > settings.max_import_year:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid year. Must be between {settings.min_import_year} and {settings.max_import_year}.",
        )


def _is_country_code(code: str) -> bool:
    return len(code) == 2 and code.isalpha()


# ── Import jobs ───────────────────────────────────────────────────

@router.post("/create-database", status_code=202, response_model=ImportStartedResponse)
@limiter.limit(settings.import_rate_limit)
def create_database(
    request: Request,
    body: DatabaseCreationRequest,
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """
    Start importing every CSV file for a year. Returns the job id straight
    away; poll /status/{job_id} for progress.
    """
    _check_year(body.year)

    countries = [c.strip() for c in body.countries or [] if c.strip()]
    invalid = [c for c in countries if not _is_country_code(c)]
    if invalid:
        raise HTTPException(status_code=400, detail=f"Invalid country codes: {invalid}")

    job = orchestrator.start_import(body.year, countries or None, body.clear_existing_data)
    logger.info(f"Import requested: job={job.job_id} year={body.year} countries={countries or 'all'}")

    return ImportStartedResponse(
        job_id=job.job_id,
        year=body.year,
        clear_existing_data=body.clear_existing_data,
    )


@router.get("/status/{job_id}", response_model=ImportProgress)
def get_import_status(job_id: str, orchestrator: ImportOrchestrator = Depends(get_orchestrator)):
    """Get the progress record of an import job."""
    progress = orchestrator.get_status(job_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="Import job not found")
    return progress


@router.get("/jobs", response_model=List[ImportProgress])
def list_import_jobs(
    limit: int = Query(20, ge=1, le=100),
    status: Optional[JobStatus] = Query(None),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """List recent import jobs still held in memory."""
    return orchestrator.list_jobs(limit=limit, status=status)


# ── Statistics ────────────────────────────────────────────────────

@router.get("/statistics/{year}", response_model=StatisticsResponse)
def get_statistics(year: int, repository: TradeDataRepository = Depends(get_repository)):
    """Import statistics, table counts and countries for a year."""
    try:
        return StatisticsResponse(
            year=year,
            statistics=repository.get_import_statistics(year),
            table_counts=repository.get_table_counts(year),
            countries=repository.get_distinct_countries(year),
        )
    except Exception as e:
        logger.error(f"Error getting statistics for year {year}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/table-counts", response_model=List[TableCountRow])
def get_table_counts(
    year: Optional[int] = Query(None, description="Only count rows for this year"),
    repository: TradeDataRepository = Depends(get_repository),
):
    """Row counts for all trade tables."""
    try:
        return repository.get_table_counts(year)
    except Exception as e:
        logger.error(f"Error counting table rows: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/history")
def get_import_history(
    year: Optional[int] = Query(None),
    status: Optional[str] = Query(None, description="Completed or Failed"),
    job_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    repository: TradeDataRepository = Depends(get_repository),
):
    """Per-file import log, newest first."""
    return repository.get_import_history(year=year, status=status, job_id=job_id, limit=limit)


# ── CSV tree ──────────────────────────────────────────────────────

@router.get("/countries/{year}")
def list_available_countries(year: int, orchestrator: ImportOrchestrator = Depends(get_orchestrator)):
    """Country folders present in the CSV tree for a year."""
    countries = orchestrator.csv_service.get_available_countries(year)
    return {"year": year, "count": len(countries), "countries": countries}


@router.get("/validate/{year}/{country}/{tradeflow_type}", response_model=CsvValidationResponse)
def validate_csv_folder(
    year: int,
    country: str,
    tradeflow_type: str,
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """Check that a country/tradeflow folder has the expected CSV files."""
    if tradeflow_type not in TRADEFLOW_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"tradeflow_type must be one of: {list(TRADEFLOW_TYPES)}",
        )
    if not _is_country_code(country):
        raise HTTPException(status_code=400, detail=f"Invalid country code: {country}")
    result = orchestrator.csv_service.validate_csv_files(year, country, tradeflow_type)
    return CsvValidationResponse(
        year=year,
        country=country,
        tradeflow_type=tradeflow_type,
        is_valid=result.is_valid,
        error_message=result.error_message,
        warnings=result.warnings,
        file_count=result.file_count,
    )


# ── Connectivity ──────────────────────────────────────────────────

@router.get("/test-connection", response_model=ConnectionTestResponse)
def check_connection(repository: TradeDataRepository = Depends(get_repository)):
    """Check that the database answers."""
    return ConnectionTestResponse(connected=repository.test_connection())
