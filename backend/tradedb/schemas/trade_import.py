"""Pydantic schemas for the trade import API and job progress."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# ── Requests ─────────────────────────────────────────────────────────────

class DatabaseCreationRequest(BaseModel):
    year: int
    countries: Optional[List[str]] = None  # None / [] → every country found on disk
    clear_existing_data: bool = False  # False appends (re-runs may duplicate rows)


# ── Job progress ─────────────────────────────────────────────────────────

class FileFailure(BaseModel):
    source_file: str
    table: Optional[str] = None
    rows_written: int = 0
    error: str


class ImportProgress(BaseModel):
    """Snapshot of an import job. Never mutated in place; updates produce a new copy."""

    job_id: str
    year: int
    status: JobStatus = JobStatus.PENDING
    current_step: str = ""
    records_imported: int = 0
    countries_processed: int = 0
    files_processed: int = 0
    files_failed: int = 0
    failed_files: List[FileFailure] = Field(default_factory=list)
    clear_existing_data: bool = False
    countries: Optional[List[str]] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    model_config = {"frozen": True}


class ImportStartedResponse(BaseModel):
    message: str = "Import started"
    job_id: str
    year: int
    clear_existing_data: bool


# ── Statistics ───────────────────────────────────────────────────────────

class ImportStatisticsRow(BaseModel):
    region1: str
    tradeflow_type: str
    trade_count: int = 0
    employment_count: int = 0
    factor_count: int = 0
    impact_count: int = 0
    material_count: int = 0
    resource_count: int = 0
    total_amount: Decimal = Decimal("0")


class TableCountRow(BaseModel):
    table_name: str
    row_count: int
    year_filter: Optional[int] = None


class CountryInfo(BaseModel):
    country_code: str
    tradeflow_count: int
    total_trade_records: int


class StatisticsResponse(BaseModel):
    year: int
    statistics: List[ImportStatisticsRow]
    table_counts: List[TableCountRow]
    countries: List[CountryInfo]


class CsvValidationResponse(BaseModel):
    year: int
    country: str
    tradeflow_type: str
    is_valid: bool
    error_message: Optional[str] = None
    warnings: List[str] = []
    file_count: int = 0


class ConnectionTestResponse(BaseModel):
    connected: bool
