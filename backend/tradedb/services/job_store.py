"""
Process-wide import job registry.

Jobs live in memory only; they are operational telemetry, not business data.
Every update swaps in a new ImportProgress snapshot under a lock, so pollers
never observe a half-applied update. Terminal jobs are purged after a TTL.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from tradedb.core.config import settings
from tradedb.schemas.trade_import import ImportProgress, JobStatus

logger = logging.getLogger("tradedb.job_store")


class JobStore:
    def __init__(self, ttl: timedelta = timedelta(hours=24)):
        self.ttl = ttl
        self._jobs: Dict[str, ImportProgress] = {}
        self._lock = threading.Lock()

    def create(self, year: int, countries: Optional[List[str]] = None, clear_existing_data: bool = False) -> ImportProgress:
        progress = ImportProgress(
            job_id=str(uuid.uuid4()),
            year=year,
            countries=countries,
            clear_existing_data=clear_existing_data,
            current_step="Queued",
        )
        with self._lock:
            self._jobs[progress.job_id] = progress
        return progress

    def get(self, job_id: str) -> Optional[ImportProgress]:
        with self._lock:
            return self._jobs.get(job_id)

    def update(self, job_id: str, **changes: Any) -> Optional[ImportProgress]:
        """Replace the job's snapshot with a copy carrying ``changes``. Unknown id → None."""
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                return None
            if changes.get("status") in (JobStatus.COMPLETED, JobStatus.FAILED) and "completed_at" not in changes:
                changes["completed_at"] = datetime.now(timezone.utc)
            updated = current.model_copy(update=changes)
            self._jobs[job_id] = updated
            return updated

    def fail(self, job_id: str, error: str, only_if_active: bool = False) -> Optional[ImportProgress]:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None or (only_if_active and current.status.is_terminal):
                return current
            updated = current.model_copy(update={
                "status": JobStatus.FAILED,
                "error_message": error,
                "current_step": "Import failed",
                "completed_at": datetime.now(timezone.utc),
            })
            self._jobs[job_id] = updated
            return updated

    def list(self, limit: int = 20, status: Optional[JobStatus] = None) -> List[ImportProgress]:
        """Most recently created jobs first."""
        with self._lock:
            jobs = list(self._jobs.values())
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Drop terminal jobs that completed more than ``ttl`` ago."""
        cutoff = (now or datetime.now(timezone.utc)) - self.ttl
        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.status.is_terminal and job.completed_at is not None and job.completed_at < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
        if expired:
            logger.info("Purged %d expired import jobs", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


job_store = JobStore(ttl=timedelta(minutes=settings.job_ttl_minutes))
