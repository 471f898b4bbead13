"""
Batched bulk insert of trade rows.

Each batch is one executemany INSERT committed in its own transaction, so a
failing batch leaves earlier batches in place (no file-level rollback).
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from tradedb.core.config import settings
from tradedb.services.records import Trade
from tradedb.services.table_registry import TableSpec, build_insert, to_insert_rows

logger = logging.getLogger("tradedb.bulk_loader")

DEFAULT_BATCH_SIZE = 1000


@dataclass(frozen=True)
class LoadResult:
    table: str
    rows_written: int = 0
    batches_committed: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BulkLoader:
    """
    Writes Trade rows into a registry table in fixed-size batches.

    ``batch_timeout`` bounds how long one batch may take (seconds, 0/None = no
    limit). A batch that times out counts as failed and ends the load; its
    worker thread is abandoned. Each ``load()`` call gets its own worker, so
    concurrent loads never queue behind each other.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_timeout: Optional[float] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.session_factory = session_factory
        self.batch_size = batch_size
        self.batch_timeout = batch_timeout or None

    @classmethod
    def from_settings(cls, session_factory: Callable[[], Session]) -> "BulkLoader":
        return cls(
            session_factory,
            batch_size=settings.import_batch_size,
            batch_timeout=settings.batch_timeout_seconds,
        )

    # ── Batch execution ────────────────────────────────────────────

    def _write_batch(self, spec: TableSpec, rows: List[Dict[str, Any]]) -> int:
        with self.session_factory() as session:
            with session.begin():
                session.execute(build_insert(spec), rows)
        return len(rows)

    def _run_batch(
        self,
        spec: TableSpec,
        rows: List[Dict[str, Any]],
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> int:
        if executor is None:
            return self._write_batch(spec, rows)

        future = executor.submit(self._write_batch, spec, rows)
        try:
            return future.result(timeout=self.batch_timeout)
        except FuturesTimeoutError:
            future.cancel()
            raise TimeoutError(f"batch insert timed out after {self.batch_timeout} seconds") from None

    # ── Public API ─────────────────────────────────────────────────

    def load(self, trades: Sequence[Trade], spec: TableSpec) -> LoadResult:
        """
        Insert ``trades`` into ``spec``'s table.

        Returns the rows actually committed. When batch k fails, the result
        carries (k-1) * batch_size rows and the batch error; later batches
        are not attempted. Safe to call from several threads at once.
        """
        rows = to_insert_rows(trades, spec)
        table = spec.table_name
        total = 0
        batches = 0

        executor = None
        if self.batch_timeout is not None and rows:
            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"bulk-{table}")

        try:
            for start in range(0, len(rows), self.batch_size):
                batch = rows[start : start + self.batch_size]
                batch_number = batches + 1
                try:
                    inserted = self._run_batch(spec, batch, executor)
                except Exception as e:
                    logger.error(
                        "Error inserting batch %d into %s (%d rows already committed): %s",
                        batch_number, table, total, e, exc_info=True,
                    )
                    return LoadResult(
                        table=table,
                        rows_written=total,
                        batches_committed=batches,
                        error=f"batch {batch_number} failed: {e}",
                    )
                total += inserted
                batches += 1
                logger.info("Inserted batch %d: %d records into %s", batch_number, inserted, table)
        finally:
            if executor is not None:
                # A timed-out batch may still hold the worker; don't wait for it
                executor.shutdown(wait=False)

        logger.info("Total inserted into %s: %d records", table, total)
        return LoadResult(table=table, rows_written=total, batches_committed=batches)
