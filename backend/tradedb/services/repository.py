"""
Trade data repository: year-scoped deletes, statistics queries, the
connectivity probe and the per-file import log.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import distinct, func, text
from sqlalchemy.orm import Session

from tradedb.core.database import SessionLocal
from tradedb.models.import_status import ImportStatus
from tradedb.models.trade import (
    TradeAmount,
    TradeEmployment,
    TradeFactor,
    TradeImpact,
    TradeMaterial,
    TradeResource,
)
from tradedb.services.table_registry import TABLE_REGISTRY

logger = logging.getLogger("tradedb.repository")

# Per-region statistics columns → model counted
STATISTICS_COUNTS = {
    "trade_count": TradeAmount,
    "employment_count": TradeEmployment,
    "factor_count": TradeFactor,
    "impact_count": TradeImpact,
    "material_count": TradeMaterial,
    "resource_count": TradeResource,
}


class TradeDataRepository:
    """All store access for the importer. Each call opens and closes its own session."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    # ═══════════════════════════════════════════════════════════════
    #  Writes
    # ═══════════════════════════════════════════════════════════════

    def clear_year_data(self, year: int) -> Dict[str, int]:
        """Delete every row for ``year`` from all trade tables in one transaction."""
        deleted: Dict[str, int] = {}
        with self.session_factory() as db:
            with db.begin():
                for spec in TABLE_REGISTRY.values():
                    model = spec.model
                    count = (
                        db.query(model)
                        .filter(model.year == year)
                        .delete(synchronize_session=False)
                    )
                    deleted[spec.table_name] = count or 0

        logger.info("Cleared year %d data. Total rows deleted: %d", year, sum(deleted.values()))
        return deleted

    def record_file_status(
        self,
        job_id: str,
        year: int,
        country: str,
        tradeflow_type: str,
        file_name: str,
        table_name: Optional[str],
        records_imported: int,
        error_message: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ) -> None:
        """Append one line to the import_status log."""
        with self.session_factory() as db:
            with db.begin():
                db.add(ImportStatus(
                    job_id=job_id,
                    year=year,
                    country=country,
                    tradeflow_type=tradeflow_type,
                    table_name=table_name,
                    file_name=file_name,
                    records_imported=records_imported,
                    status="Failed" if error_message else "Completed",
                    error_message=error_message,
                    started_at=started_at or datetime.now(timezone.utc),
                    completed_at=datetime.now(timezone.utc),
                ))

    # ═══════════════════════════════════════════════════════════════
    #  Reads
    # ═══════════════════════════════════════════════════════════════

    def get_import_statistics(self, year: int) -> List[Dict[str, Any]]:
        """Row counts per (region1, tradeflow_type) across the trade tables, plus total trade amount."""
        stats: Dict[Tuple[str, str], Dict[str, Any]] = {}

        def _row(region1: str, tradeflow_type: str) -> Dict[str, Any]:
            key = (region1, tradeflow_type)
            if key not in stats:
                stats[key] = {
                    "region1": region1,
                    "tradeflow_type": tradeflow_type,
                    **{name: 0 for name in STATISTICS_COUNTS},
                    "total_amount": 0,
                }
            return stats[key]

        with self.session_factory() as db:
            for name, model in STATISTICS_COUNTS.items():
                grouped = (
                    db.query(model.region1, model.tradeflow_type, func.count(model.id))
                    .filter(model.year == year)
                    .group_by(model.region1, model.tradeflow_type)
                    .all()
                )
                for region1, tradeflow_type, count in grouped:
                    _row(region1, tradeflow_type)[name] = count

            totals = (
                db.query(TradeAmount.region1, TradeAmount.tradeflow_type, func.sum(TradeAmount.amount))
                .filter(TradeAmount.year == year)
                .group_by(TradeAmount.region1, TradeAmount.tradeflow_type)
                .all()
            )
            for region1, tradeflow_type, total in totals:
                _row(region1, tradeflow_type)["total_amount"] = total or 0

        return [stats[k] for k in sorted(stats)]

    def get_table_counts(self, year: Optional[int] = None) -> List[Dict[str, Any]]:
        """Row count for every trade table, optionally filtered by year."""
        counts = []
        with self.session_factory() as db:
            for spec in TABLE_REGISTRY.values():
                model = spec.model
                q = db.query(func.count(model.id))
                if year is not None:
                    q = q.filter(model.year == year)
                counts.append({
                    "table_name": spec.table_name,
                    "row_count": q.scalar() or 0,
                    "year_filter": year,
                })
        return counts

    def get_distinct_countries(self, year: int) -> List[Dict[str, Any]]:
        """Countries (region1) with trade rows for ``year``."""
        with self.session_factory() as db:
            rows = (
                db.query(
                    TradeAmount.region1,
                    func.count(distinct(TradeAmount.tradeflow_type)),
                    func.count(TradeAmount.id),
                )
                .filter(TradeAmount.year == year)
                .group_by(TradeAmount.region1)
                .order_by(TradeAmount.region1)
                .all()
            )
        return [
            {"country_code": code, "tradeflow_count": flows, "total_trade_records": total}
            for code, flows, total in rows
        ]

    def get_import_history(
        self,
        year: Optional[int] = None,
        status: Optional[str] = None,
        job_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Most recent import_status rows."""
        with self.session_factory() as db:
            q = db.query(ImportStatus).order_by(ImportStatus.id.desc())
            if year is not None:
                q = q.filter(ImportStatus.year == year)
            if status:
                q = q.filter(ImportStatus.status == status)
            if job_id:
                q = q.filter(ImportStatus.job_id == job_id)
            rows = q.limit(limit).all()

            return [
                {
                    "id": r.id,
                    "job_id": r.job_id,
                    "year": r.year,
                    "country": r.country,
                    "tradeflow_type": r.tradeflow_type,
                    "table_name": r.table_name,
                    "file_name": r.file_name,
                    "records_imported": r.records_imported,
                    "status": r.status,
                    "error_message": r.error_message,
                    "started_at": r.started_at.isoformat() if r.started_at else None,
                    "completed_at": r.completed_at.isoformat() if r.completed_at else None,
                }
                for r in rows
            ]

    def test_connection(self) -> bool:
        try:
            with self.session_factory() as db:
                return db.execute(text("SELECT 1")).scalar() == 1
        except Exception as e:
            logger.error("Database connection test failed: %s", e)
            return False


def get_repository() -> TradeDataRepository:
    """FastAPI dependency: repository bound to the application's session factory."""
    return TradeDataRepository(SessionLocal)
