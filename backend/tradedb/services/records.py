"""
In-memory trade records.

``TradeImportRecord`` is one parsed CSV row; ``Trade`` is the same row tagged
with the year, tradeflow type and source path it was loaded from.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Tuple

TRADEFLOW_TYPES: Tuple[str, ...] = ("imports", "exports", "domestic")


@dataclass(frozen=True)
class TradeImportRecord:
    region1: str = ""
    region2: str = ""
    industry1: str = ""
    industry2: str = ""
    amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class Trade:
    year: int
    region1: str
    region2: str
    industry1: str
    industry2: str
    amount: Decimal
    tradeflow_type: str
    source_file: str

    @classmethod
    def from_record(
        cls, record: TradeImportRecord, year: int, tradeflow_type: str, source_file: str
    ) -> "Trade":
        return cls(
            year=year,
            region1=record.region1,
            region2=record.region2,
            industry1=record.industry1,
            industry2=record.industry2,
            amount=record.amount,
            tradeflow_type=tradeflow_type,
            source_file=source_file,
        )

    def as_row(self, value_column: str) -> Dict[str, Any]:
        """Column dict for an insert; ``amount`` lands in the table's value column."""
        return {
            "year": self.year,
            "region1": self.region1,
            "region2": self.region2,
            "industry1": self.industry1,
            "industry2": self.industry2,
            value_column: self.amount,
            "tradeflow_type": self.tradeflow_type,
            "source_file": self.source_file,
        }
