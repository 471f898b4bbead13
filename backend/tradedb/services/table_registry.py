"""
CSV file type → target table registry.

Every CSV in a tradeflow folder carries the same row shape
(region1, region2, industry1, industry2, amount). The file's base name
decides which table it lands in and what the numeric column means there.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Tuple, Type

from sqlalchemy import Insert, insert

from tradedb.core.exceptions import ConfigurationError, UnrecognizedFileError
from tradedb.models.trade import (
    BeaTable1,
    BeaTable2,
    BeaTable3,
    TradeAmount,
    TradeEmployment,
    TradeFactor,
    TradeImpact,
    TradeMaterial,
    TradeResource,
)
from tradedb.services.records import Trade

logger = logging.getLogger("tradedb.table_registry")


class FileType(str, Enum):
    TRADE = "trade"
    TRADE_EMPLOYMENT = "trade_employment"
    TRADE_FACTOR = "trade_factor"
    TRADE_IMPACT = "trade_impact"
    TRADE_MATERIAL = "trade_material"
    TRADE_RESOURCE = "trade_resource"
    BEA_TABLE1 = "bea_table1"
    BEA_TABLE2 = "bea_table2"
    BEA_TABLE3 = "bea_table3"


@dataclass(frozen=True)
class TableSpec:
    file_type: FileType
    model: Type[Any]
    value_column: str
    aliases: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    @property
    def columns(self) -> List[str]:
        return [
            "year", "region1", "region2", "industry1", "industry2",
            self.value_column, "tradeflow_type", "source_file",
        ]


TABLE_REGISTRY: Dict[FileType, TableSpec] = {
    FileType.TRADE: TableSpec(FileType.TRADE, TradeAmount, "amount"),
    FileType.TRADE_EMPLOYMENT: TableSpec(FileType.TRADE_EMPLOYMENT, TradeEmployment, "employment_value"),
    FileType.TRADE_FACTOR: TableSpec(FileType.TRADE_FACTOR, TradeFactor, "factor_value"),
    FileType.TRADE_IMPACT: TableSpec(FileType.TRADE_IMPACT, TradeImpact, "impact_value"),
    FileType.TRADE_MATERIAL: TableSpec(FileType.TRADE_MATERIAL, TradeMaterial, "material_value"),
    FileType.TRADE_RESOURCE: TableSpec(FileType.TRADE_RESOURCE, TradeResource, "resource_value"),
    FileType.BEA_TABLE1: TableSpec(FileType.BEA_TABLE1, BeaTable1, "bea_value", aliases=("bea1",)),
    FileType.BEA_TABLE2: TableSpec(FileType.BEA_TABLE2, BeaTable2, "bea_value", aliases=("bea2",)),
    FileType.BEA_TABLE3: TableSpec(FileType.BEA_TABLE3, BeaTable3, "bea_value", aliases=("bea3",)),
}


def _build_lookup() -> Dict[str, TableSpec]:
    lookup: Dict[str, TableSpec] = {}
    for spec in TABLE_REGISTRY.values():
        for name in (spec.file_type.value, *spec.aliases):
            lookup[name] = spec
    return lookup


_LOOKUP = _build_lookup()


def base_file_name(file_name: str) -> str:
    """'year/2022/US/imports/TRADE.CSV' → 'trade'."""
    return os.path.splitext(os.path.basename(file_name))[0].lower()


def resolve_table(file_name: str) -> TableSpec:
    """Map a CSV filename (any case, with or without directory/extension) to its TableSpec."""
    spec = _LOOKUP.get(base_file_name(file_name))
    if spec is None:
        raise UnrecognizedFileError(os.path.basename(file_name))
    return spec


def get_table_name_from_file_name(file_name: str) -> str:
    return resolve_table(file_name).table_name


def build_insert(spec: TableSpec) -> Insert:
    """Insert statement for the spec's table; execute it with a list of row dicts."""
    return insert(spec.model.__table__)


def to_insert_rows(trades: Iterable[Trade], spec: TableSpec) -> List[Dict[str, Any]]:
    return [t.as_row(spec.value_column) for t in trades]


def validate_registry() -> None:
    """
    Check the registry against the FileType enum and the ORM models.
    Called once at startup; raises ConfigurationError on any mismatch.
    """
    problems: List[str] = []

    missing = [ft.value for ft in FileType if ft not in TABLE_REGISTRY]
    if missing:
        problems.append(f"no table registered for file types: {missing}")

    seen: Dict[str, FileType] = {}
    for file_type, spec in TABLE_REGISTRY.items():
        if spec.file_type is not file_type:
            problems.append(f"{file_type.value}: registered under the wrong key ({spec.file_type.value})")
        table_cols = spec.model.__table__.columns
        for col in spec.columns:
            if col not in table_cols:
                problems.append(f"{spec.table_name}: missing column '{col}'")
        for name in (file_type.value, *spec.aliases):
            if name in seen and seen[name] is not file_type:
                problems.append(f"name '{name}' claimed by both {seen[name].value} and {file_type.value}")
            seen[name] = file_type

    if problems:
        raise ConfigurationError("Invalid table registry: " + "; ".join(problems))

    logger.info("Table registry OK: %d file types, %d names", len(TABLE_REGISTRY), len(seen))
