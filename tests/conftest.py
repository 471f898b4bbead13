"""
Shared fixtures: a temporary trade-data tree, an in-memory SQLite store and
an orchestrator that runs jobs inline so results are visible immediately.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal  # noqa: E402
from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from tradedb.core.database import build_engine  # noqa: E402
from tradedb.ingestion.init_db import init_db  # noqa: E402
from tradedb.services.bulk_loader import BulkLoader  # noqa: E402
from tradedb.services.csv_import import CsvImportService  # noqa: E402
from tradedb.services.import_engine import ImportOrchestrator  # noqa: E402
from tradedb.services.job_store import JobStore  # noqa: E402
from tradedb.services.records import Trade  # noqa: E402
from tradedb.services.repository import TradeDataRepository  # noqa: E402

HEADER = "Region1,Region2,Industry1,Industry2,Amount\n"

TRADE_CSV = HEADER + (
    "US,CN,Agriculture,Manufacturing,1000000.50\n"
    "US,MX,Mining,Transportation,500000.00\n"
    "US,CA,Services,Technology,750000.25\n"
)

EMPLOYMENT_CSV = HEADER + (
    "US,CN,Agriculture,Manufacturing,500.00\n"
    "US,MX,Mining,Transportation,250.00\n"
)

IN_TRADE_CSV = HEADER + (
    "IN,US,Textiles,Retail,1200.10\n"
    "IN,CN,Chemicals,Manufacturing,830.00\n"
    "IN,DE,Software,Services,99.99\n"
)


def write_csv(root: Path, year: int, country: str, tradeflow: str, name: str, content: str) -> Path:
    path = root / "year" / str(year) / country / tradeflow / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def make_trades(n: int, year: int = 2022) -> list:
    return [
        Trade(
            year=year,
            region1="US",
            region2="CN",
            industry1=f"ind{i}",
            industry2="x",
            amount=Decimal(i),
            tradeflow_type="imports",
            source_file=f"{year}/US/imports/trade.csv",
        )
        for i in range(n)
    ]


def run_inline(func, job_id, kwargs):
    func(**kwargs)


@pytest.fixture
def trade_data_root(tmp_path):
    """
    year/2022/US/imports: trade.csv (3 rows), trade_employment.csv (2 rows), runnote.md
    year/2022/IN/imports: trade.csv (3 rows)
    year/2022/notes:      ignored (not a 2-letter folder)
    """
    root = tmp_path / "trade-data"
    write_csv(root, 2022, "US", "imports", "trade.csv", TRADE_CSV)
    write_csv(root, 2022, "US", "imports", "trade_employment.csv", EMPLOYMENT_CSV)
    write_csv(root, 2022, "US", "imports", "runnote.md", "# run notes\n")
    write_csv(root, 2022, "IN", "imports", "trade.csv", IN_TRADE_CSV)
    (root / "year" / "2022" / "notes").mkdir()
    return root


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return TradeDataRepository(session_factory)


@pytest.fixture
def csv_service(trade_data_root):
    return CsvImportService(str(trade_data_root))


@pytest.fixture
def job_store():
    return JobStore()


@pytest.fixture
def orchestrator(csv_service, repository, session_factory, job_store):
    return ImportOrchestrator(
        csv_service=csv_service,
        repository=repository,
        loader=BulkLoader(session_factory, batch_size=1000),
        job_store=job_store,
        submit=run_inline,
    )
