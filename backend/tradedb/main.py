from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from tradedb.core.config import settings
from tradedb.core.scheduler import start_scheduler, stop_scheduler, get_scheduler_status
from tradedb.core.rate_limit import setup_rate_limiting
from tradedb.api import trade_import
from tradedb.services.import_engine import get_orchestrator
from tradedb.services.table_registry import validate_registry

# ─── Logging ───
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s | %(name)-20s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tradedb.main")


# ─── Lifecycle ───

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Trade import API starting up…")
    validate_registry()
    get_orchestrator()  # fails fast when TRADE_DATA_REPO_PATH is unusable
    start_scheduler()
    yield
    logger.info("Trade import API shutting down…")
    stop_scheduler()


app = FastAPI(
    title="tradedb API",
    description="Bulk import of year/country/tradeflow trade CSV files into PostgreSQL",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(trade_import.router)

# Rate limiting
setup_rate_limiting(app)


@app.get("/")
def root():
    return {
        "name": "tradedb API",
        "version": "1.0.0",
        "description": "Bulk import of year/country/tradeflow trade CSV files into PostgreSQL",
        "endpoints": {
            "create_database": "/api/tradeimport/create-database",
            "status": "/api/tradeimport/status/{job_id}",
            "jobs": "/api/tradeimport/jobs",
            "statistics": "/api/tradeimport/statistics/{year}",
            "table_counts": "/api/tradeimport/table-counts",
            "countries": "/api/tradeimport/countries/{year}",
            "validate": "/api/tradeimport/validate/{year}/{country}/{tradeflow_type}",
            "history": "/api/tradeimport/history",
            "test_connection": "/api/tradeimport/test-connection",
            "docs": "/docs",
        },
    }


@app.get("/health")
def health():
    return {"status": "healthy", "scheduler": get_scheduler_status()}
