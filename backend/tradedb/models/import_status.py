"""
Import log model.

One row per CSV file attempted by an import job: where it came from, which
table it went to, how many rows landed and whether it failed.
"""

from sqlalchemy import Column, DateTime, Integer, SmallInteger, String, Text
from sqlalchemy.sql import func

from tradedb.core.database import Base


class ImportStatus(Base):
    """Outcome of importing a single CSV file."""
    __tablename__ = "import_status"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(String(36), nullable=False, index=True)

    # Source info
    year = Column(SmallInteger, nullable=False, index=True)
    country = Column(String(2), nullable=False)          # 'US', 'IN', ...
    tradeflow_type = Column(String(10), nullable=False)  # 'imports', 'exports', 'domestic'
    table_name = Column(String(100), nullable=True)      # null when the file type is unknown
    file_name = Column(String(255), nullable=False)

    # Outcome
    records_imported = Column(Integer, default=0)
    status = Column(String(20), nullable=False, default="Running")
    # Running → Completed / Failed
    error_message = Column(Text, nullable=True)

    # Timing
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
