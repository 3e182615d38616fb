"""Database infrastructure package."""

from app.infrastructure.db.models import Base, ComparisonRecordDB, RecognitionOutcomeDB
from app.infrastructure.db.repository import ComparisonRecordRepository
from app.infrastructure.db.session import (
    close_db,
    get_engine,
    get_session,
    init_db,
)

__all__ = [
    # Models
    "Base",
    "ComparisonRecordDB",
    "RecognitionOutcomeDB",
    # Repositories
    "ComparisonRecordRepository",
    # Session
    "get_engine",
    "get_session",
    "init_db",
    "close_db",
]
