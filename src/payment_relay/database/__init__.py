"""Database module for payment record persistence."""

from .models import (
    Base,
    PaymentRecord,
    StatusHistory,
    PaymentStatus,
    HistoryAction,
)
from .session import (
    create_async_engine,
    create_session_factory,
    normalize_database_url,
    DatabaseManager,
)
from .repository import (
    PaymentRecordRepository,
    StatusHistoryRepository,
)

__all__ = [
    # Models
    "Base",
    "PaymentRecord",
    "StatusHistory",
    "PaymentStatus",
    "HistoryAction",
    # Session management
    "create_async_engine",
    "create_session_factory",
    "normalize_database_url",
    "DatabaseManager",
    # Repositories
    "PaymentRecordRepository",
    "StatusHistoryRepository",
]
