"""Database module for fee ledger persistence."""

from .models import (
    Base,
    FeeAccount,
    PaymentEntry,
    FeeStatus,
    PaymentMethod,
    EntryStatus,
    to_major_units,
)
from .session import (
    get_db,
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    get_async_session_factory,
    get_db_context,
)
from .repository import FeeAccountRepository

__all__ = [
    # Models
    "Base",
    "FeeAccount",
    "PaymentEntry",
    "FeeStatus",
    "PaymentMethod",
    "EntryStatus",
    "to_major_units",
    # Session management
    "get_db",
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "get_async_session_factory",
    "get_db_context",
    # Repositories
    "FeeAccountRepository",
]
