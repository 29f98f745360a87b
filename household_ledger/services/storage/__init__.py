"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
A SQLAlchemy-backed relational store is the default backend; the in-memory
store serves tests and database-less runs.
"""

from household_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from household_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from household_ledger.services.storage.sql import (
    SqlAuditStorage,
    SqlLedgerStorage,
    build_engine,
    initialize_schema,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # SQL implementation
    "SqlAuditStorage",
    "SqlLedgerStorage",
    "build_engine",
    "initialize_schema",
]
