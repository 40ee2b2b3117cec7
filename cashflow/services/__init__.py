"""Services package."""

from cashflow.services.storage import (
    AuditStorageInterface,
    ConcurrencyError,
    ConnectionError,
    DuplicateError,
    FinanceStorageInterface,
    InMemoryAuditStorage,
    InMemoryFinanceStorage,
    NotFoundError,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteFinanceStorage,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConcurrencyError",
    "ConnectionError",
    "DuplicateError",
    "FinanceStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryFinanceStorage",
    "NotFoundError",
    "SQLiteAuditStorage",
    "SQLiteDatabase",
    "SQLiteFinanceStorage",
    "StorageError",
]
