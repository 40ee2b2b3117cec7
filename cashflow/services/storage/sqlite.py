"""
SQLite Storage Implementation

DESIGN DECISION: SQLite is the default durable backend because:
1. A household ledger is small, single-writer data
2. No server to operate
3. Real transactions (BEGIN IMMEDIATE) give us the all-or-nothing
   pairing of "create transaction" + "advance next_run_date"

TRADEOFFS:
- One writer at a time (fine for a daily batch plus occasional edits)
- We filter by date/category in SQL but keep the schema flat

Money columns are INTEGER minor units. Dates are ISO-8601 TEXT so they
sort and compare correctly as strings.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Any, Iterator, Optional
from uuid import UUID

import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from cashflow.config import get_settings
from cashflow.models.finance import (
    Budget,
    Category,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from cashflow.models.audit import AuditEvent
from cashflow.services.storage.interface import (
    AuditStorageInterface,
    ConcurrencyError,
    ConnectionError,
    DuplicateError,
    FinanceStorageInterface,
    NotFoundError,
    StorageError,
)

logger = structlog.get_logger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS categories (
    id          TEXT PRIMARY KEY,
    name        TEXT    NOT NULL,
    type        TEXT    NOT NULL CHECK(type IN ('income','expense','both')),
    is_passive  INTEGER NOT NULL DEFAULT 0,
    is_active   INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS recurring_transactions (
    id               TEXT PRIMARY KEY,
    account_id       TEXT    NOT NULL,
    category_id      TEXT,
    name             TEXT    NOT NULL,
    description      TEXT,
    transaction_type TEXT    NOT NULL CHECK(transaction_type IN ('income','expense')),
    amount           INTEGER NOT NULL CHECK(amount > 0),
    currency_code    TEXT    NOT NULL,
    frequency        TEXT    NOT NULL CHECK(frequency IN ('daily','weekly','monthly','yearly')),
    day_of_week      INTEGER,
    day_of_month     INTEGER,
    month_of_year    INTEGER,
    start_date       TEXT    NOT NULL,
    end_date         TEXT,
    next_run_date    TEXT    NOT NULL,
    last_run_date    TEXT,
    is_active        INTEGER NOT NULL DEFAULT 1,
    auto_create      INTEGER NOT NULL DEFAULT 1,
    version          INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS transactions (
    id                       TEXT PRIMARY KEY,
    account_id               TEXT    NOT NULL,
    category_id              TEXT,
    recurring_transaction_id TEXT,
    type                     TEXT    NOT NULL CHECK(type IN ('income','expense','transfer')),
    amount                   INTEGER NOT NULL CHECK(amount >= 0),
    currency_code            TEXT    NOT NULL,
    transaction_date         TEXT    NOT NULL,
    description              TEXT,
    notes                    TEXT
);

CREATE TABLE IF NOT EXISTS budgets (
    id            TEXT PRIMARY KEY,
    name          TEXT    NOT NULL,
    amount        INTEGER NOT NULL CHECK(amount >= 0),
    currency_code TEXT    NOT NULL,
    period_type   TEXT    NOT NULL,
    start_date    TEXT    NOT NULL,
    end_date      TEXT    NOT NULL,
    category_id   TEXT,
    rollover      INTEGER NOT NULL DEFAULT 0,
    is_active     INTEGER NOT NULL DEFAULT 1,
    CHECK(start_date <= end_date)
);

CREATE TABLE IF NOT EXISTS audit_events (
    event_id       TEXT PRIMARY KEY,
    timestamp      TEXT    NOT NULL,
    event_type     TEXT    NOT NULL,
    severity       TEXT    NOT NULL,
    entity_type    TEXT,
    entity_id      TEXT,
    correlation_id TEXT,
    description    TEXT    NOT NULL,
    details_json   TEXT,
    error_message  TEXT,
    is_user_action INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_recurring_next_run   ON recurring_transactions(next_run_date, is_active);
CREATE INDEX IF NOT EXISTS idx_transactions_date     ON transactions(transaction_date);
CREATE INDEX IF NOT EXISTS idx_transactions_category ON transactions(category_id);
CREATE INDEX IF NOT EXISTS idx_audit_correlation     ON audit_events(correlation_id);
"""

RECURRING_COLUMNS = [
    "id", "account_id", "category_id", "name", "description",
    "transaction_type", "amount", "currency_code", "frequency",
    "day_of_week", "day_of_month", "month_of_year", "start_date",
    "end_date", "next_run_date", "last_run_date", "is_active",
    "auto_create", "version",
]

TRANSACTION_COLUMNS = [
    "id", "account_id", "category_id", "recurring_transaction_id", "type",
    "amount", "currency_code", "transaction_date", "description", "notes",
]

CATEGORY_COLUMNS = ["id", "name", "type", "is_passive", "is_active"]

BUDGET_COLUMNS = [
    "id", "name", "amount", "currency_code", "period_type", "start_date",
    "end_date", "category_id", "rollover", "is_active",
]

AUDIT_COLUMNS = [
    "event_id", "timestamp", "event_type", "severity", "entity_type",
    "entity_id", "correlation_id", "description", "details_json",
    "error_message", "is_user_action",
]


def _row_values(model, columns: list[str]) -> list[Any]:
    data = model.model_dump(mode="json")
    return [data[column] for column in columns]


def _insert_sql(table: str, columns: list[str]) -> str:
    placeholders = ", ".join("?" for _ in columns)
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"


class SQLiteDatabase:
    """
    Low-level SQLite wrapper.

    Owns the connection, the schema and the transaction boundaries.
    Connection setup is retried because the file may be briefly locked by
    another process finishing its own write.
    """

    def __init__(self, path: Optional[str] = None, connect_attempts: Optional[int] = None):
        settings = get_settings().storage
        self._path = path or settings.sqlite_path
        self._attempts = connect_attempts or settings.connect_attempts
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._depth = 0

    def connect(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                for attempt in Retrying(
                    stop=stop_after_attempt(self._attempts),
                    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
                    retry=retry_if_exception_type(sqlite3.OperationalError),
                    reraise=True,
                ):
                    with attempt:
                        conn = sqlite3.connect(
                            str(Path(self._path).expanduser()),
                            check_same_thread=False,
                            isolation_level=None,
                        )
                        conn.row_factory = sqlite3.Row
                        conn.executescript(SCHEMA_SQL)
            except sqlite3.Error as e:
                raise ConnectionError(f"Failed to open SQLite database {self._path}: {e}")
            self._conn = conn
            logger.debug("sqlite_connected", path=self._path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Outermost block owns BEGIN/COMMIT; nested blocks join it."""
        with self._lock:
            conn = self.connect()
            outermost = self._depth == 0
            if outermost:
                self.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield conn
            except BaseException:
                if outermost:
                    self.execute("ROLLBACK")
                raise
            else:
                if outermost:
                    self.execute("COMMIT")
            finally:
                self._depth -= 1

    def execute(self, sql: str, params: tuple | list = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self.connect().execute(sql, params)
            except sqlite3.IntegrityError as e:
                if "UNIQUE" in str(e) or "PRIMARY KEY" in str(e):
                    raise DuplicateError(str(e))
                raise StorageError(f"Integrity check failed: {e}")
            except sqlite3.Error as e:
                raise StorageError(f"SQLite operation failed: {e}")


class SQLiteFinanceStorage(FinanceStorageInterface):
    """SQLite implementation of finance storage."""

    def __init__(self, database: Optional[SQLiteDatabase] = None):
        self._db = database or SQLiteDatabase()

    @property
    def database(self) -> SQLiteDatabase:
        return self._db

    def unit_of_work(self):
        return self._db.transaction()

    # -- Recurring definitions ------------------------------------------------

    def add_recurring(self, recurring: RecurringTransaction) -> RecurringTransaction:
        self._db.execute(
            _insert_sql("recurring_transactions", RECURRING_COLUMNS),
            _row_values(recurring, RECURRING_COLUMNS),
        )
        return recurring

    def get_recurring(self, recurring_id: UUID) -> Optional[RecurringTransaction]:
        row = self._db.execute(
            "SELECT * FROM recurring_transactions WHERE id = ?", (str(recurring_id),)
        ).fetchone()
        return RecurringTransaction.model_validate(dict(row)) if row else None

    def update_recurring(self, recurring: RecurringTransaction) -> RecurringTransaction:
        columns = [c for c in RECURRING_COLUMNS if c not in ("id", "version")]
        assignments = ", ".join(f"{c} = ?" for c in columns)
        values = _row_values(recurring, columns)
        cursor = self._db.execute(
            f"UPDATE recurring_transactions SET {assignments}, version = version + 1 "
            "WHERE id = ? AND version = ?",
            values + [str(recurring.id), recurring.version],
        )
        if cursor.rowcount == 0:
            row = self._db.execute(
                "SELECT version FROM recurring_transactions WHERE id = ?",
                (str(recurring.id),),
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Recurring transaction not found: {recurring.id}")
            raise ConcurrencyError(recurring.id, recurring.version, row["version"])
        return recurring.model_copy(update={"version": recurring.version + 1})

    def list_recurring(self, active_only: bool = False) -> list[RecurringTransaction]:
        sql = "SELECT * FROM recurring_transactions"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY next_run_date, name"
        rows = self._db.execute(sql).fetchall()
        return [RecurringTransaction.model_validate(dict(row)) for row in rows]

    # -- Transactions ---------------------------------------------------------

    def add_transaction(self, transaction: Transaction) -> Transaction:
        self._db.execute(
            _insert_sql("transactions", TRANSACTION_COLUMNS),
            _row_values(transaction, TRANSACTION_COLUMNS),
        )
        return transaction

    def list_transactions(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category_id: Optional[UUID] = None,
        transaction_type: Optional[TransactionType] = None,
        recurring_transaction_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        clauses = []
        params: list[Any] = []
        if date_from:
            clauses.append("transaction_date >= ?")
            params.append(date_from.isoformat())
        if date_to:
            clauses.append("transaction_date <= ?")
            params.append(date_to.isoformat())
        if category_id:
            clauses.append("category_id = ?")
            params.append(str(category_id))
        if transaction_type:
            clauses.append("type = ?")
            params.append(transaction_type.value)
        if recurring_transaction_id:
            clauses.append("recurring_transaction_id = ?")
            params.append(str(recurring_transaction_id))

        sql = "SELECT * FROM transactions"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY transaction_date"
        rows = self._db.execute(sql, params).fetchall()
        return [Transaction.model_validate(dict(row)) for row in rows]

    # -- Categories -----------------------------------------------------------

    def add_category(self, category: Category) -> Category:
        self._db.execute(
            _insert_sql("categories", CATEGORY_COLUMNS),
            _row_values(category, CATEGORY_COLUMNS),
        )
        return category

    def get_category(self, category_id: UUID) -> Optional[Category]:
        row = self._db.execute(
            "SELECT * FROM categories WHERE id = ?", (str(category_id),)
        ).fetchone()
        return Category.model_validate(dict(row)) if row else None

    def list_categories(self) -> list[Category]:
        rows = self._db.execute("SELECT * FROM categories ORDER BY name").fetchall()
        return [Category.model_validate(dict(row)) for row in rows]

    # -- Budgets --------------------------------------------------------------

    def add_budget(self, budget: Budget) -> Budget:
        self._db.execute(
            _insert_sql("budgets", BUDGET_COLUMNS),
            _row_values(budget, BUDGET_COLUMNS),
        )
        return budget

    def update_budget(self, budget: Budget) -> Budget:
        columns = [c for c in BUDGET_COLUMNS if c != "id"]
        assignments = ", ".join(f"{c} = ?" for c in columns)
        cursor = self._db.execute(
            f"UPDATE budgets SET {assignments} WHERE id = ?",
            _row_values(budget, columns) + [str(budget.id)],
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Budget not found: {budget.id}")
        return budget

    def list_budgets(self, active_only: bool = False) -> list[Budget]:
        sql = "SELECT * FROM budgets"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY start_date, name"
        rows = self._db.execute(sql).fetchall()
        return [Budget.model_validate(dict(row)) for row in rows]


class SQLiteAuditStorage(AuditStorageInterface):
    """Audit events in the same database file, append-only."""

    def __init__(self, database: Optional[SQLiteDatabase] = None):
        self._db = database or SQLiteDatabase()

    def _row_to_event(self, row: sqlite3.Row) -> AuditEvent:
        data = dict(row)
        details = data.pop("details_json")
        data["details"] = json.loads(details) if details else {}
        data["is_user_action"] = bool(data["is_user_action"])
        for key in ("entity_type", "entity_id", "correlation_id", "error_message"):
            if data[key] == "":
                data[key] = None
        return AuditEvent.model_validate(data)

    def append_event(self, event: AuditEvent) -> bool:
        self._db.execute(_insert_sql("audit_events", AUDIT_COLUMNS), event.to_row())
        return True

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        rows = self._db.execute(
            "SELECT * FROM audit_events WHERE correlation_id = ? ORDER BY timestamp",
            (str(correlation_id),),
        ).fetchall()
        return [self._row_to_event(row) for row in rows]

    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        rows = self._db.execute(
            "SELECT * FROM audit_events WHERE entity_type = ? AND entity_id = ? "
            "ORDER BY timestamp",
            (entity_type, str(entity_id)),
        ).fetchall()
        return [self._row_to_event(row) for row in rows]

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        rows = self._db.execute(
            "SELECT * FROM audit_events ORDER BY timestamp DESC LIMIT ?", (limit,)
        ).fetchall()
        return [self._row_to_event(row) for row in rows]
