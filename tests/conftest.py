"""Shared fixtures: in-memory storage, fixed dates, sample definitions."""

import os
from datetime import date
from uuid import uuid4

import pytest

from cashflow.audit import AuditLogger
from cashflow.config import get_settings
from cashflow.models.finance import (
    Category,
    CategoryType,
    Frequency,
    RecurringTransaction,
    RecurringType,
)
from cashflow.scheduling.scheduler import RecurringTransactionScheduler
from cashflow.services.storage import InMemoryAuditStorage, InMemoryFinanceStorage


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep a developer's .env and CASHFLOW_* variables out of the tests."""
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("CASHFLOW_"):
            monkeypatch.delenv(name)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def storage():
    return InMemoryFinanceStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def scheduler(storage, audit_logger):
    return RecurringTransactionScheduler(storage, audit_logger)


@pytest.fixture
def account_id():
    return uuid4()


@pytest.fixture
def salary_category(storage):
    return storage.add_category(Category(name="Salary", type=CategoryType.INCOME))


@pytest.fixture
def passive_category(storage):
    return storage.add_category(Category(name="Dividends", type=CategoryType.INCOME, is_passive=True))


@pytest.fixture
def make_recurring(storage, account_id):
    """Build and store a recurring definition; keyword overrides win."""

    def _make(**overrides) -> RecurringTransaction:
        fields = dict(
            account_id=account_id,
            name="Gym membership",
            transaction_type=RecurringType.EXPENSE,
            amount=500_000,
            currency_code="VND",
            frequency=Frequency.MONTHLY,
            day_of_month=1,
            start_date=date(2024, 1, 1),
            next_run_date=date(2024, 1, 1),
        )
        fields.update(overrides)
        return storage.add_recurring(RecurringTransaction(**fields))

    return _make
