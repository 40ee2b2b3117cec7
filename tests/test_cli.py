"""End-to-end tests for the command line, against a temporary SQLite file."""

from datetime import date
from uuid import uuid4

import pytest

from cashflow import cli
from cashflow.config import validate_all_settings
from cashflow.models.finance import (
    Budget,
    Category,
    CategoryType,
    Frequency,
    RecurringTransaction,
    RecurringType,
)
from cashflow.orchestrator import CashflowApp, create_app_components
from cashflow.services.storage import InMemoryFinanceStorage, SQLiteDatabase, SQLiteFinanceStorage, StorageError


ACCOUNT = uuid4()


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "cashflow.db")
    database = SQLiteDatabase(path)
    storage = SQLiteFinanceStorage(database)

    dividends = storage.add_category(Category(name="Dividends", type=CategoryType.INCOME, is_passive=True))
    storage.add_recurring(RecurringTransaction(
        account_id=ACCOUNT,
        name="Cleaner",
        transaction_type=RecurringType.EXPENSE,
        amount=300_000,
        currency_code="VND",
        frequency=Frequency.WEEKLY,
        day_of_week=1,
        start_date=date(2024, 1, 1),
        next_run_date=date(2024, 1, 1),
    ))
    storage.add_recurring(RecurringTransaction(
        account_id=ACCOUNT,
        category_id=dividends.id,
        name="Dividends",
        transaction_type=RecurringType.INCOME,
        amount=12_000_000,
        currency_code="VND",
        frequency=Frequency.YEARLY,
        month_of_year=6,
        day_of_month=30,
        start_date=date(2024, 6, 30),
        next_run_date=date(2024, 6, 30),
    ))
    storage.add_budget(Budget(
        name="Household",
        amount=1_000_000,
        currency_code="VND",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
    ))
    database.close()
    return path


class FailingStorage(InMemoryFinanceStorage):
    def add_transaction(self, transaction):
        raise StorageError("read-only database")


class TestRunDue:
    def test_materializes_and_reports(self, db_path, capsys):
        assert cli.main(["--db", db_path, "run-due", "--date", "2024-01-15"]) == 0

        out = capsys.readouterr().out
        assert "Created:       3" in out

        app = create_app_components(backend="sqlite", sqlite_path=db_path)
        try:
            assert len(app.storage.list_transactions()) == 3
        finally:
            app.close()

    def test_second_run_same_day_creates_nothing(self, db_path, capsys):
        cli.main(["--db", db_path, "run-due", "--date", "2024-01-15"])
        capsys.readouterr()

        assert cli.main(["--db", db_path, "run-due", "--date", "2024-01-15"]) == 0
        assert "Created:       0" in capsys.readouterr().out

    def test_failure_exit_code(self, monkeypatch, capsys):
        storage = FailingStorage()
        storage.add_recurring(RecurringTransaction(
            account_id=ACCOUNT,
            name="Cleaner",
            transaction_type=RecurringType.EXPENSE,
            amount=300_000,
            currency_code="VND",
            frequency=Frequency.DAILY,
            start_date=date(2024, 1, 1),
            next_run_date=date(2024, 1, 1),
        ))
        monkeypatch.setattr(cli, "create_app_components", lambda **kwargs: CashflowApp(storage))

        assert cli.main(["run-due", "--date", "2024-01-01"]) == 1
        assert "read-only database" in capsys.readouterr().out

    def test_bad_date_rejected(self, db_path):
        with pytest.raises(SystemExit):
            cli.main(["--db", db_path, "run-due", "--date", "15/01/2024"])


class TestReports:
    def test_upcoming(self, db_path, capsys):
        assert cli.main(["--db", db_path, "upcoming", "--date", "2024-01-01", "--days", "3"]) == 0
        out = capsys.readouterr().out
        assert "Cleaner" in out
        assert "Dividends" not in out

    def test_project(self, db_path, capsys):
        assert cli.main(["--db", db_path, "project"]) == 0
        out = capsys.readouterr().out
        assert "Passive income:   1,000,000 VND" in out
        assert "Passive coverage: 77%" in out

    def test_budgets(self, db_path, capsys):
        cli.main(["--db", db_path, "run-due", "--date", "2024-01-15"])
        capsys.readouterr()

        assert cli.main(["--db", db_path, "budgets"]) == 0
        out = capsys.readouterr().out
        assert "Household" in out
        assert "90.00%" in out
        assert "[warning]" in out

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()


class TestSettingsCheck:
    """Settings are validated before any command runs."""

    def test_valid_by_default(self):
        assert validate_all_settings() == {"storage": True, "app": True}

    def test_invalid_settings_reported(self, monkeypatch):
        monkeypatch.setenv("CASHFLOW_BUDGET_WARNING_PERCENT", "150")

        checks = validate_all_settings()

        assert checks["storage"]
        assert not checks["app"]
        assert "warning threshold" in checks["app_error"]

    def test_invalid_settings_stop_cli(self, db_path, monkeypatch, capsys):
        monkeypatch.setenv("CASHFLOW_STORAGE_BACKEND", "postgres")

        assert cli.main(["--db", db_path, "budgets"]) == 2

        captured = capsys.readouterr()
        assert "Invalid storage settings" in captured.err
        assert captured.out == ""
