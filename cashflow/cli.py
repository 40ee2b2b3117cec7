"""Cashflow CLI - run the recurring scheduler and inspect budgets and projections."""
import argparse
import sys
from datetime import date
from typing import Optional

from cashflow.audit import configure_logging
from cashflow.config import get_settings, validate_all_settings
from cashflow.models.finance import Money
from cashflow.orchestrator import CashflowApp, create_app_components


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date (expected YYYY-MM-DD): {value}")


def _parse_rate(value: str) -> tuple[str, float]:
    code, sep, rate = value.partition("=")
    try:
        if not sep:
            raise ValueError
        return code.strip().upper(), float(rate)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid rate (expected CODE=RATE): {value}")


def _app(args) -> CashflowApp:
    if args.db:
        return create_app_components(backend="sqlite", sqlite_path=args.db)
    return create_app_components()


def cmd_run_due(args):
    """Materialize every due recurring transaction."""
    app = _app(args)
    try:
        summary = app.run_daily(args.date)
    finally:
        app.close()

    print(f"Run {summary.run_date.isoformat()} ({summary.correlation_id})")
    print(f"  Processed:     {summary.processed}")
    print(f"  Created:       {summary.transactions_created}")
    print(f"  Awaiting user: {len(summary.due)}")
    print(f"  Skipped:       {summary.skipped}")

    if summary.has_errors:
        print(f"\nFailed: {len(summary.errors)}")
        for recurring_id, message in summary.errors.items():
            print(f"  - {recurring_id}: {message}")
        return 1

    return 0


def cmd_upcoming(args):
    """List occurrences due in the next N days."""
    app = _app(args)
    try:
        upcoming = app.upcoming(args.date, args.days)
    finally:
        app.close()

    if not upcoming:
        print("Nothing scheduled.")
        return 0

    for recurring in upcoming:
        amount = Money(amount=recurring.amount, currency_code=recurring.currency_code)
        print(
            f"  {recurring.next_run_date.isoformat()} | {recurring.name:30s} | "
            f"{recurring.transaction_type.value:7s} | {amount.format():>20s}"
        )
    return 0


def cmd_project(args):
    """Show the monthly cash-flow projection."""
    app = _app(args)
    try:
        projection = app.projection(args.currency, dict(args.rate or []))
    finally:
        app.close()

    def fmt(amount: int) -> str:
        return Money(amount=amount, currency_code=projection.currency_code).format()

    print("=" * 50)
    print("MONTHLY PROJECTION")
    print("=" * 50)
    print(f"Income:           {fmt(projection.monthly_income)}")
    print(f"Expense:          {fmt(projection.monthly_expense)}")
    print(f"Net:              {fmt(projection.monthly_net)}")
    print(f"Passive income:   {fmt(projection.monthly_passive_income)}")
    print(f"Passive coverage: {projection.passive_coverage}%")

    if projection.unconverted_currencies:
        print(f"\nNo rate for: {', '.join(projection.unconverted_currencies)} (summed as-is)")

    return 0


def cmd_budgets(args):
    """Show spending against every active budget."""
    app = _app(args)
    try:
        report = app.budget_report()
    finally:
        app.close()

    if not report:
        print("No active budgets.")
        return 0

    for budget, status in report:
        alert = f" [{status.alert.value}]" if status.alert else ""
        print(
            f"  {budget.name:25s} {status.spent_money.format():>18s} / "
            f"{budget.allocated_money.format():>18s}  {status.percent:6.2f}%  "
            f"remaining {status.remaining_money.format()}{alert}"
        )
    return 0


def main(argv: Optional[list[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Cashflow - recurring transactions, budgets and projections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cashflow --db cashflow.db run-due               Create today's recurring transactions
  cashflow --db cashflow.db run-due --date 2024-01-15
  cashflow --db cashflow.db upcoming --days 14    What is due in the next two weeks
  cashflow --db cashflow.db project --rate USD=25000
  cashflow --db cashflow.db budgets               Spending against budgets
"""
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--db", help="SQLite database file (overrides storage settings)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run-due", help="Materialize due recurring transactions")
    run_parser.add_argument("--date", type=_parse_date, help="Run as of this date (default: today)")
    run_parser.set_defaults(func=cmd_run_due)

    upcoming_parser = subparsers.add_parser("upcoming", help="List upcoming occurrences")
    upcoming_parser.add_argument("--days", type=int, default=None,
                                 help="Look-ahead window (default: upcoming_days setting)")
    upcoming_parser.add_argument("--date", type=_parse_date, help="Reference date (default: today)")
    upcoming_parser.set_defaults(func=cmd_upcoming)

    project_parser = subparsers.add_parser("project", help="Monthly cash-flow projection")
    project_parser.add_argument("--currency", help="Target currency (default: default_currency setting)")
    project_parser.add_argument("--rate", type=_parse_rate, action="append",
                                help="Conversion rate as CODE=RATE, repeatable")
    project_parser.set_defaults(func=cmd_project)

    budgets_parser = subparsers.add_parser("budgets", help="Show budget status")
    budgets_parser.set_defaults(func=cmd_budgets)

    args = parser.parse_args(argv)
    checks = validate_all_settings()
    invalid = [name for name in ("storage", "app") if not checks[name]]
    if invalid:
        for name in invalid:
            print(f"Invalid {name} settings: {checks[name + '_error']}", file=sys.stderr)
        return 2

    configure_logging(args.verbose or get_settings().app.debug_mode)

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
