"""
Audit Logger

DESIGN DECISION: Every state change the scheduler makes is logged.
This provides:
1. Traceability from a transaction back to its scheduler run
2. Debugging capability for failed occurrences
3. A history of user actions on recurring definitions

The audit logger:
- Gracefully handles failures (an audit write never aborts a scheduler run)
- Supports correlation IDs to trace all events of one batch pass
"""

import logging
import sys
from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from cashflow.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from cashflow.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(debug: bool = False) -> None:
    """Route structlog's JSON lines to stderr at the requested level."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=logging.DEBUG if debug else logging.INFO,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("cashflow.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_recurring_created(self, recurring_id: UUID, name: str, next_run_date: date) -> None:
        self.log(AuditEventBuilder.recurring_created(recurring_id, name, next_run_date))

    def log_recurring_updated(
        self,
        recurring_id: UUID,
        changed_fields: list[str],
        schedule_changed: bool,
    ) -> None:
        self.log(AuditEventBuilder.recurring_updated(recurring_id, changed_fields, schedule_changed))

    def log_recurring_paused(self, recurring_id: UUID, name: str) -> None:
        self.log(AuditEventBuilder.recurring_paused(recurring_id, name))

    def log_recurring_resumed(self, recurring_id: UUID, name: str, next_run_date: date) -> None:
        self.log(AuditEventBuilder.recurring_resumed(recurring_id, name, next_run_date))

    def log_occurrence_materialized(
        self,
        recurring_id: UUID,
        transaction_id: UUID,
        occurrence_date: date,
        amount: int,
        currency_code: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log one transaction created from a recurring definition."""
        event = AuditEventBuilder.occurrence_materialized(
            recurring_id=recurring_id,
            transaction_id=transaction_id,
            occurrence_date=occurrence_date,
            amount=amount,
            currency_code=currency_code,
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_occurrence_due(
        self,
        recurring_id: UUID,
        next_run_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.occurrence_due(recurring_id, next_run_date, correlation_id))

    def log_recurring_skipped(
        self,
        recurring_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.recurring_skipped(recurring_id, reason, correlation_id))

    def log_run_completed(
        self,
        run_date: date,
        processed: int,
        created: int,
        failed: int,
        correlation_id: UUID,
    ) -> None:
        """Log the summary line of a batch pass."""
        event = AuditEventBuilder.scheduler_run_completed(
            run_date=run_date,
            processed=processed,
            created=created,
            failed=failed,
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_budget_renewed(
        self,
        budget_id: UUID,
        start_date: date,
        end_date: date,
        carried: int,
    ) -> None:
        self.log(AuditEventBuilder.budget_renewed(budget_id, start_date, end_date, carried))

    def log_persistence_failed(
        self,
        entity_type: str,
        entity_id: Optional[UUID],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.persistence_failed(
            entity_type=entity_type,
            entity_id=entity_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a scheduler run and pass it through
    every tick of that run.
    """
    return uuid4()
