"""
Audit Models for Cashflow

Every state change the scheduler makes is logged for audit purposes.
This provides:
1. Traceability from a transaction back to the run that created it
2. Debugging information when a definition fails to materialize
3. A record of user actions (pause, resume, edit)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Definition lifecycle
    RECURRING_CREATED = "recurring_created"
    RECURRING_UPDATED = "recurring_updated"
    RECURRING_PAUSED = "recurring_paused"
    RECURRING_RESUMED = "recurring_resumed"

    # Scheduling
    OCCURRENCE_MATERIALIZED = "occurrence_materialized"
    OCCURRENCE_DUE = "occurrence_due"
    RECURRING_SKIPPED = "recurring_skipped"
    SCHEDULER_RUN_COMPLETED = "scheduler_run_completed"

    # Budgets
    BUDGET_RENEWED = "budget_renewed"

    # Failures
    PERSISTENCE_FAILED = "persistence_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'recurring', 'transaction', 'budget')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - all events of one scheduler run share an id
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> tuple:
        """
        Convert to a flat row for tabular storage.

        Columns in order:
        (event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action)
        """
        return (
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            int(self.is_user_action),
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.recurring_paused(recurring_id, name)
        event = AuditEventBuilder.occurrence_materialized(...)
    """

    @staticmethod
    def recurring_created(
        recurring_id: UUID,
        name: str,
        next_run_date: date,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_CREATED,
            entity_type="recurring",
            entity_id=recurring_id,
            description=f"Recurring transaction created: {name}",
            details={"next_run_date": next_run_date.isoformat()},
            is_user_action=True,
        )

    @staticmethod
    def recurring_updated(
        recurring_id: UUID,
        changed_fields: list[str],
        schedule_changed: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_UPDATED,
            entity_type="recurring",
            entity_id=recurring_id,
            description=f"Recurring transaction updated ({len(changed_fields)} fields)",
            details={
                "changed_fields": changed_fields,
                "schedule_changed": schedule_changed,
            },
            is_user_action=True,
        )

    @staticmethod
    def recurring_paused(recurring_id: UUID, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_PAUSED,
            entity_type="recurring",
            entity_id=recurring_id,
            description=f"Recurring transaction paused: {name}",
            is_user_action=True,
        )

    @staticmethod
    def recurring_resumed(
        recurring_id: UUID,
        name: str,
        next_run_date: date,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_RESUMED,
            entity_type="recurring",
            entity_id=recurring_id,
            description=f"Recurring transaction resumed: {name}",
            details={"next_run_date": next_run_date.isoformat()},
            is_user_action=True,
        )

    @staticmethod
    def occurrence_materialized(
        recurring_id: UUID,
        transaction_id: UUID,
        occurrence_date: date,
        amount: int,
        currency_code: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_MATERIALIZED,
            entity_type="recurring",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description=f"Transaction created for occurrence {occurrence_date.isoformat()}",
            details={
                "transaction_id": str(transaction_id),
                "occurrence_date": occurrence_date.isoformat(),
                "amount": amount,
                "currency_code": currency_code,
            },
        )

    @staticmethod
    def occurrence_due(
        recurring_id: UUID,
        next_run_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_DUE,
            entity_type="recurring",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description="Occurrence due, waiting for manual creation",
            details={"next_run_date": next_run_date.isoformat()},
        )

    @staticmethod
    def recurring_skipped(
        recurring_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_SKIPPED,
            severity=AuditSeverity.DEBUG,
            entity_type="recurring",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description=f"Recurring transaction skipped: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def scheduler_run_completed(
        run_date: date,
        processed: int,
        created: int,
        failed: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULER_RUN_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="run",
            correlation_id=correlation_id,
            description=(
                f"Scheduler run for {run_date.isoformat()}: "
                f"{processed} processed, {created} created, {failed} failed"
            ),
            details={
                "run_date": run_date.isoformat(),
                "processed": processed,
                "created": created,
                "failed": failed,
            },
        )

    @staticmethod
    def budget_renewed(
        budget_id: UUID,
        start_date: date,
        end_date: date,
        carried: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_RENEWED,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget renewed for {start_date.isoformat()}..{end_date.isoformat()}",
            details={
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "rollover_carried": carried,
            },
        )

    @staticmethod
    def persistence_failed(
        entity_type: str,
        entity_id: Optional[UUID],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Storage write failed for {entity_type}",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
