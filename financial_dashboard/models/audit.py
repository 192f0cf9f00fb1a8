"""
Audit Models for the Financial Dashboard

Every state change and every persistence outcome is described by a
LedgerEvent. This provides:
1. Traceability of what the user changed and when
2. Debugging information when a save or load goes wrong
3. A record of state pushed in from other devices

DESIGN DECISION: Events are append-only. They are logged, never edited.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerEventType(str, Enum):
    """Types of events we audit."""
    # Accounts
    ACCOUNT_ADDED = "account_added"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"

    # Monthly budget
    MONTH_SEEDED = "month_seeded"
    SALARY_SET = "salary_set"
    CATEGORY_ADDED = "category_added"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"

    # Expenses
    EXPENSE_ADDED = "expense_added"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_MOVED = "expense_moved"
    EXPENSE_DELETED = "expense_deleted"

    # Session
    MONTH_SELECTED = "month_selected"
    THEME_CHANGED = "theme_changed"
    SESSION_RESET = "session_reset"
    AUTHENTICATION_FAILED = "authentication_failed"

    # Persistence
    STATE_LOADED = "state_loaded"
    LOAD_FAILED = "load_failed"
    STATE_SAVED = "state_saved"
    SAVE_FAILED = "save_failed"
    EXTERNAL_UPDATE_APPLIED = "external_update_applied"
    IGNORED_OPERATION = "ignored_operation"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LedgerEvent(BaseModel):
    """
    A single audit event.

    Every store mutation and persistence outcome creates one of these.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: LedgerEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="account, category, expense, month or state"
    )
    entity_id: Optional[int] = None
    month_key: Optional[str] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "month_key": self.month_key,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class LedgerEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = LedgerEventBuilder.account_added(account_id, name)
        event = LedgerEventBuilder.save_failed("disk full")
    """

    @staticmethod
    def account_added(account_id: int, name: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.ACCOUNT_ADDED,
            entity_type="account",
            entity_id=account_id,
            description=f"Account added: {name}",
            is_user_action=True,
        )

    @staticmethod
    def account_deleted(account_id: int, removed_expenses: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.ACCOUNT_DELETED,
            entity_type="account",
            entity_id=account_id,
            description=f"Account deleted with {removed_expenses} expenses",
            details={"removed_expenses": removed_expenses},
            is_user_action=True,
        )

    @staticmethod
    def month_seeded(month_key: str, category_count: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.MONTH_SEEDED,
            entity_type="month",
            month_key=month_key,
            description=f"Month {month_key} seeded with {category_count} default categories",
        )

    @staticmethod
    def expense_added(
        expense_id: int,
        month_key: str,
        amount: str,
        created_daily_spends: bool,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id=expense_id,
            month_key=month_key,
            description=f"Expense of {amount} added to {month_key}",
            details={
                "amount": amount,
                "created_daily_spends": created_daily_spends,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_moved(expense_id: int, from_month: str, to_month: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.EXPENSE_MOVED,
            entity_type="expense",
            entity_id=expense_id,
            month_key=to_month,
            description=f"Expense moved from {from_month} to {to_month}",
            details={"from_month": from_month, "to_month": to_month},
            is_user_action=True,
        )

    @staticmethod
    def ignored_operation(operation: str, reason: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.IGNORED_OPERATION,
            severity=AuditSeverity.DEBUG,
            description=f"{operation} ignored: {reason}",
            details={"operation": operation, "reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def state_loaded(found: bool, account_count: int, month_count: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.STATE_LOADED,
            entity_type="state",
            description="Persisted state loaded" if found else "No persisted state, starting empty",
            details={
                "found": found,
                "accounts": account_count,
                "months": month_count,
            },
        )

    @staticmethod
    def load_failed(error_message: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.LOAD_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="state",
            description="Could not load persisted state, starting empty",
            error_message=error_message,
        )

    @staticmethod
    def save_failed(error_message: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="state",
            description="Saving state failed, change kept in memory only",
            error_message=error_message,
        )

    @staticmethod
    def external_update_applied(account_count: int, month_count: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.EXTERNAL_UPDATE_APPLIED,
            entity_type="state",
            description="State replaced by an update from another device",
            details={"accounts": account_count, "months": month_count},
        )

    @staticmethod
    def authentication_failed(error_message: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.AUTHENTICATION_FAILED,
            severity=AuditSeverity.WARNING,
            description="Sign-in failed",
            error_message=error_message,
            is_user_action=True,
        )
