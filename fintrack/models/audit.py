"""
Audit Models for Personal Finance Tracking

Every mutation the sync engine issues, and every failure it absorbs, is
recorded as an audit event. This provides:
1. Traceability of balance-affecting writes
2. A visible record of write failures the UI would otherwise never see
3. Debugging information for degraded-consistency cases

DESIGN DECISION: Audit events are append-only. We never modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session lifecycle
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"
    SYNC_READY = "sync_ready"

    # Accounts
    ACCOUNT_ADDED = "account_added"
    ACCOUNT_DELETED = "account_deleted"

    # Transactions
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_DELETED = "transaction_deleted"
    BALANCE_UPDATE_SKIPPED = "balance_update_skipped"

    # Stocks
    STOCK_ADDED = "stock_added"
    STOCK_PRICE_UPDATED = "stock_price_updated"
    STOCK_DELETED = "stock_deleted"

    # Bootstrap
    DEMO_DATA_SEEDED = "demo_data_seeded"

    # Failures
    WRITE_FAILED = "write_failed"
    WRITE_CONFLICT = "write_conflict"
    SNAPSHOT_DOCUMENT_REJECTED = "snapshot_document_rejected"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction', 'stock')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    user_id: Optional[str] = Field(
        default=None,
        description="Namespace owner the event happened in"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_added(uid, txn, balance_after)
        event = AuditEventBuilder.write_failed(uid, "add_account", acc_id, err)
    """

    @staticmethod
    def session_started(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description="Session started, subscribing to collections",
        )

    @staticmethod
    def session_ended(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_ENDED,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description="Session ended, local state cleared",
        )

    @staticmethod
    def sync_ready(user_id: str, counts: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_READY,
            user_id=user_id,
            description="All collections delivered their first snapshot",
            details=counts,
        )

    @staticmethod
    def account_added(user_id: str, account_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_ADDED,
            entity_type="account",
            entity_id=account_id,
            user_id=user_id,
            description=f"Account added: {name}",
        )

    @staticmethod
    def account_deleted(user_id: str, account_id: str, orphaned: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            severity=AuditSeverity.WARNING if orphaned else AuditSeverity.INFO,
            entity_type="account",
            entity_id=account_id,
            user_id=user_id,
            description=f"Account deleted ({orphaned} transactions now orphaned)",
            details={"orphaned_transactions": orphaned},
        )

    @staticmethod
    def transaction_added(
        user_id: str,
        transaction_id: str,
        account_id: str,
        signed_amount: str,
        balance_after: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            user_id=user_id,
            description=f"Transaction added: {signed_amount} on {account_id}",
            details={
                "account_id": account_id,
                "signed_amount": signed_amount,
                "balance_after": balance_after,
            },
        )

    @staticmethod
    def transaction_deleted(
        user_id: str,
        transaction_id: str,
        account_id: str,
        balance_after: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            user_id=user_id,
            description=f"Transaction deleted from {account_id}",
            details={
                "account_id": account_id,
                "balance_after": balance_after,
            },
        )

    @staticmethod
    def balance_update_skipped(
        user_id: str,
        transaction_id: str,
        account_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_UPDATE_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            user_id=user_id,
            description=f"Account {account_id} not known locally, balance left unchanged",
            details={"account_id": account_id},
        )

    @staticmethod
    def stock_added(user_id: str, stock_id: str, symbol: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STOCK_ADDED,
            entity_type="stock",
            entity_id=stock_id,
            user_id=user_id,
            description=f"Stock added: {symbol}",
        )

    @staticmethod
    def stock_price_updated(user_id: str, stock_id: str, price: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STOCK_PRICE_UPDATED,
            entity_type="stock",
            entity_id=stock_id,
            user_id=user_id,
            description=f"Stock price set to {price}",
            details={"price": price},
        )

    @staticmethod
    def stock_deleted(user_id: str, stock_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STOCK_DELETED,
            entity_type="stock",
            entity_id=stock_id,
            user_id=user_id,
            description="Stock deleted",
        )

    @staticmethod
    def demo_data_seeded(user_id: str, counts: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEMO_DATA_SEEDED,
            user_id=user_id,
            description="Demo dataset written",
            details=counts,
        )

    @staticmethod
    def write_failed(
        user_id: Optional[str],
        operation: str,
        entity_id: Optional[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_id=entity_id,
            user_id=user_id,
            description=f"Store write failed: {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def write_conflict(
        user_id: Optional[str],
        operation: str,
        entity_id: Optional[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_CONFLICT,
            severity=AuditSeverity.WARNING,
            entity_id=entity_id,
            user_id=user_id,
            description=f"Balance changed underneath {operation}, batch rejected",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def snapshot_document_rejected(
        user_id: Optional[str],
        collection: str,
        doc_id: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_DOCUMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type=collection,
            entity_id=doc_id,
            user_id=user_id,
            description=f"Skipped malformed document in {collection}",
            error_message=error_message,
        )

    @staticmethod
    def external_service_error(service: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
        )
