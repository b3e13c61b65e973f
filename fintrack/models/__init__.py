"""
Data Models Package

This package contains all Pydantic models used by fintrack.
All data flowing between the store, the sync engine and the UI must
conform to these schemas.
"""

from fintrack.models.finance import (
    DEFAULT_CATEGORIES,
    AccountDraft,
    AppState,
    BankAccount,
    Category,
    StockDraft,
    StockHolding,
    Transaction,
    TransactionDraft,
    TransactionType,
    User,
    utc_now,
)
from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "DEFAULT_CATEGORIES",
    "AccountDraft",
    "AppState",
    "BankAccount",
    "Category",
    "StockDraft",
    "StockHolding",
    "Transaction",
    "TransactionDraft",
    "TransactionType",
    "User",
    "utc_now",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
