"""
Audit Logger

DESIGN DECISION: Every write the sync engine issues, and every failure it
absorbs, is logged. This provides:
1. Traceability of balance-affecting writes
2. Debugging capability for degraded-consistency cases
3. A recent-events view the UI can show instead of failing silently

The audit logger:
- Is synchronous, so snapshot handlers can log without awaiting
- Never raises into the caller
- Keeps a bounded in-memory history instead of a persistent trail
"""

from collections import deque
from typing import Optional

import structlog

from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


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


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. A bounded in-memory history (for tests and the UI)
    """

    def __init__(self, history_size: int = 500):
        """
        Initialize audit logger.

        Args:
            history_size: How many recent events to keep in memory.
                          Older events are dropped first.
        """
        self._history: deque[AuditEvent] = deque(maxlen=history_size)
        self._logger = structlog.get_logger("fintrack.audit")

    def log(self, event: AuditEvent) -> AuditEvent:
        """
        Log an audit event at its severity's level and remember it.

        Returns the event so callers can chain on it.
        """
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        self._history.append(event)
        return event

    def recent_events(
        self,
        limit: Optional[int] = None,
        event_type: Optional[AuditEventType] = None,
    ) -> list[AuditEvent]:
        """
        Most recent events, newest first.

        Args:
            limit: Maximum number of events to return (None = all kept)
            event_type: Only return events of this type
        """
        events = [
            e for e in reversed(self._history)
            if event_type is None or e.event_type == event_type
        ]
        return events[:limit] if limit is not None else events

    def clear(self) -> None:
        self._history.clear()

    def log_write_failed(
        self,
        user_id: Optional[str],
        operation: str,
        entity_id: Optional[str],
        error_message: str,
    ) -> None:
        """Log a store write that did not land."""
        self.log(AuditEventBuilder.write_failed(
            user_id=user_id,
            operation=operation,
            entity_id=entity_id,
            error_message=error_message,
        ))

    def log_write_conflict(
        self,
        user_id: Optional[str],
        operation: str,
        entity_id: Optional[str],
        error_message: str,
    ) -> None:
        """Log a batch rejected by a balance precondition."""
        self.log(AuditEventBuilder.write_conflict(
            user_id=user_id,
            operation=operation,
            entity_id=entity_id,
            error_message=error_message,
        ))

    def log_external_service_error(self, service: str, error_message: str) -> None:
        """Log external service error."""
        self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
        ))
