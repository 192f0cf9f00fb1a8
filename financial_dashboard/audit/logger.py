"""
Audit Logger

DESIGN DECISION: Every state change and persistence outcome is logged.
This provides:
1. Traceability of user changes
2. Debugging capability when saves or loads fail
3. Visibility of state pushed in from other devices

The audit logger:
- Is synchronous, because store mutations are
- Never raises (a logging failure must not break a mutation)
- Keeps a bounded history of recent events for inspection
"""

import logging
from collections import deque
from typing import Optional

import structlog

from financial_dashboard.models.audit import AuditSeverity, LedgerEvent


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog on top of the standard library logger."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
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
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Configure structlog for local logging
configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events to the structured local log and remembers the most
    recent ones.
    """

    def __init__(self, history_size: int = 500):
        """
        Initialize audit logger.

        Args:
            history_size: Number of recent events kept in memory.
                    0 disables the history.
        """
        self._history: deque[LedgerEvent] = deque(maxlen=history_size)
        self._logger = structlog.get_logger("financial_dashboard.audit")

    def log(self, event: LedgerEvent) -> None:
        """Log an audit event at the level matching its severity."""
        self._history.append(event)
        log_dict = event.to_log_dict()

        try:
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            # Broken log handlers must not turn into failed mutations
            logging.getLogger(__name__).exception("audit logging failed")

    def recent_events(self, limit: Optional[int] = None) -> list[LedgerEvent]:
        """Most recent events, newest first."""
        events = list(reversed(self._history))
        if limit is not None:
            events = events[:limit]
        return events

    def clear(self) -> None:
        self._history.clear()
