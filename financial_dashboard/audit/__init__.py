"""Audit logging package."""

from financial_dashboard.audit.logger import AuditLogger, configure_logging

__all__ = ["AuditLogger", "configure_logging"]
