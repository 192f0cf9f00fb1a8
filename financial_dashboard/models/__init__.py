"""
Data Models Package

This package contains all Pydantic models used in the Financial Dashboard.
All state flowing through the system must conform to these schemas.
"""

from financial_dashboard.models.ledger import (
    CATEGORY_PALETTE,
    DAILY_SPENDS_COLOR,
    DAILY_SPENDS_NAME,
    DEFAULT_CATEGORY_SPECS,
    DEFAULT_ICON,
    KNOWN_ICON_KEYS,
    Account,
    AppState,
    Category,
    Expense,
    IdGenerator,
    MonthlyBudget,
    ThemePreference,
    current_month_key,
    daily_spends_category,
    default_categories,
    id_generator,
    month_key_for,
    next_id,
    resolve_icon_key,
)
from financial_dashboard.models.audit import (
    AuditSeverity,
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
)

__all__ = [
    # Ledger models
    "Account",
    "AppState",
    "Category",
    "Expense",
    "MonthlyBudget",
    "ThemePreference",
    # Identity and month keys
    "IdGenerator",
    "id_generator",
    "next_id",
    "current_month_key",
    "month_key_for",
    # Defaults
    "CATEGORY_PALETTE",
    "DAILY_SPENDS_COLOR",
    "DAILY_SPENDS_NAME",
    "DEFAULT_CATEGORY_SPECS",
    "DEFAULT_ICON",
    "KNOWN_ICON_KEYS",
    "daily_spends_category",
    "default_categories",
    "resolve_icon_key",
    # Audit models
    "AuditSeverity",
    "LedgerEvent",
    "LedgerEventBuilder",
    "LedgerEventType",
]
