"""Derived figures package."""

from financial_dashboard.queries.aggregates import (
    AllocationShare,
    ExpenseDay,
    MonthSummary,
    account_current_balance,
    allocation_percentages,
    find_account,
    find_category,
    group_expenses_by_date,
    lifetime_investments,
    lifetime_savings,
    month_allocated,
    month_spent,
    month_summary,
    remaining_for_month,
    total_balance,
    total_by_category_name,
    visible_categories,
)

__all__ = [
    "AllocationShare",
    "ExpenseDay",
    "MonthSummary",
    "account_current_balance",
    "allocation_percentages",
    "find_account",
    "find_category",
    "group_expenses_by_date",
    "lifetime_investments",
    "lifetime_savings",
    "month_allocated",
    "month_spent",
    "month_summary",
    "remaining_for_month",
    "total_balance",
    "total_by_category_name",
    "visible_categories",
]
