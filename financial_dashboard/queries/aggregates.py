"""
Derived Figures

DESIGN DECISION: Everything shown as a balance, total or share is computed
on read from the entity graph. Nothing derived is stored, so there is no
cache to invalidate when the state changes.

GUARANTEES:
- Pure functions, no side effects
- Never raise on missing data: absent months count as zero, and an
  expense pointing at a deleted category or account is simply not matched
"""

import datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from financial_dashboard.models.ledger import (
    Account,
    AppState,
    Category,
    Expense,
    MonthlyBudget,
)


ZERO = Decimal("0")

INVESTMENTS_CATEGORY = "Investments"
SAVINGS_CATEGORY = "Savings"


# =============================================================================
# RESULT MODELS
# =============================================================================

class AllocationShare(BaseModel):
    """One segment of the allocation bar."""
    model_config = ConfigDict(frozen=True)

    category_id: int
    name: str
    color: int
    # Fraction of salary; not capped, so over-allocation exceeds 1 in total
    share: Decimal


class ExpenseDay(BaseModel):
    """Expenses recorded on one day, in list order."""
    model_config = ConfigDict(frozen=True)

    date: datetime.date
    expenses: tuple[Expense, ...]
    total: Decimal


class MonthSummary(BaseModel):
    """Headline figures for one month."""
    model_config = ConfigDict(frozen=True)

    month_key: str
    salary: Decimal
    allocated: Decimal
    spent: Decimal
    remaining: Decimal
    allocations: tuple[AllocationShare, ...]


# =============================================================================
# MONTH FIGURES
# =============================================================================

def month_spent(budget: Optional[MonthlyBudget]) -> Decimal:
    """Sum of the month's expenses."""
    if budget is None:
        return ZERO
    return sum((e.amount for e in budget.expenses), ZERO)


def month_allocated(budget: Optional[MonthlyBudget]) -> Decimal:
    """Sum of the month's category allocations."""
    if budget is None:
        return ZERO
    return sum((c.amount for c in budget.categories), ZERO)


def remaining_for_month(budget: Optional[MonthlyBudget]) -> Decimal:
    """salary - allocated - spent, for that month only."""
    if budget is None:
        return ZERO
    return budget.monthly_salary - month_allocated(budget) - month_spent(budget)


def allocation_percentages(budget: Optional[MonthlyBudget]) -> list[AllocationShare]:
    """
    Share of salary allocated to each category with a positive amount.

    Empty when there is no salary to divide by. Shares are not normalized:
    allocating more than the salary yields a total above 1.
    """
    if budget is None or budget.monthly_salary <= 0:
        return []
    salary = budget.monthly_salary
    return [
        AllocationShare(
            category_id=category.id,
            name=category.name,
            color=category.color,
            share=category.amount / salary,
        )
        for category in budget.categories
        if category.amount > 0
    ]


def visible_categories(budget: Optional[MonthlyBudget]) -> list[Category]:
    """Categories listed on the budget screen (Daily Spends is implicit)."""
    if budget is None:
        return []
    return [c for c in budget.categories if not c.is_daily_spends]


def month_summary(month_key: str, budget: Optional[MonthlyBudget]) -> MonthSummary:
    return MonthSummary(
        month_key=month_key,
        salary=budget.monthly_salary if budget is not None else ZERO,
        allocated=month_allocated(budget),
        spent=month_spent(budget),
        remaining=remaining_for_month(budget),
        allocations=tuple(allocation_percentages(budget)),
    )


# =============================================================================
# BALANCES AND LIFETIME TOTALS
# =============================================================================

def account_current_balance(
    account: Account,
    monthly_data: Mapping[str, MonthlyBudget],
) -> Decimal:
    """
    initial balance minus every expense paid from this account, in any month.

    Category allocations do not touch account balances.
    """
    spent = sum(
        (
            expense.amount
            for budget in monthly_data.values()
            for expense in budget.expenses
            if expense.bank_account_id == account.id
        ),
        ZERO,
    )
    return account.initial_balance - spent


def total_balance(state: AppState) -> Decimal:
    """All initial balances minus all recorded expenses."""
    initial = sum((a.initial_balance for a in state.bank_accounts), ZERO)
    spent = sum((e.amount for e in state.iter_expenses()), ZERO)
    return initial - spent


def total_by_category_name(state: AppState, name: str) -> Decimal:
    """
    Lifetime allocation to a category name, summed over months.

    Names match case-insensitively; only the first match in each month
    counts.
    """
    wanted = name.casefold()
    total = ZERO
    for budget in state.monthly_data.values():
        match = next(
            (c for c in budget.categories if c.name.casefold() == wanted),
            None,
        )
        if match is not None:
            total += match.amount
    return total


def lifetime_investments(state: AppState) -> Decimal:
    return total_by_category_name(state, INVESTMENTS_CATEGORY)


def lifetime_savings(state: AppState) -> Decimal:
    return total_by_category_name(state, SAVINGS_CATEGORY)


# =============================================================================
# LOOKUPS AND GROUPING
# =============================================================================

def find_category(state: AppState, category_id: int) -> Optional[Category]:
    """Category with this id in any month, or None if it was deleted."""
    for budget in state.monthly_data.values():
        category = budget.find_category(category_id)
        if category is not None:
            return category
    return None


def find_account(state: AppState, account_id: int) -> Optional[Account]:
    return state.find_account(account_id)


def group_expenses_by_date(
    expenses: Iterable[Expense],
    filter_text: str = "",
) -> list[ExpenseDay]:
    """
    Filter by description and group by day, most recent day first.

    The filter is a case-insensitive substring match. Within a day,
    expenses keep their order in the input (newest-added first).
    """
    needle = filter_text.casefold()
    groups: dict[datetime.date, list[Expense]] = {}
    for expense in expenses:
        if needle and needle not in expense.description.casefold():
            continue
        groups.setdefault(expense.date, []).append(expense)

    return [
        ExpenseDay(
            date=day,
            expenses=tuple(groups[day]),
            total=sum((e.amount for e in groups[day]), ZERO),
        )
        for day in sorted(groups, reverse=True)
    ]
