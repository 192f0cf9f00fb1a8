"""
Core Data Models for the Financial Dashboard

These models define the entity graph every other component works on:
bank accounts, budget categories, dated expenses, per-month budgets and the
root AppState aggregate.

DESIGN DECISION: All records are frozen Pydantic v2 models.
A change never mutates a record in place - it builds a new one with
model_copy(update=...) and swaps the whole AppState. That lets the
persistence task hold a snapshot while later mutations carry on.

Field names are snake_case in Python and camelCase on the wire, so the
serialized document keeps the shape of the existing persisted data
(bankAccounts, monthlyData, monthlySalary, ...).
"""

import datetime
import threading
import time
from decimal import Decimal
from enum import Enum
from typing import Annotated, Iterator, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_ICON = "Default"
DAILY_SPENDS_NAME = "Daily Spends"
DAILY_SPENDS_COLOR = 0xFF9CA3AF

# Colours handed out to user-added categories, by current count modulo size
CATEGORY_PALETTE: tuple[int, ...] = (
    0xFF8B5CF6,
    0xFFEC4899,
    0xFFF59E0B,
    0xFF64748B,
    0xFFEF4444,
)

# (name, colour, icon key) of the categories a fresh month starts with
DEFAULT_CATEGORY_SPECS: tuple[tuple[str, int, str], ...] = (
    ("Investments", 0xFF6366F1, "Investments"),
    ("Savings", 0xFF10B981, "Savings"),
    ("Food", 0xFFF59E0B, "Food"),
    ("Transport", 0xFF3B82F6, "Transport"),
    ("Hotel", 0xFFEC4899, "Hotel"),
)

KNOWN_ICON_KEYS = frozenset({
    "Savings",
    "Investments",
    "Food",
    "Transport",
    "Shopping",
    "Entertainment",
    "Hotel",
    "Bills",
    DEFAULT_ICON,
})


def resolve_icon_key(name: Optional[str]) -> str:
    """Map an icon key to a known one, falling back to "Default"."""
    if name in KNOWN_ICON_KEYS:
        return name
    return DEFAULT_ICON


# Decimal in Python, plain number in the JSON document. Goes through float,
# so values beyond ~15 significant digits do not survive a save and load.
Money = Annotated[
    Decimal,
    PlainSerializer(lambda value: float(value), return_type=float, when_used="json"),
]


# =============================================================================
# IDENTITY
# =============================================================================

class IdGenerator:
    """
    Hands out process-unique, strictly increasing integer ids.

    Ids come from the nanosecond clock; when two calls land on the same
    tick (or the clock is behind an id already seen) the previous id is
    bumped by one instead.
    """

    def __init__(self, clock=time.time_ns):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            candidate = self._clock()
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return candidate

    def advance_past(self, value: int) -> None:
        """Make sure every future id is greater than `value`."""
        with self._lock:
            if value > self._last:
                self._last = value


id_generator = IdGenerator()


def next_id() -> int:
    return id_generator()


# =============================================================================
# MONTH KEYS
# =============================================================================

def month_key_for(value: Union[datetime.date, str]) -> str:
    """
    Month key ("YYYY-MM") an expense dated `value` belongs to.

    ISO strings are cut to their first 7 characters.
    """
    if isinstance(value, datetime.date):
        return value.strftime("%Y-%m")
    return str(value)[:7]


def current_month_key(today: Optional[datetime.date] = None) -> str:
    return month_key_for(today or datetime.date.today())


# =============================================================================
# ENUMS
# =============================================================================

class ThemePreference(str, Enum):
    """Theme the user picked. SYSTEM follows the platform setting."""
    SYSTEM = "system"
    DARK = "dark"
    LIGHT = "light"


# =============================================================================
# ENTITIES
# =============================================================================

class LedgerModel(BaseModel):
    """Base for every persisted record."""
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class Account(LedgerModel):
    """
    A bank account.

    Only expenses reduce its balance; category allocations never do.
    """
    id: int = Field(
        default_factory=next_id,
        description="Unique account id, assigned at creation"
    )
    name: str = Field(
        default="",
        description="Display name"
    )
    initial_balance: Money = Field(
        default=Decimal("0"),
        description="Opening balance in currency units"
    )


class Category(LedgerModel):
    """A budget category and its allocated amount for one month."""
    id: int = Field(default_factory=next_id)
    name: str = ""
    amount: Money = Field(
        default=Decimal("0"),
        description="Allocated budget for the month"
    )
    color: int = Field(
        default=0,
        description="Packed ARGB colour, display only"
    )
    icon: str = Field(
        default=DEFAULT_ICON,
        description="Icon key; missing keys read back as Default"
    )

    @field_validator("icon", mode="before")
    @classmethod
    def default_missing_icon(cls, v):
        """Older snapshots stored categories without an icon key."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_ICON
        return v

    @property
    def is_daily_spends(self) -> bool:
        return self.name.casefold() == DAILY_SPENDS_NAME.casefold()


class Expense(LedgerModel):
    """A dated expense paid from one account, filed under one category."""
    id: int = Field(default_factory=next_id)
    description: str = ""
    amount: Money = Decimal("0")
    date: datetime.date = Field(
        ...,
        description="Day the money was spent (ISO YYYY-MM-DD on the wire)"
    )
    bank_account_id: int = 0
    category_id: int = 0

    @property
    def month_key(self) -> str:
        return month_key_for(self.date)


class MonthlyBudget(LedgerModel):
    """
    Everything recorded for one "YYYY-MM" month.

    Expenses are kept newest-added-first.
    """
    monthly_salary: Money = Decimal("0")
    categories: tuple[Category, ...] = ()
    expenses: tuple[Expense, ...] = ()

    @field_validator("monthly_salary", mode="before")
    @classmethod
    def null_salary_is_zero(cls, v):
        return Decimal("0") if v is None else v

    @field_validator("categories", "expenses", mode="before")
    @classmethod
    def null_list_is_empty(cls, v):
        return () if v is None else v

    def find_category(self, category_id: int) -> Optional[Category]:
        return next((c for c in self.categories if c.id == category_id), None)

    def find_expense(self, expense_id: int) -> Optional[Expense]:
        return next((e for e in self.expenses if e.id == expense_id), None)

    def daily_spends(self) -> Optional[Category]:
        return next((c for c in self.categories if c.is_daily_spends), None)


class AppState(LedgerModel):
    """
    Root aggregate: all accounts plus the month-key -> MonthlyBudget map.

    One instance per active session; replaced wholesale on sign-out.
    """
    bank_accounts: tuple[Account, ...] = ()
    monthly_data: dict[str, MonthlyBudget] = Field(default_factory=dict)

    @field_validator("bank_accounts", mode="before")
    @classmethod
    def null_accounts_are_empty(cls, v):
        return () if v is None else v

    @field_validator("monthly_data", mode="before")
    @classmethod
    def null_months_are_empty(cls, v):
        return {} if v is None else v

    def month(self, key: str) -> Optional[MonthlyBudget]:
        return self.monthly_data.get(key)

    def with_month(self, key: str, budget: MonthlyBudget) -> "AppState":
        """Copy of this state with `key` set to `budget`."""
        months = dict(self.monthly_data)
        months[key] = budget
        return self.model_copy(update={"monthly_data": months})

    def find_account(self, account_id: int) -> Optional[Account]:
        return next((a for a in self.bank_accounts if a.id == account_id), None)

    def iter_expenses(self) -> Iterator[Expense]:
        for budget in self.monthly_data.values():
            yield from budget.expenses

    def max_id(self) -> int:
        """Largest id of any entity in the state (0 when empty)."""
        ids = [a.id for a in self.bank_accounts]
        for budget in self.monthly_data.values():
            ids.extend(c.id for c in budget.categories)
            ids.extend(e.id for e in budget.expenses)
        return max(ids, default=0)


def default_categories() -> tuple[Category, ...]:
    """Fresh copies (new ids) of the categories a new month is seeded with."""
    return tuple(
        Category(name=name, amount=Decimal("0"), color=color, icon=icon)
        for name, color, icon in DEFAULT_CATEGORY_SPECS
    )


def daily_spends_category() -> Category:
    return Category(
        name=DAILY_SPENDS_NAME,
        amount=Decimal("0"),
        color=DAILY_SPENDS_COLOR,
        icon=DEFAULT_ICON,
    )
