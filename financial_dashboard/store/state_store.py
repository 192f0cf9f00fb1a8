"""
State Store

Owns the canonical AppState, the selected month and the theme choice.

DESIGN DECISION: Every mutation builds a new immutable AppState and swaps
it in. Then, in order:
1. The change is audited
2. A snapshot of the new state is handed to the persistence dispatcher
   (fire-and-forget, whole state, last write wins)
3. Subscribed listeners receive the new state

Mutations never raise. Unknown ids and unusable input are logged as
ignored operations and leave the state untouched.
"""

import datetime
import re
import threading
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, Union

import structlog

from financial_dashboard.audit import AuditLogger
from financial_dashboard.config.preferences import PreferencesStore
from financial_dashboard.models.audit import (
    AuditSeverity,
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
)
from financial_dashboard.models.ledger import (
    CATEGORY_PALETTE,
    DAILY_SPENDS_NAME,
    Account,
    AppState,
    Category,
    Expense,
    MonthlyBudget,
    ThemePreference,
    current_month_key,
    daily_spends_category,
    default_categories,
    id_generator,
    month_key_for,
    resolve_icon_key,
)
from financial_dashboard.services.storage.interface import (
    PersistencePort,
    StorageError,
)
from financial_dashboard.store.dispatcher import PersistenceDispatcher


logger = structlog.get_logger(__name__)

MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

StateListener = Callable[[AppState], None]
Amount = Union[Decimal, int, float, str]


def _to_money(value: Amount) -> Optional[Decimal]:
    """Decimal for `value`, or None if it is not a finite number."""
    if isinstance(value, bool):
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def _to_date(value: Union[datetime.date, str]) -> Optional[datetime.date]:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value))
    except ValueError:
        return None


class StateStore:
    """
    Single source of truth for the session's financial data.

    All reads of derived figures go through the current `state` snapshot;
    see financial_dashboard.queries for the calculations.
    """

    def __init__(
        self,
        storage: Optional[PersistencePort] = None,
        audit_logger: Optional[AuditLogger] = None,
        preferences: Optional[PreferencesStore] = None,
        dispatcher: Optional[PersistenceDispatcher] = None,
        current_month: Optional[str] = None,
    ):
        """
        Args:
            storage: Persistence backend. None keeps state in memory only.
            audit_logger: Receives one event per change.
            preferences: Where the theme choice is persisted.
            dispatcher: Runs saves in the background. Created on demand
                    when storage is given.
            current_month: Initially selected "YYYY-MM" (default: this month).
        """
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._preferences = preferences
        self._owns_dispatcher = dispatcher is None and storage is not None
        self._dispatcher = dispatcher or (PersistenceDispatcher() if storage is not None else None)

        self._lock = threading.RLock()
        self._state = AppState()
        self._current_month = current_month or current_month_key()
        self._theme = preferences.theme if preferences is not None else ThemePreference.SYSTEM
        self._listeners: list[StateListener] = []

    # =========================================================================
    # READ ACCESS
    # =========================================================================

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def current_month(self) -> str:
        return self._current_month

    @property
    def theme(self) -> ThemePreference:
        return self._theme

    @property
    def storage(self) -> Optional[PersistencePort]:
        return self._storage

    def current_month_budget(self) -> MonthlyBudget:
        """Budget of the selected month, seeding it on first access."""
        return self.ensure_month(self._current_month)

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Call `listener` with the new AppState after every change.

        Returns a callable that removes the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, state: AppState) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(state)
            except Exception:
                logger.exception("state_listener_failed", listener=repr(listener))

    # =========================================================================
    # COMMIT AND PERSIST
    # =========================================================================

    def _commit(self, new_state: AppState, event: LedgerEvent, persist: bool = True) -> None:
        with self._lock:
            self._state = new_state
        self._audit.log(event)
        if persist:
            self._schedule_save(new_state)
        self._notify(new_state)

    def _ignore(self, operation: str, reason: str) -> None:
        self._audit.log(LedgerEventBuilder.ignored_operation(operation, reason))

    def _schedule_save(self, snapshot: AppState) -> None:
        if self._storage is None or self._dispatcher is None:
            return
        self._dispatcher.dispatch(self._save(snapshot))

    async def _save(self, snapshot: AppState) -> bool:
        try:
            await self._storage.save(snapshot)
        except Exception as e:
            self._audit.log(LedgerEventBuilder.save_failed(str(e)))
            return False
        self._audit.log(LedgerEvent(
            event_type=LedgerEventType.STATE_SAVED,
            severity=AuditSeverity.DEBUG,
            entity_type="state",
            description="State saved",
        ))
        return True

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for dispatched saves. Returns False if the timeout expired."""
        if self._dispatcher is None:
            return True
        return self._dispatcher.wait(timeout)

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Finish pending saves and stop the dispatcher if this store created it."""
        if self._dispatcher is not None and self._owns_dispatcher:
            self._dispatcher.close(timeout)

    # =========================================================================
    # LOADING AND EXTERNAL UPDATES
    # =========================================================================

    async def load(self) -> AppState:
        """
        Replace the in-memory state with the persisted one.

        Nothing persisted yet, or a corrupt/unreadable snapshot, starts the
        session with an empty AppState.
        """
        if self._storage is None:
            return self._state

        try:
            loaded = await self._storage.load()
        except StorageError as e:
            self._audit.log(LedgerEventBuilder.load_failed(str(e)))
            loaded = AppState()

        found = loaded is not None
        state = loaded if loaded is not None else AppState()
        id_generator.advance_past(state.max_id())
        self._commit(
            state,
            LedgerEventBuilder.state_loaded(
                found=found,
                account_count=len(state.bank_accounts),
                month_count=len(state.monthly_data),
            ),
            persist=False,
        )
        return state

    def apply_external_state(self, state: AppState) -> None:
        """
        Replace local state with state written elsewhere.

        No merge: the external state wins entirely, and it is not saved back.
        """
        id_generator.advance_past(state.max_id())
        self._commit(
            state,
            LedgerEventBuilder.external_update_applied(
                account_count=len(state.bank_accounts),
                month_count=len(state.monthly_data),
            ),
            persist=False,
        )

    # =========================================================================
    # MONTHS AND SESSION
    # =========================================================================

    def select_month(self, key: str) -> None:
        """Select the month the budget screens show. The month is seeded lazily."""
        if not MONTH_KEY_PATTERN.match(key or ""):
            self._ignore("select_month", f"invalid month key {key!r}")
            return
        with self._lock:
            self._current_month = key
        self._audit.log(LedgerEvent(
            event_type=LedgerEventType.MONTH_SELECTED,
            severity=AuditSeverity.DEBUG,
            entity_type="month",
            month_key=key,
            description=f"Month {key} selected",
            is_user_action=True,
        ))
        self._notify(self._state)

    def ensure_month(self, key: str) -> MonthlyBudget:
        """
        Budget for `key`, creating it with the default categories if absent.

        Idempotent. Seeding alone does not trigger a save; the seeded month
        is persisted with the next change.
        """
        with self._lock:
            budget, seeded = self._month_or_seed(self._state, key)
            if not seeded:
                return budget
            new_state = self._state.with_month(key, budget)
            self._state = new_state
        self._log_seeded(key, budget)
        self._notify(new_state)
        return budget

    @staticmethod
    def _month_or_seed(state: AppState, key: str) -> tuple[MonthlyBudget, bool]:
        """(budget for `key`, whether it was seeded just now). Does not store it."""
        existing = state.month(key)
        if existing is not None:
            return existing, False
        return MonthlyBudget(categories=default_categories()), True

    def _log_seeded(self, key: str, budget: MonthlyBudget) -> None:
        self._audit.log(LedgerEventBuilder.month_seeded(key, len(budget.categories)))

    def set_theme(self, theme: ThemePreference) -> None:
        theme = ThemePreference(theme)
        self._theme = theme
        if self._preferences is not None:
            self._preferences.set_theme(theme)
        self._audit.log(LedgerEvent(
            event_type=LedgerEventType.THEME_CHANGED,
            description=f"Theme set to {theme.value}",
            details={"theme": theme.value},
            is_user_action=True,
        ))

    def reset(self) -> None:
        """Drop all in-memory state. Persisted data is left alone."""
        self._commit(
            AppState(),
            LedgerEvent(
                event_type=LedgerEventType.SESSION_RESET,
                entity_type="state",
                description="In-memory state cleared",
            ),
            persist=False,
        )

    def sign_out(self) -> None:
        self.reset()

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def add_account(self, name: str, initial_balance: Amount) -> Optional[Account]:
        name = (name or "").strip()
        balance = _to_money(initial_balance)
        if not name:
            self._ignore("add_account", "blank name")
            return None
        if balance is None:
            self._ignore("add_account", f"invalid balance {initial_balance!r}")
            return None

        account = Account(name=name, initial_balance=balance)
        with self._lock:
            state = self._state
            new_state = state.model_copy(
                update={"bank_accounts": state.bank_accounts + (account,)}
            )
            self._state = new_state
        self._commit(new_state, LedgerEventBuilder.account_added(account.id, account.name))
        return account

    def update_account(self, account: Account) -> None:
        """Replace the account with the same id (name and balance)."""
        if not account.name.strip():
            self._ignore("update_account", "blank name")
            return
        with self._lock:
            state = self._state
            if state.find_account(account.id) is None:
                self._ignore("update_account", f"unknown account {account.id}")
                return
            accounts = tuple(
                account if existing.id == account.id else existing
                for existing in state.bank_accounts
            )
            new_state = state.model_copy(update={"bank_accounts": accounts})
            self._state = new_state
        self._commit(new_state, LedgerEvent(
            event_type=LedgerEventType.ACCOUNT_UPDATED,
            entity_type="account",
            entity_id=account.id,
            description=f"Account updated: {account.name}",
            is_user_action=True,
        ))

    def delete_account(self, account_id: int) -> None:
        """Remove the account and every expense paid from it, in every month."""
        with self._lock:
            state = self._state
            if state.find_account(account_id) is None:
                self._ignore("delete_account", f"unknown account {account_id}")
                return
            removed = 0
            months = {}
            for key, budget in state.monthly_data.items():
                kept = tuple(e for e in budget.expenses if e.bank_account_id != account_id)
                removed += len(budget.expenses) - len(kept)
                months[key] = (
                    budget if len(kept) == len(budget.expenses)
                    else budget.model_copy(update={"expenses": kept})
                )
            new_state = state.model_copy(update={
                "bank_accounts": tuple(a for a in state.bank_accounts if a.id != account_id),
                "monthly_data": months,
            })
            self._state = new_state
        self._commit(new_state, LedgerEventBuilder.account_deleted(account_id, removed))

    # =========================================================================
    # SALARY AND CATEGORIES (selected month)
    # =========================================================================

    def set_salary(self, amount: Amount) -> None:
        """Set the salary of the selected month only."""
        salary = _to_money(amount)
        if salary is None:
            self._ignore("set_salary", f"invalid amount {amount!r}")
            return
        key = self._current_month
        with self._lock:
            budget, seeded = self._month_or_seed(self._state, key)
            new_state = self._state.with_month(
                key, budget.model_copy(update={"monthly_salary": salary})
            )
            self._state = new_state
        if seeded:
            self._log_seeded(key, budget)
        self._commit(new_state, LedgerEvent(
            event_type=LedgerEventType.SALARY_SET,
            entity_type="month",
            month_key=key,
            description=f"Salary for {key} set to {salary}",
            details={"salary": str(salary)},
            is_user_action=True,
        ))

    def add_category(self, name: str, icon_key: Optional[str] = None) -> Optional[Category]:
        """Append a category to the selected month with the next palette colour."""
        name = (name or "").strip()
        if not name:
            self._ignore("add_category", "blank name")
            return None
        key = self._current_month
        with self._lock:
            budget, seeded = self._month_or_seed(self._state, key)
            existing_daily = budget.daily_spends()
            if existing_daily is not None and name.casefold() == DAILY_SPENDS_NAME.casefold():
                self._ignore("add_category", f"{key} already has a Daily Spends category")
                return existing_daily
            category = Category(
                name=name,
                amount=Decimal("0"),
                color=CATEGORY_PALETTE[len(budget.categories) % len(CATEGORY_PALETTE)],
                icon=resolve_icon_key(icon_key),
            )
            new_state = self._state.with_month(
                key, budget.model_copy(update={"categories": budget.categories + (category,)})
            )
            self._state = new_state
        if seeded:
            self._log_seeded(key, budget)
        self._commit(new_state, LedgerEvent(
            event_type=LedgerEventType.CATEGORY_ADDED,
            entity_type="category",
            entity_id=category.id,
            month_key=key,
            description=f"Category added: {name}",
            is_user_action=True,
        ))
        return category

    def update_category(self, category: Category) -> None:
        """Replace the category with the same id in whichever month owns it."""
        with self._lock:
            state = self._state
            owner = self._owning_month_of_category(state, category.id)
            if owner is None:
                self._ignore("update_category", f"unknown category {category.id}")
                return
            budget = state.monthly_data[owner]
            if category.is_daily_spends and any(
                c.is_daily_spends and c.id != category.id for c in budget.categories
            ):
                self._ignore("update_category", f"{owner} already has a Daily Spends category")
                return
            categories = tuple(
                category if existing.id == category.id else existing
                for existing in budget.categories
            )
            new_state = state.with_month(owner, budget.model_copy(update={"categories": categories}))
            self._state = new_state
        self._commit(new_state, LedgerEvent(
            event_type=LedgerEventType.CATEGORY_UPDATED,
            entity_type="category",
            entity_id=category.id,
            month_key=owner,
            description=f"Category updated: {category.name}",
            details={"amount": str(category.amount)},
            is_user_action=True,
        ))

    def _owning_month_of_category(self, state: AppState, category_id: int) -> Optional[str]:
        # The selected month is by far the most likely owner
        candidates = [self._current_month] + [
            key for key in state.monthly_data if key != self._current_month
        ]
        for key in candidates:
            budget = state.month(key)
            if budget is not None and budget.find_category(category_id) is not None:
                return key
        return None

    def delete_category(self, category_id: int) -> None:
        """
        Remove a category from the selected month.

        Expenses filed under it keep their category id; lookups for it
        simply come back empty.
        """
        key = self._current_month
        with self._lock:
            budget = self._state.month(key)
            if budget is None or budget.find_category(category_id) is None:
                self._ignore("delete_category", f"unknown category {category_id} in {key}")
                return
            categories = tuple(c for c in budget.categories if c.id != category_id)
            new_state = self._state.with_month(
                key, budget.model_copy(update={"categories": categories})
            )
            self._state = new_state
        self._commit(new_state, LedgerEvent(
            event_type=LedgerEventType.CATEGORY_DELETED,
            entity_type="category",
            entity_id=category_id,
            month_key=key,
            description="Category deleted",
            is_user_action=True,
        ))

    # =========================================================================
    # EXPENSES
    # =========================================================================

    @staticmethod
    def _with_daily_spends(budget: MonthlyBudget) -> tuple[MonthlyBudget, Category, bool]:
        """(budget, its Daily Spends category, whether it had to be created)."""
        existing = budget.daily_spends()
        if existing is not None:
            return budget, existing, False
        created = daily_spends_category()
        return (
            budget.model_copy(update={"categories": budget.categories + (created,)}),
            created,
            True,
        )

    def add_expense(
        self,
        description: str,
        amount: Amount,
        date: Union[datetime.date, str],
        account_id: int,
    ) -> Optional[Expense]:
        """
        Record an expense in the month its date falls in.

        The expense is filed under that month's Daily Spends category
        (created on first use) and goes to the front of the month's list.
        """
        spent_on = _to_date(date)
        value = _to_money(amount)
        if spent_on is None:
            self._ignore("add_expense", f"invalid date {date!r}")
            return None
        if value is None:
            self._ignore("add_expense", f"invalid amount {amount!r}")
            return None

        key = month_key_for(spent_on)
        with self._lock:
            budget = self._state.month(key) or MonthlyBudget()
            budget, daily, created = self._with_daily_spends(budget)
            expense = Expense(
                description=(description or "").strip(),
                amount=value,
                date=spent_on,
                bank_account_id=account_id,
                category_id=daily.id,
            )
            budget = budget.model_copy(update={"expenses": (expense,) + budget.expenses})
            new_state = self._state.with_month(key, budget)
            self._state = new_state
        self._commit(
            new_state,
            LedgerEventBuilder.expense_added(expense.id, key, str(value), created),
        )
        return expense

    def update_expense(self, expense: Expense) -> None:
        """
        Replace the expense with the same id.

        If its date moved to another month, it is taken out of the old
        month and put at the front of the new one. When the new month has
        no category with its category id, it is refiled under that month's
        Daily Spends.
        """
        with self._lock:
            state = self._state
            old_key = next(
                (k for k, b in state.monthly_data.items() if b.find_expense(expense.id) is not None),
                None,
            )
            if old_key is None:
                self._ignore("update_expense", f"unknown expense {expense.id}")
                return

            new_key = expense.month_key
            old_budget = state.monthly_data[old_key]
            if new_key == old_key:
                expenses = tuple(
                    expense if existing.id == expense.id else existing
                    for existing in old_budget.expenses
                )
                new_state = state.with_month(
                    old_key, old_budget.model_copy(update={"expenses": expenses})
                )
                event = LedgerEvent(
                    event_type=LedgerEventType.EXPENSE_UPDATED,
                    entity_type="expense",
                    entity_id=expense.id,
                    month_key=old_key,
                    description="Expense updated",
                    details={"amount": str(expense.amount)},
                    is_user_action=True,
                )
            else:
                remaining = tuple(e for e in old_budget.expenses if e.id != expense.id)
                new_state = state.with_month(
                    old_key, old_budget.model_copy(update={"expenses": remaining})
                )
                target = new_state.month(new_key) or MonthlyBudget()
                if target.find_category(expense.category_id) is None:
                    target, daily, _ = self._with_daily_spends(target)
                    expense = expense.model_copy(update={"category_id": daily.id})
                target = target.model_copy(update={"expenses": (expense,) + target.expenses})
                new_state = new_state.with_month(new_key, target)
                event = LedgerEventBuilder.expense_moved(expense.id, old_key, new_key)
            self._state = new_state
        self._commit(new_state, event)

    def delete_expense(self, expense_id: int) -> None:
        """Remove the expense from whichever month holds it."""
        with self._lock:
            state = self._state
            for key, budget in state.monthly_data.items():
                if budget.find_expense(expense_id) is not None:
                    break
            else:
                self._ignore("delete_expense", f"unknown expense {expense_id}")
                return
            expenses = tuple(e for e in budget.expenses if e.id != expense_id)
            new_state = state.with_month(key, budget.model_copy(update={"expenses": expenses}))
            self._state = new_state
        self._commit(new_state, LedgerEvent(
            event_type=LedgerEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            month_key=key,
            description="Expense deleted",
            is_user_action=True,
        ))
