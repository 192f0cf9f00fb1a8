"""
Tests for the state store.

Integration tests run the store against InMemoryStorage, so saves go
through the real dispatcher thread and codec.
"""

import asyncio
import datetime
from decimal import Decimal

import pytest

from financial_dashboard.audit import AuditLogger
from financial_dashboard.models.audit import LedgerEventType
from financial_dashboard.models.ledger import (
    CATEGORY_PALETTE,
    DAILY_SPENDS_NAME,
    Account,
    AppState,
    Category,
    Expense,
    MonthlyBudget,
    ThemePreference,
    next_id,
)
from financial_dashboard.queries import account_current_balance, find_category
from financial_dashboard.services.storage import (
    InMemoryStorage,
    StorageError,
    decode_state,
    encode_state,
)
from financial_dashboard.store import StateStore


class FailingStorage(InMemoryStorage):
    """Storage whose writes always fail."""

    async def save(self, state):
        raise StorageError("backend unavailable")


@pytest.fixture
def audit_logger():
    return AuditLogger()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def store(storage, audit_logger):
    store = StateStore(storage=storage, audit_logger=audit_logger, current_month="2024-05")
    yield store
    store.close()


def _event_types(audit_logger):
    return [e.event_type for e in audit_logger.recent_events()]


def _daily_spends(budget):
    return [c for c in budget.categories if c.name.casefold() == DAILY_SPENDS_NAME.casefold()]


class TestAccounts:
    """Tests for account operations and balances."""

    def test_add_account(self, store):
        """Test adding an account appends it to the state."""
        account = store.add_account("Checking", Decimal("1000"))
        assert store.state.bank_accounts == (account,)
        assert account.initial_balance == Decimal("1000")

    def test_add_account_accepts_numeric_strings(self, store):
        account = store.add_account("Cash", "12.50")
        assert account.initial_balance == Decimal("12.50")

    def test_add_account_blank_name_ignored(self, store, audit_logger):
        """Test a blank name leaves the state untouched."""
        assert store.add_account("   ", Decimal("10")) is None
        assert store.state.bank_accounts == ()
        assert _event_types(audit_logger)[0] == LedgerEventType.IGNORED_OPERATION

    def test_add_account_invalid_balance_ignored(self, store):
        assert store.add_account("Checking", "abc") is None
        assert store.add_account("Checking", float("nan")) is None
        assert store.state.bank_accounts == ()

    def test_update_account_keeps_identity(self, store):
        """Test editing replaces name and balance in place."""
        account = store.add_account("Checking", Decimal("1000"))
        store.add_account("Card", Decimal("50"))
        store.update_account(account.model_copy(update={"name": "Main", "initial_balance": Decimal("5")}))

        updated = store.state.bank_accounts[0]
        assert updated.id == account.id
        assert updated.name == "Main"
        assert updated.initial_balance == Decimal("5")

    def test_update_unknown_account_is_noop(self, store):
        store.add_account("Checking", Decimal("1000"))
        before = store.state
        store.update_account(Account(id=1, name="Ghost"))
        assert store.state == before

    def test_update_account_blank_name_ignored(self, store):
        """Test an edit cannot blank out the account name."""
        account = store.add_account("Checking", Decimal("1000"))
        before = store.state
        store.update_account(account.model_copy(update={"name": "   "}))
        assert store.state == before

    def test_balance_follows_add_and_delete_expense(self, store):
        """Test balance 1000, add 200 -> 800, delete it -> 1000."""
        account = store.add_account("Checking", Decimal("1000"))
        expense = store.add_expense("Groceries", Decimal("200"), "2024-05-10", account.id)
        assert account_current_balance(account, store.state.monthly_data) == Decimal("800")

        store.delete_expense(expense.id)
        assert account_current_balance(account, store.state.monthly_data) == Decimal("1000")

    def test_delete_account_cascades_only_its_expenses(self, store):
        """Test deleting A removes A's expenses everywhere and keeps B's."""
        a = store.add_account("A", Decimal("100"))
        b = store.add_account("B", Decimal("100"))
        a_may = store.add_expense("a1", Decimal("1"), "2024-05-01", a.id)
        a_june = store.add_expense("a2", Decimal("2"), "2024-06-01", a.id)
        b_may = store.add_expense("b1", Decimal("3"), "2024-05-02", b.id)

        store.delete_account(a.id)

        remaining = {e.id for e in store.state.iter_expenses()}
        assert remaining == {b_may.id}
        assert a_may.id not in remaining and a_june.id not in remaining
        assert store.state.bank_accounts == (b,)

    def test_delete_unknown_account_is_noop(self, store):
        store.add_account("A", Decimal("1"))
        before = store.state
        store.delete_account(424242)
        assert store.state == before


class TestMonthsAndCategories:
    """Tests for month seeding, salary and categories."""

    def test_ensure_month_seeds_defaults_once(self, store):
        """Test seeding is idempotent."""
        first = store.ensure_month("2024-05")
        second = store.ensure_month("2024-05")
        assert len(first.categories) == 5
        assert first == second

    def test_select_month_is_lazy(self, store):
        """Test selecting a month does not create it."""
        store.select_month("2023-01")
        assert store.current_month == "2023-01"
        assert store.state.month("2023-01") is None
        assert len(store.current_month_budget().categories) == 5

    def test_select_month_rejects_bad_keys(self, store):
        store.select_month("2024-13")
        store.select_month("May 2024")
        assert store.current_month == "2024-05"

    def test_set_salary_current_month_only(self, store):
        """Test salary changes only the selected month."""
        store.ensure_month("2024-04")
        store.set_salary(Decimal("3000"))
        assert store.state.month("2024-05").monthly_salary == Decimal("3000")
        assert store.state.month("2024-04").monthly_salary == Decimal("0")

    def test_add_category_cycles_palette(self, store):
        """Test new categories get the palette colour for the current count."""
        category = store.add_category("Gym", "Entertainment")
        # Five seeded categories precede it
        assert category.color == CATEGORY_PALETTE[5 % len(CATEGORY_PALETTE)]
        assert category.icon == "Entertainment"
        assert store.current_month_budget().categories[-1] == category

        second = store.add_category("Books")
        assert second.color == CATEGORY_PALETTE[6 % len(CATEGORY_PALETTE)]
        assert second.icon == "Default"

    def test_update_category_in_owning_month(self, store):
        """Test amount edits land in the month that owns the category."""
        april = store.ensure_month("2024-04")
        target = april.categories[0]
        store.update_category(target.model_copy(update={"amount": Decimal("250")}))

        assert store.state.month("2024-04").categories[0].amount == Decimal("250")
        assert all(c.amount == 0 for c in store.current_month_budget().categories)

    def test_delete_category_twice_is_noop(self, store):
        """Test deleting the same category again changes nothing."""
        category = store.current_month_budget().categories[2]
        store.delete_category(category.id)
        after_first = store.state

        store.delete_category(category.id)
        assert store.state == after_first
        assert find_category(store.state, category.id) is None

    def test_deleted_category_leaves_expenses_dangling(self, store):
        """Test expenses keep a category id that no longer resolves."""
        account = store.add_account("A", Decimal("10"))
        expense = store.add_expense("x", Decimal("1"), "2024-05-01", account.id)
        store.delete_category(expense.category_id)
        assert find_category(store.state, expense.category_id) is None
        assert store.state.month("2024-05").find_expense(expense.id) is not None

    def test_add_category_named_daily_spends_reuses_existing(self, store):
        """Test a month never gets a second Daily Spends category."""
        expense = store.add_expense("coffee", Decimal("3"), "2024-05-02", 1)
        existing = store.add_category("daily spends")

        assert existing.id == expense.category_id
        assert len(_daily_spends(store.state.month("2024-05"))) == 1

    def test_add_category_named_daily_spends_when_absent(self, store):
        category = store.add_category("Daily Spends")
        assert _daily_spends(store.current_month_budget()) == [category]

    def test_rename_to_daily_spends_ignored_when_one_exists(self, store):
        """Test renaming another category to Daily Spends is refused."""
        food = store.current_month_budget().categories[2]
        store.add_expense("coffee", Decimal("3"), "2024-05-02", 1)
        before = store.state

        store.update_category(food.model_copy(update={"name": "DAILY SPENDS"}))

        assert store.state == before
        assert len(_daily_spends(store.state.month("2024-05"))) == 1

    def test_daily_spends_can_update_itself(self, store):
        expense = store.add_expense("coffee", Decimal("3"), "2024-05-02", 1)
        daily = find_category(store.state, expense.category_id)
        store.update_category(daily.model_copy(update={"amount": Decimal("50")}))
        assert find_category(store.state, daily.id).amount == Decimal("50")

    def test_set_salary_on_new_month_notifies_once(self, store):
        """Test seeding and the salary change reach listeners as one state."""
        received = []
        store.subscribe(received.append)
        store.set_salary(Decimal("2500"))

        assert len(received) == 1
        budget = received[0].month("2024-05")
        assert budget.monthly_salary == Decimal("2500")
        assert len(budget.categories) == 5

    def test_add_category_on_new_month_notifies_once(self, store, audit_logger):
        received = []
        store.subscribe(received.append)
        category = store.add_category("Gym")

        assert len(received) == 1
        assert received[0].month("2024-05").categories[-1] == category
        assert LedgerEventType.MONTH_SEEDED in _event_types(audit_logger)


class TestExpenses:
    """Tests for expense operations."""

    def test_expenses_in_different_months(self, store):
        """Test two dates in two months give two budgets with one expense each."""
        account = store.add_account("A", Decimal("100"))
        store.add_expense("x", Decimal("1"), "2024-01-15", account.id)
        store.add_expense("y", Decimal("2"), "2024-02-15", account.id)

        assert len(store.state.month("2024-01").expenses) == 1
        assert len(store.state.month("2024-02").expenses) == 1

    def test_daily_spends_created_once(self, store):
        """Test the first expense creates Daily Spends and the second reuses it."""
        account = store.add_account("A", Decimal("100"))
        first = store.add_expense("x", Decimal("1"), "2024-03-01", account.id)
        second = store.add_expense("y", Decimal("2"), "2024-03-02", account.id)

        daily = _daily_spends(store.state.month("2024-03"))
        assert len(daily) == 1
        assert first.category_id == second.category_id == daily[0].id

    def test_existing_daily_spends_any_case_is_reused(self, store):
        store.apply_external_state(AppState(monthly_data={
            "2024-03": MonthlyBudget(categories=(Category(id=7, name="daily SPENDS"),)),
        }))
        expense = store.add_expense("x", Decimal("1"), "2024-03-01", 1)
        assert expense.category_id == 7
        assert len(store.state.month("2024-03").categories) == 1

    def test_add_expense_month_from_date_not_selection(self, store):
        """Test the expense goes to its date's month, not the selected one."""
        store.add_expense("x", Decimal("1"), datetime.date(2023, 11, 30), 1)
        assert store.state.month("2023-11") is not None
        assert store.state.month("2024-05") is None

    def test_add_expense_prepends(self, store):
        """Test the newest expense comes first."""
        first = store.add_expense("x", Decimal("1"), "2024-05-01", 1)
        second = store.add_expense("y", Decimal("1"), "2024-05-01", 1)
        assert [e.id for e in store.state.month("2024-05").expenses] == [second.id, first.id]

    def test_add_expense_invalid_input_ignored(self, store):
        assert store.add_expense("x", Decimal("1"), "not-a-date", 1) is None
        assert store.add_expense("x", "lots", "2024-05-01", 1) is None
        assert store.state == AppState()

    def test_update_expense_same_month(self, store):
        """Test editing in place keeps position."""
        first = store.add_expense("x", Decimal("1"), "2024-05-01", 1)
        second = store.add_expense("y", Decimal("1"), "2024-05-02", 1)
        store.update_expense(first.model_copy(update={"amount": Decimal("9")}))

        expenses = store.state.month("2024-05").expenses
        assert [e.id for e in expenses] == [second.id, first.id]
        assert expenses[1].amount == Decimal("9")

    def test_update_expense_date_moves_month(self, store, audit_logger):
        """Test changing the date re-buckets the expense."""
        expense = store.add_expense("x", Decimal("5"), "2024-05-20", 1)
        store.update_expense(expense.model_copy(update={"date": datetime.date(2024, 6, 2)}))

        assert store.state.month("2024-05").find_expense(expense.id) is None
        moved = store.state.month("2024-06").find_expense(expense.id)
        assert moved is not None
        assert moved.date == datetime.date(2024, 6, 2)
        # Category did not exist in June, so it is refiled under June's Daily Spends
        (june_daily,) = _daily_spends(store.state.month("2024-06"))
        assert moved.category_id == june_daily.id
        assert LedgerEventType.EXPENSE_MOVED in _event_types(audit_logger)

    def test_update_expense_keeps_category_present_in_target_month(self, store):
        june = store.ensure_month("2024-06")
        food = june.categories[2]
        expense = store.add_expense("x", Decimal("5"), "2024-05-20", 1)
        store.update_expense(expense.model_copy(update={
            "date": datetime.date(2024, 6, 2),
            "category_id": food.id,
        }))
        assert store.state.month("2024-06").find_expense(expense.id).category_id == food.id

    def test_update_unknown_expense_is_noop(self, store):
        store.add_expense("x", Decimal("5"), "2024-05-20", 1)
        before = store.state
        store.update_expense(Expense(id=next_id(), date="2024-05-01"))
        assert store.state == before

    def test_delete_expense_searches_all_months(self, store):
        """Test deletion finds the expense in whichever month holds it."""
        keep = store.add_expense("x", Decimal("1"), "2024-01-01", 1)
        gone = store.add_expense("y", Decimal("1"), "2024-02-01", 1)
        store.delete_expense(gone.id)
        assert [e.id for e in store.state.iter_expenses()] == [keep.id]

    def test_delete_unknown_expense_is_noop(self, store):
        before = store.state
        store.delete_expense(99)
        assert store.state == before


class TestPersistence:
    """Tests for loading, saving and external updates."""

    def test_mutation_persists_whole_state(self, store, storage):
        """Test a mutation saves a snapshot of the full state."""
        store.add_account("A", Decimal("10"))
        assert store.flush(5)
        assert decode_state(storage.document) == store.state

    def test_last_write_wins(self, store, storage):
        store.add_account("A", Decimal("10"))
        store.add_account("B", Decimal("20"))
        store.set_salary(Decimal("100"))
        assert store.flush(5)
        assert decode_state(storage.document) == store.state
        assert storage.save_count == 3

    def test_load_missing_state_is_empty(self, store):
        """Test loading with nothing persisted yields an empty state."""
        state = asyncio.run(store.load())
        assert state == AppState()

    def test_load_restores_state(self, audit_logger):
        account = Account(name="A", initial_balance=Decimal("10"))
        storage = InMemoryStorage(encode_state(AppState(bank_accounts=(account,))))
        store = StateStore(storage=storage, audit_logger=audit_logger)
        try:
            asyncio.run(store.load())
            assert store.state.bank_accounts == (account,)
            # New ids never collide with loaded ones
            assert store.add_account("B", Decimal("1")).id > account.id
        finally:
            store.close()

    def test_load_corrupt_document_falls_back_to_empty(self, audit_logger):
        """Test a corrupt snapshot starts an empty session instead of failing."""
        store = StateStore(storage=InMemoryStorage("{not json"), audit_logger=audit_logger)
        try:
            assert asyncio.run(store.load()) == AppState()
            assert LedgerEventType.LOAD_FAILED in _event_types(audit_logger)
        finally:
            store.close()

    def test_load_does_not_save(self, store, storage):
        asyncio.run(store.load())
        assert store.flush(5)
        assert storage.save_count == 0

    def test_save_failure_is_logged_not_raised(self, audit_logger):
        """Test write failures never reach the caller."""
        store = StateStore(storage=FailingStorage(), audit_logger=audit_logger)
        try:
            account = store.add_account("A", Decimal("10"))
            assert store.flush(5)
            assert store.state.bank_accounts == (account,)
            assert LedgerEventType.SAVE_FAILED in _event_types(audit_logger)
        finally:
            store.close()

    def test_external_update_replaces_state(self, store, storage):
        """Test a pushed state replaces local state without a merge or save."""
        store.add_account("Local", Decimal("1"))
        assert store.flush(5)
        unsubscribe = storage.subscribe(store.apply_external_state)

        remote = AppState(bank_accounts=(Account(name="Remote"),))
        storage.push_external(remote)

        assert store.state == remote
        assert store.flush(5)
        assert storage.save_count == 1
        unsubscribe()

    def test_sign_out_keeps_persisted_data(self, store, storage):
        """Test signing out clears memory only."""
        store.add_account("A", Decimal("10"))
        assert store.flush(5)
        document = storage.document

        store.sign_out()
        assert store.flush(5)
        assert store.state == AppState()
        assert storage.document == document

    def test_store_without_storage(self):
        """Test the store works purely in memory."""
        store = StateStore(current_month="2024-05")
        store.add_account("A", Decimal("1"))
        assert store.flush(0)
        assert len(store.state.bank_accounts) == 1
        store.close()


class TestSubscriptionsAndTheme:
    """Tests for listeners and the theme preference."""

    def test_listener_receives_new_state(self, store):
        received = []
        store.subscribe(received.append)
        store.add_account("A", Decimal("1"))
        assert received[-1] is store.state

    def test_unsubscribe_stops_notifications(self, store):
        received = []
        unsubscribe = store.subscribe(received.append)
        unsubscribe()
        store.add_account("A", Decimal("1"))
        assert received == []

    def test_failing_listener_does_not_break_mutation(self, store):
        """Test one broken listener neither raises nor starves the others."""
        received = []

        def broken(state):
            raise RuntimeError("boom")

        store.subscribe(broken)
        store.subscribe(received.append)
        account = store.add_account("A", Decimal("1"))
        assert store.state.bank_accounts == (account,)
        assert len(received) == 1

    def test_theme_defaults_to_system(self, store):
        assert store.theme == ThemePreference.SYSTEM

    def test_set_theme_is_persisted_to_preferences(self, tmp_path, audit_logger):
        from financial_dashboard.config.preferences import PreferencesStore

        preferences = PreferencesStore(path=tmp_path / "prefs.json")
        store = StateStore(audit_logger=audit_logger, preferences=preferences)
        store.set_theme(ThemePreference.DARK)

        assert store.theme == ThemePreference.DARK
        assert PreferencesStore(path=tmp_path / "prefs.json").theme == ThemePreference.DARK
