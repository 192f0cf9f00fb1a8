"""
Session wiring for the Financial Dashboard

This module ties together settings, storage, preferences, audit logging
and the state store, and defines the session lifecycle:
1. Start (local variant) → load snapshot
2. Sign up / sign in (remote variant) → bind user → authenticate
   → (create row) → load → subscribe
3. Sign out → stop live updates → drop in-memory state
4. Close → finish pending saves

DESIGN DECISION: The session is the only place that knows which backend
is active. The store receives a PersistencePort and nothing more.
"""

from typing import Optional

import structlog

from financial_dashboard.audit import AuditLogger, configure_logging
from financial_dashboard.config import Settings, get_settings
from financial_dashboard.config.preferences import PreferencesStore
from financial_dashboard.models.audit import LedgerEventBuilder
from financial_dashboard.models.ledger import AppState
from financial_dashboard.services.storage import (
    AuthenticationError,
    GoogleSheetsClient,
    GoogleSheetsDocumentStorage,
    LocalSnapshotStorage,
    PersistencePort,
    StorageError,
    Unsubscribe,
)
from financial_dashboard.store import StateStore


logger = structlog.get_logger(__name__)


class FinanceSession:
    """
    One user session over a state store.

    Authentication problems are returned as messages meant for display;
    they never raise and never touch the in-memory state.
    """

    def __init__(
        self,
        store: StateStore,
        preferences: Optional[PreferencesStore] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._preferences = preferences
        self._audit_logger = audit_logger or AuditLogger()
        self._unsubscribe: Optional[Unsubscribe] = None
        self._auth_error: Optional[str] = None
        self._user_id: Optional[str] = None

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def preferences(self) -> Optional[PreferencesStore]:
        return self._preferences

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def auth_error(self) -> Optional[str]:
        """Message from the last failed sign-in, if any."""
        return self._auth_error

    def clear_auth_error(self) -> None:
        self._auth_error = None

    @property
    def live_updates_active(self) -> bool:
        return self._unsubscribe is not None

    async def start(self) -> AppState:
        """Load whatever the backend has persisted (local variant)."""
        state = await self._store.load()
        self._subscribe()
        return state

    async def sign_in(self, user_id: str) -> Optional[str]:
        """
        Sign in as `user_id` and load their data.

        Returns:
            None on success, otherwise a message for the user
        """
        return await self._enter(user_id, register=False)

    async def sign_up(self, user_id: str) -> Optional[str]:
        """
        Create `user_id` on the backend, then sign in as them.

        Returns:
            None on success, otherwise a message for the user
        """
        return await self._enter(user_id, register=True)

    async def _enter(self, user_id: str, register: bool) -> Optional[str]:
        storage = self._store.storage
        action = "Sign-up" if register else "Sign-in"
        user_id = (user_id or "").strip()
        if not user_id:
            return self._fail("Please enter a user id.")

        if isinstance(storage, GoogleSheetsDocumentStorage):
            storage.set_user(user_id)

        try:
            if storage is not None:
                await storage.authenticate()
                if register:
                    await storage.register()
        except AuthenticationError as e:
            if isinstance(storage, GoogleSheetsDocumentStorage):
                storage.set_user(None)
            return self._fail(f"{action} failed: {e}")
        except StorageError as e:
            if isinstance(storage, GoogleSheetsDocumentStorage):
                storage.set_user(None)
            return self._fail(f"Could not reach your data right now: {e}")

        self._stop_live_updates()
        self._user_id = user_id
        self._auth_error = None
        await self._store.load()
        self._subscribe()
        logger.info("signed_up" if register else "signed_in", user_id=user_id)
        return None

    def _fail(self, message: str) -> str:
        self._auth_error = message
        self._audit_logger.log(LedgerEventBuilder.authentication_failed(message))
        return message

    def _subscribe(self) -> None:
        storage = self._store.storage
        if storage is None or not storage.supports_live_updates or self._unsubscribe:
            return
        try:
            self._unsubscribe = storage.subscribe(self._store.apply_external_state)
        except StorageError as e:
            logger.warning("live_updates_unavailable", error=str(e))
            self._unsubscribe = None

    def _stop_live_updates(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def sign_out(self) -> None:
        """Stop live updates and forget the in-memory state. Stored data stays."""
        self._stop_live_updates()
        storage = self._store.storage
        if isinstance(storage, GoogleSheetsDocumentStorage):
            storage.set_user(None)
        self._user_id = None
        self._store.sign_out()
        logger.info("signed_out")

    def close(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_live_updates()
        self._store.close(timeout)


def create_storage(settings: Optional[Settings] = None) -> PersistencePort:
    """Build the persistence backend selected in settings."""
    settings = settings or get_settings()
    storage_settings = settings.storage
    if storage_settings.backend == "google_sheets":
        sheets_settings = settings.google_sheets
        return GoogleSheetsDocumentStorage(
            client=GoogleSheetsClient(sheets_settings),
            poll_interval_seconds=sheets_settings.poll_interval_seconds,
        )
    return LocalSnapshotStorage(path=storage_settings.snapshot_path)


def create_session(
    settings: Optional[Settings] = None,
    storage: Optional[PersistencePort] = None,
    preferences: Optional[PreferencesStore] = None,
) -> FinanceSession:
    """
    Create a fully wired session.

    Args:
        settings: Defaults to get_settings()
        storage: Overrides the backend chosen in settings
        preferences: Overrides the preferences file from settings
    """
    settings = settings or get_settings()
    app_settings = settings.app
    configure_logging(app_settings.log_level, app_settings.log_json)

    audit_logger = AuditLogger(history_size=app_settings.audit_history_size)
    preferences = preferences or PreferencesStore(path=app_settings.preferences_path)
    store = StateStore(
        storage=storage or create_storage(settings),
        audit_logger=audit_logger,
        preferences=preferences,
    )
    return FinanceSession(store, preferences=preferences, audit_logger=audit_logger)
