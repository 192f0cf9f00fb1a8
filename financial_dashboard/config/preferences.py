"""
Persisted user preferences.

Theme choice and the onboarding-seen flag outlive a session but are not
part of the AppState document, so they live in their own key-value file.
A PreferencesStore is passed to whatever needs it instead of being
reachable as a global.
"""

from pathlib import Path
from typing import Optional

import structlog

from financial_dashboard.config.settings import get_settings
from financial_dashboard.models.ledger import ThemePreference
from financial_dashboard.services.storage.interface import StorageError
from financial_dashboard.services.storage.keyvalue import KeyValueFile


logger = structlog.get_logger(__name__)

THEME_KEY = "theme_preference"
ONBOARDING_KEY = "onboarding_seen"


class PreferencesStore:
    """Reads and writes user preferences; write failures are logged, not raised."""

    def __init__(
        self,
        path: Optional[Path] = None,
        store: Optional[KeyValueFile] = None,
    ):
        if store is None:
            store = KeyValueFile(path or get_settings().app.preferences_path)
        self._store = store

    @property
    def theme(self) -> ThemePreference:
        raw = self._store.get(THEME_KEY)
        # Older installs stored a plain boolean: True = dark, False = light
        if isinstance(raw, bool):
            return ThemePreference.DARK if raw else ThemePreference.LIGHT
        try:
            return ThemePreference(raw)
        except ValueError:
            return ThemePreference.SYSTEM

    def set_theme(self, theme: ThemePreference) -> None:
        self._put(THEME_KEY, ThemePreference(theme).value)

    @property
    def onboarding_seen(self) -> bool:
        return bool(self._store.get(ONBOARDING_KEY, False))

    def mark_onboarding_seen(self) -> None:
        self._put(ONBOARDING_KEY, True)

    def _put(self, key: str, value) -> None:
        try:
            self._store.put(key, value)
        except StorageError as e:
            logger.error("preference_write_failed", key=key, error=str(e))
