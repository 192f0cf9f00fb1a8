"""
Local Snapshot Storage Implementation

The offline variant: the whole AppState is written as one document under
the "app_state" key of a JSON key-value file on this machine.

TRADEOFFS:
- No sync between devices, so no live updates
- Every save rewrites the whole file (fine for personal-scale data)
"""

from pathlib import Path
from typing import Optional

from financial_dashboard.config import get_settings
from financial_dashboard.models.ledger import AppState
from financial_dashboard.services.storage.codec import (
    decode_state,
    state_from_document,
    state_to_document,
)
from financial_dashboard.services.storage.interface import PersistencePort
from financial_dashboard.services.storage.keyvalue import KeyValueFile


APP_STATE_KEY = "app_state"


class LocalSnapshotStorage(PersistencePort):
    """Snapshot of the full AppState in a local key-value file."""

    def __init__(
        self,
        path: Optional[Path] = None,
        store: Optional[KeyValueFile] = None,
    ):
        if store is None:
            store = KeyValueFile(path or get_settings().storage.snapshot_path)
        self._store = store

    @property
    def path(self) -> Path:
        return self._store.path

    async def load(self) -> Optional[AppState]:
        """Load the snapshot, or None if none was saved yet."""
        raw = self._store.get(APP_STATE_KEY)
        if raw is None:
            return None
        # Older snapshots kept the document as an encoded JSON string
        if isinstance(raw, str):
            return decode_state(raw)
        return state_from_document(raw)

    async def save(self, state: AppState) -> bool:
        """Overwrite the snapshot with `state`."""
        self._store.put(APP_STATE_KEY, state_to_document(state))
        return True

    def clear(self) -> None:
        """Forget the stored snapshot."""
        self._store.remove(APP_STATE_KEY)
