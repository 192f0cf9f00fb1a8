"""
In-memory storage.

Keeps the encoded document in a string so loads go through the same codec
as the real backends. push_external() plays the part of another device
writing the same document.
"""

import threading
from typing import Optional

from financial_dashboard.models.ledger import AppState
from financial_dashboard.services.storage.codec import decode_state, encode_state
from financial_dashboard.services.storage.interface import (
    ExternalUpdateHandler,
    PersistencePort,
    Unsubscribe,
)


class InMemoryStorage(PersistencePort):
    """Document storage that lives only as long as the process."""

    def __init__(self, document: Optional[str] = None, live_updates: bool = True):
        self._document = document
        self._live_updates = live_updates
        self._handlers: list[ExternalUpdateHandler] = []
        self._lock = threading.Lock()
        self.save_count = 0

    @property
    def document(self) -> Optional[str]:
        return self._document

    @property
    def supports_live_updates(self) -> bool:
        return self._live_updates

    async def load(self) -> Optional[AppState]:
        if self._document is None:
            return None
        return decode_state(self._document)

    async def save(self, state: AppState) -> bool:
        with self._lock:
            self._document = encode_state(state)
            self.save_count += 1
        return True

    def subscribe(self, on_update: ExternalUpdateHandler) -> Optional[Unsubscribe]:
        if not self._live_updates:
            return None
        with self._lock:
            self._handlers.append(on_update)

        def unsubscribe() -> None:
            with self._lock:
                if on_update in self._handlers:
                    self._handlers.remove(on_update)

        return unsubscribe

    def push_external(self, state: AppState) -> None:
        """Store `state` as if another device wrote it, and notify subscribers."""
        with self._lock:
            self._document = encode_state(state)
            handlers = list(self._handlers)
        for handler in handlers:
            handler(state)
