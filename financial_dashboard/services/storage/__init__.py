"""
Storage Services Package

Provides the abstract persistence port and its implementations:
a local snapshot file, a remote Google Sheets document per user, and an
in-memory store for tests.
"""

from financial_dashboard.services.storage.interface import (
    AuthenticationError,
    ConnectionError,
    ExternalUpdateHandler,
    PersistencePort,
    SnapshotDecodeError,
    StorageError,
    Unsubscribe,
)
from financial_dashboard.services.storage.codec import (
    decode_state,
    encode_state,
    state_from_document,
    state_to_document,
)
from financial_dashboard.services.storage.keyvalue import KeyValueFile
from financial_dashboard.services.storage.local_snapshot import (
    APP_STATE_KEY,
    LocalSnapshotStorage,
)
from financial_dashboard.services.storage.memory import InMemoryStorage
from financial_dashboard.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsDocumentStorage,
)

__all__ = [
    # Interface
    "ExternalUpdateHandler",
    "PersistencePort",
    "Unsubscribe",
    # Exceptions
    "AuthenticationError",
    "ConnectionError",
    "SnapshotDecodeError",
    "StorageError",
    # Codec
    "decode_state",
    "encode_state",
    "state_from_document",
    "state_to_document",
    # Local snapshot implementation
    "APP_STATE_KEY",
    "KeyValueFile",
    "LocalSnapshotStorage",
    # In-memory implementation
    "InMemoryStorage",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStorage",
]
