"""Services package."""

from financial_dashboard.services.storage import (
    AuthenticationError,
    ConnectionError,
    GoogleSheetsClient,
    GoogleSheetsDocumentStorage,
    InMemoryStorage,
    LocalSnapshotStorage,
    PersistencePort,
    SnapshotDecodeError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuthenticationError",
    "ConnectionError",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStorage",
    "InMemoryStorage",
    "LocalSnapshotStorage",
    "PersistencePort",
    "SnapshotDecodeError",
    "StorageError",
]
