"""
Abstract Persistence Interface

DESIGN DECISION: The state store talks to persistence only through this
port. This allows us to:
1. Keep a local snapshot file and a remote per-user document interchangeable
2. Use in-memory storage for testing
3. Keep the store unaware of which backend is active

The contract is deliberately small: load the whole AppState, save the
whole AppState, and (for backends that can) push changes made elsewhere.
Every save uploads the entire state, never a delta, so the last write wins.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from financial_dashboard.models.ledger import AppState


# Called with the full external AppState when another device changes it
ExternalUpdateHandler = Callable[[AppState], None]
Unsubscribe = Callable[[], None]


class PersistencePort(ABC):
    """
    Abstract interface for AppState persistence.

    Any backend (local snapshot, remote document store, ...) must
    implement load and save. Live updates are optional.
    """

    @abstractmethod
    async def load(self) -> Optional[AppState]:
        """
        Load the previously persisted state.

        Returns:
            The stored AppState, or None if nothing has been saved yet

        Raises:
            SnapshotDecodeError: If the stored document is corrupt
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def save(self, state: AppState) -> bool:
        """
        Persist the complete state, replacing whatever was stored.

        Args:
            state: Immutable snapshot to store

        Returns:
            True if saved successfully

        Raises:
            StorageError: If the write fails
        """
        pass

    async def authenticate(self) -> None:
        """
        Check the session credentials against the backend.

        Backends without a notion of identity accept everyone.

        Raises:
            AuthenticationError: If the credentials are rejected
        """
        return None

    async def register(self) -> None:
        """
        Create the record for a new identity (sign-up).

        Backends without a notion of identity have nothing to create.

        Raises:
            AuthenticationError: If the identity already exists
        """
        return None

    @property
    def supports_live_updates(self) -> bool:
        return False

    def subscribe(self, on_update: ExternalUpdateHandler) -> Optional[Unsubscribe]:
        """
        Start pushing externally-changed state to `on_update`.

        Returns:
            A callable that stops the feed, or None if the backend
            has no live updates
        """
        return None


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class SnapshotDecodeError(StorageError):
    """Persisted document is not valid JSON or does not match the schema."""
    pass


class AuthenticationError(StorageError):
    """The backend rejected the session's credentials."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
