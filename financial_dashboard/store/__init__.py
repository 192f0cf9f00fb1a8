"""State store package."""

from financial_dashboard.store.dispatcher import PersistenceDispatcher
from financial_dashboard.store.state_store import MONTH_KEY_PATTERN, StateStore

__all__ = ["MONTH_KEY_PATTERN", "PersistenceDispatcher", "StateStore"]
