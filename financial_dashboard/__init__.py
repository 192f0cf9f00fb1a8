"""
Financial Dashboard - Source Package

State and aggregation core of a personal finance tracker: bank accounts,
monthly salary, budget category allocations and dated expenses, plus the
balances derived from them.

DESIGN PRINCIPLES:
1. State is an immutable snapshot, replaced wholesale on every change
2. Derived figures are recomputed on read, never stored
3. Persistence is fire-and-forget and never breaks the session
4. The store does not know which storage backend is active
"""

__version__ = "1.0.0"
__author__ = "Financial Dashboard Team"
