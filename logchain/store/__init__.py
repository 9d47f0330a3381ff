"""
Log store: the on-ledger rules and the client that drives them.
"""

from .state_machine import CallContext, LogStore, LogStoreState, Notification
from .client import LogStoreClient, rejection_for

__all__ = [
    "CallContext",
    "LogStore",
    "LogStoreClient",
    "LogStoreState",
    "Notification",
    "rejection_for",
]
