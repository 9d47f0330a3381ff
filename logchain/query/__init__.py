"""
Read side of logchain: range queries and live subscriptions.
"""

from .engine import LogQueryEngine, validate_range
from .subscription import LogSubscription

__all__ = ["LogQueryEngine", "LogSubscription", "validate_range"]
