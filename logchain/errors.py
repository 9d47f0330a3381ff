"""
Error taxonomy for logchain.

Every public operation either returns its value or raises exactly one of
the exceptions below. Subscriptions report their terminal error as an
``Errored`` signal instead (see ``logchain.types``).
"""

from __future__ import annotations


class LogChainError(Exception):
    """Base class for all logchain errors."""


# -----------------------------------------------------------------------------
# Store rejections (evaluated atomically by the ledger)
# -----------------------------------------------------------------------------

class InvalidArgument(LogChainError):
    """Malformed caller input: zero timestamp, empty type/message, null owner."""


class Unauthorized(LogChainError):
    """Caller lacks the identity required by the operation."""


class NotAllowed(LogChainError):
    """Operation is not allowed in the store's current state."""


# -----------------------------------------------------------------------------
# Client-side query / codec errors
# -----------------------------------------------------------------------------

class InvalidRange(LogChainError):
    """Malformed or contradictory block range."""


class UnknownEvent(LogChainError):
    """Event name is not part of the loaded schema."""


class SchemaError(LogChainError):
    """Event schema failed load-time validation."""


class EncodingError(LogChainError):
    """Text does not fit its fixed-width field under the REJECT policy."""


class DecodingError(LogChainError):
    """Raw bytes do not satisfy the declared type."""


# -----------------------------------------------------------------------------
# Transport layer
# -----------------------------------------------------------------------------

class TransportError(LogChainError):
    """The ledger connection failed (raised by transports)."""


class TransactionReverted(TransportError):
    """The ledger rejected a transaction; ``reason`` is the revert string."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class QueryFailed(LogChainError):
    """A range scan failed in the transport. Never retried internally."""

    def __init__(self, cause: BaseException):
        super().__init__(f"query failed: {cause}")
        self.cause = cause


class QueryTimeout(LogChainError):
    """A range scan did not finish within its deadline."""


class SubscriptionError(LogChainError):
    """A subscription handle was misused (e.g. iterated before start)."""
