"""
Log store state machine.

This is the write/validate side of the system: the rules the ledger runs
for every state-changing call against the store. The ledger host supplies
a ``CallContext`` (authenticated sender and the including block) and
evaluates each call atomically: an operation either returns the
notifications it emits or raises without touching state.

States:
    ACTIVE  --pause()-->   PAUSED
    PAUSED  --unpause()--> ACTIVE

The store keeps no list of entries. The ``LogEntry`` notification emitted
by ``append`` is the only durable record, so the cost of an append does
not grow with history.
"""

from __future__ import annotations

import logging

from dataclasses import dataclass, field
from typing import Any, Final

from eth_utils import is_address, to_checksum_address

from ..codec.fixed_width import FixedWidthCodec
from ..errors import InvalidArgument, NotAllowed, Unauthorized
from ..types import (
    LOG_ENTRY_EVENT,
    MESSAGE_FIELD_WIDTH,
    TYPE_FIELD_WIDTH,
    ZERO_ADDRESS,
    StoreStatus,
)

logger = logging.getLogger(__name__)


# Revert reasons surfaced verbatim to callers.
REASON_NOT_OWNER: Final[str] = "Ownable: caller is not the owner"
REASON_ZERO_OWNER: Final[str] = "Ownable: new owner is the zero address"
REASON_PAUSED: Final[str] = "Pausable: paused"
REASON_NOT_PAUSED: Final[str] = "Pausable: not paused"
REASON_ZERO_TIMESTAMP: Final[str] = "EventLog: timestamp cannot be zero"
REASON_EMPTY_TYPE: Final[str] = "EventLog: type cannot be empty"
REASON_EMPTY_MESSAGE: Final[str] = "EventLog: message cannot be empty"


@dataclass
class LogStoreState:
    """Mutable state owned by one store instance."""

    owner: str
    paused: bool = False

    @property
    def status(self) -> StoreStatus:
        return StoreStatus.PAUSED if self.paused else StoreStatus.ACTIVE


@dataclass(frozen=True, slots=True)
class CallContext:
    """What the ledger knows about the call being executed."""

    sender: str
    block_number: int
    block_timestamp: int


@dataclass(frozen=True, slots=True)
class Notification:
    """An event emitted by the store, before the ledger encodes it."""

    event_name: str
    values: dict[str, Any] = field(default_factory=dict)


def _checksum(address: str) -> str:
    return to_checksum_address(address)


class LogStore:
    """
    The store's access-control state machine.

    Usage:
        store = LogStore(deployer="0x...")
        ctx = CallContext(sender=user, block_number=1, block_timestamp=1700000000)
        notifications = store.append(ctx, 1700000000, b"INFO" + b"\\0" * 4, msg)
    """

    def __init__(self, deployer: str):
        self.state = LogStoreState(owner=_checksum(deployer))

    # --- Read-only views ---

    def owner(self) -> str:
        return self.state.owner

    def paused(self) -> bool:
        return self.state.paused

    # --- Transitions ---

    def pause(self, ctx: CallContext) -> list[Notification]:
        """ACTIVE -> PAUSED. Owner only; rejected when already paused."""
        self._only_owner(ctx)
        if self.state.paused:
            raise NotAllowed(REASON_PAUSED)

        self.state.paused = True
        logger.info(f"Store paused by {ctx.sender} at block {ctx.block_number}")
        return [Notification("ContractPaused", {"by": _checksum(ctx.sender)})]

    def unpause(self, ctx: CallContext) -> list[Notification]:
        """PAUSED -> ACTIVE. Owner only; rejected when not paused."""
        self._only_owner(ctx)
        if not self.state.paused:
            raise NotAllowed(REASON_NOT_PAUSED)

        self.state.paused = False
        logger.info(f"Store unpaused by {ctx.sender} at block {ctx.block_number}")
        return [Notification("ContractUnpaused", {"by": _checksum(ctx.sender)})]

    def transfer_ownership(self, ctx: CallContext, new_owner: str) -> list[Notification]:
        """Hand the store to ``new_owner``. Valid in either state."""
        self._only_owner(ctx)
        if not isinstance(new_owner, str) or not is_address(new_owner):
            raise InvalidArgument(f"Ownable: invalid new owner {new_owner!r}")
        if _checksum(new_owner) == ZERO_ADDRESS:
            raise InvalidArgument(REASON_ZERO_OWNER)

        previous = self.state.owner
        self.state.owner = _checksum(new_owner)
        logger.info(f"Store ownership transferred from {previous} to {self.state.owner}")
        return [
            Notification(
                "OwnershipTransferred",
                {"previousOwner": previous, "newOwner": self.state.owner},
            )
        ]

    def append(
        self,
        ctx: CallContext,
        user_timestamp: int,
        entry_type: bytes,
        message: bytes,
    ) -> list[Notification]:
        """
        Record one log entry.

        Checks, in order: store is active, timestamp is non-zero, type is
        not all zero bytes, message is not all zero bytes.

        Args:
            ctx: Sender and block supplied by the ledger
            user_timestamp: Application time in seconds
            entry_type: Exactly 8 bytes (see FixedWidthCodec)
            message: Exactly 32 bytes (see FixedWidthCodec)

        Returns:
            The single ``LogEntry`` notification.

        Raises:
            NotAllowed: If the store is paused.
            InvalidArgument: On a zero timestamp or an empty type or message.
        """
        if self.state.paused:
            raise NotAllowed(REASON_PAUSED)

        if isinstance(user_timestamp, bool) or not isinstance(user_timestamp, int) or user_timestamp < 0:
            raise InvalidArgument(f"EventLog: invalid timestamp {user_timestamp!r}")
        if user_timestamp == 0:
            raise InvalidArgument(REASON_ZERO_TIMESTAMP)

        entry_type = self._fixed(entry_type, TYPE_FIELD_WIDTH, "type")
        if FixedWidthCodec.is_empty(entry_type):
            raise InvalidArgument(REASON_EMPTY_TYPE)

        message = self._fixed(message, MESSAGE_FIELD_WIDTH, "message")
        if FixedWidthCodec.is_empty(message):
            raise InvalidArgument(REASON_EMPTY_MESSAGE)

        return [
            Notification(
                LOG_ENTRY_EVENT,
                {
                    "sender": _checksum(ctx.sender),
                    "userTimestamp": user_timestamp,
                    "blockTimestamp": ctx.block_timestamp,
                    "logEntryType": entry_type,
                    "logEntryMsg": message,
                },
            )
        ]

    # --- Ledger entry point ---

    def dispatch(self, ctx: CallContext, method: str, args: list[Any] | tuple[Any, ...]) -> list[Notification]:
        """
        Route a contract method call by its ABI name.

        Raises:
            InvalidArgument: On an unknown method or wrong argument count.
        """
        handlers = {
            "log": self.append,
            "pause": self.pause,
            "unpause": self.unpause,
            "transferOwnership": self.transfer_ownership,
        }
        handler = handlers.get(method)
        if handler is None:
            raise InvalidArgument(f"unknown store method {method!r}")
        try:
            return handler(ctx, *args)
        except TypeError as e:
            raise InvalidArgument(f"{method}: bad arguments: {e}") from e

    def _only_owner(self, ctx: CallContext) -> None:
        if _checksum(ctx.sender) != self.state.owner:
            raise Unauthorized(REASON_NOT_OWNER)

    @staticmethod
    def _fixed(value: bytes, width: int, what: str) -> bytes:
        if not isinstance(value, (bytes, bytearray)) or len(value) != width:
            raise InvalidArgument(f"EventLog: {what} must be exactly {width} bytes")
        return bytes(value)
