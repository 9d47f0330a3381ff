"""
Ledger transport boundary.

Everything logchain needs from a ledger node, expressed as coroutines.
Signing, broadcast and connection setup belong to the transport; the
query, subscription and store-client layers only build requests and
interpret results.

Transports raise ``TransportError`` for connection failures and
``TransactionReverted`` when the ledger rejects a state-changing call.
Neither is retried here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from eth_utils import encode_hex

from ..types import BlockId, RawLog, TxReceipt


def _block_param(block: BlockId) -> str:
    if isinstance(block, int):
        return hex(block)
    return block


@dataclass(frozen=True, slots=True)
class LogFilter:
    """
    An address- and topic-filtered range scan request.

    ``topics`` follows ledger filter semantics: slot-wise, ``None`` matches
    anything, a list matches any of its members.
    """

    address: str
    topics: list[Any] = field(default_factory=list)
    from_block: BlockId = "latest"
    to_block: BlockId = "latest"

    def to_rpc(self) -> dict[str, Any]:
        """Serialize to the JSON-RPC filter object shape."""
        topics: list[Any] = []
        for t in self.topics:
            if t is None:
                topics.append(None)
            elif isinstance(t, list):
                topics.append([encode_hex(x) for x in t])
            else:
                topics.append(encode_hex(t))
        return {
            "address": self.address,
            "topics": topics,
            "fromBlock": _block_param(self.from_block),
            "toBlock": _block_param(self.to_block),
        }


class LogStream(ABC):
    """
    A live feed of raw records matching a filter.

    Iterate with ``async for``. Records flagged ``removed`` announce a
    reorganization. Iteration ends after ``close()``; a broken connection
    raises ``TransportError`` from ``__anext__``.
    """

    subscription_id: str = ""

    def __aiter__(self) -> LogStream:
        return self

    @abstractmethod
    async def __anext__(self) -> RawLog:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Stop the feed. Idempotent."""


@runtime_checkable
class LedgerTransport(Protocol):
    """What logchain consumes from a ledger node."""

    async def block_number(self) -> int:
        ...

    async def call(self, address: str, method: str, args: tuple[Any, ...] = ()) -> Any:
        """Read-only call (``owner``, ``paused``)."""
        ...

    async def send_transaction(
        self,
        address: str,
        method: str,
        args: tuple[Any, ...],
        sender: str,
    ) -> TxReceipt:
        """State-changing call, returned once mined."""
        ...

    async def get_logs(self, log_filter: LogFilter) -> list[RawLog]:
        ...

    async def subscribe_logs(self, log_filter: LogFilter) -> LogStream:
        ...
