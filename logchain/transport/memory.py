"""
In-memory development ledger.

A small stand-in for a local development chain: it hosts log store
instances, auto-mines one block per transaction with monotonic
timestamps, serves range scans and live feeds, and can simulate a
reorganization or a dropped connection. It implements the same
``LedgerTransport`` surface as the JSON-RPC transport, so everything
above the transport runs unchanged against it.
"""

from __future__ import annotations

import asyncio
import logging
import time

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from eth_utils import encode_hex, keccak, to_checksum_address

from ..codec.decoder import encode_event, topic_matches
from ..codec.schema import EventRegistry
from ..errors import (
    InvalidArgument,
    NotAllowed,
    TransactionReverted,
    TransportError,
    Unauthorized,
)
from ..store.state_machine import CallContext, LogStore, Notification
from ..types import ZERO_ADDRESS, RawLog, TxReceipt
from .base import LogFilter, LogStream

logger = logging.getLogger(__name__)

_CLOSED = object()


def _derive_address(label: str) -> str:
    return to_checksum_address(keccak(text=label)[-20:])


def _derive_hash(label: str) -> str:
    return encode_hex(keccak(text=label))


@dataclass
class Block:
    number: int
    hash: str
    timestamp: int
    logs: list[RawLog] = field(default_factory=list)


class MemoryLogStream(LogStream):
    """Live feed backed by an asyncio queue the ledger pushes into."""

    def __init__(self, ledger: InMemoryLedger, log_filter: LogFilter, subscription_id: str):
        self._ledger = ledger
        self._filter = log_filter
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self.subscription_id = subscription_id

    def matches(self, raw: RawLog) -> bool:
        return raw.address == self._filter.address and topic_matches(raw.topics, self._filter.topics)

    def push(self, raw: RawLog) -> None:
        if not self._closed and self.matches(raw):
            self._queue.put_nowait(raw)

    def fail(self, exc: BaseException) -> None:
        if not self._closed:
            self._queue.put_nowait(exc)

    async def __anext__(self) -> RawLog:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        self._ledger._detach(self)


class InMemoryLedger:
    """
    Development ledger hosting log stores.

    Usage:
        ledger = InMemoryLedger()
        owner, user1 = ledger.accounts[:2]
        store_address = ledger.deploy_store(owner)
        receipt = await ledger.send_transaction(store_address, "pause", (), owner)
    """

    def __init__(
        self,
        clock: Callable[[], int] | None = None,
        account_count: int = 10,
    ):
        """
        Initialize the ledger with a genesis block.

        Args:
            clock: Source of block timestamps in seconds (wall clock if unset).
                Timestamps never go backwards even if the clock does.
            account_count: Number of pre-funded development accounts
        """
        self._clock = clock or (lambda: int(time.time()))
        self.accounts = [_derive_address(f"account:{i}") for i in range(account_count)]

        self._blocks: list[Block] = []
        self._stores: dict[str, LogStore] = {}
        self._streams: list[MemoryLogStream] = []
        self._registry = EventRegistry.default()
        self._tx_count = 0
        self._last_tx_hash = ""
        self._fork = 0
        self._connected = True

        self._mine([], ZERO_ADDRESS, ZERO_ADDRESS)

    # --- Development controls ---

    def deploy_store(self, deployer: str) -> str:
        """Deploy a fresh log store owned by ``deployer``; returns its address."""
        address = _derive_address(f"store:{len(self._stores)}")
        store = LogStore(deployer)
        self._stores[address] = store
        self._mine(
            [Notification("OwnershipTransferred", {"previousOwner": ZERO_ADDRESS, "newOwner": store.owner()})],
            address,
            to_checksum_address(deployer),
        )
        logger.info(f"Log store deployed at {address} by {deployer}")
        return address

    def store(self, address: str) -> LogStore:
        try:
            return self._stores[to_checksum_address(address)]
        except KeyError:
            raise TransportError(f"no contract at {address}") from None

    def mine_empty_block(self) -> int:
        return self._mine([], ZERO_ADDRESS, ZERO_ADDRESS).number

    def reorg(self, depth: int = 1) -> list[RawLog]:
        """
        Drop the newest ``depth`` blocks.

        Every record in them is re-announced to live feeds with
        ``removed=True``. Store state changes are not rolled back.

        Returns:
            The removed records (as announced).
        """
        if depth < 1 or depth >= len(self._blocks):
            raise ValueError(f"reorg depth must be between 1 and {len(self._blocks) - 1}")

        dropped = self._blocks[-depth:]
        del self._blocks[-depth:]
        self._fork += 1

        removed: list[RawLog] = []
        for block in dropped:
            for raw in block.logs:
                gone = RawLog(
                    address=raw.address,
                    topics=raw.topics,
                    data=raw.data,
                    block_number=raw.block_number,
                    block_hash=raw.block_hash,
                    transaction_hash=raw.transaction_hash,
                    transaction_index=raw.transaction_index,
                    log_index=raw.log_index,
                    removed=True,
                )
                removed.append(gone)
                self._publish(gone)

        logger.warning(f"Reorganized {depth} block(s); {len(removed)} record(s) removed")
        return removed

    def redeliver(self, raw: RawLog) -> None:
        """Push a record to live feeds again (at-least-once delivery)."""
        self._publish(raw)

    def disconnect(self) -> None:
        """Simulate a dropped connection: requests fail and feeds error out."""
        self._connected = False
        for stream in list(self._streams):
            stream.fail(TransportError("connection lost"))

    def reconnect(self) -> None:
        self._connected = True

    @property
    def head(self) -> Block:
        return self._blocks[-1]

    # --- LedgerTransport ---

    async def block_number(self) -> int:
        self._check_connected()
        return self.head.number

    async def call(self, address: str, method: str, args: tuple[Any, ...] = ()) -> Any:
        self._check_connected()
        store = self.store(address)
        if method == "owner":
            return store.owner()
        if method == "paused":
            return store.paused()
        raise TransactionReverted(f"unknown view method {method!r}")

    async def send_transaction(
        self,
        address: str,
        method: str,
        args: tuple[Any, ...],
        sender: str,
    ) -> TxReceipt:
        self._check_connected()
        store = self.store(address)
        try:
            sender = to_checksum_address(sender)
        except (TypeError, ValueError) as e:
            raise InvalidArgument(f"invalid sender address: {sender!r}") from e
        ctx = CallContext(
            sender=sender,
            block_number=self.head.number + 1,
            block_timestamp=self._next_timestamp(),
        )
        try:
            notifications = store.dispatch(ctx, method, tuple(args))
        except (InvalidArgument, Unauthorized, NotAllowed) as e:
            logger.debug(f"{method} from {sender} reverted: {e}")
            raise TransactionReverted(str(e)) from e

        block = self._mine(notifications, to_checksum_address(address), sender, ctx.block_timestamp)
        return TxReceipt(
            transaction_hash=self._last_tx_hash,
            block_number=block.number,
            block_hash=block.hash,
            sender=sender,
            logs=tuple(block.logs),
        )

    async def get_logs(self, log_filter: LogFilter) -> list[RawLog]:
        self._check_connected()
        start = self._resolve(log_filter.from_block)
        end = self._resolve(log_filter.to_block)
        address = to_checksum_address(log_filter.address)

        found = []
        for block in self._blocks[start:end + 1]:
            for raw in block.logs:
                if raw.address == address and topic_matches(raw.topics, log_filter.topics):
                    found.append(raw)
        return found

    async def subscribe_logs(self, log_filter: LogFilter) -> MemoryLogStream:
        self._check_connected()
        log_filter = LogFilter(
            address=to_checksum_address(log_filter.address),
            topics=log_filter.topics,
            from_block=log_filter.from_block,
            to_block=log_filter.to_block,
        )
        stream = MemoryLogStream(self, log_filter, _derive_hash(f"sub:{len(self._streams)}:{self._tx_count}"))

        # A concrete lower bound replays history before live records.
        if log_filter.from_block not in ("latest", "pending"):
            for raw in await self.get_logs(LogFilter(log_filter.address, log_filter.topics, log_filter.from_block, "latest")):
                stream.push(raw)

        self._streams.append(stream)
        return stream

    # --- Internals ---

    def _check_connected(self) -> None:
        if not self._connected:
            raise TransportError("connection lost")

    def _resolve(self, block: Any) -> int:
        if block == "earliest":
            return 0
        if block in ("latest", "pending"):
            return self.head.number
        return int(block)

    def _next_timestamp(self) -> int:
        previous = self._blocks[-1].timestamp if self._blocks else 0
        return max(previous, int(self._clock()))

    def _mine(
        self,
        notifications: list[Notification],
        address: str,
        sender: str,
        timestamp: int | None = None,
    ) -> Block:
        number = len(self._blocks)
        block_hash = _derive_hash(f"block:{self._fork}:{number}")
        tx_hash = _derive_hash(f"tx:{self._tx_count}")
        self._tx_count += 1
        self._last_tx_hash = tx_hash

        block = Block(
            number=number,
            hash=block_hash,
            timestamp=self._next_timestamp() if timestamp is None else timestamp,
        )
        for log_index, note in enumerate(notifications):
            topics, data = encode_event(self._registry.get(note.event_name), note.values)
            block.logs.append(
                RawLog(
                    address=address,
                    topics=topics,
                    data=data,
                    block_number=number,
                    block_hash=block_hash,
                    transaction_hash=tx_hash,
                    transaction_index=0,
                    log_index=log_index,
                )
            )
        self._blocks.append(block)

        for raw in block.logs:
            self._publish(raw)
        return block

    def _publish(self, raw: RawLog) -> None:
        for stream in list(self._streams):
            stream.push(raw)

    def _detach(self, stream: MemoryLogStream) -> None:
        if stream in self._streams:
            self._streams.remove(stream)
