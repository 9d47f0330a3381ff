"""
logchain - Main orchestration module.

This is the primary entry point for using logchain against a deployed
store. Brings the transport, schema, codec, store client and query layers
together from one configuration.
"""

from __future__ import annotations

from typing import Any

from .codec import EventRegistry, FixedWidthCodec
from .config import load_config
from .errors import InvalidArgument
from .query import LogQueryEngine, LogSubscription
from .store import LogStoreClient
from .transport import JsonRpcTransport, LedgerTransport
from .types import (
    LOG_ENTRY_EVENT,
    BlockId,
    DecodedEvent,
    LogChainConfig,
    LogEntry,
    StoreSnapshot,
)


class EventLogClient:
    """
    Main orchestration class for logchain.

    Usage:
        async with EventLogClient() as client:
            status = await client.status()
            entries = await client.query(entry_type="ERROR")

            async with client.subscribe() as sub:
                async for signal in sub:
                    ...
    """

    def __init__(
        self,
        config: LogChainConfig | None = None,
        transport: LedgerTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            config: Configuration (loads from file if not provided)
            transport: Ledger connection (JSON-RPC to ``config.rpc_url`` if not
                provided; an injected transport is owned by the caller)

        Raises:
            InvalidArgument: If no store address is configured.
            SchemaError: If ``config.abi_path`` holds an unusable ABI.
        """
        self.config = config or load_config()
        if self.config.contract_address is None:
            raise InvalidArgument("contract_address is not configured")
        self.address = self.config.contract_address

        if self.config.abi_path:
            self.registry = EventRegistry.load(self.config.abi_path)
        else:
            self.registry = EventRegistry.default()
        self.codec = FixedWidthCodec(self.config.oversize_policy)

        self._owns_transport = transport is None
        self.transport: LedgerTransport = transport or JsonRpcTransport(
            self.config.rpc_url,
            registry=self.registry,
            request_timeout=self.config.request_timeout_seconds,
            receipt_timeout=self.config.receipt_timeout_seconds,
            poll_interval=self.config.poll_interval_seconds,
        )

        # Initialize components
        self.store = LogStoreClient(self.transport, self.address, self.codec)
        self.engine = LogQueryEngine(
            self.transport,
            self.address,
            registry=self.registry,
            codec=self.codec,
            default_timeout=self.config.query_timeout_seconds,
        )

    async def status(self) -> StoreSnapshot:
        """Owner, paused flag and latest block of the configured store."""
        return await self.store.snapshot()

    async def events(
        self,
        event_name: str,
        from_block: BlockId | None = None,
        to_block: BlockId = "latest",
        filters: dict[str, Any] | None = None,
    ) -> list[DecodedEvent]:
        """Decoded events of any schema event over a block range."""
        if from_block is None:
            from_block = self.config.default_from_block
        return await self.engine.get_event_logs(event_name, from_block, to_block, filters)

    async def query(
        self,
        from_block: BlockId | None = None,
        to_block: BlockId = "latest",
        entry_type: str | None = None,
        sender: str | None = None,
    ) -> list[LogEntry]:
        """
        Log entries over a block range.

        Args:
            from_block: Lower bound (config default if None)
            to_block: Upper bound
            entry_type: Only entries with this type tag
            sender: Only entries appended by this address

        Returns:
            LogEntry list in ledger order
        """
        if from_block is None:
            from_block = self.config.default_from_block
        return await self.engine.get_log_entries(
            from_block, to_block, self._entry_filters(entry_type, sender)
        )

    def subscribe(
        self,
        event_name: str = LOG_ENTRY_EVENT,
        from_block: BlockId = "latest",
        entry_type: str | None = None,
        sender: str | None = None,
    ) -> LogSubscription:
        """
        Create a live subscription; start it with ``start()`` or ``async with``.

        ``entry_type`` and ``sender`` apply to ``LogEntry`` only.
        """
        filters = None
        if entry_type is not None or sender is not None:
            if event_name != LOG_ENTRY_EVENT:
                raise InvalidArgument(f"entry_type/sender filters apply to {LOG_ENTRY_EVENT} only")
            filters = self._entry_filters(entry_type, sender)
        return LogSubscription(
            self.transport,
            self.address,
            event_name,
            from_block=from_block,
            filters=filters,
            registry=self.registry,
            codec=self.codec,
        )

    @staticmethod
    def _entry_filters(entry_type: str | None, sender: str | None) -> dict[str, Any] | None:
        filters: dict[str, Any] = {}
        if entry_type is not None:
            filters["logEntryType"] = entry_type
        if sender is not None:
            filters["sender"] = sender
        return filters or None

    async def aclose(self) -> None:
        if self._owns_transport and isinstance(self.transport, JsonRpcTransport):
            await self.transport.aclose()

    async def __aenter__(self) -> EventLogClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()
