"""
Log Query Engine - block-range retrieval of decoded store events.

Supports:
- Block-range filtering with concrete numbers or block tags
- Indexed-field predicates (translated to topic filters)
- Deadlines via an explicit timeout or task cancellation
- Ledger-order results, deduplicated
"""

from __future__ import annotations

import asyncio
import logging

from typing import Any

from ..codec.decoder import build_topics, decode_log, to_log_entry
from ..codec.fixed_width import FixedWidthCodec
from ..codec.schema import EventRegistry, EventSpec
from ..errors import DecodingError, InvalidRange, QueryFailed, QueryTimeout, TransportError
from ..transport.base import LedgerTransport, LogFilter
from ..types import (
    BLOCK_TAGS,
    LOG_ENTRY_EVENT,
    BlockId,
    DecodedEvent,
    LogEntry,
    RawLog,
    is_concrete_block,
)

logger = logging.getLogger(__name__)


def _check_block(name: str, block: BlockId) -> None:
    if isinstance(block, str):
        if block not in BLOCK_TAGS:
            raise InvalidRange(f"{name} must be a block number or one of {sorted(BLOCK_TAGS)}, got {block!r}")
        return
    if isinstance(block, bool) or not isinstance(block, int):
        raise InvalidRange(f"{name} must be a block number, got {block!r}")
    if block < 0:
        raise InvalidRange(f"{name} must be non-negative, got {block}")


def validate_range(from_block: BlockId, to_block: BlockId) -> None:
    """
    Reject malformed or contradictory ranges before any network access.

    Raises:
        InvalidRange: On a negative or unknown bound, ``from_block >
            to_block``, or a concrete upper bound under an unbounded
            (``latest``/``pending``) lower bound.
    """
    _check_block("from_block", from_block)
    _check_block("to_block", to_block)

    from_concrete = is_concrete_block(from_block)
    to_concrete = is_concrete_block(to_block)

    if to_concrete and not from_concrete:
        raise InvalidRange(
            f"to_block {to_block!r} is concrete but from_block is {from_block!r}"
        )
    if from_concrete and to_concrete:
        low = 0 if from_block == "earliest" else from_block
        high = 0 if to_block == "earliest" else to_block
        if low > high:
            raise InvalidRange(f"from_block {low} is after to_block {high}")


class LogQueryEngine:
    """
    Retrieves and decodes store events over a block range.

    Results are finite and in ledger order; a fresh call re-scans the range.

    Usage:
        engine = LogQueryEngine(transport, store_address)
        entries = await engine.get_log_entries(from_block=0)
        errors = await engine.get_event_logs("LogEntry", 0, "latest",
                                             filters={"logEntryType": "ERROR"})
    """

    def __init__(
        self,
        transport: LedgerTransport,
        address: str,
        registry: EventRegistry | None = None,
        codec: FixedWidthCodec | None = None,
        default_timeout: float | None = None,
    ):
        """
        Initialize the engine.

        Args:
            transport: Ledger connection
            address: Store address every scan is restricted to
            registry: Event schema (bundled store schema if unset)
            codec: Fixed-width codec for text fields and predicates
            default_timeout: Deadline in seconds when a call gives none
        """
        self.transport = transport
        self.address = address
        self.registry = registry or EventRegistry.default()
        self.codec = codec or FixedWidthCodec()
        self.default_timeout = default_timeout

    def build_filter(
        self,
        event_name: str,
        from_block: BlockId,
        to_block: BlockId,
        filters: dict[str, Any] | None = None,
    ) -> tuple[EventSpec, LogFilter]:
        """
        Validate a query and build its address- and topic-filtered scan.

        Raises:
            InvalidRange: On a bad block range.
            UnknownEvent: If the event is not in the schema.
            InvalidArgument: On a bad indexed-field predicate.
        """
        validate_range(from_block, to_block)
        spec = self.registry.get(event_name)
        log_filter = LogFilter(
            address=self.address,
            topics=build_topics(spec, filters, self.codec),
            from_block=from_block,
            to_block=to_block,
        )
        logger.debug(f"Scan {event_name} blocks {from_block}..{to_block} at {self.address}")
        return spec, log_filter

    async def get_event_logs(
        self,
        event_name: str,
        from_block: BlockId = 0,
        to_block: BlockId = "latest",
        filters: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> list[DecodedEvent]:
        """
        Scan a block range and decode every matching record.

        Args:
            event_name: Event in the schema (e.g. "LogEntry")
            from_block: Lower bound (number or block tag)
            to_block: Upper bound (number or block tag)
            filters: Indexed field -> value or list of values
            timeout: Deadline in seconds (engine default if None)

        Returns:
            Decoded events in ledger order. Fields that failed to decode
            are reported in each event's ``errors``.

        Raises:
            InvalidRange, UnknownEvent, InvalidArgument: Before any network call.
            QueryFailed: If the transport failed.
            QueryTimeout: If the deadline passed.
        """
        spec, log_filter = self.build_filter(event_name, from_block, to_block, filters)
        timeout = self.default_timeout if timeout is None else timeout

        try:
            if timeout is None:
                return await self._scan(spec, log_filter)
            return await asyncio.wait_for(self._scan(spec, log_filter), timeout)
        except asyncio.TimeoutError:
            raise QueryTimeout(
                f"{event_name} scan of blocks {from_block}..{to_block} exceeded {timeout}s"
            ) from None
        except TransportError as e:
            raise QueryFailed(e) from e

    async def get_log_entries(
        self,
        from_block: BlockId = 0,
        to_block: BlockId = "latest",
        filters: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> list[LogEntry]:
        """
        Typed ``LogEntry`` view of ``get_event_logs``.

        Records that cannot form a valid entry are skipped with a warning.
        """
        events = await self.get_event_logs(LOG_ENTRY_EVENT, from_block, to_block, filters, timeout)
        entries = []
        for event in events:
            try:
                entries.append(to_log_entry(event, self.codec))
            except DecodingError as e:
                logger.warning(f"Skipping entry in tx {event.transaction_hash}: {e}")
        return entries

    async def _scan(self, spec: EventSpec, log_filter: LogFilter) -> list[DecodedEvent]:
        raw_logs = await self.transport.get_logs(log_filter)
        return self.decode_records(raw_logs, spec)

    def decode_records(self, raw_logs: list[RawLog], spec: EventSpec) -> list[DecodedEvent]:
        """
        Keep this store's live records for ``spec``, dedupe, order, decode.

        Foreign-address records and records whose topic 0 does not match
        are dropped without being decoded.
        """
        address = self.address.lower()
        seen: dict[tuple[str, int], RawLog] = {}
        for raw in raw_logs:
            if raw.removed or raw.address.lower() != address:
                continue
            if not raw.topics or raw.topics[0] != spec.topic:
                continue
            seen.setdefault(raw.identity, raw)

        ordered = sorted(seen.values(), key=lambda r: r.ordering_key)
        return [decode_log(raw, spec) for raw in ordered]
