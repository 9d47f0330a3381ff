"""
Live subscriptions to store events.

A subscription is a lazy, infinite, non-restartable sequence of signals:

- ``Delivered(event)``  a new matching record, decoded
- ``Changed(ref)``      a previously delivered record was invalidated by a
                        reorganization; retract whatever was derived from it
- ``Errored(cause)``    the transport failed; always the last signal

States: CONNECTING -> ACTIVE -> CLOSED | ERRORED.

One consumer per handle. Driving a handle from two tasks at once is not
supported.
"""

from __future__ import annotations

import logging

from collections.abc import AsyncIterator
from typing import Any

from ..codec.fixed_width import FixedWidthCodec
from ..codec.schema import EventRegistry
from ..errors import SubscriptionError, TransportError
from ..transport.base import LedgerTransport, LogStream
from ..types import (
    BlockId,
    Changed,
    Delivered,
    Errored,
    LogRef,
    RawLog,
    SubscriptionSignal,
    SubscriptionState,
)
from .engine import LogQueryEngine, validate_range

logger = logging.getLogger(__name__)


class LogSubscription:
    """
    Live handle producing decoded store events.

    Usage:
        async with LogSubscription(transport, address, "LogEntry") as sub:
            async for signal in sub:
                if isinstance(signal, Delivered):
                    handle(signal.event)
                elif isinstance(signal, Changed):
                    retract(signal.ref)
    """

    def __init__(
        self,
        transport: LedgerTransport,
        address: str,
        event_name: str,
        from_block: BlockId = "latest",
        filters: dict[str, Any] | None = None,
        registry: EventRegistry | None = None,
        codec: FixedWidthCodec | None = None,
    ):
        """
        Validate the subscription; nothing is sent until ``start()``.

        Raises:
            InvalidRange: If ``from_block`` is malformed.
            UnknownEvent: If the event is not in the schema.
            InvalidArgument: On a bad indexed-field predicate.
        """
        validate_range(from_block, "latest")
        self.transport = transport
        self.event_name = event_name

        # Shares filter construction and record screening with range queries.
        self._engine = LogQueryEngine(transport, address, registry, codec)
        self._spec, self._filter = self._engine.build_filter(event_name, from_block, "latest", filters)

        self.state = SubscriptionState.CONNECTING
        self.subscription_id: str | None = None
        self.error: BaseException | None = None

        self._stream: LogStream | None = None
        self._delivered: dict[tuple[str, int], LogRef] = {}
        self._error_reported = False

    async def start(self) -> LogSubscription:
        """
        Open the feed and enter ACTIVE.

        A transport failure here moves the handle to ERRORED; iterating it
        then yields a single ``Errored`` signal.
        """
        if self.state != SubscriptionState.CONNECTING:
            return self
        try:
            self._stream = await self.transport.subscribe_logs(self._filter)
        except TransportError as e:
            self._fail(e)
            return self

        self.subscription_id = self._stream.subscription_id
        self.state = SubscriptionState.ACTIVE
        logger.info(f"Subscription {self.subscription_id} active for {self.event_name}")
        return self

    async def unsubscribe(self) -> None:
        """
        Stop the feed. Idempotent and always safe.

        Completes even if the transport is already broken; no signal is
        yielded after it returns.
        """
        if self.state == SubscriptionState.CLOSED:
            return
        if self.state != SubscriptionState.ERRORED:
            self.state = SubscriptionState.CLOSED

        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            await stream.close()
        except TransportError as e:
            logger.warning(f"Subscription {self.subscription_id} closed with transport error: {e}")
        logger.info(f"Subscription {self.subscription_id} closed")

    @property
    def delivered_count(self) -> int:
        """Records currently delivered and not retracted."""
        return len(self._delivered)

    async def __aenter__(self) -> LogSubscription:
        return await self.start()

    async def __aexit__(self, *exc: Any) -> None:
        await self.unsubscribe()

    def __aiter__(self) -> AsyncIterator[SubscriptionSignal]:
        return self._signals()

    async def _signals(self) -> AsyncIterator[SubscriptionSignal]:
        if self.state == SubscriptionState.CONNECTING:
            raise SubscriptionError("subscription not started; call start() first")

        if self.state == SubscriptionState.ERRORED:
            if self.error is not None and not self._error_reported:
                self._error_reported = True
                yield Errored(self.error)
            return

        while self.state == SubscriptionState.ACTIVE and self._stream is not None:
            try:
                raw = await self._stream.__anext__()
            except StopAsyncIteration:
                break
            except TransportError as e:
                if self.state != SubscriptionState.ACTIVE:
                    break
                self._fail(e)
                self._error_reported = True
                yield Errored(e)
                break

            signal = self._screen(raw)
            # unsubscribe() may have run while we were suspended.
            if signal is not None and self.state == SubscriptionState.ACTIVE:
                yield signal

    def _screen(self, raw: RawLog) -> SubscriptionSignal | None:
        """Turn one raw record into at most one signal."""
        if raw.removed:
            ref = self._delivered.pop(raw.identity, None)
            if ref is None:
                logger.debug(f"Ignoring removal of undelivered record {raw.transaction_hash}")
                return None
            logger.warning(f"Reorg invalidated {ref.transaction_hash} (log {ref.log_index})")
            return Changed(ref)

        if raw.identity in self._delivered:
            return None

        events = self._engine.decode_records([raw], self._spec)
        if not events:
            return None
        event = events[0]
        self._delivered[raw.identity] = event.ref
        return Delivered(event)

    def _fail(self, cause: BaseException) -> None:
        self.state = SubscriptionState.ERRORED
        self.error = cause
        logger.error(f"Subscription {self.subscription_id} errored: {cause}")
