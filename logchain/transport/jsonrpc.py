"""
JSON-RPC transport over HTTP.

Talks to a ledger node using the standard ``eth_*`` methods:

- reads:        eth_call, eth_blockNumber
- writes:       eth_sendTransaction (node-managed accounts sign), then
                eth_getTransactionReceipt until mined
- range scans:  eth_getLogs
- live feeds:   eth_newFilter / eth_getFilterChanges / eth_uninstallFilter
                (polling; removed records carry ``"removed": true``)

Errors are surfaced, never retried: connection and protocol failures as
``TransportError``, rejected calls as ``TransactionReverted`` with the
node's revert reason.
"""

from __future__ import annotations

import asyncio
import itertools
import logging

from collections import deque
from typing import Any

import httpx

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError as ABIDecodingError
from eth_abi.exceptions import EncodingError as ABIEncodingError
from eth_utils import encode_hex, to_bytes, to_checksum_address, to_int

from ..codec.schema import EventRegistry
from ..errors import InvalidArgument, TransactionReverted, TransportError
from ..types import RawLog, TxReceipt, is_concrete_block
from .base import LogFilter, LogStream

logger = logging.getLogger(__name__)

# Selector of Solidity's Error(string).
ERROR_SELECTOR = bytes.fromhex("08c379a0")


def _checksum(address: str) -> str:
    try:
        return to_checksum_address(address)
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"invalid address: {address!r}") from e


def decode_revert_data(data: Any) -> str | None:
    """Extract a revert reason from the ``error.data`` of a node response."""
    if isinstance(data, dict):
        # Some development nodes key the payload by transaction hash.
        if "reason" in data and data["reason"]:
            return str(data["reason"])
        if "data" in data:
            return decode_revert_data(data["data"])
        for value in data.values():
            reason = decode_revert_data(value)
            if reason:
                return reason
        return None

    if not isinstance(data, str) or not data.startswith("0x"):
        return None
    try:
        raw = to_bytes(hexstr=data)
    except ValueError:
        return None
    if raw[:4] != ERROR_SELECTOR:
        return None
    try:
        return decode(["string"], raw[4:])[0]
    except (ABIDecodingError, ValueError):
        return None


class PollingLogStream(LogStream):
    """Live feed built on a node-side log filter."""

    def __init__(
        self,
        transport: JsonRpcTransport,
        filter_id: str,
        backlog: list[RawLog],
        poll_interval: float,
    ):
        self._transport = transport
        self._pending: deque[RawLog] = deque(backlog)
        self._poll_interval = poll_interval
        self._closed = False
        self.subscription_id = filter_id

    async def __anext__(self) -> RawLog:
        while not self._pending:
            if self._closed:
                raise StopAsyncIteration
            try:
                changes = await self._transport.request("eth_getFilterChanges", [self.subscription_id])
            except TransportError:
                if self._closed:
                    raise StopAsyncIteration from None
                raise
            self._pending.extend(self._transport.parse_logs(changes))
            if not self._pending:
                await asyncio.sleep(self._poll_interval)

        if self._closed:
            raise StopAsyncIteration
        return self._pending.popleft()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        try:
            await self._transport.request("eth_uninstallFilter", [self.subscription_id])
        except TransportError as e:
            logger.warning(f"Could not uninstall filter {self.subscription_id}: {e}")


class JsonRpcTransport:
    """
    LedgerTransport for an HTTP JSON-RPC node.

    Usage:
        async with JsonRpcTransport("http://127.0.0.1:7545") as transport:
            head = await transport.block_number()
    """

    def __init__(
        self,
        url: str,
        registry: EventRegistry | None = None,
        request_timeout: float = 10.0,
        receipt_timeout: float = 60.0,
        poll_interval: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the transport.

        Args:
            url: Node endpoint
            registry: Contract ABI used to build calls (bundled store ABI if unset)
            request_timeout: Per-request HTTP timeout in seconds
            receipt_timeout: How long to wait for a transaction to be mined
            poll_interval: Receipt and filter polling period in seconds
            client: Pre-configured httpx client (owned by the caller)
        """
        self.url = url
        self.registry = registry or EventRegistry.default()
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=request_timeout)
        self._ids = itertools.count(1)

    async def __aenter__(self) -> JsonRpcTransport:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # --- Raw JSON-RPC ---

    async def request(self, method: str, params: list[Any]) -> Any:
        """
        Send one JSON-RPC request and return its ``result``.

        Raises:
            TransactionReverted: If the node reports a revert.
            TransportError: On connection, HTTP or protocol failure.
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"{method}: {e}") from e
        except ValueError as e:
            raise TransportError(f"{method}: response is not JSON") from e

        if not isinstance(body, dict):
            raise TransportError(f"{method}: malformed response")
        if body.get("error"):
            raise self._error_from(method, body["error"])
        return body.get("result")

    @staticmethod
    def _error_from(method: str, error: Any) -> TransportError:
        if not isinstance(error, dict):
            return TransportError(f"{method}: {error}")

        message = str(error.get("message", ""))
        reason = decode_revert_data(error.get("data"))
        if reason:
            return TransactionReverted(reason)
        if "revert" in message.lower():
            return TransactionReverted(message)
        return TransportError(f"{method}: {message or error}")

    def parse_logs(self, result: Any) -> list[RawLog]:
        if not isinstance(result, list):
            raise TransportError(f"expected a list of logs, got {type(result).__name__}")
        try:
            return [RawLog.from_rpc(item) for item in result]
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"malformed log record: {e}") from e

    def encode_call(self, method: str, args: tuple[Any, ...]) -> str:
        fn = self.registry.function(method)
        try:
            return encode_hex(fn.selector + encode(list(fn.input_types), list(args)))
        except (ABIEncodingError, TypeError, ValueError) as e:
            raise InvalidArgument(f"{method}: cannot encode arguments {args!r}: {e}") from e

    # --- LedgerTransport ---

    async def block_number(self) -> int:
        return to_int(hexstr=await self.request("eth_blockNumber", []))

    async def call(self, address: str, method: str, args: tuple[Any, ...] = ()) -> Any:
        fn = self.registry.function(method)
        data = self.encode_call(method, args)
        result = await self.request(
            "eth_call",
            [{"to": _checksum(address), "data": data}, "latest"],
        )
        try:
            values = decode(list(fn.output_types), to_bytes(hexstr=result))
        except (ABIDecodingError, TypeError, ValueError) as e:
            raise TransportError(f"{method}: undecodable result {result!r}") from e
        return values[0] if len(values) == 1 else values

    async def send_transaction(
        self,
        address: str,
        method: str,
        args: tuple[Any, ...],
        sender: str,
    ) -> TxReceipt:
        data = self.encode_call(method, args)
        tx_hash = await self.request(
            "eth_sendTransaction",
            [{
                "from": _checksum(sender),
                "to": _checksum(address),
                "data": data,
            }],
        )
        receipt = await self._wait_for_receipt(tx_hash)

        if to_int(hexstr=receipt.get("status", "0x1")) == 0:
            raise TransactionReverted(f"{method}: transaction {tx_hash} reverted")

        return TxReceipt(
            transaction_hash=receipt["transactionHash"],
            block_number=to_int(hexstr=receipt["blockNumber"]),
            block_hash=receipt["blockHash"],
            sender=to_checksum_address(receipt.get("from", sender)),
            logs=tuple(self.parse_logs(receipt.get("logs", []))),
        )

    async def _wait_for_receipt(self, tx_hash: str) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.receipt_timeout
        while True:
            receipt = await self.request("eth_getTransactionReceipt", [tx_hash])
            if receipt:
                return receipt
            if loop.time() >= deadline:
                raise TransportError(f"transaction {tx_hash} not mined after {self.receipt_timeout}s")
            await asyncio.sleep(self.poll_interval)

    async def get_logs(self, log_filter: LogFilter) -> list[RawLog]:
        return self.parse_logs(await self.request("eth_getLogs", [log_filter.to_rpc()]))

    async def subscribe_logs(self, log_filter: LogFilter) -> PollingLogStream:
        filter_id = await self.request("eth_newFilter", [log_filter.to_rpc()])
        backlog: list[RawLog] = []
        if is_concrete_block(log_filter.from_block):
            backlog = self.parse_logs(await self.request("eth_getFilterLogs", [filter_id]))
        logger.debug(f"Installed log filter {filter_id} ({len(backlog)} historical records)")
        return PollingLogStream(self, filter_id, backlog, self.poll_interval)
