"""
Client for a deployed log store.

Builds store calls for the transport and turns the ledger's structured
result back into Python: receipts on success, the matching error kind on
a revert. Signing and broadcast stay with the transport.
"""

from __future__ import annotations

import logging

from eth_utils import is_address, to_checksum_address

from ..codec.fixed_width import FixedWidthCodec
from ..errors import (
    InvalidArgument,
    LogChainError,
    NotAllowed,
    TransactionReverted,
    Unauthorized,
)
from ..transport.base import LedgerTransport
from ..types import StoreSnapshot, TxReceipt
from .state_machine import (
    REASON_EMPTY_MESSAGE,
    REASON_EMPTY_TYPE,
    REASON_NOT_OWNER,
    REASON_NOT_PAUSED,
    REASON_PAUSED,
    REASON_ZERO_OWNER,
    REASON_ZERO_TIMESTAMP,
)

logger = logging.getLogger(__name__)

# Checked in order; the first reason found in the revert message wins.
_REVERT_KINDS: list[tuple[str, type[LogChainError]]] = [
    (REASON_NOT_OWNER, Unauthorized),
    (REASON_NOT_PAUSED, NotAllowed),
    (REASON_PAUSED, NotAllowed),
    (REASON_ZERO_OWNER, InvalidArgument),
    (REASON_ZERO_TIMESTAMP, InvalidArgument),
    (REASON_EMPTY_TYPE, InvalidArgument),
    (REASON_EMPTY_MESSAGE, InvalidArgument),
    ("EventLog:", InvalidArgument),
    ("Ownable: invalid", InvalidArgument),
]


def rejection_for(revert: TransactionReverted) -> LogChainError:
    """
    Map a revert to its error kind, keeping the reason string intact.

    Node implementations wrap the reason differently (``"VM Exception
    while processing transaction: revert <reason>"``, ``"execution
    reverted: <reason>"``), so reasons are matched by substring. Unknown
    reasons are returned unchanged.
    """
    for reason, kind in _REVERT_KINDS:
        if reason in revert.reason:
            start = revert.reason.index(reason)
            return kind(revert.reason[start:])
    return revert


def _require_address(role: str, value: object) -> None:
    if not isinstance(value, str) or not is_address(value):
        raise InvalidArgument(f"invalid {role} address: {value!r}")


class LogStoreClient:
    """
    Typed access to one store.

    Usage:
        store = LogStoreClient(transport, address)
        await store.append(1700000000, "INFO", "client login success", sender=user)
        await store.pause(sender=owner)
    """

    def __init__(
        self,
        transport: LedgerTransport,
        address: str,
        codec: FixedWidthCodec | None = None,
    ):
        self.transport = transport
        self.address = to_checksum_address(address)
        self.codec = codec or FixedWidthCodec()

    # --- Reads ---

    async def owner(self) -> str:
        return to_checksum_address(await self.transport.call(self.address, "owner", ()))

    async def paused(self) -> bool:
        return bool(await self.transport.call(self.address, "paused", ()))

    async def snapshot(self) -> StoreSnapshot:
        """Owner, paused flag and latest block, read together."""
        return StoreSnapshot(
            address=self.address,
            owner=await self.owner(),
            paused=await self.paused(),
            latest_block=await self.transport.block_number(),
        )

    # --- Writes ---

    async def append(
        self,
        user_timestamp: int,
        entry_type: str | bytes,
        message: str | bytes,
        *,
        sender: str,
    ) -> TxReceipt:
        """
        Append one entry as ``sender``.

        Text is fitted to its fixed-width field by the codec's policy
        before it is sent; the store performs all validation.

        Raises:
            NotAllowed: If the store is paused.
            InvalidArgument: On a zero timestamp or empty type/message.
            EncodingError: If text is too long under the REJECT policy.
            TransportError: If the ledger could not be reached.
        """
        args = (
            user_timestamp,
            self.codec.encode_type(entry_type),
            self.codec.encode_message(message),
        )
        return await self._send("log", args, sender)

    async def pause(self, *, sender: str) -> TxReceipt:
        return await self._send("pause", (), sender)

    async def unpause(self, *, sender: str) -> TxReceipt:
        return await self._send("unpause", (), sender)

    async def transfer_ownership(self, new_owner: str, *, sender: str) -> TxReceipt:
        _require_address("new owner", new_owner)
        return await self._send("transferOwnership", (new_owner,), sender)

    async def _send(self, method: str, args: tuple, sender: str) -> TxReceipt:
        _require_address("sender", sender)
        try:
            receipt = await self.transport.send_transaction(self.address, method, args, sender)
        except TransactionReverted as e:
            error = rejection_for(e)
            logger.info(f"{method} rejected for {sender}: {e.reason}")
            if error is e:
                raise
            raise error from e

        logger.debug(f"{method} mined in block {receipt.block_number} ({receipt.transaction_hash})")
        return receipt
