"""
Core type definitions for logchain.

This module defines the data structures shared by the store, codec,
query and subscription layers.
Design principles:
- Immutable where possible (frozen dataclasses)
- Explicit validation at construction time
- Serialization/deserialization with explicit methods
- No magic strings - states and policies are enums
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Final, Union

from eth_utils import encode_hex, is_address, to_bytes, to_checksum_address, to_int


# =============================================================================
# CONSTANTS
# =============================================================================

TYPE_FIELD_WIDTH: Final[int] = 8
MESSAGE_FIELD_WIDTH: Final[int] = 32
MAX_INDEXED_FIELDS: Final[int] = 3

ZERO_ADDRESS: Final[str] = "0x0000000000000000000000000000000000000000"

LOG_ENTRY_EVENT: Final[str] = "LogEntry"

BLOCK_TAGS: Final[frozenset[str]] = frozenset({"earliest", "latest", "pending"})
"""Symbolic block numbers. ``earliest`` is block 0; the others are unbounded."""

BlockId = Union[int, str]


def is_concrete_block(block: BlockId) -> bool:
    """True for an explicit block number (``earliest`` counts as block 0)."""
    return block == "earliest" or (isinstance(block, int) and not isinstance(block, bool))


def _as_int(value: int | str) -> int:
    if isinstance(value, int):
        return value
    return to_int(hexstr=value)


def _as_bytes(value: bytes | str) -> bytes:
    if isinstance(value, bytes):
        return value
    return to_bytes(hexstr=value)


# =============================================================================
# ENUMS
# =============================================================================

class StoreStatus(str, Enum):
    """
    States of the log store.

    - ACTIVE: appends are accepted
    - PAUSED: appends are rejected until the owner unpauses
    """

    ACTIVE = "active"
    PAUSED = "paused"

    def __str__(self) -> str:
        return self.value

    @property
    def accepts_appends(self) -> bool:
        """Returns True if append() is allowed in this state."""
        return self == StoreStatus.ACTIVE


class SubscriptionState(str, Enum):
    """Lifecycle of a live subscription handle."""

    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"
    ERRORED = "errored"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """True once the handle will never yield again."""
        return self in (SubscriptionState.CLOSED, SubscriptionState.ERRORED)


class OversizePolicy(str, Enum):
    """
    What the fixed-width codec does with text longer than its field.

    One policy is applied uniformly to every fixed-width field.
    """

    TRUNCATE = "truncate"
    """Cut on a UTF-8 character boundary and log a warning."""

    REJECT = "reject"
    """Raise EncodingError."""

    def __str__(self) -> str:
        return self.value


# =============================================================================
# LEDGER RECORDS
# =============================================================================

@dataclass(frozen=True, slots=True)
class RawLog:
    """
    A log record exactly as the ledger reports it.

    ``topics[0]`` is the event signature hash; the remaining topics carry
    the indexed fields. ``data`` holds the ABI-packed non-indexed fields.
    ``removed`` is set when a reorganization invalidated a record that
    was previously delivered.
    """

    address: str
    topics: tuple[bytes, ...]
    data: bytes
    block_number: int
    block_hash: str
    transaction_hash: str
    transaction_index: int = 0
    log_index: int = 0
    removed: bool = False

    @property
    def ordering_key(self) -> tuple[int, int, int]:
        """Ledger order: block, then transaction, then position in receipt."""
        return (self.block_number, self.transaction_index, self.log_index)

    @property
    def identity(self) -> tuple[str, int]:
        """Key used to deduplicate at-least-once deliveries."""
        return (self.transaction_hash.lower(), self.log_index)

    def to_rpc(self) -> dict[str, Any]:
        """Serialize to the JSON-RPC log object shape."""
        return {
            "address": self.address,
            "topics": [encode_hex(t) for t in self.topics],
            "data": encode_hex(self.data),
            "blockNumber": hex(self.block_number),
            "blockHash": self.block_hash,
            "transactionHash": self.transaction_hash,
            "transactionIndex": hex(self.transaction_index),
            "logIndex": hex(self.log_index),
            "removed": self.removed,
        }

    @classmethod
    def from_rpc(cls, data: dict[str, Any]) -> RawLog:
        """
        Deserialize a JSON-RPC log object.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If a hex field is malformed.
        """
        return cls(
            address=to_checksum_address(data["address"]),
            topics=tuple(_as_bytes(t) for t in data.get("topics", [])),
            data=_as_bytes(data.get("data", "0x")),
            block_number=_as_int(data["blockNumber"]),
            block_hash=data["blockHash"],
            transaction_hash=data["transactionHash"],
            transaction_index=_as_int(data.get("transactionIndex", 0)),
            log_index=_as_int(data.get("logIndex", 0)),
            removed=bool(data.get("removed", False)),
        )


@dataclass(frozen=True, slots=True)
class LogRef:
    """Identity of a delivered record, carried by ``Changed`` signals."""

    transaction_hash: str
    log_index: int
    block_number: int
    block_hash: str

    @property
    def identity(self) -> tuple[str, int]:
        return (self.transaction_hash.lower(), self.log_index)

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_hash": self.transaction_hash,
            "log_index": self.log_index,
            "block_number": self.block_number,
            "block_hash": self.block_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogRef:
        return cls(
            transaction_hash=data["transaction_hash"],
            log_index=int(data["log_index"]),
            block_number=int(data["block_number"]),
            block_hash=data["block_hash"],
        )


@dataclass(frozen=True, slots=True)
class DecodedEvent:
    """
    A log record decoded against its event schema.

    Attributes:
        event_name: Name of the schema event that matched topic 0
        args: Field name -> decoded value (indexed and non-indexed merged)
        errors: Field name -> reason, for fields that failed to decode.
            Failed fields are absent from ``args``.
        address: Contract address that emitted the record
        block_number, block_hash, transaction_hash, transaction_index,
        log_index: Ledger provenance
    """

    event_name: str
    args: dict[str, Any]
    address: str
    block_number: int
    block_hash: str
    transaction_hash: str
    transaction_index: int = 0
    log_index: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        """True if every field decoded."""
        return not self.errors

    @property
    def ref(self) -> LogRef:
        return LogRef(
            transaction_hash=self.transaction_hash,
            log_index=self.log_index,
            block_number=self.block_number,
            block_hash=self.block_hash,
        )


@dataclass(frozen=True, slots=True)
class LogEntry:
    """
    One application log entry, as recorded by the store.

    Both timestamps are kept so readers can tell "when the app thought it
    happened" (``user_timestamp``) from "when the ledger confirmed it"
    (``block_timestamp``). Only the latter is monotonic in block order.

    Attributes:
        sender: Checksummed address of the authenticated submitter
        user_timestamp: Caller-supplied seconds, never zero
        block_timestamp: Ledger-assigned seconds at inclusion
        entry_type: Decoded 8-byte type tag
        message: Decoded 32-byte message
        block_number: Block that includes the entry
        transaction_hash: Transaction that emitted the entry
        block_hash: Hash of the including block
        transaction_index: Position of the transaction in its block
        log_index: Position of the record in the block's logs

    Example:
        >>> entry = LogEntry(
        ...     sender="0x5B38Da6a701c568545dCfcB03FcB875f56beddC4",
        ...     user_timestamp=1700000000,
        ...     block_timestamp=1700000003,
        ...     entry_type="INFO",
        ...     message="client login success",
        ...     block_number=12,
        ...     transaction_hash="0x9f...",
        ... )
    """

    sender: str
    user_timestamp: int
    block_timestamp: int
    entry_type: str
    message: str
    block_number: int
    transaction_hash: str
    block_hash: str = ""
    transaction_index: int = 0
    log_index: int = 0

    def __post_init__(self) -> None:
        if self.user_timestamp == 0:
            raise ValueError("user_timestamp must be non-zero")
        if not self.entry_type:
            raise ValueError("entry_type cannot be empty")
        if not self.message:
            raise ValueError("message cannot be empty")

    @property
    def ref(self) -> LogRef:
        return LogRef(
            transaction_hash=self.transaction_hash,
            log_index=self.log_index,
            block_number=self.block_number,
            block_hash=self.block_hash,
        )

    @property
    def clock_skew(self) -> int:
        """Seconds between application time and ledger time."""
        return self.block_timestamp - self.user_timestamp

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSONL archiving."""
        return {
            "sender": self.sender,
            "user_timestamp": self.user_timestamp,
            "block_timestamp": self.block_timestamp,
            "entry_type": self.entry_type,
            "message": self.message,
            "block_number": self.block_number,
            "transaction_hash": self.transaction_hash,
            "block_hash": self.block_hash,
            "transaction_index": self.transaction_index,
            "log_index": self.log_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogEntry:
        """
        Deserialize from dictionary.

        Raises:
            KeyError: If required field is missing.
            ValueError: If field value is invalid.
        """
        return cls(
            sender=data["sender"],
            user_timestamp=int(data["user_timestamp"]),
            block_timestamp=int(data["block_timestamp"]),
            entry_type=data["entry_type"],
            message=data["message"],
            block_number=int(data["block_number"]),
            transaction_hash=data["transaction_hash"],
            block_hash=data.get("block_hash", ""),
            transaction_index=int(data.get("transaction_index", 0)),
            log_index=int(data.get("log_index", 0)),
        )


@dataclass(frozen=True, slots=True)
class TxReceipt:
    """Outcome of a mined state-changing call."""

    transaction_hash: str
    block_number: int
    block_hash: str
    sender: str
    logs: tuple[RawLog, ...] = ()


@dataclass(frozen=True, slots=True)
class StoreSnapshot:
    """Read-only view of the store: who owns it and whether it is paused."""

    address: str
    owner: str
    paused: bool
    latest_block: int

    @property
    def status(self) -> StoreStatus:
        return StoreStatus.PAUSED if self.paused else StoreStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "owner": self.owner,
            "paused": self.paused,
            "status": self.status.value,
            "latest_block": self.latest_block,
        }


# =============================================================================
# SUBSCRIPTION SIGNALS - a closed sum type, never a boolean flag
# =============================================================================

@dataclass(frozen=True, slots=True)
class Delivered:
    """A new matching record, decoded."""

    event: DecodedEvent


@dataclass(frozen=True, slots=True)
class Changed:
    """A previously delivered record was invalidated by a reorganization.

    The consumer must retract anything derived from ``ref``.
    """

    ref: LogRef


@dataclass(frozen=True, slots=True)
class Errored:
    """The transport failed; this is always the last signal."""

    cause: BaseException


SubscriptionSignal = Union[Delivered, Changed, Errored]


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class LogChainConfig:
    """
    Configuration for logchain.

    Configuration can be loaded from:
    - Python code (direct instantiation)
    - JSON file (via config.load_config)
    - Environment variable pointing to JSON file

    Attributes:
        rpc_url: JSON-RPC endpoint of the ledger node
        contract_address: Address of the deployed log store
        abi_path: Compiled contract JSON (bundled schema if unset)
        default_from_block: Lower bound used when a query gives none
        query_timeout_seconds: Deadline for a single range scan
        poll_interval_seconds: Filter polling period for subscriptions
        receipt_timeout_seconds: How long to wait for a transaction to mine
        request_timeout_seconds: HTTP timeout for a single RPC request
        oversize_policy: Fixed-width codec policy for long text
        archive_directory: Where ``watch --archive`` writes entries
    """

    MIN_INTERVAL_SECONDS: ClassVar[float] = 0.05

    rpc_url: str = "http://127.0.0.1:7545"
    contract_address: str | None = None
    abi_path: str | None = None

    default_from_block: BlockId = 0
    query_timeout_seconds: float = 30.0
    poll_interval_seconds: float = 2.0
    receipt_timeout_seconds: float = 60.0
    request_timeout_seconds: float = 10.0

    oversize_policy: OversizePolicy = field(default=OversizePolicy.TRUNCATE)
    archive_directory: str = "./archive"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate_timeouts()
        self._validate_address()

        if not (is_concrete_block(self.default_from_block) or self.default_from_block in BLOCK_TAGS):
            raise ValueError(
                f"default_from_block must be a block number or one of "
                f"{sorted(BLOCK_TAGS)}, got {self.default_from_block!r}"
            )
        if isinstance(self.default_from_block, int) and self.default_from_block < 0:
            raise ValueError(
                f"default_from_block must be non-negative, got {self.default_from_block}"
            )

    def _validate_timeouts(self) -> None:
        timeouts = [
            ("query_timeout_seconds", self.query_timeout_seconds),
            ("receipt_timeout_seconds", self.receipt_timeout_seconds),
            ("request_timeout_seconds", self.request_timeout_seconds),
        ]
        for name, value in timeouts:
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

        if self.poll_interval_seconds < self.MIN_INTERVAL_SECONDS:
            raise ValueError(
                f"poll_interval_seconds must be at least {self.MIN_INTERVAL_SECONDS}, "
                f"got {self.poll_interval_seconds}"
            )

    def _validate_address(self) -> None:
        if self.contract_address is None:
            return
        if not is_address(self.contract_address):
            raise ValueError(f"contract_address is not an address: {self.contract_address}")
        self.contract_address = to_checksum_address(self.contract_address)

    def to_dict(self) -> dict[str, Any]:
        """Serialize configuration to dictionary."""
        return {
            "rpc_url": self.rpc_url,
            "contract_address": self.contract_address,
            "abi_path": self.abi_path,
            "default_from_block": self.default_from_block,
            "query_timeout_seconds": self.query_timeout_seconds,
            "poll_interval_seconds": self.poll_interval_seconds,
            "receipt_timeout_seconds": self.receipt_timeout_seconds,
            "request_timeout_seconds": self.request_timeout_seconds,
            "oversize_policy": self.oversize_policy.value,
            "archive_directory": self.archive_directory,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogChainConfig:
        """
        Create configuration from dictionary.

        Args:
            data: Dictionary with configuration fields.

        Returns:
            LogChainConfig instance.
        """
        if "oversize_policy" in data and isinstance(data["oversize_policy"], str):
            data = data.copy()
            data["oversize_policy"] = OversizePolicy(data["oversize_policy"])

        return cls(**data)
