"""
logchain - Tamper-evident event log on an Ethereum-compatible ledger.

An append-only store of timestamped, typed log entries. Anyone may append
while the store is active; only the owner may pause, unpause or transfer
ownership. Entries are read back over block ranges or followed live.

Quick Start:
    >>> from logchain import EventLogClient
    >>> async with EventLogClient() as client:
    ...     entries = await client.query(entry_type="ERROR")

For a local, node-free ledger:
    >>> from logchain import InMemoryLedger
    >>> ledger = InMemoryLedger()
    >>> address = ledger.deploy_store(ledger.accounts[0])

Key Components:
    - EventLogClient: Main orchestrator (status, query, subscribe)
    - LogStoreClient: Appends and owner operations
    - LogQueryEngine: Block-range retrieval and decoding
    - LogSubscription: Live feed with reorg signals
    - FixedWidthCodec: bytes8 / bytes32 text fields

Design Principles:
    - The ledger decides: every rule is enforced by the store, atomically
    - Ordered and deduplicated: results follow ledger order
    - Explicit reorgs: invalidated deliveries are signalled, never hidden

Version: 0.1.0
License: MIT
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Archive
from logchain.archive import ArchiveReader, EntryArchive

# Main orchestrator
from logchain.client import EventLogClient
from logchain.codec import EventRegistry, FixedWidthCodec
from logchain.config import load_config, save_config
from logchain.errors import (
    DecodingError,
    EncodingError,
    InvalidArgument,
    InvalidRange,
    LogChainError,
    NotAllowed,
    QueryFailed,
    QueryTimeout,
    SchemaError,
    SubscriptionError,
    TransactionReverted,
    TransportError,
    Unauthorized,
    UnknownEvent,
)
from logchain.query import LogQueryEngine, LogSubscription
from logchain.store import LogStore, LogStoreClient
from logchain.transport import InMemoryLedger, JsonRpcTransport
from logchain.types import (
    Changed,
    DecodedEvent,
    Delivered,
    Errored,
    LogChainConfig,
    LogEntry,
    LogRef,
    OversizePolicy,
    RawLog,
    StoreSnapshot,
    StoreStatus,
    SubscriptionState,
    TxReceipt,
)

__all__ = [
    "ArchiveReader",
    # Signals
    "Changed",
    "DecodedEvent",
    "DecodingError",
    "Delivered",
    "EncodingError",
    "EntryArchive",
    "Errored",
    "EventLogClient",
    "EventRegistry",
    "FixedWidthCodec",
    "InMemoryLedger",
    "InvalidArgument",
    "InvalidRange",
    "JsonRpcTransport",
    # Configuration
    "LogChainConfig",
    # Errors
    "LogChainError",
    # Types - Data classes
    "LogEntry",
    "LogQueryEngine",
    "LogRef",
    "LogStore",
    "LogStoreClient",
    "LogSubscription",
    "NotAllowed",
    # Types - Enums
    "OversizePolicy",
    "QueryFailed",
    "QueryTimeout",
    "RawLog",
    "SchemaError",
    "StoreSnapshot",
    "StoreStatus",
    "SubscriptionError",
    "SubscriptionState",
    "TransactionReverted",
    "TransportError",
    "TxReceipt",
    "Unauthorized",
    "UnknownEvent",
    # Version info
    "__license__",
    "__version__",
    "load_config",
    "save_config",
]
