"""
Transports connecting logchain to a ledger.

- base: the LedgerTransport protocol, LogFilter and LogStream
- memory: in-memory development ledger
- jsonrpc: HTTP JSON-RPC node client
"""

from .base import LedgerTransport, LogFilter, LogStream
from .jsonrpc import JsonRpcTransport
from .memory import InMemoryLedger

__all__ = [
    "InMemoryLedger",
    "JsonRpcTransport",
    "LedgerTransport",
    "LogFilter",
    "LogStream",
]
