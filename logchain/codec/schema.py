"""
Event schema registry.

Maps an event name to its ordered field descriptors (name, ABI type,
indexed flag). The registry is built and validated once, at load time;
decoding never reflects over the ABI per call.

The bundled ``LOG_STORE_ABI`` describes the log store contract. A compiled
contract JSON (``{"abi": [...]}``) or a bare ABI list can be loaded instead.
"""

from __future__ import annotations

import json

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from eth_abi import is_encodable_type
from eth_utils import keccak

from ..errors import SchemaError, UnknownEvent
from ..types import MAX_INDEXED_FIELDS


LOG_STORE_ABI: list[dict[str, Any]] = [
    {
        "type": "event",
        "name": "LogEntry",
        "anonymous": False,
        "inputs": [
            {"name": "sender", "type": "address", "indexed": True},
            {"name": "userTimestamp", "type": "uint256", "indexed": False},
            {"name": "blockTimestamp", "type": "uint256", "indexed": False},
            {"name": "logEntryType", "type": "bytes8", "indexed": True},
            {"name": "logEntryMsg", "type": "bytes32", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "ContractPaused",
        "anonymous": False,
        "inputs": [{"name": "by", "type": "address", "indexed": True}],
    },
    {
        "type": "event",
        "name": "ContractUnpaused",
        "anonymous": False,
        "inputs": [{"name": "by", "type": "address", "indexed": True}],
    },
    {
        "type": "event",
        "name": "OwnershipTransferred",
        "anonymous": False,
        "inputs": [
            {"name": "previousOwner", "type": "address", "indexed": True},
            {"name": "newOwner", "type": "address", "indexed": True},
        ],
    },
    {
        "type": "function",
        "name": "log",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "userTimestamp", "type": "uint256"},
            {"name": "logEntryType", "type": "bytes8"},
            {"name": "logEntryMsg", "type": "bytes32"},
        ],
        "outputs": [],
    },
    {"type": "function", "name": "pause", "stateMutability": "nonpayable", "inputs": [], "outputs": []},
    {"type": "function", "name": "unpause", "stateMutability": "nonpayable", "inputs": [], "outputs": []},
    {
        "type": "function",
        "name": "transferOwnership",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "newOwner", "type": "address"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "owner",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "type": "function",
        "name": "paused",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "bool"}],
    },
]


def is_dynamic_type(abi_type: str) -> bool:
    """Dynamic values are stored in topics as their keccak hash only."""
    return abi_type in ("string", "bytes") or abi_type.endswith("]") or abi_type.startswith("(")


@dataclass(frozen=True, slots=True)
class EventField:
    name: str
    type: str
    indexed: bool = False


@dataclass(frozen=True, slots=True)
class EventSpec:
    """
    One event: its name and ordered fields.

    Indexed fields occupy topic slots 1..n in declaration order (slot 0 is
    the signature hash). Non-indexed fields are packed into the data block.
    """

    name: str
    fields: tuple[EventField, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(f.type for f in self.fields)})"

    @property
    def topic(self) -> bytes:
        """Topic 0 of every record this event emits."""
        return keccak(text=self.signature)

    @property
    def indexed_fields(self) -> tuple[EventField, ...]:
        return tuple(f for f in self.fields if f.indexed)

    @property
    def data_fields(self) -> tuple[EventField, ...]:
        return tuple(f for f in self.fields if not f.indexed)

    def field(self, name: str) -> EventField:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(name)

    def validate(self) -> None:
        """
        Check the event is decodable.

        Raises:
            SchemaError: On an empty name, duplicate or unnamed fields,
                too many indexed fields, or an unknown ABI type.
        """
        if not self.name:
            raise SchemaError("event name cannot be empty")

        names = [f.name for f in self.fields]
        if any(not n for n in names):
            raise SchemaError(f"{self.name}: every field needs a name")
        if len(set(names)) != len(names):
            raise SchemaError(f"{self.name}: duplicate field names")

        if len(self.indexed_fields) > MAX_INDEXED_FIELDS:
            raise SchemaError(
                f"{self.name}: at most {MAX_INDEXED_FIELDS} indexed fields, "
                f"got {len(self.indexed_fields)}"
            )

        for f in self.fields:
            if not is_encodable_type(f.type):
                raise SchemaError(f"{self.name}.{f.name}: unknown ABI type {f.type!r}")

    @classmethod
    def from_abi_item(cls, item: dict[str, Any]) -> EventSpec:
        return cls(
            name=item.get("name", ""),
            fields=tuple(
                EventField(
                    name=inp.get("name", ""),
                    type=inp["type"],
                    indexed=bool(inp.get("indexed", False)),
                )
                for inp in item.get("inputs", [])
            ),
        )


@dataclass(frozen=True, slots=True)
class FunctionSpec:
    """A contract method: used to build calls for the JSON-RPC transport."""

    name: str
    input_types: tuple[str, ...]
    output_types: tuple[str, ...] = ()
    read_only: bool = False

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @property
    def selector(self) -> bytes:
        return keccak(text=self.signature)[:4]

    @classmethod
    def from_abi_item(cls, item: dict[str, Any]) -> FunctionSpec:
        mutability = item.get("stateMutability")
        return cls(
            name=item["name"],
            input_types=tuple(i["type"] for i in item.get("inputs", [])),
            output_types=tuple(o["type"] for o in item.get("outputs", [])),
            read_only=mutability in ("view", "pure") or bool(item.get("constant", False)),
        )


class EventRegistry:
    """
    Load-time validated table of events (and contract methods).

    Usage:
        registry = EventRegistry.default()
        spec = registry.get("LogEntry")
        spec.topic   # signature hash for topic 0
    """

    def __init__(
        self,
        events: Iterable[EventSpec],
        functions: Iterable[FunctionSpec] = (),
    ):
        self._events: dict[str, EventSpec] = {}
        self._by_topic: dict[bytes, EventSpec] = {}
        self._functions: dict[str, FunctionSpec] = {}

        for spec in events:
            spec.validate()
            if spec.name in self._events:
                raise SchemaError(f"duplicate event {spec.name!r}")
            self._events[spec.name] = spec
            self._by_topic[spec.topic] = spec

        for fn in functions:
            self._functions[fn.name] = fn

    @property
    def names(self) -> list[str]:
        return sorted(self._events)

    def __contains__(self, name: object) -> bool:
        return name in self._events

    def get(self, name: str) -> EventSpec:
        """
        Look up an event by name.

        Raises:
            UnknownEvent: If the schema has no such event.
        """
        try:
            return self._events[name]
        except KeyError:
            raise UnknownEvent(f"unknown event {name!r}; known: {self.names}") from None

    def by_topic(self, topic: bytes) -> EventSpec | None:
        """Match a record's topic 0 to its event, if known."""
        return self._by_topic.get(bytes(topic))

    def function(self, name: str) -> FunctionSpec:
        try:
            return self._functions[name]
        except KeyError:
            raise SchemaError(f"contract ABI has no method {name!r}") from None

    @classmethod
    def from_abi(cls, abi: list[dict[str, Any]]) -> EventRegistry:
        """Build a registry from a contract ABI list (anonymous events skipped)."""
        events = [
            EventSpec.from_abi_item(item)
            for item in abi
            if item.get("type") == "event" and not item.get("anonymous", False)
        ]
        functions = [
            FunctionSpec.from_abi_item(item)
            for item in abi
            if item.get("type") == "function"
        ]
        return cls(events, functions)

    @classmethod
    def load(cls, path: str | Path) -> EventRegistry:
        """
        Load from a compiled contract JSON or a bare ABI list.

        Raises:
            SchemaError: If the file does not contain an ABI.
        """
        with open(path, encoding="utf-8") as f:
            data = json.load(f)

        abi = data.get("abi") if isinstance(data, dict) else data
        if not isinstance(abi, list):
            raise SchemaError(f"{path}: no ABI list found")
        return cls.from_abi(abi)

    @classmethod
    def default(cls) -> EventRegistry:
        """Registry for the bundled log store ABI."""
        return cls.from_abi(LOG_STORE_ABI)
