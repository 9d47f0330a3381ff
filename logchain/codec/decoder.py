"""
Log record decoding.

A raw log carries an event in two parts:

- ``topics``: fixed 32-byte slots. Slot 0 is the event signature hash,
  slot ``i`` (1-based) holds the i-th indexed field.
- ``data``: one opaque ABI block holding every non-indexed field,
  decoded jointly by position and type.

Decoding merges both into a single name -> value map. Failures are scoped
to the field that failed: the field is left out of ``args`` and its reason
recorded in ``errors``; other fields and other records are unaffected.
"""

from __future__ import annotations

import logging

from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError as ABIDecodingError
from eth_abi.exceptions import EncodingError as ABIEncodingError
from eth_utils import is_address, keccak, to_checksum_address

from ..errors import DecodingError, InvalidArgument
from ..types import LOG_ENTRY_EVENT, DecodedEvent, LogEntry, RawLog
from .fixed_width import FixedWidthCodec
from .schema import EventField, EventSpec, is_dynamic_type

logger = logging.getLogger(__name__)

TopicFilter = bytes | list[bytes] | None


def _normalize(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return to_checksum_address(value)
    return value


def decode_log(raw: RawLog, spec: EventSpec) -> DecodedEvent:
    """
    Decode one raw record against its event spec.

    The caller has already matched ``raw.topics[0]`` to ``spec``.
    """
    args: dict[str, Any] = {}
    errors: dict[str, str] = {}

    data_fields = spec.data_fields
    if data_fields:
        types = [f.type for f in data_fields]
        try:
            values = decode(types, raw.data)
        except (ABIDecodingError, ValueError) as e:
            # The block is decoded jointly, so every non-indexed field fails together.
            for f in data_fields:
                errors[f.name] = f"data block: {e}"
        else:
            for f, value in zip(data_fields, values):
                args[f.name] = _normalize(f.type, value)

    for slot, f in enumerate(spec.indexed_fields, start=1):
        if slot >= len(raw.topics):
            errors[f.name] = f"missing topic slot {slot}"
            continue
        topic = raw.topics[slot]
        if is_dynamic_type(f.type):
            # Only the hash of a dynamic value is stored.
            args[f.name] = bytes(topic)
            continue
        try:
            args[f.name] = _normalize(f.type, decode([f.type], topic)[0])
        except (ABIDecodingError, ValueError) as e:
            errors[f.name] = f"topic slot {slot}: {e}"

    if errors:
        logger.warning(
            f"{spec.name} in tx {raw.transaction_hash} decoded with "
            f"{len(errors)} failed field(s): {sorted(errors)}"
        )

    return DecodedEvent(
        event_name=spec.name,
        args=args,
        address=raw.address,
        block_number=raw.block_number,
        block_hash=raw.block_hash,
        transaction_hash=raw.transaction_hash,
        transaction_index=raw.transaction_index,
        log_index=raw.log_index,
        errors=errors,
    )


def to_log_entry(event: DecodedEvent, codec: FixedWidthCodec) -> LogEntry:
    """
    Build the typed view of a ``LogEntry`` event.

    Raises:
        DecodingError: If the event is not a LogEntry, a field failed to
            decode, or a decoded field violates the entry's invariants.
    """
    if event.event_name != LOG_ENTRY_EVENT:
        raise DecodingError(f"expected a {LOG_ENTRY_EVENT} event, got {event.event_name}")
    if event.errors:
        raise DecodingError(f"undecodable fields: {sorted(event.errors)}")

    a = event.args
    try:
        return LogEntry(
            sender=a["sender"],
            user_timestamp=int(a["userTimestamp"]),
            block_timestamp=int(a["blockTimestamp"]),
            entry_type=codec.decode(a["logEntryType"]),
            message=codec.decode(a["logEntryMsg"]),
            block_number=event.block_number,
            transaction_hash=event.transaction_hash,
            block_hash=event.block_hash,
            transaction_index=event.transaction_index,
            log_index=event.log_index,
        )
    except KeyError as e:
        raise DecodingError(f"{LOG_ENTRY_EVENT} is missing field {e}") from e
    except ValueError as e:
        raise DecodingError(str(e)) from e


# -----------------------------------------------------------------------------
# Encoding (topic filters and record construction)
# -----------------------------------------------------------------------------

def _coerce(f: EventField, value: Any, codec: FixedWidthCodec) -> Any:
    if f.type.startswith("bytes") and f.type != "bytes" and isinstance(value, str):
        return codec.encode(value, int(f.type[len("bytes"):]))
    if f.type == "address":
        if not is_address(value):
            raise InvalidArgument(f"{f.name}: not an address: {value!r}")
        return to_checksum_address(value)
    return value


def encode_topic(f: EventField, value: Any, codec: FixedWidthCodec) -> bytes:
    """
    Encode one indexed value into its 32-byte topic.

    Text given for a ``bytesN`` field goes through the fixed-width codec,
    so a filter on ``"INFO"`` matches what the store recorded.
    """
    if f.type == "string":
        return keccak(text=value)
    if f.type == "bytes":
        return keccak(value)
    if is_dynamic_type(f.type):
        raise InvalidArgument(f"{f.name}: filtering on {f.type} values is not supported")
    try:
        return encode([f.type], [_coerce(f, value, codec)])
    except (ABIEncodingError, TypeError, ValueError) as e:
        raise InvalidArgument(f"{f.name}: cannot encode {value!r} as {f.type}: {e}") from e


def build_topics(
    spec: EventSpec,
    predicates: dict[str, Any] | None,
    codec: FixedWidthCodec,
) -> list[TopicFilter]:
    """
    Translate indexed-field predicates into a topic filter.

    ``predicates`` maps an indexed field name to one value or a list of
    accepted values. Unconstrained slots are ``None``; trailing ``None``
    slots are dropped.

    Raises:
        InvalidArgument: On an unknown or non-indexed field, or a value
            that cannot be encoded.
    """
    predicates = predicates or {}
    indexed = spec.indexed_fields
    indexed_names = {f.name for f in indexed}

    for name in predicates:
        if name not in indexed_names:
            try:
                spec.field(name)
            except KeyError:
                raise InvalidArgument(f"{spec.name} has no field {name!r}") from None
            raise InvalidArgument(f"{spec.name}.{name} is not indexed and cannot be filtered")

    topics: list[TopicFilter] = [spec.topic]
    for f in indexed:
        if f.name not in predicates:
            topics.append(None)
            continue
        wanted = predicates[f.name]
        if isinstance(wanted, (list, tuple, set)):
            topics.append([encode_topic(f, v, codec) for v in wanted])
        else:
            topics.append(encode_topic(f, wanted, codec))

    while topics and topics[-1] is None:
        topics.pop()
    return topics


def encode_event(
    spec: EventSpec,
    values: dict[str, Any],
) -> tuple[tuple[bytes, ...], bytes]:
    """Encode an event's fields into ``(topics, data)`` as a ledger would."""
    topics = [spec.topic]
    for f in spec.indexed_fields:
        value = values[f.name]
        if f.type == "string":
            topics.append(keccak(text=value))
        elif f.type == "bytes":
            topics.append(keccak(value))
        elif is_dynamic_type(f.type):
            topics.append(keccak(encode([f.type], [value])))
        else:
            topics.append(encode([f.type], [value]))

    data_fields = spec.data_fields
    data = encode([f.type for f in data_fields], [values[f.name] for f in data_fields])
    return tuple(topics), data


def topic_matches(raw_topics: tuple[bytes, ...], wanted: list[TopicFilter]) -> bool:
    """Apply a topic filter the way a ledger node does."""
    if len(wanted) > len(raw_topics):
        return False
    for slot, expected in enumerate(wanted):
        if expected is None:
            continue
        if isinstance(expected, list):
            if raw_topics[slot] not in expected:
                return False
        elif raw_topics[slot] != expected:
            return False
    return True
