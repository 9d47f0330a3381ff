"""
Codec subsystem for logchain.

Fixed-width text fields, the event schema registry, and the decoder that
turns raw ledger records into named fields.
"""

from .decoder import build_topics, decode_log, encode_event, to_log_entry
from .fixed_width import FixedWidthCodec
from .schema import LOG_STORE_ABI, EventField, EventRegistry, EventSpec, FunctionSpec

__all__ = [
    "EventField",
    "EventRegistry",
    "EventSpec",
    "FixedWidthCodec",
    "FunctionSpec",
    "LOG_STORE_ABI",
    "build_topics",
    "decode_log",
    "encode_event",
    "to_log_entry",
]
