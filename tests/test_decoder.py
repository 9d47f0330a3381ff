"""
Tests for log record decoding and topic filters.
"""

import pytest

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from logchain.codec.decoder import (
    build_topics,
    decode_log,
    encode_event,
    to_log_entry,
    topic_matches,
)
from logchain.codec.fixed_width import FixedWidthCodec
from logchain.codec.schema import EventField, EventRegistry, EventSpec
from logchain.errors import DecodingError, InvalidArgument
from logchain.types import RawLog

STORE = to_checksum_address("0xd9145CCE52D386f254917e481eB44e9943F39138")
SENDER = to_checksum_address("0x5B38Da6a701c568545dCfcB03FcB875f56beddC4")
TX = "0x" + "ab" * 32

codec = FixedWidthCodec()
registry = EventRegistry.default()
LOG_ENTRY = registry.get("LogEntry")


def entry_values(entry_type: str = "INFO", message: str = "client login success",
                 user_ts: int = 1_700_000_000, block_ts: int = 1_700_000_003) -> dict:
    """Helper to create LogEntry field values as the store emits them."""
    return {
        "sender": SENDER,
        "userTimestamp": user_ts,
        "blockTimestamp": block_ts,
        "logEntryType": codec.encode_type(entry_type),
        "logEntryMsg": codec.encode_message(message),
    }


def make_raw(spec: EventSpec = LOG_ENTRY, values: dict = None, topics=None, data=None,
             block: int = 7, log_index: int = 0) -> RawLog:
    """Helper to create a raw record, optionally overriding topics or data."""
    enc_topics, enc_data = encode_event(spec, values or entry_values())
    return RawLog(
        address=STORE,
        topics=enc_topics if topics is None else topics,
        data=enc_data if data is None else data,
        block_number=block,
        block_hash="0x" + "11" * 32,
        transaction_hash=TX,
        log_index=log_index,
    )


class TestDecodeLog:
    """Tests for decoding one record against its schema."""

    def test_merges_indexed_and_data_fields(self):
        event = decode_log(make_raw(), LOG_ENTRY)

        assert event.is_complete
        assert event.args["sender"] == SENDER
        assert event.args["userTimestamp"] == 1_700_000_000
        assert event.args["blockTimestamp"] == 1_700_000_003
        assert event.args["logEntryType"] == codec.encode_type("INFO")
        assert event.args["logEntryMsg"] == codec.encode_message("client login success")

    def test_carries_provenance(self):
        event = decode_log(make_raw(block=42, log_index=3), LOG_ENTRY)
        assert event.block_number == 42
        assert event.log_index == 3
        assert event.transaction_hash == TX
        assert event.ref.identity == (TX, 3)

    def test_truncated_data_fails_all_data_fields(self):
        """The data block decodes jointly: one bad block fails every data field."""
        raw = make_raw()
        event = decode_log(make_raw(data=raw.data[:40]), LOG_ENTRY)

        assert set(event.errors) == {"userTimestamp", "blockTimestamp", "logEntryMsg"}
        # Indexed fields are decoded independently.
        assert event.args["sender"] == SENDER
        assert "userTimestamp" not in event.args

    def test_missing_topic_scoped_to_field(self):
        raw = make_raw()
        event = decode_log(make_raw(topics=raw.topics[:2]), LOG_ENTRY)

        assert set(event.errors) == {"logEntryType"}
        assert event.args["sender"] == SENDER
        assert event.args["userTimestamp"] == 1_700_000_000

    def test_dynamic_indexed_value_kept_as_hash(self):
        spec = EventSpec("Tagged", (EventField("tag", "string", True), EventField("n", "uint256")))
        raw = make_raw(spec, {"tag": "deploy", "n": 5})

        event = decode_log(raw, spec)
        assert event.args["tag"] == keccak(text="deploy")
        assert event.args["n"] == 5


class TestToLogEntry:
    """Tests for the typed LogEntry view."""

    def test_builds_entry(self):
        entry = to_log_entry(decode_log(make_raw(), LOG_ENTRY), codec)

        assert entry.sender == SENDER
        assert entry.entry_type == "INFO"
        assert entry.message == "client login success"
        assert entry.clock_skew == 3

    def test_incomplete_event_rejected(self):
        event = decode_log(make_raw(data=b""), LOG_ENTRY)
        assert not event.is_complete
        with pytest.raises(DecodingError):
            to_log_entry(event, codec)

    def test_other_event_rejected(self):
        spec = registry.get("ContractPaused")
        event = decode_log(make_raw(spec, {"by": SENDER}), spec)
        with pytest.raises(DecodingError):
            to_log_entry(event, codec)

    def test_zero_timestamp_is_decoding_error(self):
        """A record violating entry invariants is reported, not constructed."""
        event = decode_log(make_raw(values=entry_values(user_ts=0)), LOG_ENTRY)
        with pytest.raises(DecodingError):
            to_log_entry(event, codec)


class TestBuildTopics:
    """Tests for translating predicates into topic filters."""

    def test_no_predicates(self):
        assert build_topics(LOG_ENTRY, None, codec) == [LOG_ENTRY.topic]

    def test_type_predicate_uses_codec(self):
        """Text for a bytes8 field is padded the way the store recorded it."""
        topics = build_topics(LOG_ENTRY, {"logEntryType": "ERROR"}, codec)
        assert topics == [LOG_ENTRY.topic, None, encode(["bytes8"], [codec.encode_type("ERROR")])]

    def test_any_of_values(self):
        topics = build_topics(LOG_ENTRY, {"logEntryType": ["INFO", "ERROR"]}, codec)
        assert isinstance(topics[2], list)
        assert len(topics[2]) == 2

    def test_sender_predicate(self):
        topics = build_topics(LOG_ENTRY, {"sender": SENDER.lower()}, codec)
        assert topics == [LOG_ENTRY.topic, encode(["address"], [SENDER])]

    def test_non_indexed_field_rejected(self):
        with pytest.raises(InvalidArgument, match="not indexed"):
            build_topics(LOG_ENTRY, {"logEntryMsg": "hi"}, codec)

    def test_unknown_field_rejected(self):
        with pytest.raises(InvalidArgument):
            build_topics(LOG_ENTRY, {"severity": "hi"}, codec)

    def test_bad_address_rejected(self):
        with pytest.raises(InvalidArgument):
            build_topics(LOG_ENTRY, {"sender": "nobody"}, codec)


class TestTopicMatches:
    """Tests for node-style topic matching."""

    def test_wildcards_and_alternatives(self):
        raw = make_raw()
        t0, t1, t2 = raw.topics

        assert topic_matches(raw.topics, [t0])
        assert topic_matches(raw.topics, [t0, None, t2])
        assert topic_matches(raw.topics, [t0, [b"\x00" * 32, t1]])
        assert not topic_matches(raw.topics, [t0, None, b"\x00" * 32])

    def test_longer_filter_never_matches(self):
        raw = make_raw()
        assert not topic_matches(raw.topics, list(raw.topics) + [None])
