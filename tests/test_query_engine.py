"""
Tests for the Log Query Engine.
"""

import asyncio

import pytest

from eth_utils import to_checksum_address

from logchain.codec.decoder import encode_event
from logchain.codec.fixed_width import FixedWidthCodec
from logchain.codec.schema import EventRegistry
from logchain.errors import (
    InvalidArgument,
    InvalidRange,
    NotAllowed,
    QueryFailed,
    QueryTimeout,
    TransportError,
    UnknownEvent,
)
from logchain.query import LogQueryEngine, validate_range
from logchain.store import LogStoreClient
from logchain.transport import InMemoryLedger
from logchain.types import RawLog

T0 = 1_700_000_000
STORE = to_checksum_address("0xd9145CCE52D386f254917e481eB44e9943F39138")
OTHER_STORE = to_checksum_address("0xd8b934580fcE35a11B58C6D73aDeE468a2833fa8")
SENDER = to_checksum_address("0x5B38Da6a701c568545dCfcB03FcB875f56beddC4")

codec = FixedWidthCodec()
LOG_ENTRY = EventRegistry.default().get("LogEntry")


class StubTransport:
    """Transport double returning canned records and counting calls."""

    def __init__(self, logs=None, error=None, delay=0.0):
        self.logs = logs or []
        self.error = error
        self.delay = delay
        self.calls = 0

    async def get_logs(self, log_filter):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.logs)


def make_raw(message: str, block: int, log_index: int = 0, tx: str = None,
             address: str = STORE, removed: bool = False, tx_index: int = 0) -> RawLog:
    """Helper to create a LogEntry record."""
    topics, data = encode_event(LOG_ENTRY, {
        "sender": SENDER,
        "userTimestamp": T0,
        "blockTimestamp": T0,
        "logEntryType": codec.encode_type("INFO"),
        "logEntryMsg": codec.encode_message(message),
    })
    return RawLog(
        address=address,
        topics=topics,
        data=data,
        block_number=block,
        block_hash=f"0x{block:064x}",
        transaction_hash=tx or f"0x{block:062x}{tx_index:02x}",
        transaction_index=tx_index,
        log_index=log_index,
        removed=removed,
    )


def make_ledger():
    """Helper to deploy a store; returns (ledger, store client, engine, owner, user1)."""
    ledger = InMemoryLedger(clock=lambda: T0)
    owner, user1 = ledger.accounts[:2]
    address = ledger.deploy_store(owner)
    return ledger, LogStoreClient(ledger, address), LogQueryEngine(ledger, address), owner, user1


class TestValidateRange:
    """Tests for block-range validation."""

    @pytest.mark.parametrize("from_block,to_block", [
        (0, "latest"),
        (5, 5),
        ("earliest", 10),
        ("latest", "latest"),
        ("earliest", "pending"),
    ])
    def test_valid_ranges(self, from_block, to_block):
        validate_range(from_block, to_block)

    @pytest.mark.parametrize("from_block,to_block", [
        (10, 5),
        (-1, "latest"),
        (0, "newest"),
        ("latest", 5),
        (True, "latest"),
        (1.5, "latest"),
        (3, "earliest"),
    ])
    def test_invalid_ranges(self, from_block, to_block):
        with pytest.raises(InvalidRange):
            validate_range(from_block, to_block)


class TestValidationBeforeNetwork:
    """Bad queries fail without touching the transport."""

    def test_inverted_range_makes_no_call(self):
        transport = StubTransport()
        engine = LogQueryEngine(transport, STORE)

        with pytest.raises(InvalidRange):
            asyncio.run(engine.get_event_logs("LogEntry", 10, 5))
        assert transport.calls == 0

    def test_unknown_event_makes_no_call(self):
        transport = StubTransport()
        engine = LogQueryEngine(transport, STORE)

        with pytest.raises(UnknownEvent):
            asyncio.run(engine.get_event_logs("Transfer"))
        assert transport.calls == 0

    def test_non_indexed_predicate_makes_no_call(self):
        transport = StubTransport()
        engine = LogQueryEngine(transport, STORE)

        with pytest.raises(InvalidArgument):
            asyncio.run(engine.get_log_entries(filters={"logEntryMsg": "x"}))
        assert transport.calls == 0


class TestResultShaping:
    """Tests for ordering, deduplication and screening of raw records."""

    def test_ledger_order(self):
        logs = [
            make_raw("c", block=9),
            make_raw("b", block=4, tx_index=1),
            make_raw("a", block=4, tx_index=0),
        ]
        engine = LogQueryEngine(StubTransport(logs), STORE)

        entries = asyncio.run(engine.get_log_entries())
        assert [e.message for e in entries] == ["a", "b", "c"]

    def test_duplicates_removed(self):
        raw = make_raw("once", block=3)
        engine = LogQueryEngine(StubTransport([raw, raw, raw]), STORE)

        assert len(asyncio.run(engine.get_log_entries())) == 1

    def test_foreign_and_removed_records_dropped(self):
        logs = [
            make_raw("mine", block=1),
            make_raw("theirs", block=2, address=OTHER_STORE),
            make_raw("gone", block=3, removed=True),
        ]
        engine = LogQueryEngine(StubTransport(logs), STORE)

        entries = asyncio.run(engine.get_log_entries())
        assert [e.message for e in entries] == ["mine"]

    def test_undecodable_entry_skipped(self, caplog):
        good = make_raw("good", block=1)
        bad = RawLog(
            address=STORE, topics=good.topics, data=b"\x01", block_number=2,
            block_hash="0x" + "22" * 32, transaction_hash="0x" + "33" * 32,
        )
        engine = LogQueryEngine(StubTransport([good, bad]), STORE)

        events = asyncio.run(engine.get_event_logs("LogEntry"))
        assert len(events) == 2
        assert not events[1].is_complete

        with caplog.at_level("WARNING"):
            entries = asyncio.run(engine.get_log_entries())
        assert [e.message for e in entries] == ["good"]
        assert "Skipping entry" in caplog.text


class TestFailures:
    """Tests for transport failures and deadlines."""

    def test_transport_error_becomes_query_failed(self):
        cause = TransportError("connection refused")
        engine = LogQueryEngine(StubTransport(error=cause), STORE)

        with pytest.raises(QueryFailed) as exc_info:
            asyncio.run(engine.get_log_entries())
        assert exc_info.value.cause is cause
        assert "connection refused" in str(exc_info.value)

    def test_timeout(self):
        engine = LogQueryEngine(StubTransport(delay=1.0), STORE)

        with pytest.raises(QueryTimeout):
            asyncio.run(engine.get_log_entries(timeout=0.01))

    def test_default_timeout(self):
        engine = LogQueryEngine(StubTransport(delay=1.0), STORE, default_timeout=0.01)

        with pytest.raises(QueryTimeout):
            asyncio.run(engine.get_event_logs("LogEntry"))


class TestAgainstLedger:
    """End-to-end queries against the in-memory ledger."""

    def test_append_then_query_round_trip(self):
        _, store, engine, _, user1 = make_ledger()

        async def scenario():
            await store.append(T0, "INFO", "client login success", sender=user1)
            return await engine.get_log_entries()

        entries = asyncio.run(scenario())
        assert len(entries) == 1
        entry = entries[0]
        assert entry.sender == user1
        assert entry.user_timestamp == T0
        assert entry.block_timestamp == T0
        assert entry.entry_type == "INFO"
        assert entry.message == "client login success"

    def test_batch_scenario(self):
        """Five BATCH entries come back complete and in block order."""
        _, store, engine, _, user1 = make_ledger()

        async def scenario():
            for ts in [100, 101, 102, 103, 104]:
                await store.append(ts, "BATCH", f"entry {ts}", sender=user1)
            return await engine.get_log_entries(0, "latest")

        entries = asyncio.run(scenario())
        assert len(entries) == 5
        assert {e.user_timestamp for e in entries} == {100, 101, 102, 103, 104}
        assert all(e.entry_type == "BATCH" for e in entries)
        blocks = [e.block_number for e in entries]
        assert blocks == sorted(blocks)

    def test_type_filter(self):
        _, store, engine, _, user1 = make_ledger()

        async def scenario():
            await store.append(T0, "INFO", "fine", sender=user1)
            await store.append(T0, "ERROR", "disk full", sender=user1)
            await store.append(T0, "ERROR", "disk still full", sender=user1)
            return await engine.get_log_entries(filters={"logEntryType": "ERROR"})

        entries = asyncio.run(scenario())
        assert [e.message for e in entries] == ["disk full", "disk still full"]

    def test_sender_filter(self):
        ledger, store, engine, _, user1 = make_ledger()
        user2 = ledger.accounts[2]

        async def scenario():
            await store.append(T0, "INFO", "from one", sender=user1)
            await store.append(T0, "INFO", "from two", sender=user2)
            return await engine.get_log_entries(filters={"sender": user2})

        entries = asyncio.run(scenario())
        assert [e.sender for e in entries] == [user2]

    def test_block_range(self):
        _, store, engine, _, user1 = make_ledger()

        async def scenario():
            receipts = [
                await store.append(T0, "INFO", f"m{i}", sender=user1)
                for i in range(4)
            ]
            middle = receipts[1].block_number, receipts[2].block_number
            return await engine.get_log_entries(*middle)

        entries = asyncio.run(scenario())
        assert [e.message for e in entries] == ["m1", "m2"]

    def test_other_events(self):
        """Owner events are queryable by name."""
        _, store, engine, owner, user1 = make_ledger()

        async def scenario():
            await store.pause(sender=owner)
            await store.transfer_ownership(user1, sender=owner)
            paused = await engine.get_event_logs("ContractPaused")
            transfers = await engine.get_event_logs("OwnershipTransferred")
            return paused, transfers

        paused, transfers = asyncio.run(scenario())
        assert [e.args["by"] for e in paused] == [owner]
        # Deployment emits the first transfer from the zero address.
        assert [e.args["newOwner"] for e in transfers] == [owner, user1]

    def test_paused_append_leaves_no_entry(self):
        _, store, engine, owner, user1 = make_ledger()

        async def scenario():
            await store.pause(sender=owner)
            with pytest.raises(NotAllowed):
                await store.append(T0, "INFO", "dropped", sender=user1)
            return await engine.get_log_entries()

        assert asyncio.run(scenario()) == []
