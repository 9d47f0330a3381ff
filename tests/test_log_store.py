"""
Tests for the log store state machine.
"""

import pytest

from eth_utils import to_checksum_address

from logchain.codec.fixed_width import FixedWidthCodec
from logchain.errors import InvalidArgument, NotAllowed, Unauthorized
from logchain.store.state_machine import (
    REASON_EMPTY_MESSAGE,
    REASON_EMPTY_TYPE,
    REASON_NOT_OWNER,
    REASON_NOT_PAUSED,
    REASON_PAUSED,
    REASON_ZERO_OWNER,
    REASON_ZERO_TIMESTAMP,
    CallContext,
    LogStore,
)
from logchain.types import ZERO_ADDRESS, StoreStatus

OWNER = to_checksum_address("0x5B38Da6a701c568545dCfcB03FcB875f56beddC4")
USER1 = to_checksum_address("0xAb8483F64d9C6d1EcF9b849Ae677dD3315835cb2")
USER2 = to_checksum_address("0x4B20993Bc481177ec7E8f571ceCaE8A9e22C02db")

codec = FixedWidthCodec()


def ctx(sender: str, block: int = 1, timestamp: int = 1_700_000_000) -> CallContext:
    """Helper to create a call context."""
    return CallContext(sender=sender, block_number=block, block_timestamp=timestamp)


def append(store: LogStore, sender: str = USER1, ts: int = 1_700_000_000,
           entry_type: str = "INFO", message: str = "client login success"):
    """Helper to append with codec-encoded fields."""
    return store.append(ctx(sender), ts, codec.encode_type(entry_type), codec.encode_message(message))


class TestInitialState:
    """Tests for a freshly deployed store."""

    def test_deployer_is_owner(self):
        store = LogStore(OWNER)
        assert store.owner() == OWNER

    def test_starts_active(self):
        store = LogStore(OWNER)
        assert not store.paused()
        assert store.state.status == StoreStatus.ACTIVE
        assert store.state.status.accepts_appends

    def test_owner_is_checksummed(self):
        """Lowercase deployer address is stored checksummed."""
        store = LogStore(OWNER.lower())
        assert store.owner() == OWNER


class TestAppend:
    """Tests for appending entries."""

    def test_valid_append_emits_entry(self):
        """An append emits exactly one LogEntry notification."""
        store = LogStore(OWNER)
        notes = store.append(ctx(USER1, timestamp=1_700_000_005), 1_700_000_000,
                             codec.encode_type("INFO"), codec.encode_message("hello"))

        assert len(notes) == 1
        note = notes[0]
        assert note.event_name == "LogEntry"
        assert note.values["sender"] == USER1
        assert note.values["userTimestamp"] == 1_700_000_000
        assert note.values["blockTimestamp"] == 1_700_000_005
        assert note.values["logEntryType"] == codec.encode_type("INFO")

    def test_anyone_can_append(self):
        """Append has no identity requirement."""
        store = LogStore(OWNER)
        assert append(store, sender=USER2)
        assert append(store, sender=OWNER)

    def test_append_while_paused_rejected(self):
        """Paused store rejects appends with NotAllowed."""
        store = LogStore(OWNER)
        store.pause(ctx(OWNER))

        with pytest.raises(NotAllowed, match=REASON_PAUSED):
            append(store)

    def test_zero_timestamp_rejected(self):
        store = LogStore(OWNER)
        with pytest.raises(InvalidArgument, match=REASON_ZERO_TIMESTAMP):
            append(store, ts=0)

    def test_empty_type_rejected(self):
        store = LogStore(OWNER)
        with pytest.raises(InvalidArgument, match=REASON_EMPTY_TYPE):
            append(store, entry_type="")

    def test_empty_message_rejected(self):
        store = LogStore(OWNER)
        with pytest.raises(InvalidArgument, match=REASON_EMPTY_MESSAGE):
            append(store, message="")

    def test_paused_checked_before_arguments(self):
        """A paused store reports NotAllowed even for bad input."""
        store = LogStore(OWNER)
        store.pause(ctx(OWNER))
        with pytest.raises(NotAllowed):
            append(store, ts=0)

    def test_wrong_width_rejected(self):
        """Fields must arrive at their exact width."""
        store = LogStore(OWNER)
        with pytest.raises(InvalidArgument):
            store.append(ctx(USER1), 1, b"INFO", codec.encode_message("m"))

    def test_non_integer_timestamp_rejected(self):
        store = LogStore(OWNER)
        with pytest.raises(InvalidArgument):
            store.append(ctx(USER1), True, codec.encode_type("A"), codec.encode_message("m"))


class TestPause:
    """Tests for pause and unpause."""

    def test_owner_can_pause_and_unpause(self):
        store = LogStore(OWNER)

        notes = store.pause(ctx(OWNER))
        assert store.paused()
        assert notes[0].event_name == "ContractPaused"
        assert notes[0].values["by"] == OWNER

        notes = store.unpause(ctx(OWNER))
        assert not store.paused()
        assert notes[0].event_name == "ContractUnpaused"

    def test_non_owner_cannot_pause(self):
        store = LogStore(OWNER)
        with pytest.raises(Unauthorized, match=REASON_NOT_OWNER):
            store.pause(ctx(USER1))
        assert not store.paused()

    def test_non_owner_cannot_unpause(self):
        store = LogStore(OWNER)
        store.pause(ctx(OWNER))
        with pytest.raises(Unauthorized):
            store.unpause(ctx(USER1))
        assert store.paused()

    def test_pause_while_paused_rejected(self):
        store = LogStore(OWNER)
        store.pause(ctx(OWNER))
        with pytest.raises(NotAllowed, match=REASON_PAUSED):
            store.pause(ctx(OWNER))

    def test_unpause_while_active_rejected(self):
        store = LogStore(OWNER)
        with pytest.raises(NotAllowed, match=REASON_NOT_PAUSED):
            store.unpause(ctx(OWNER))

    def test_identity_checked_before_state(self):
        """A non-owner gets Unauthorized even when the state is also wrong."""
        store = LogStore(OWNER)
        with pytest.raises(Unauthorized):
            store.unpause(ctx(USER1))

    def test_append_resumes_after_unpause(self):
        store = LogStore(OWNER)
        store.pause(ctx(OWNER))
        store.unpause(ctx(OWNER))
        assert append(store)


class TestTransferOwnership:
    """Tests for ownership transfer."""

    def test_transfer_then_new_owner_pauses(self):
        """New owner gains control; the old owner loses it."""
        store = LogStore(OWNER)
        notes = store.transfer_ownership(ctx(OWNER), USER1)

        assert store.owner() == USER1
        assert notes[0].values == {"previousOwner": OWNER, "newOwner": USER1}

        with pytest.raises(Unauthorized):
            store.pause(ctx(OWNER))
        store.pause(ctx(USER1))
        assert store.paused()

    def test_transfer_allowed_while_paused(self):
        store = LogStore(OWNER)
        store.pause(ctx(OWNER))
        store.transfer_ownership(ctx(OWNER), USER2)
        assert store.owner() == USER2
        assert store.paused()

    def test_zero_address_rejected(self):
        store = LogStore(OWNER)
        with pytest.raises(InvalidArgument, match=REASON_ZERO_OWNER):
            store.transfer_ownership(ctx(OWNER), ZERO_ADDRESS)
        assert store.owner() == OWNER

    def test_malformed_address_rejected(self):
        store = LogStore(OWNER)
        with pytest.raises(InvalidArgument):
            store.transfer_ownership(ctx(OWNER), "not-an-address")

    def test_non_owner_cannot_transfer(self):
        store = LogStore(OWNER)
        with pytest.raises(Unauthorized):
            store.transfer_ownership(ctx(USER1), USER1)


class TestDispatch:
    """Tests for routing by contract method name."""

    def test_routes_log(self):
        store = LogStore(OWNER)
        notes = store.dispatch(ctx(USER1), "log", (5, codec.encode_type("A"), codec.encode_message("b")))
        assert notes[0].event_name == "LogEntry"

    def test_unknown_method(self):
        store = LogStore(OWNER)
        with pytest.raises(InvalidArgument):
            store.dispatch(ctx(OWNER), "selfdestruct", ())

    def test_wrong_argument_count(self):
        store = LogStore(OWNER)
        with pytest.raises(InvalidArgument):
            store.dispatch(ctx(OWNER), "pause", (1,))
