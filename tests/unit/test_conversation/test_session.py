"""Tests for persisted chat sessions."""

import pytest

from telemenu.conversation import ChatSession, ChatSessionStore, ConversationRecord
from telemenu.conversation.helper import parse_number
from telemenu.conversation.session import is_staged


def test_record_round_trip_keeps_log_and_prompt():
    """to_dict/from_dict preserve everything needed to resume."""
    record = ConversationRecord(action_id="buy", origin_menu_id="root")
    record.freeze_payload({"id": 5})
    record.prompt_message_id = 101
    record.log.append({"kind": "ask", "value": 2})
    record.waiting = {"step": 1, "type": "choice"}

    restored = ConversationRecord.from_dict(record.to_dict())

    assert restored == record


def test_payload_freezes_once_including_absence():
    """The first resolution wins, even when it found nothing."""
    record = ConversationRecord(action_id="buy")
    record.freeze_payload(None)
    record.freeze_payload({"id": 1})

    assert record.payload is None
    assert record.payload_resolved is True


def test_session_tracks_one_active_conversation():
    """begin() activates a record; end() clears it."""
    session = ChatSession()
    session.begin(ConversationRecord(action_id="a"))
    assert session.active.action_id == "a"

    session.end("a")
    assert session.active is None
    assert session.is_empty


def test_staged_payload_distinguishes_none_from_unset():
    """A staged None is still staged; popping clears it."""
    session = ChatSession()
    assert not is_staged(session.pop_staged_payload())

    session.stage_payload(None)
    assert not session.is_empty
    assert is_staged(session.pop_staged_payload())
    assert session.is_empty


def test_session_from_dict_drops_dangling_active_id():
    """An active id without a record is ignored."""
    session = ChatSession.from_dict({"conversations": {}, "active_action_id": "gone"})

    assert session.active_action_id is None
    assert ChatSession.from_dict(None).is_empty


@pytest.mark.asyncio
async def test_store_saves_and_deletes_empty_sessions(storage):
    """Sessions are persisted per chat and removed once empty."""
    store = ChatSessionStore(storage)
    session = ChatSession()
    session.begin(ConversationRecord(action_id="buy"))

    await store.save(7, session)
    loaded = await store.load(7)
    assert loaded.active.action_id == "buy"
    assert await storage.load("chat:7") is not None

    loaded.end("buy")
    await store.save(7, loaded)
    assert len(storage) == 0


@pytest.mark.parametrize(
    "raw,expected",
    [("42", 42), (" -3 ", -3), ("2.5", 2.5), ("abc", None), ("", None), ("inf", None)],
)
def test_parse_number(raw, expected):
    """Integers first, then finite floats."""
    assert parse_number(raw) == expected


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "blob",
    [
        {"conversations": {"buy": {"payload": None}}, "active_action_id": "buy"},
        {"conversations": ["buy"]},
    ],
)
async def test_store_loads_malformed_blob_as_empty_session(storage, blob):
    """A stored blob of the wrong shape does not block the chat."""
    await storage.save("chat:7", blob)

    session = await ChatSessionStore(storage).load(7)

    assert session.is_empty
