"""Tests for per-tier session storage."""

import json
from unittest.mock import MagicMock

import pytest

from nexora.chat.schema import ChatSession, InlineData, Message, Part, Role, Tier
from nexora.memory.sessions import (
    ACTIVE_KEY,
    LEGACY_ACTIVE_KEY,
    LEGACY_SESSIONS_KEY,
    SESSIONS_KEY,
    SessionNotFoundError,
    SessionStore,
)
from nexora.memory.storage import InMemoryStore

STANDARD_KEY = SESSIONS_KEY.format(tier="standard")
STANDARD_ACTIVE = ACTIVE_KEY.format(tier="standard")


@pytest.fixture
def sessions(store):
    s = SessionStore(store)
    s.load()
    return s


def test_create_prepends_and_activates(sessions):
    first = sessions.create(Tier.STANDARD, "first")
    second = sessions.create(Tier.STANDARD, "second")

    assert [s.id for s in sessions.sessions(Tier.STANDARD)] == [second.id, first.id]
    assert sessions.active_id(Tier.STANDARD) == second.id
    assert sessions.sessions(Tier.PRO) == []


def test_round_trip_through_store(sessions, store):
    session = sessions.create(Tier.PRO, "pro chat")
    sessions.append_messages(Tier.PRO, Message(role=Role.USER, parts=[Part(text="hi")]))

    reloaded = SessionStore(store)
    reloaded.load()

    restored = reloaded.active_session(Tier.PRO)
    assert restored.id == session.id
    assert restored.messages[0].text == "hi"
    assert reloaded.sessions(Tier.STANDARD) == []


def test_delete_active_picks_most_recent(sessions):
    older = sessions.create(Tier.STANDARD, "older")
    newer = sessions.create(Tier.STANDARD, "newer")
    current = sessions.create(Tier.STANDARD, "current")
    older.last_modified = newer.last_modified + 1000

    assert sessions.delete(Tier.STANDARD, current.id)

    assert sessions.active_id(Tier.STANDARD) == older.id


def test_delete_inactive_keeps_pointer(sessions):
    other = sessions.create(Tier.STANDARD, "other")
    active = sessions.create(Tier.STANDARD, "active")

    sessions.delete(Tier.STANDARD, other.id)

    assert sessions.active_id(Tier.STANDARD) == active.id


def test_delete_last_clears_pointer(sessions, store):
    only = sessions.create(Tier.STANDARD, "only")

    sessions.delete(Tier.STANDARD, only.id)

    assert sessions.active_id(Tier.STANDARD) is None
    assert store.get(STANDARD_KEY) is None
    assert store.get(STANDARD_ACTIVE) is None


def test_delete_unknown(sessions):
    assert sessions.delete(Tier.STANDARD, "nope") is False


def test_rename_and_get(sessions):
    session = sessions.create(Tier.STANDARD, "old")
    before = session.last_modified

    sessions.rename(Tier.STANDARD, session.id, "new")

    assert sessions.get(Tier.STANDARD, session.id).title == "new"
    assert session.last_modified > before
    with pytest.raises(SessionNotFoundError):
        sessions.get(Tier.PRO, session.id)


def test_append_without_active_session(sessions):
    with pytest.raises(SessionNotFoundError):
        sessions.append_messages(Tier.STANDARD, Message(role=Role.USER, parts=[Part(text="x")]))


def test_set_active_unknown(sessions):
    with pytest.raises(SessionNotFoundError):
        sessions.set_active(Tier.STANDARD, "missing")


def test_clear_all(sessions, store):
    sessions.create(Tier.STANDARD, "a")
    sessions.create(Tier.PRO, "b")

    sessions.clear_all(Tier.STANDARD)

    assert sessions.sessions(Tier.STANDARD) == []
    assert sessions.active_id(Tier.STANDARD) is None
    assert store.get(STANDARD_KEY) is None
    assert len(sessions.sessions(Tier.PRO)) == 1


def test_inline_data_not_persisted(sessions, store):
    sessions.create(Tier.STANDARD, "pics")
    message = Message(
        role=Role.USER,
        parts=[Part(text="see"), Part(inline_data=InlineData(mime_type="image/png", data="aGk="))],
    )
    sessions.append_messages(Tier.STANDARD, message)

    saved = json.loads(store.get(STANDARD_KEY))

    assert saved[0]["messages"][0]["parts"] == [{"text": "see", "inline_data": None}]
    assert len(message.parts) == 2


def test_upsert_memory(sessions):
    session = sessions.create(Tier.STANDARD, "m")

    sessions.upsert_memory(Tier.STANDARD, session.id, "city", "Oslo")
    sessions.upsert_memory(Tier.STANDARD, session.id, "city", "Bergen")
    sessions.upsert_memory(Tier.STANDARD, session.id, "pet", "cat")

    assert [(m.key, m.fact) for m in session.memory] == [("city", "Bergen"), ("pet", "cat")]


def test_legacy_keys_migrate_to_standard(store):
    legacy = ChatSession(title="legacy chat")
    store.set(LEGACY_SESSIONS_KEY, json.dumps([legacy.model_dump(mode="json")]))
    store.set(LEGACY_ACTIVE_KEY, legacy.id)

    sessions = SessionStore(store)
    sessions.load()

    assert sessions.active_session(Tier.STANDARD).title == "legacy chat"
    assert store.get(LEGACY_SESSIONS_KEY) is None
    assert store.get(LEGACY_ACTIVE_KEY) is None
    assert sessions.sessions(Tier.PRO) == []


def test_corrupt_tier_loads_empty(store):
    store.set(STANDARD_KEY, "{broken")
    pro = ChatSession(title="fine")
    store.set(SESSIONS_KEY.format(tier="pro"), json.dumps([pro.model_dump(mode="json")]))

    sessions = SessionStore(store)
    sessions.load()

    assert sessions.sessions(Tier.STANDARD) == []
    assert [s.title for s in sessions.sessions(Tier.PRO)] == ["fine"]
    assert sessions.active_id(Tier.PRO) is None


def test_stale_active_pointer_ignored(store):
    session = ChatSession(title="x")
    store.set(STANDARD_KEY, json.dumps([session.model_dump(mode="json")]))
    store.set(STANDARD_ACTIVE, "deleted-id")

    sessions = SessionStore(store)
    sessions.load()

    assert sessions.active_id(Tier.STANDARD) is None


def test_save_history_disabled(store):
    store.set(STANDARD_KEY, json.dumps([ChatSession(title="old").model_dump(mode="json")]))
    sessions = SessionStore(store, save_history=False)
    sessions.load()

    sessions.create(Tier.STANDARD, "ephemeral")

    assert store.get(STANDARD_KEY) is None
    assert [s.title for s in sessions.sessions(Tier.STANDARD)] == ["ephemeral"]


def test_write_failures_are_swallowed(caplog):
    broken = MagicMock()
    broken.get.return_value = None
    broken.set.side_effect = OSError("disk full")
    sessions = SessionStore(broken)

    session = sessions.create(Tier.STANDARD, "still works")

    assert sessions.active_id(Tier.STANDARD) == session.id
    assert "Failed to save standard sessions" in caplog.text


def test_in_memory_store_default():
    sessions = SessionStore(InMemoryStore())
    sessions.load()
    assert sessions.active_session(Tier.STANDARD) is None
