"""Tests for the chat engine send path."""

import asyncio
import json

import pytest

from nexora.chat.engine import Attachment, ChatEngine, SendInProgressError
from nexora.chat.schema import Role, StreamState, Tier
from nexora.chat.state import Overlay
from nexora.config.schema import NexoraConfig
from nexora.memory.sessions import SessionStore
from nexora.memory.storage import InMemoryStore


@pytest.mark.asyncio
async def test_send_creates_session(make_engine, fake_model):
    engine = make_engine(fake_model(["Hi ", "there!"]))

    reply = await engine.send("Hello, what can you do for me today? Tell me everything.")

    assert reply is not None
    assert reply.text == "Hi there!"
    assert reply.stream_state is StreamState.DONE

    session = engine.sessions.active_session(Tier.STANDARD)
    assert session.title == "Hello, what can you do for me today? Tel"
    assert [m.role for m in session.messages] == [Role.USER, Role.MODEL]
    assert session.messages[1] is reply
    assert not engine.state.is_loading


@pytest.mark.asyncio
async def test_empty_input_sends_nothing(make_engine, fake_model):
    model = fake_model(["x"])
    engine = make_engine(model)

    assert await engine.send("   ") is None
    assert model.requests == []
    assert engine.sessions.sessions(Tier.STANDARD) == []


@pytest.mark.asyncio
async def test_second_send_carries_history(make_engine, fake_model, default_config):
    model = fake_model(["First answer"], ["Second answer"])
    engine = make_engine(model)

    await engine.send("first question")
    await engine.send("second question")

    request = model.requests[1]
    assert [m.text for m in request.history] == ["first question", "First answer"]
    assert request.recent_digest == (
        f"{default_config.messages.user_label}: first question\n"
        f"{default_config.messages.model_label}: First answer"
    )
    assert request.user_parts[0].text == "second question"
    assert len(engine.sessions.sessions(Tier.STANDARD)) == 1


@pytest.mark.asyncio
async def test_memory_digest(make_engine, fake_model):
    model = fake_model(["a"], ["b"])
    engine = make_engine(model)
    await engine.send("hi")
    session = engine.sessions.active_session(Tier.STANDARD)
    engine.sessions.upsert_memory(Tier.STANDARD, session.id, "name", "Sam")

    await engine.send("again")

    assert model.requests[1].memory_digest == "name: Sam"


@pytest.mark.asyncio
async def test_pro_rate_limit(make_engine, fake_model, default_config):
    """The eighth pro send in a window is refused without consuming usage."""
    engine = make_engine(fake_model(*[["ok"]] * 8))
    engine.switch_tier(Tier.PRO)

    for i in range(7):
        assert await engine.send(f"message {i}") is not None

    assert await engine.send("one too many") is None
    assert engine.state.last_notice == default_config.messages.rate_limited
    assert engine.rate_limiter.state.count == 7
    assert len(engine.sessions.active_session(Tier.PRO).messages) == 14


@pytest.mark.asyncio
async def test_standard_tier_not_rate_limited(make_engine, fake_model):
    engine = make_engine(fake_model(*[["ok"]] * 9))

    for i in range(9):
        assert await engine.send(f"message {i}") is not None
    assert engine.rate_limiter.state.count == 0


@pytest.mark.asyncio
async def test_tiers_keep_separate_sessions(make_engine, fake_model):
    engine = make_engine(fake_model(["std"], ["pro"]))

    await engine.send("standard question")
    engine.switch_tier(Tier.PRO)
    await engine.send("pro question")

    assert [s.title for s in engine.sessions.sessions(Tier.STANDARD)] == ["standard question"]
    assert [s.title for s in engine.sessions.sessions(Tier.PRO)] == ["pro question"]


@pytest.mark.asyncio
async def test_pro_ignores_specialist_mode(make_engine, fake_model):
    model = fake_model(["a"], ["b"])
    engine = make_engine(model)

    await engine.send("hi", specialist_mode="chef")
    engine.switch_tier(Tier.PRO)
    await engine.send("hi", specialist_mode="chef")

    assert model.requests[0].specialist_mode == "chef"
    assert model.requests[1].specialist_mode is None
    assert model.requests[1].tier is Tier.PRO


@pytest.mark.asyncio
async def test_send_while_loading_raises(make_engine, fake_model):
    engine = make_engine(fake_model(["x"]))
    engine.state.is_loading = True

    with pytest.raises(SendInProgressError):
        await engine.send("hello")


@pytest.mark.asyncio
async def test_invalid_credential_blocks_until_replaced(make_engine, fake_model, default_config):
    from nexora.llm.client import InvalidCredentialError

    engine = make_engine(fake_model(error=InvalidCredentialError("401")))

    reply = await engine.send("hello")
    assert reply.text == default_config.messages.invalid_credential
    assert engine.state.api_ready is False

    assert await engine.send("hello again") is None
    assert engine.state.last_notice == default_config.messages.invalid_credential

    engine.replace_model(fake_model(["works"]))
    reply = await engine.send("hello again")
    assert reply.text == "works"


@pytest.mark.asyncio
async def test_stop_keeps_partial_reply(make_engine, fake_model):
    model = fake_model(["partial", " rest"])
    engine = make_engine(model)

    def on_update(message):
        if message.text == "partial":
            engine.stop()

    reply = await engine.send("go", on_update=on_update)

    assert reply.text == "partial"
    assert reply.stream_state is StreamState.DONE
    assert model.closed
    assert not engine.state.is_loading


@pytest.mark.asyncio
async def test_cancelled_send_finalizes_and_saves(make_engine, stalling_model, store):
    """Cancelling the sending task keeps the partial reply in the done state."""
    model = stalling_model("partial ")
    engine = make_engine(model)

    task = asyncio.create_task(engine.send("hi"))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    reply = engine.sessions.active_session(Tier.STANDARD).messages[1]
    assert reply.text == "partial"
    assert reply.stream_state is StreamState.DONE
    assert model.closed
    assert not engine.state.is_loading
    assert not engine.state.is_generating

    saved = json.loads(store.get("nexora-sessions-standard"))
    assert saved[0]["messages"][1]["stream_state"] == "done"


@pytest.mark.asyncio
async def test_tier_per_send_leaves_selection(make_engine, fake_model):
    engine = make_engine(fake_model(["pro answer"]))

    reply = await engine.send("hi", tier=Tier.PRO)

    assert reply.text == "pro answer"
    assert engine.tier is Tier.STANDARD
    assert engine.rate_limiter.state.count == 1
    assert len(engine.sessions.sessions(Tier.PRO)) == 1
    assert engine.sessions.sessions(Tier.STANDARD) == []


@pytest.mark.asyncio
async def test_new_chat_starts_new_session(make_engine, fake_model):
    engine = make_engine(fake_model(["a"], ["b"]))
    await engine.send("first")

    engine.new_chat()
    await engine.send("second")

    sessions = engine.sessions.sessions(Tier.STANDARD)
    assert [s.title for s in sessions] == ["second", "first"]
    assert engine.sessions.active_id(Tier.STANDARD) == sessions[0].id


@pytest.mark.asyncio
async def test_send_closes_overlay(make_engine, fake_model):
    engine = make_engine(fake_model(["a"]))
    engine.state.open_overlay(Overlay.VISION, {"source": "camera"})

    await engine.send("hi")

    assert engine.state.overlay is Overlay.NONE
    assert engine.state.overlay_payload is None


@pytest.mark.asyncio
async def test_attachments(make_engine, fake_model, store):
    model = fake_model(["Got it"])
    engine = make_engine(model)

    await engine.send(
        "look",
        attachments=[
            Attachment(filename="cat.png", mime_type="image/png", data=b"png"),
            Attachment(filename="notes.pdf", mime_type="application/pdf", data=b"pdf"),
        ],
    )

    user_parts = model.requests[0].user_parts
    assert user_parts[0].text == "look"
    assert user_parts[1].inline_data.mime_type == "image/png"
    assert user_parts[1].inline_data.data == "cG5n"

    user_message = engine.sessions.active_session(Tier.STANDARD).messages[0]
    assert user_message.attached_files == ["notes.pdf"]

    reloaded = SessionStore(store)
    reloaded.load()
    saved = reloaded.active_session(Tier.STANDARD).messages[0]
    assert [p.text for p in saved.parts] == ["look"]
    assert saved.attached_files == ["notes.pdf"]


@pytest.mark.asyncio
async def test_attachment_only_title(make_engine, fake_model):
    engine = make_engine(fake_model(["ok"]))

    await engine.send("", attachments=[Attachment("report.txt", "text/plain", b"x")])

    assert engine.sessions.active_session(Tier.STANDARD).title == "report.txt"


def test_from_config(tmp_path, monkeypatch):
    monkeypatch.setenv("NEXORA_API_KEY", "test-key")
    config = NexoraConfig()
    config.storage.path = tmp_path / "nexora.db"

    engine = ChatEngine.from_config(config, store=InMemoryStore())

    assert engine.tier is Tier.STANDARD
    assert engine.image_generator is engine.model
    assert engine.rate_limiter.cap == config.rate_limit.cap
