"""Pytest configuration and shared fixtures."""

import asyncio
import base64
from collections.abc import AsyncIterator

import pytest

from nexora.chat.actions import ActionDispatcher
from nexora.chat.engine import ChatEngine
from nexora.chat.rate_limit import RateLimiter
from nexora.config.schema import NexoraConfig
from nexora.llm.client import ChatRequest, StreamChunk
from nexora.memory.sessions import SessionStore
from nexora.memory.storage import InMemoryStore

PNG_B64 = base64.b64encode(b"\x89PNG fake image bytes").decode("ascii")


class FakeChatModel:
    """Chat model replaying scripted chunk lists, one per request."""

    def __init__(self, *replies: list[str], error: Exception | None = None):
        self.replies = list(replies)
        self.error = error
        self.requests: list[ChatRequest] = []
        self.closed = False

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        chunks = self.replies.pop(0) if self.replies else []
        try:
            for text in chunks:
                yield StreamChunk(text=text)
        finally:
            self.closed = True


class StallingChatModel:
    """Chat model that yields its chunks and then never finishes."""

    def __init__(self, *texts: str, delay: float = 0.0):
        self.texts = texts
        self.delay = delay
        self.requests: list[ChatRequest] = []
        self.closed = False

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        self.requests.append(request)
        try:
            for text in self.texts:
                yield StreamChunk(text=text)
                await asyncio.sleep(self.delay)
            await asyncio.Event().wait()
        finally:
            self.closed = True


class FakeImageGenerator:
    """Image generator returning a fixed PNG data URL."""

    def __init__(self, result: str | None = None, error: Exception | None = None):
        self.result = result or f"data:image/png;base64,{PNG_B64}"
        self.error = error
        self.prompts: list[str] = []

    async def generate_image(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def default_config() -> NexoraConfig:
    """Provide a default configuration for tests."""
    config = NexoraConfig()
    config.stream.progress_clear_delay = 0
    return config


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def opened_uris() -> list[str]:
    return []


@pytest.fixture
def dispatcher(opened_uris) -> ActionDispatcher:
    """Dispatcher that records URIs instead of opening a browser."""
    return ActionDispatcher(opener=opened_uris.append)


@pytest.fixture
def make_engine(default_config, store, dispatcher):
    """Factory building an engine around a fake model."""

    def _make(model: FakeChatModel, image_generator: FakeImageGenerator | None = None) -> ChatEngine:
        sessions = SessionStore(store)
        sessions.load()
        limiter = RateLimiter(
            store,
            cap=default_config.rate_limit.cap,
            window_ms=default_config.rate_limit.window_ms,
            denial_message=default_config.messages.rate_limited,
        )
        return ChatEngine(
            model=model,
            sessions=sessions,
            rate_limiter=limiter,
            image_generator=image_generator or FakeImageGenerator(),
            dispatcher=dispatcher,
            config=default_config,
        )

    return _make


@pytest.fixture
def fake_model():
    """Factory for scripted chat models."""
    return FakeChatModel


@pytest.fixture
def stalling_model():
    """Factory for chat models whose stream stalls after its chunks."""
    return StallingChatModel


@pytest.fixture
def fake_images():
    """Factory for fake image generators."""
    return FakeImageGenerator
