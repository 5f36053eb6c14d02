"""Pydantic models for chat sessions and messages."""

import time
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from nexora.chat.actions import Action


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    MODEL = "model"


class Tier(str, Enum):
    """Selected model strength. Each tier keeps its own session history."""

    STANDARD = "standard"
    PRO = "pro"


class StreamState(str, Enum):
    """Streaming lifecycle of a model message."""

    STREAMING = "streaming"
    DONE = "done"


_STREAM_ORDER = {None: 0, StreamState.STREAMING: 1, StreamState.DONE: 2}


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


class InlineData(BaseModel):
    """Inline binary attachment, base64 encoded."""

    mime_type: str
    data: str


class Part(BaseModel):
    """One content part: either text or an inline attachment."""

    text: str | None = None
    inline_data: InlineData | None = None

    @model_validator(mode="after")
    def _one_kind(self) -> "Part":
        if self.text is not None and self.inline_data is not None:
            raise ValueError("a part carries either text or inline_data, not both")
        return self


class WebSource(BaseModel):
    uri: str | None = None
    title: str | None = None


class GroundingChunk(BaseModel):
    """Citation reference returned alongside a model response."""

    web: WebSource | None = None


class Message(BaseModel):
    """One turn in a conversation."""

    id: str = Field(default_factory=new_id)
    role: Role
    parts: list[Part] = Field(default_factory=list)
    action: Optional[Action] = None
    grounding_chunks: list[GroundingChunk] | None = None
    stream_state: StreamState | None = None
    attached_files: list[str] | None = None

    @property
    def text(self) -> str:
        """Text of the first part, or an empty string."""
        if self.parts and self.parts[0].text is not None:
            return self.parts[0].text
        return ""

    def advance_stream_state(self, state: StreamState) -> None:
        """Move the stream state forward. Backward moves are ignored."""
        if _STREAM_ORDER[state] > _STREAM_ORDER[self.stream_state]:
            self.stream_state = state


class MemoryFact(BaseModel):
    key: str
    fact: str


class ChatSession(BaseModel):
    """One conversation thread."""

    id: str = Field(default_factory=new_id)
    title: str
    messages: list[Message] = Field(default_factory=list)
    memory: list[MemoryFact] = Field(default_factory=list)
    last_modified: int = Field(default_factory=now_ms)

    def touch(self) -> None:
        """Bump last_modified, never moving it backwards."""
        self.last_modified = max(self.last_modified + 1, now_ms())


class RateLimitState(BaseModel):
    """Usage counter for the rate-limited tier."""

    count: int = 0
    reset_time: int = 0
