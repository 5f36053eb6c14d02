"""Model client protocols and data types."""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Protocol

from nexora.chat.schema import GroundingChunk, Message, Part, Tier


class InvalidCredentialError(Exception):
    """The upstream rejected the configured API key."""


@dataclass
class StreamChunk:
    """One incremental piece of a streamed response."""

    text: str = ""
    grounding_chunks: list[GroundingChunk] | None = None  # Usually only on the last chunk


@dataclass
class ChatRequest:
    """Everything the model needs for one streamed reply."""

    user_parts: list[Part]
    history: list[Message] = field(default_factory=list)
    memory_digest: str = ""
    recent_digest: str = ""
    specialist_mode: str | None = None
    tier: Tier = Tier.STANDARD
    temperature: float | None = None


class ChatModel(Protocol):
    """Protocol for streaming chat backends."""

    def stream_chat(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Stream a reply.

        Args:
            request: Prior turns, digests, specialist mode and the new user parts

        Yields:
            Chunks carrying incremental text

        Raises:
            InvalidCredentialError: If the upstream rejects the credential
        """
        ...


class ImageGenerator(Protocol):
    """Protocol for image generation backends."""

    async def generate_image(self, prompt: str) -> str:
        """Generate an image.

        Args:
            prompt: Text description of the image

        Returns:
            The image as a ``data:`` URL
        """
        ...
