"""Model client implementations."""

from .client import (
    ChatModel,
    ChatRequest,
    ImageGenerator,
    InvalidCredentialError,
    StreamChunk,
)
from .factory import create_llm_client
from .openai_compat import OpenAIChatClient

__all__ = [
    "ChatModel",
    "ChatRequest",
    "ImageGenerator",
    "InvalidCredentialError",
    "OpenAIChatClient",
    "StreamChunk",
    "create_llm_client",
]
