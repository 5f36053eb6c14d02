"""Streaming chat and image client for OpenAI-compatible servers."""

import logging
from collections.abc import AsyncIterator
from typing import Any

import openai
from openai import AsyncOpenAI

from nexora.chat.schema import GroundingChunk, Message, Part, Role, Tier, WebSource
from nexora.llm.client import ChatRequest, InvalidCredentialError, StreamChunk

logger = logging.getLogger(__name__)


class OpenAIChatClient:
    """Chat model and image generator backed by an OpenAI-compatible API.

    Any server exposing ``/v1/chat/completions`` and ``/v1/images/generations``
    works. The two tiers map to two model names.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        standard_model: str = "gpt-4o-mini",
        pro_model: str = "gpt-4o",
        image_model: str = "dall-e-3",
        persona: str = "You are a helpful assistant.",
        timeout: int = 120,
        temperature: float = 0.7,
    ) -> None:
        """Initialise the client.

        Args:
            api_key: API key sent as a bearer token.
            base_url: OpenAI-compatible endpoint (must include ``/v1``).
            standard_model: Model used for the standard tier.
            pro_model: Model used for the pro tier.
            image_model: Model used for image generation.
            persona: Base system prompt.
            timeout: Request timeout in seconds.
            temperature: Default sampling temperature.
        """
        self.models = {Tier.STANDARD: standard_model, Tier.PRO: pro_model}
        self.image_model = image_model
        self.persona = persona
        self.temperature = temperature
        self.client = AsyncOpenAI(base_url=base_url, api_key=api_key, timeout=timeout)

    def _system_prompt(self, request: ChatRequest) -> str:
        sections = [self.persona]
        if request.specialist_mode:
            sections.append(
                f"Act as a specialist in '{request.specialist_mode}' for this conversation."
            )
        if request.memory_digest:
            sections.append(f"Long-term facts about the user:\n{request.memory_digest}")
        if request.recent_digest:
            sections.append(f"Recent conversation:\n{request.recent_digest}")
        return "\n\n".join(sections)

    def _convert_parts(self, parts: list[Part]) -> str | list[dict[str, Any]]:
        """Convert message parts to OpenAI content.

        Text-only messages become a plain string; anything with an inline
        attachment becomes a list of content items.
        """
        if all(p.inline_data is None for p in parts):
            return "\n".join(p.text or "" for p in parts)

        content: list[dict[str, Any]] = []
        for part in parts:
            if part.inline_data is not None:
                data = part.inline_data
                content.append(
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{data.mime_type};base64,{data.data}"},
                    }
                )
            elif part.text:
                content.append({"type": "text", "text": part.text})
        return content

    def _convert_messages(self, request: ChatRequest) -> list[dict[str, Any]]:
        """Convert a chat request to the OpenAI messages array."""
        openai_messages: list[dict[str, Any]] = [
            {"role": "system", "content": self._system_prompt(request)}
        ]

        for msg in request.history:
            openai_messages.append(self._convert_message(msg))

        openai_messages.append({"role": "user", "content": self._convert_parts(request.user_parts)})
        return openai_messages

    def _convert_message(self, msg: Message) -> dict[str, Any]:
        if msg.role is Role.MODEL:
            # Assistant turns only carry text
            return {"role": "assistant", "content": msg.text}
        return {"role": "user", "content": self._convert_parts(msg.parts)}

    @staticmethod
    def _grounding_from(chunk: Any) -> list[GroundingChunk] | None:
        """Collect URL citations if the server attaches any to a chunk."""
        if not chunk.choices:
            return None
        annotations = getattr(chunk.choices[0].delta, "annotations", None) or []
        grounding = []
        for annotation in annotations:
            citation = getattr(annotation, "url_citation", None)
            if citation is None and isinstance(annotation, dict):
                citation = annotation.get("url_citation")
            if citation is None:
                continue
            if isinstance(citation, dict):
                grounding.append(
                    GroundingChunk(web=WebSource(uri=citation.get("url"), title=citation.get("title")))
                )
            else:
                grounding.append(
                    GroundingChunk(web=WebSource(uri=citation.url, title=citation.title))
                )
        return grounding or None

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """Stream a reply.

        Args:
            request: Chat request

        Yields:
            Chunks with incremental text

        Raises:
            InvalidCredentialError: If the server rejects the API key
        """
        params: dict[str, Any] = {
            "model": self.models[request.tier],
            "messages": self._convert_messages(request),
            "temperature": (
                request.temperature if request.temperature is not None else self.temperature
            ),
            "stream": True,
        }

        try:
            stream = await self.client.chat.completions.create(**params)
            async for chunk in stream:
                text = ""
                if chunk.choices and chunk.choices[0].delta.content:
                    text = chunk.choices[0].delta.content
                grounding = self._grounding_from(chunk)
                if text or grounding:
                    yield StreamChunk(text=text, grounding_chunks=grounding)
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise InvalidCredentialError(str(e)) from e

    async def generate_image(self, prompt: str) -> str:
        """Generate an image and return it as a data URL.

        Args:
            prompt: Text description of the image

        Returns:
            ``data:image/png;base64,...`` URL

        Raises:
            InvalidCredentialError: If the server rejects the API key
            ValueError: If the response carries no image data
        """
        try:
            response = await self.client.images.generate(
                model=self.image_model,
                prompt=prompt,
                n=1,
                response_format="b64_json",
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise InvalidCredentialError(str(e)) from e

        if not response.data or not response.data[0].b64_json:
            raise ValueError("Image response contained no data")
        logger.debug("Generated image for prompt %r", prompt)
        return f"data:image/png;base64,{response.data[0].b64_json}"
