"""Stream reconciliation: from raw model chunks to a finalized message.

The reconciler owns one in-flight model message. It appends each chunk to a
cumulative buffer, rescans the whole buffer for directives, and mirrors the
result into the message (standard tier) or into the thinking-progress
projection (pro tier). When the stream ends it decodes the action, runs the
optional image generation, and writes the final parts.

Rescanning the full buffer on every chunk costs O(n^2) over a stream, which
is fine at chat-message sizes and means a tag split across chunks needs no
special handling.
"""

import asyncio
import base64
import binascii
import logging
import re
from collections.abc import AsyncIterator, Callable

from nexora.chat import directives
from nexora.chat.actions import ActionDispatcher, parse_action
from nexora.chat.schema import InlineData, Message, Part, StreamState, Tier
from nexora.chat.state import AppState, CancellationToken, ThinkingProgress
from nexora.config.schema import MessagesConfig, StreamConfig
from nexora.llm.client import ImageGenerator, InvalidCredentialError, StreamChunk

logger = logging.getLogger(__name__)

_DATA_URL_MIME_RE = re.compile(r":(.*?);")


def parse_data_url(data_url: str, default_mime: str = "image/jpeg") -> InlineData:
    """Decode a ``data:<mime>;base64,<payload>`` URL into an inline part.

    Raises:
        ValueError: If the URL has no payload or the payload is not base64
    """
    header, sep, data = data_url.partition(",")
    if not sep or not data:
        raise ValueError("data URL has no payload")
    try:
        base64.b64decode(data, validate=True)
    except binascii.Error as e:
        raise ValueError(f"data URL payload is not base64: {e}") from e

    match = _DATA_URL_MIME_RE.search(header)
    return InlineData(mime_type=match.group(1) if match else default_mime, data=data)


class StreamReconciler:
    """Drives one model message through its streaming lifecycle."""

    def __init__(
        self,
        app_state: AppState,
        image_generator: ImageGenerator | None = None,
        dispatcher: ActionDispatcher | None = None,
        stream_config: StreamConfig | None = None,
        messages: MessagesConfig | None = None,
        on_update: Callable[[Message], None] | None = None,
    ):
        """Initialize the reconciler.

        Args:
            app_state: Shared state (loading flags, specialist mode, progress)
            image_generator: Backend for ``generate_image`` directives
            dispatcher: Executes the decoded action after finalization
            stream_config: Progress and placeholder settings
            messages: User-visible strings
            on_update: Called after every visible change to the message
        """
        self.app_state = app_state
        self.image_generator = image_generator
        self.dispatcher = dispatcher
        self.config = stream_config or StreamConfig()
        self.messages = messages or MessagesConfig()
        self.on_update = on_update

    def _notify(self, message: Message) -> None:
        if self.on_update is not None:
            self.on_update(message)

    async def run(
        self,
        message: Message,
        chunks: AsyncIterator[StreamChunk],
        tier: Tier,
        token: CancellationToken,
        specialist_mode: str | None = None,
    ) -> Message:
        """Consume a chunk stream into ``message``.

        The message is mutated in place and always ends in the ``done`` state,
        whether the stream completed, failed or was cancelled.

        Args:
            message: Model message, created with a single empty text part
            chunks: Incremental response stream
            tier: Tier the request was sent with
            token: Cancellation flag checked after every chunk
            specialist_mode: Specialist mode explicitly active for this request

        Returns:
            The same message object, finalized
        """
        auto_specialist = False
        progress: ThinkingProgress | None = None
        if tier is Tier.PRO:
            progress = ThinkingProgress(steps=[self.messages.thinking_start])
            self.app_state.progress = progress

        buffer = ""
        try:
            last_chunk: StreamChunk | None = None

            message.advance_stream_state(StreamState.STREAMING)
            self._notify(message)

            try:
                async for chunk in chunks:
                    if not token.active:
                        break
                    last_chunk = chunk
                    buffer += chunk.text or ""
                    scan = directives.scan(buffer)

                    if (
                        not auto_specialist
                        and specialist_mode is None
                        and tier is Tier.STANDARD
                        and scan.specialist_subject
                    ):
                        auto_specialist = True
                        self.app_state.specialist_mode = scan.specialist_subject
                        logger.info("Auto specialist mode: %s", scan.specialist_subject)

                    if progress is not None:
                        progress.record(
                            scan.thinking_steps,
                            scan.thinking_match_count,
                            self.config.expected_total_steps,
                        )
                    else:
                        message.parts[0].text = directives.live_text(buffer)
                    self._notify(message)
            finally:
                aclose = getattr(chunks, "aclose", None)
                if aclose is not None:
                    await aclose()

            if progress is not None:
                progress.complete(self.messages.thinking_final)

            await self._finalize(message, buffer, last_chunk)

        except asyncio.CancelledError:
            logger.info("Reply cancelled after %d characters", len(buffer))
            self._finalize_partial(message, buffer)
            raise
        except InvalidCredentialError:
            logger.exception("Model rejected the API key")
            self.app_state.api_ready = False
            self._fail(message, self.messages.invalid_credential)
        except Exception:
            logger.exception("Error streaming model response")
            self._fail(message, self.messages.generic_error)
        finally:
            self.app_state.is_generating = False
            self.app_state.is_loading = False
            if auto_specialist:
                self.app_state.specialist_mode = None
            self._schedule_progress_clear(progress)

        return message

    async def _finalize(
        self, message: Message, buffer: str, last_chunk: StreamChunk | None
    ) -> None:
        """Write final parts, action and citations, then dispatch the action."""
        scan = directives.scan(buffer)

        action = parse_action(scan.action_payload) if scan.action_payload is not None else None
        image_part = await self._generate_image(scan.image_prompt) if scan.image_prompt else None

        parts = [Part(text=directives.final_text(buffer, self.config.empty_placeholder))]
        if image_part is not None:
            parts.append(image_part)

        message.parts = parts
        message.action = action
        if last_chunk is not None and last_chunk.grounding_chunks:
            message.grounding_chunks = list(last_chunk.grounding_chunks)
        message.advance_stream_state(StreamState.DONE)
        self._notify(message)

        if action is not None and self.dispatcher is not None:
            self.dispatcher.dispatch(action)

    def _finalize_partial(self, message: Message, buffer: str) -> None:
        """Keep the text received so far. No action or image is run."""
        message.parts = [Part(text=directives.final_text(buffer, self.config.empty_placeholder))]
        message.advance_stream_state(StreamState.DONE)
        self._notify(message)

    async def _generate_image(self, prompt: str) -> Part | None:
        """Single bounded image-generation attempt. Failures return None."""
        if self.image_generator is None:
            logger.warning("Image requested but no image generator is configured")
            return None
        try:
            data_url = await asyncio.wait_for(
                self.image_generator.generate_image(prompt),
                timeout=self.config.image_timeout,
            )
            return Part(inline_data=parse_data_url(data_url))
        except Exception:
            logger.warning("Failed to generate image for prompt %r", prompt, exc_info=True)
            return None

    def _fail(self, message: Message, text: str) -> None:
        message.parts = [Part(text=text)]
        message.advance_stream_state(StreamState.DONE)
        self._notify(message)

    def _schedule_progress_clear(self, progress: ThinkingProgress | None) -> None:
        """Drop the progress projection shortly after the stream ends."""
        if progress is None:
            return

        def clear() -> None:
            if self.app_state.progress is progress:
                self.app_state.progress = None

        delay = self.config.progress_clear_delay
        if delay <= 0:
            clear()
            return
        asyncio.get_running_loop().call_later(delay, clear)
