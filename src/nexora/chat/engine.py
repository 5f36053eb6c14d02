"""Send entry point: rate limit, session bookkeeping and streaming."""

import base64
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass

from nexora.chat.actions import ActionDispatcher
from nexora.chat.rate_limit import RateLimiter
from nexora.chat.reconciler import StreamReconciler
from nexora.chat.schema import InlineData, Message, Part, Role, Tier
from nexora.chat.state import AppState, CancellationToken
from nexora.config.schema import NexoraConfig
from nexora.llm.client import ChatModel, ChatRequest, ImageGenerator, StreamChunk
from nexora.memory.sessions import SessionStore
from nexora.memory.storage import KeyValueStore, SQLiteStore

logger = logging.getLogger(__name__)

TITLE_LENGTH = 40


class SendInProgressError(Exception):
    """A send was started while another one is still streaming."""


@dataclass
class Attachment:
    """A file the user attaches to a message."""

    filename: str
    mime_type: str
    data: bytes

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


class ChatEngine:
    """One chat client: two tiers of sessions, one in-flight send at a time."""

    def __init__(
        self,
        model: ChatModel,
        sessions: SessionStore,
        rate_limiter: RateLimiter,
        image_generator: ImageGenerator | None = None,
        dispatcher: ActionDispatcher | None = None,
        config: NexoraConfig | None = None,
        tier: Tier = Tier.STANDARD,
    ):
        """Initialize the engine.

        Args:
            model: Streaming chat backend
            sessions: Session store (already loaded)
            rate_limiter: Usage window for the pro tier
            image_generator: Backend for image directives
            dispatcher: Executes actions found in replies
            config: Nexora configuration
            tier: Initially selected tier
        """
        self.model = model
        self.sessions = sessions
        self.rate_limiter = rate_limiter
        self.image_generator = image_generator
        self.dispatcher = dispatcher
        self.config = config or NexoraConfig()
        self.tier = tier
        self.state = AppState()
        self._token: CancellationToken | None = None

    @classmethod
    def from_config(
        cls,
        config: NexoraConfig,
        store: KeyValueStore | None = None,
        dispatcher: ActionDispatcher | None = None,
    ) -> "ChatEngine":
        """Build an engine with the configured model client and SQLite storage."""
        from nexora.llm.factory import create_llm_client

        store = store if store is not None else SQLiteStore(config.storage.path)
        sessions = SessionStore(store, save_history=config.storage.save_history)
        sessions.load()
        limiter = RateLimiter(
            store,
            cap=config.rate_limit.cap,
            window_ms=config.rate_limit.window_ms,
            denial_message=config.messages.rate_limited,
        )
        client = create_llm_client(config)
        return cls(
            model=client,
            sessions=sessions,
            rate_limiter=limiter,
            image_generator=client,
            dispatcher=dispatcher,
            config=config,
        )

    def switch_tier(self, tier: Tier) -> None:
        self.tier = tier

    def new_chat(self) -> None:
        """Clear the active session so the next send starts a new one."""
        self.sessions.set_active(self.tier, None)
        self.state.specialist_mode = None

    def replace_model(self, model: ChatModel, image_generator: ImageGenerator | None = None) -> None:
        """Swap in a client built with a new credential and accept sends again."""
        self.model = model
        if image_generator is not None:
            self.image_generator = image_generator
        self.state.api_ready = True

    def stop(self) -> None:
        """Stop reading the in-flight stream. Text received so far is kept."""
        if self._token is not None:
            self._token.cancel()
        self.state.is_generating = False
        self.state.is_loading = False

    async def send(
        self,
        text: str,
        attachments: Sequence[Attachment] = (),
        specialist_mode: str | None = None,
        on_update: Callable[[Message], None] | None = None,
        tier: Tier | None = None,
    ) -> Message | None:
        """Send a user message and stream the model reply into the active session.

        Args:
            text: User text
            attachments: Files sent with the text
            specialist_mode: Specialist mode for this send only
            on_update: Called after every visible change to the reply
            tier: Tier for this send only. Defaults to the selected tier.

        Returns:
            The finalized model message, or None if nothing was sent
            (empty input, rate limit, missing credential)

        Raises:
            SendInProgressError: If another send is still streaming
            asyncio.CancelledError: If the calling task is cancelled. The
                reply is still finalized with the text received and saved.
        """
        if not text.strip() and not attachments:
            return None
        if self.state.is_loading:
            raise SendInProgressError("A message is already being generated")
        if not self.state.api_ready:
            self.state.last_notice = self.config.messages.invalid_credential
            return None

        tier = tier if tier is not None else self.tier
        # Checked and consumed before the first await
        if tier is Tier.PRO:
            decision = self.rate_limiter.try_acquire()
            if not decision.allowed:
                self.state.last_notice = decision.reason
                return None

        self.state.last_notice = None
        self.state.close_overlay()
        self.state.is_generating = True
        self.state.is_loading = True
        token = CancellationToken()
        self._token = token

        effective_mode = None if tier is Tier.PRO else (specialist_mode or self.state.specialist_mode)

        user_message = self._build_user_message(text, attachments)
        model_message = Message(role=Role.MODEL, parts=[Part(text="")])

        session = self.sessions.active_session(tier)
        if session is None:
            session = self.sessions.create(tier, self._title_for(text, attachments))
        prior = list(session.messages)
        self.sessions.append_messages(tier, user_message, model_message)

        request = ChatRequest(
            user_parts=user_message.parts,
            history=prior,
            memory_digest="\n".join(f"{m.key}: {m.fact}" for m in session.memory),
            recent_digest=self._recent_digest(prior),
            specialist_mode=effective_mode,
            tier=tier,
            temperature=self.config.model.temperature,
        )

        reconciler = StreamReconciler(
            app_state=self.state,
            image_generator=self.image_generator,
            dispatcher=self.dispatcher,
            stream_config=self.config.stream,
            messages=self.config.messages,
            on_update=on_update,
        )
        try:
            await reconciler.run(
                model_message,
                self._open_stream(request),
                tier=tier,
                token=token,
                specialist_mode=effective_mode,
            )
        finally:
            if self._token is token:
                self._token = None
            session.touch()
            self.sessions.save(tier)

        return model_message

    async def _open_stream(self, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        # Deferred so that errors raised while opening the stream surface
        # inside the reconciler.
        stream = self.model.stream_chat(request)
        try:
            async for chunk in stream:
                yield chunk
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    def _build_user_message(self, text: str, attachments: Sequence[Attachment]) -> Message:
        parts: list[Part] = []
        if text:
            parts.append(Part(text=text))
        for attachment in attachments:
            encoded = base64.b64encode(attachment.data).decode("ascii")
            parts.append(Part(inline_data=InlineData(mime_type=attachment.mime_type, data=encoded)))

        attached_files = [a.filename for a in attachments if not a.is_image]
        return Message(role=Role.USER, parts=parts, attached_files=attached_files or None)

    def _title_for(self, text: str, attachments: Sequence[Attachment]) -> str:
        if text:
            return text[:TITLE_LENGTH]
        if attachments:
            return attachments[0].filename
        return self.config.messages.new_chat_title

    def _recent_digest(self, prior: list[Message]) -> str:
        """Render the last few prior turns as plain labelled lines."""
        count = self.config.stream.recent_turns
        if count <= 0:
            return ""
        labels = self.config.messages
        lines = []
        for message in prior[-count:]:
            speaker = labels.user_label if message.role is Role.USER else labels.model_label
            content = " ".join(
                p.text if p.text else labels.attachment_label for p in message.parts
            )
            lines.append(f"{speaker}: {content}")
        return "\n".join(lines)
