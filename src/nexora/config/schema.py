"""Pydantic models for nexora.yaml configuration."""

from pathlib import Path

from pydantic import BaseModel, Field


class ModelConfig(BaseModel):
    """Generative model endpoint configuration."""

    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI-compatible endpoint (must include /v1)",
    )
    api_key: str | None = Field(
        default=None,
        description="API key; falls back to the NEXORA_API_KEY environment variable",
    )
    standard_model: str = Field(default="gpt-4o-mini", description="Model for the standard tier")
    pro_model: str = Field(default="gpt-4o", description="Model for the pro tier")
    image_model: str = Field(default="dall-e-3", description="Model used for image generation")
    timeout: int = Field(default=120, description="Request timeout in seconds", ge=1)
    temperature: float = Field(default=0.7, description="Sampling temperature", ge=0.0, le=2.0)
    persona: str = Field(
        default=(
            "You are Nexora, a friendly and capable assistant. Answer clearly and "
            "concisely in the language the user writes in."
        ),
        description="Base system prompt",
    )


class RateLimitConfig(BaseModel):
    """Pro tier usage window."""

    cap: int = Field(default=7, description="Messages allowed per window", ge=1)
    window_hours: float = Field(default=7.0, description="Window length in hours", gt=0)

    @property
    def window_ms(self) -> int:
        """Window length in epoch milliseconds."""
        return int(self.window_hours * 60 * 60 * 1000)


class StreamConfig(BaseModel):
    """Stream reconciliation settings."""

    expected_total_steps: int = Field(
        default=8,
        description="Thinking steps assumed for progress percentage",
        ge=1,
    )
    progress_clear_delay: float = Field(
        default=0.5,
        description="Seconds to keep the progress projection after a stream ends",
        ge=0.0,
    )
    empty_placeholder: str = Field(default="...", description="Final text when nothing remains")
    image_timeout: float = Field(
        default=60.0,
        description="Seconds allowed for the single image-generation attempt",
        gt=0,
    )
    recent_turns: int = Field(
        default=6,
        description="Prior turns rendered into the recent-history digest",
        ge=0,
    )


class StorageConfig(BaseModel):
    """Session persistence configuration."""

    path: Path = Field(
        default=Path.home() / ".nexora" / "nexora.db",
        description="SQLite file backing the key-value store",
    )
    save_history: bool = Field(default=True, description="Persist sessions between runs")


class ServerConfig(BaseModel):
    """API server configuration."""

    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )


class MessagesConfig(BaseModel):
    """User-visible strings."""

    generic_error: str = Field(default="Sorry, a connection error occurred.")
    invalid_credential: str = Field(
        default=(
            "The API key you entered is invalid or has expired. Check it in the "
            "settings or clear it to fall back to the shared key."
        )
    )
    rate_limited: str = Field(
        default=(
            "You have reached the Pro model usage limit for now. You can keep "
            "chatting with the standard model."
        )
    )
    thinking_start: str = Field(default="Starting to think...")
    thinking_final: str = Field(default="Composing the final answer...")
    new_chat_title: str = Field(default="New chat")
    user_label: str = Field(default="You")
    model_label: str = Field(default="Nexora")
    attachment_label: str = Field(default="[attached file]")


class NexoraConfig(BaseModel):
    """Root configuration model for nexora.yaml."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    messages: MessagesConfig = Field(default_factory=MessagesConfig)
