"""Factory for creating the configured model client."""

import os

from nexora.config.schema import NexoraConfig
from nexora.llm.openai_compat import OpenAIChatClient

API_KEY_ENV = "NEXORA_API_KEY"


def create_llm_client(config: NexoraConfig, api_key: str | None = None) -> OpenAIChatClient:
    """Create the chat/image client from configuration.

    The key is taken from the argument, then the config file, then the
    ``NEXORA_API_KEY`` environment variable. A missing key is not an error
    here; the server rejects the first request and the engine asks for a
    new credential.

    Args:
        config: Nexora configuration
        api_key: Optional key overriding the configured one

    Returns:
        Client implementing both ChatModel and ImageGenerator
    """
    model = config.model
    key = api_key or model.api_key or os.environ.get(API_KEY_ENV) or "missing"
    return OpenAIChatClient(
        api_key=key,
        base_url=model.base_url,
        standard_model=model.standard_model,
        pro_model=model.pro_model,
        image_model=model.image_model,
        persona=model.persona,
        timeout=model.timeout,
        temperature=model.temperature,
    )
