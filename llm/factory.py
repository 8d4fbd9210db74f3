"""LLM client factory."""

import logging
from enum import Enum
from typing import Optional

from config.settings import Settings
from .base_client import BaseLLMClient
from .openai_client import OpenAIClient
from .anthropic_client import AnthropicClient

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported vision-capable LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


def create_llm_client(
    provider: LLMProvider,
    api_key: Optional[str] = None,
    model: Optional[str] = None
) -> BaseLLMClient:
    """
    Create an LLM client for the specified provider.

    Args:
        provider: LLM provider (openai or anthropic)
        api_key: API key for the provider
        model: Optional model override

    Returns:
        Configured LLM client

    Raises:
        ValueError: If provider is not supported
    """
    if provider == LLMProvider.OPENAI:
        return OpenAIClient(api_key=api_key, model=model)
    elif provider == LLMProvider.ANTHROPIC:
        return AnthropicClient(api_key=api_key, model=model)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")


def create_llm_client_from_settings(settings: Settings) -> BaseLLMClient:
    """Create the client named by settings.llm_provider."""
    provider = LLMProvider(settings.llm_provider)
    if not settings.get_llm_api_key():
        logger.warning(f"No API key for {settings.llm_provider}; analysis requests will fail")
    return create_llm_client(
        provider=provider,
        api_key=settings.get_llm_api_key(),
        model=settings.llm_model
    )
