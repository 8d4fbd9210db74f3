"""LLM client abstraction layer."""

from .base_client import BaseLLMClient, Message, LLMResponse, ImageInput, ToolCall
from .factory import create_llm_client, LLMProvider

__all__ = [
    "BaseLLMClient",
    "Message",
    "LLMResponse",
    "ImageInput",
    "ToolCall",
    "create_llm_client",
    "LLMProvider",
]
