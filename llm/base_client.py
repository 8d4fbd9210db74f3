"""Base LLM client interface."""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any
from pydantic import BaseModel


class ToolCall(BaseModel):
    """Tool call from LLM."""
    id: str
    name: str
    arguments: Dict[str, Any]


class ImageInput(BaseModel):
    """Base64-encoded image attached to a message."""
    data: str
    media_type: str = "image/jpeg"

    def data_url(self) -> str:
        """Image as a data: URL."""
        return f"data:{self.media_type};base64,{self.data}"


class Message(BaseModel):
    """Chat message."""
    role: str  # "system", "user", "assistant", "tool"
    content: str
    images: Optional[List[ImageInput]] = None  # For user messages with screenshots
    tool_call_id: Optional[str] = None  # For tool responses
    tool_calls: Optional[List["ToolCall"]] = None  # For assistant messages with tool calls


class LLMResponse(BaseModel):
    """Response from LLM."""
    content: str
    tool_calls: Optional[List[ToolCall]] = None
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        tool_choice: Optional[str] = None
    ) -> LLMResponse:
        """
        Send chat completion request.

        Args:
            messages: List of messages in conversation
            tools: Optional list of tool definitions for function calling
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens in response
            tool_choice: "auto" (default when tools are given) or "none" to
                keep tools defined but forbid calling them

        Returns:
            LLMResponse with content and optional tool calls
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the name of the LLM provider."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the name of the model being used."""
        pass
