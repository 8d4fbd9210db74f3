"""OpenAI vision client."""

import os
import json
import logging
from typing import Optional, List, Dict, Any

import openai
from openai import OpenAI

from .base_client import BaseLLMClient, Message, LLMResponse, ToolCall

logger = logging.getLogger(__name__)


def _parse_arguments(name: str, raw: Optional[str]) -> Dict[str, Any]:
    """Decode tool-call arguments; malformed JSON yields no arguments."""
    try:
        return json.loads(raw or "{}")
    except json.JSONDecodeError:
        logger.warning(f"Unparseable arguments for tool call {name}: {raw!r}")
        return {}


class OpenAIClient(BaseLLMClient):
    """GPT client; screenshots are sent as data-URL image parts."""

    DEFAULT_MODEL = "gpt-4o"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY env var)
            model: Vision-capable model to use (default: gpt-4o)
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client = OpenAI(api_key=self.api_key) if self.api_key else None

        if self.client:
            logger.info(f"OpenAI client ready ({self.model})")
        else:
            logger.warning("No OpenAI API key provided")

    def _format_message(self, msg: Message) -> Dict[str, Any]:
        """Map a Message onto the chat completions wire format."""
        payload: Dict[str, Any] = {"role": msg.role}

        if msg.images:
            parts: List[Dict[str, Any]] = [{"type": "text", "text": msg.content}]
            parts.extend(
                {"type": "image_url", "image_url": {"url": image.data_url()}}
                for image in msg.images
            )
            payload["content"] = parts
        else:
            payload["content"] = msg.content

        if msg.tool_call_id:
            payload["tool_call_id"] = msg.tool_call_id
        if msg.tool_calls:
            payload["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in msg.tool_calls
            ]
        return payload

    def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        tool_choice: Optional[str] = None
    ) -> LLMResponse:
        """Send a chat completion request to OpenAI."""
        if not self.client:
            raise RuntimeError("OpenAI client not initialized. Check API key.")

        request: Dict[str, Any] = {
            "model": self.model,
            "messages": [self._format_message(msg) for msg in messages],
            "temperature": temperature,
            "max_completion_tokens": max_tokens,
        }
        if tools:
            request.update(tools=tools, tool_choice=tool_choice or "auto")

        try:
            response = self.client.chat.completions.create(**request)
        except openai.OpenAIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise

        choice = response.choices[0]
        calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=_parse_arguments(call.function.name, call.function.arguments)
            )
            for call in choice.message.tool_calls or []
        ]

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=choice.message.content or "",
            tool_calls=calls or None,
            usage=usage,
            finish_reason=choice.finish_reason
        )

    def get_provider_name(self) -> str:
        return "openai"

    def get_model_name(self) -> str:
        return self.model
