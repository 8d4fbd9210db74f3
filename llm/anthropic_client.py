"""Anthropic Claude vision client."""

import os
import logging
from typing import Optional, List, Dict, Any, Tuple

import anthropic

from .base_client import BaseLLMClient, ImageInput, Message, LLMResponse, ToolCall

logger = logging.getLogger(__name__)


def _image_block(image: ImageInput) -> Dict[str, Any]:
    return {
        "type": "image",
        "source": {"type": "base64", "media_type": image.media_type, "data": image.data},
    }


def _to_anthropic_tools(tools: List[Dict]) -> List[Dict[str, Any]]:
    """Translate function-style tool definitions into Anthropic tool specs."""
    converted = []
    for tool in tools:
        if tool.get("type") != "function":
            continue
        function = tool["function"]
        converted.append({
            "name": function["name"],
            "description": function.get("description", ""),
            "input_schema": function.get("parameters", {"type": "object"}),
        })
    return converted


class AnthropicClient(BaseLLMClient):
    """Claude client; screenshots are sent as base64 image blocks."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (falls back to ANTHROPIC_API_KEY env var)
            model: Vision-capable Claude model
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client = anthropic.Anthropic(api_key=self.api_key) if self.api_key else None

        if self.client:
            logger.info(f"Anthropic client ready ({self.model})")
        else:
            logger.warning("No Anthropic API key provided")

    def _convert_messages(self, messages: List[Message]) -> Tuple[str, List[Dict[str, Any]]]:
        """Pull system text out and map the remaining turns to content blocks."""
        system_parts: List[str] = []
        turns: List[Dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                system_parts.append(msg.content)
                continue

            if msg.role == "tool":
                # Claude expects tool output inside a user turn
                blocks = [{
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                }]
                turns.append({"role": "user", "content": blocks})
                continue

            blocks: List[Dict[str, Any]] = [_image_block(image) for image in msg.images or []]
            if msg.content:
                blocks.append({"type": "text", "text": msg.content})
            for call in msg.tool_calls or []:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": call.arguments,
                })
            turns.append({"role": msg.role, "content": blocks or msg.content})

        return "\n".join(system_parts), turns

    def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        tool_choice: Optional[str] = None
    ) -> LLMResponse:
        """Send a messages request to Claude."""
        if not self.client:
            raise RuntimeError("Anthropic client not initialized. Check API key.")

        system, turns = self._convert_messages(messages)
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": turns,
        }
        if system:
            request["system"] = system
        if tools:
            request["tools"] = _to_anthropic_tools(tools)
            if tool_choice:
                request["tool_choice"] = {"type": tool_choice}

        try:
            response = self.client.messages.create(**request)
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise

        return self._parse_response(response)

    def _parse_response(self, response) -> LLMResponse:
        text = "".join(block.text for block in response.content if block.type == "text")
        calls = [
            ToolCall(id=block.id, name=block.name, arguments=block.input)
            for block in response.content
            if block.type == "tool_use"
        ]

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            }

        return LLMResponse(
            content=text,
            tool_calls=calls or None,
            usage=usage,
            finish_reason=response.stop_reason
        )

    def get_provider_name(self) -> str:
        return "anthropic"

    def get_model_name(self) -> str:
        return self.model
