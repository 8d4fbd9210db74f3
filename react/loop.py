"""ReAct loop: let the model look at a screenshot and call tools."""

import json
import logging
from typing import List, Optional, Dict, Any
from pydantic import BaseModel

from llm.base_client import BaseLLMClient, ImageInput, Message
from .tools import Tool, ToolResult

logger = logging.getLogger(__name__)


class ReActStep(BaseModel):
    """A single tool invocation in the ReAct loop."""
    step_number: int
    action: Optional[str] = None
    action_input: Optional[Dict[str, Any]] = None
    observation: Optional[str] = None
    success: bool = False
    blocked: bool = False


class ReActResult(BaseModel):
    """Result of ReAct loop execution."""
    steps: List[ReActStep]
    final_answer: str
    iterations_used: int
    tools_called: List[str]  # Tools that executed successfully


class ReActLoop:
    """
    Reasoning + acting loop around a vision model.

    The model receives the system prompt, the screenshot and the tool
    definitions. Each tool call is executed and its observation fed back
    until the model answers without calling a tool or the step budget is
    used up. A budget overrun ends with one more call where tool use is
    disabled.
    """

    MAX_ITERATIONS = 4

    def __init__(
        self,
        llm_client: BaseLLMClient,
        tools: List[Tool],
        max_iterations: int = MAX_ITERATIONS
    ):
        """
        Initialize ReAct loop.

        Args:
            llm_client: Vision-capable LLM client
            tools: Tools offered to the model
            max_iterations: Maximum model calls with tools enabled
        """
        self.llm_client = llm_client
        self.tools = {tool.name: tool for tool in tools}
        self.max_iterations = max_iterations
        self.tool_definitions = [tool.get_definition() for tool in tools]

    def run(
        self,
        system_prompt: str,
        user_prompt: str,
        images: Optional[List[ImageInput]] = None
    ) -> ReActResult:
        """
        Run the loop until the model answers or the budget is used.

        Args:
            system_prompt: Full system prompt (policy + memory context)
            user_prompt: Instruction accompanying the screenshot
            images: Screenshot(s) to analyze

        Returns:
            ReActResult with steps and the model's final text
        """
        steps: List[ReActStep] = []
        tools_called: List[str] = []

        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=user_prompt, images=images or None),
        ]

        for iteration in range(self.max_iterations):
            logger.info(f"ReAct iteration {iteration + 1}/{self.max_iterations}")

            response = self.llm_client.chat(
                messages=messages,
                tools=self.tool_definitions or None,
                temperature=0.3,
                max_tokens=1000
            )

            if not response.tool_calls:
                logger.info(f"ReAct completed in {iteration + 1} iterations")
                return ReActResult(
                    steps=steps,
                    final_answer=response.content,
                    iterations_used=iteration + 1,
                    tools_called=tools_called
                )

            # The assistant message carrying tool_calls must precede the tool responses
            messages.append(Message(
                role="assistant",
                content=response.content or "",
                tool_calls=response.tool_calls
            ))

            for tool_call in response.tool_calls:
                step = ReActStep(
                    step_number=iteration + 1,
                    action=tool_call.name,
                    action_input=tool_call.arguments
                )

                if tool_call.name in self.tools:
                    result = self.tools[tool_call.name].execute(**tool_call.arguments)
                    step.observation = self._format_observation(result)
                    step.success = result.success
                    step.blocked = result.blocked
                    if result.success:
                        tools_called.append(tool_call.name)
                else:
                    step.observation = f"Error: Unknown tool '{tool_call.name}'"

                steps.append(step)
                messages.append(Message(
                    role="tool",
                    content=step.observation,
                    tool_call_id=tool_call.id
                ))

        logger.warning("ReAct max iterations reached, generating final answer")

        messages.append(Message(
            role="user",
            content="Stop calling tools. Give your final one-paragraph assessment of the screenshot."
        ))
        # History holds tool calls, so tools stay defined but may not be called
        response = self.llm_client.chat(
            messages=messages,
            tools=self.tool_definitions or None,
            tool_choice="none",
            temperature=0.3,
            max_tokens=1000
        )

        return ReActResult(
            steps=steps,
            final_answer=response.content,
            iterations_used=self.max_iterations,
            tools_called=tools_called
        )

    def _format_observation(self, result: ToolResult) -> str:
        """Format tool result for LLM consumption."""
        if result.blocked:
            return f"Blocked: {result.error}"
        if not result.success:
            return f"Error: {result.error}"

        result_str = json.dumps(result.result, indent=2)
        if len(result_str) > 3000:
            result_str = result_str[:3000] + "\n... (truncated)"

        return result_str
