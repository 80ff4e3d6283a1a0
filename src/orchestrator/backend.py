"""Chat backend with automatic function invocation.

Wraps an LLM provider in the tool calling loop: whenever the model asks
for tools, they are run on their MCP servers and the results are fed back
until the model produces a final answer.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Sequence

from shared.logging import get_logger
from shared.models import (
    FunctionCallContent,
    FunctionResultContent,
    Message,
    MessageRole,
    Tool,
)
from orchestrator.llm import LLMProvider

logger = get_logger(__name__)


class ChatBackend(ABC):
    """A chat completion service: history and tools in, new messages out."""

    @abstractmethod
    async def complete(
        self,
        history: Sequence[Message],
        tools: Sequence[Tool]
    ) -> list[Message]:
        """
        Produce the messages for one turn.

        Returns:
            One or more new messages, the final answer last

        Raises:
            BackendError: If the chat backend fails
        """
        pass


def error_result(message: str) -> str:
    """An MCP-shaped error result the model can read."""
    return json.dumps({
        "content": [{"type": "text", "text": f"Error: {message}"}],
        "isError": True,
    })


class FunctionInvokingBackend(ChatBackend):
    """
    Chat backend that resolves tool calls itself.

    Implements the tool calling loop:
    1. Call the provider with history and tools
    2. If the reply requests tool calls, invoke them
    3. Add one tool message with all results
    4. Repeat until the provider answers without tool calls
    """

    def __init__(self, provider: LLMProvider, max_tool_iterations: int = 10) -> None:
        self.provider = provider
        self.max_tool_iterations = max_tool_iterations

    async def complete(
        self,
        history: Sequence[Message],
        tools: Sequence[Tool]
    ) -> list[Message]:
        """Run the tool calling loop and return every message produced."""
        produced: list[Message] = []
        by_name = {t.name: t for t in tools}

        for iteration in range(1, self.max_tool_iterations + 1):
            reply = await self.provider.complete([*history, *produced], tools)
            produced.append(reply)

            calls = reply.function_calls
            if not calls:
                return produced

            logger.debug(
                "LLM requested tool calls",
                count=len(calls),
                iteration=iteration
            )

            results = [await self._invoke(call, by_name) for call in calls]
            produced.append(Message(role=MessageRole.TOOL, contents=tuple(results)))

        logger.warning(
            "Max tool iterations reached",
            iterations=self.max_tool_iterations
        )
        return produced

    async def _invoke(
        self,
        call: FunctionCallContent,
        tools: dict[str, Tool]
    ) -> FunctionResultContent:
        """Execute a single tool call on its server."""
        tool = tools.get(call.name)
        if tool is None:
            logger.warning("Unknown tool requested", tool=call.name)
            return FunctionResultContent(
                call_id=call.call_id,
                result=error_result(f"Requested function '{call.name}' not found.")
            )

        logger.info("Executing tool", tool=call.name, server=tool.server)
        try:
            result: Any = await tool.invoke(call.arguments)
        except Exception as e:
            logger.error("Tool execution failed", tool=call.name, error=str(e))
            result = error_result(str(e))

        return FunctionResultContent(call_id=call.call_id, result=result)
