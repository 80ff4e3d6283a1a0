"""LLM Integration Layer using LlamaIndex.

Supports multiple LLM providers via LlamaIndex-compatible packages:
- Azure OpenAI
- OpenAI
- Ollama

A provider performs exactly one model round. Running the tools the
model asks for is the job of the chat backend (see `orchestrator.backend`).
"""

import json
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from shared.config import LLMSettings
from shared.logging import get_logger
from shared.models import (
    FunctionCallContent,
    FunctionResultContent,
    Message,
    MessageRole,
    ReasoningContent,
    TextContent,
    Tool,
)

logger = get_logger(__name__)


class BackendError(Exception):
    """The chat backend failed to produce a response."""
    pass


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    The provider receives the whole history plus the tools on offer and
    returns one assistant message: text, function calls, reasoning, or a
    mix of them.
    """

    @abstractmethod
    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[Tool] = ()
    ) -> Message:
        """
        Generate one assistant message.

        Args:
            messages: Conversation history
            tools: Tools the model may call

        Returns:
            Assistant message

        Raises:
            BackendError: If the provider call fails
        """
        pass


class LlamaIndexProvider(LLMProvider):
    """Shared message conversion for LlamaIndex chat models."""

    name = "llama_index"

    def __init__(self, settings: LLMSettings) -> None:
        self.settings = settings
        self._llm = None

    @abstractmethod
    def _create_llm(self):
        """Build the LlamaIndex LLM instance."""
        pass

    def _get_llm(self):
        """Lazy initialization of LlamaIndex LLM."""
        if self._llm is None:
            self._llm = self._create_llm()
        return self._llm

    def _encode_arguments(self, arguments: dict[str, Any]) -> Any:
        """Tool call arguments as the provider expects them in history."""
        return json.dumps(arguments)

    def _result_text(self, result: Any) -> str:
        if result is None:
            return ""
        if isinstance(result, str):
            return result
        return json.dumps(result, default=str)

    def _convert_messages(self, messages: Sequence[Message]) -> list:
        """Convert internal messages to LlamaIndex format."""
        from llama_index.core.llms import ChatMessage, MessageRole as LIRole

        role_map = {
            MessageRole.SYSTEM: LIRole.SYSTEM,
            MessageRole.USER: LIRole.USER,
            MessageRole.ASSISTANT: LIRole.ASSISTANT,
            MessageRole.TOOL: LIRole.TOOL,
        }

        result = []
        for msg in messages:
            if msg.role == MessageRole.TOOL:
                # One LlamaIndex message per result, keyed by call id
                for content in msg.contents:
                    if isinstance(content, FunctionResultContent):
                        result.append(ChatMessage(
                            role=LIRole.TOOL,
                            content=self._result_text(content.result),
                            additional_kwargs={"tool_call_id": content.call_id},
                        ))
                continue

            chat_msg = ChatMessage(
                role=role_map[msg.role],
                content=msg.text or None,
            )

            calls = msg.function_calls
            if calls:
                chat_msg.additional_kwargs = {
                    "tool_calls": [
                        {
                            "id": call.call_id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": self._encode_arguments(call.arguments),
                            },
                        }
                        for call in calls
                    ]
                }

            result.append(chat_msg)

        return result

    @staticmethod
    def _field(obj: Any, key: str) -> Any:
        if isinstance(obj, dict):
            return obj.get(key)
        return getattr(obj, key, None)

    def _parse_tool_call(self, tool_call: Any) -> FunctionCallContent:
        function = self._field(tool_call, "function") or {}
        arguments = self._field(function, "arguments") or {}
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError:
                logger.warning("Unparseable tool call arguments", arguments=arguments)
                arguments = {}
        if not isinstance(arguments, dict):
            arguments = dict(arguments)

        return FunctionCallContent(
            call_id=self._field(tool_call, "id") or f"call_{uuid.uuid4().hex[:12]}",
            name=self._field(function, "name") or "",
            arguments=arguments,
        )

    def _parse_response(self, response: Any) -> Message:
        """Convert a LlamaIndex chat response into an assistant message."""
        message = response.message
        extra = message.additional_kwargs or {}
        contents: list = []

        thinking = extra.get("thinking") or extra.get("reasoning_content")
        if thinking:
            contents.append(ReasoningContent(text=thinking))

        if message.content:
            contents.append(TextContent(text=message.content))

        for tool_call in extra.get("tool_calls") or []:
            contents.append(self._parse_tool_call(tool_call))

        return Message(role=MessageRole.ASSISTANT, contents=tuple(contents))

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[Tool] = ()
    ) -> Message:
        """Generate completion through LlamaIndex."""
        llm = self._get_llm()
        chat_messages = self._convert_messages(messages)

        try:
            if tools:
                response = await llm.achat(
                    chat_messages,
                    tools=[t.to_function_schema() for t in tools]
                )
            else:
                response = await llm.achat(chat_messages)
        except Exception as e:
            logger.error("LLM completion failed", provider=self.name, error=str(e))
            raise BackendError(f"{self.name} completion failed: {e}") from e

        return self._parse_response(response)


class AzureOpenAIProvider(LlamaIndexProvider):
    """Azure OpenAI LLM provider using LlamaIndex."""

    name = "azure_openai"
    default_model = "gpt-4.1"

    def _create_llm(self):
        from llama_index.llms.azure_openai import AzureOpenAI

        model = self.settings.model or self.default_model
        kwargs: dict[str, Any] = {}
        if self.settings.temperature is not None:
            kwargs["temperature"] = self.settings.temperature
        if self.settings.max_tokens is not None:
            kwargs["max_tokens"] = self.settings.max_tokens

        return AzureOpenAI(
            model=model,
            engine=self.settings.deployment_name or model,
            api_key=self.settings.api_key,
            azure_endpoint=self.settings.api_base,
            api_version=self.settings.api_version,
            timeout=self.settings.request_timeout,
            **kwargs,
        )


class OpenAIProvider(LlamaIndexProvider):
    """OpenAI LLM provider using LlamaIndex."""

    name = "openai"
    default_model = "gpt-4"

    def _create_llm(self):
        from llama_index.llms.openai import OpenAI

        kwargs: dict[str, Any] = {}
        if self.settings.temperature is not None:
            kwargs["temperature"] = self.settings.temperature
        if self.settings.max_tokens is not None:
            kwargs["max_tokens"] = self.settings.max_tokens

        return OpenAI(
            model=self.settings.model or self.default_model,
            api_key=self.settings.api_key,
            api_base=self.settings.api_base,
            timeout=self.settings.request_timeout,
            **kwargs,
        )


class OllamaProvider(LlamaIndexProvider):
    """Ollama LLM provider using LlamaIndex."""

    name = "ollama"
    default_model = "llama3.2"
    default_endpoint = "http://localhost:11434"

    def _create_llm(self):
        from llama_index.llms.ollama import Ollama

        kwargs: dict[str, Any] = {}
        if self.settings.temperature is not None:
            kwargs["temperature"] = self.settings.temperature

        return Ollama(
            model=self.settings.model or self.default_model,
            base_url=self.settings.api_base or self.default_endpoint,
            request_timeout=self.settings.request_timeout,
            **kwargs,
        )

    def _encode_arguments(self, arguments: dict[str, Any]) -> Any:
        # Ollama expects a mapping, not a JSON string
        return arguments


class MockLLMProvider(LLMProvider):
    """Mock LLM provider for testing without API calls."""

    def __init__(self, settings: Optional[LLMSettings] = None) -> None:
        self.settings = settings
        self.call_history: list[dict[str, Any]] = []
        self._responses: list[Message] = []

    def set_next_response(self, response: Message) -> None:
        """Queue a response; queued responses are returned in order."""
        self._responses.append(response)

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[Tool] = ()
    ) -> Message:
        """Return mock response."""
        self.call_history.append({
            "messages": list(messages),
            "tools": list(tools),
        })

        if self._responses:
            return self._responses.pop(0)

        return Message.from_text(MessageRole.ASSISTANT, "This is a mock response.")


def create_llm_provider(settings: LLMSettings) -> LLMProvider:
    """
    Factory function to create appropriate LLM provider.

    Supports:
    - azure_openai: Azure OpenAI Service
    - openai: OpenAI API
    - ollama: local or remote Ollama server
    - mock: Mock provider for testing

    Args:
        settings: LLM configuration settings

    Returns:
        Configured LLM provider

    Raises:
        ValueError: If provider is not supported
    """
    providers = {
        "azure_openai": AzureOpenAIProvider,
        "openai": OpenAIProvider,
        "ollama": OllamaProvider,
        "mock": MockLLMProvider,
    }

    provider_class = providers.get(settings.provider)
    if not provider_class:
        raise ValueError(
            f"Unsupported LLM provider: {settings.provider}. "
            f"Supported: {list(providers.keys())}"
        )

    logger.info("Creating LLM provider", provider=settings.provider, model=settings.model)
    return provider_class(settings)
