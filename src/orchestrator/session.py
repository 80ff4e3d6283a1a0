"""Session Orchestrator - Core conversation logic.

The orchestrator coordinates:
- Conversation history for one logical session
- Tool server reconnection after idle periods
- Chat backend calls with the current tool list
- Transcript logging of every produced message

Methods on one instance are not safe to call concurrently; callers
serialize them (the HTTP gateway holds a lock per session).
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Sequence

from shared.config import DEFAULT_SYSTEM_PROMPT, MCPServerConfig
from shared.logging import get_logger
from shared.models import Message, MessageRole
from mcp_client.registry import ToolRegistry
from orchestrator.backend import ChatBackend
from orchestrator.renderer import render_message

logger = get_logger(__name__)


NEVER = datetime.min.replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionOrchestrator:
    """
    Single entry point that drives a conversation turn.

    Tool server connections are rebuilt proactively whenever more than
    `idle_reconnect` has passed since the last turn, since remote servers
    may drop idle connections.
    """

    def __init__(
        self,
        backend: ChatBackend,
        registry: ToolRegistry,
        server_configs: Sequence[MCPServerConfig] = (),
        system_prompt: Optional[str] = None,
        idle_reconnect: timedelta = timedelta(minutes=2),
        clock: Callable[[], datetime] = utc_now
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            backend: Chat backend producing the messages of a turn
            registry: Tool registry shared with nobody else
            server_configs: Tool servers, in the order their tools are offered
            system_prompt: Default instruction for new sessions
            idle_reconnect: Idle gap after which tool servers are reconnected
            clock: Source of the current UTC time
        """
        self.backend = backend
        self.registry = registry
        self.server_configs = list(server_configs)
        self.system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        self.idle_reconnect = idle_reconnect
        self.clock = clock

        self._history: list[Message] = []
        self.last_activity = NEVER
        self.new_session()

    @property
    def history(self) -> tuple[Message, ...]:
        return tuple(self._history)

    def new_session(self, system_prompt: Optional[str] = None) -> None:
        """
        Start over with only the system instruction in history.

        The next `send` reconnects the tool servers.
        """
        prompt = system_prompt or self.system_prompt
        self._history = [Message.from_text(MessageRole.SYSTEM, prompt)]
        self.last_activity = NEVER
        logger.info("New session started")

    def is_stale(self) -> bool:
        """Whether the idle gap since the last turn exceeds the threshold."""
        return self.clock() - self.last_activity > self.idle_reconnect

    async def reconnect_tools(self) -> None:
        """Tear down all tool server connections and connect again."""
        await self.registry.rebuild(self.server_configs)
        self.last_activity = self.clock()

    async def send(self, user_text: str) -> str:
        """
        Run one turn.

        Args:
            user_text: The user's message

        Returns:
            Text of the last message the backend produced ("" if it has none)

        Raises:
            BackendError: If the chat backend fails; the user message stays
                in history
        """
        if self.is_stale():
            logger.info("Reinitializing MCP clients due to inactivity")
            await self.reconnect_tools()

        self._history.append(Message.from_text(MessageRole.USER, user_text))
        logger.info("User message", text=user_text)

        new_messages = await self.backend.complete(self.history, self.registry.tools())

        for message in new_messages:
            logger.info("Backend message", role=message.role.value, rendered=render_message(message))

        self._history.extend(new_messages)
        self.last_activity = self.clock()

        if not new_messages:
            return ""
        return new_messages[-1].text

    def stats(self) -> dict[str, Any]:
        """Get session statistics."""
        return {
            "history_length": len(self._history),
            "tool_count": len(self.registry.tools()),
            "server_count": len(self.registry.connections()),
            "last_activity": None if self.last_activity == NEVER else self.last_activity.isoformat(),
        }
