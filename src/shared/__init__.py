"""Shared models, configuration and logging for the MCP chat agent."""

from shared.models import (
    Content,
    FunctionCallContent,
    FunctionResultContent,
    Message,
    MessageRole,
    ReasoningContent,
    ServerInfo,
    TextContent,
    Tool,
)
from shared.config import MCPServerConfig, Settings, get_settings
from shared.logging import get_logger, setup_logging, turn_context

__all__ = [
    "Content",
    "FunctionCallContent",
    "FunctionResultContent",
    "Message",
    "MessageRole",
    "ReasoningContent",
    "ServerInfo",
    "TextContent",
    "Tool",
    "MCPServerConfig",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
    "turn_context",
]
