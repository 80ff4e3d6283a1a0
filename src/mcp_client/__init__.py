"""MCP Client - Tool server connections and tool registry.

Connects to remote MCP tool servers, lists their tools and keeps the
flattened tool list the chat backend is offered on every turn.
"""

from mcp_client.client import (
    MCPClientError,
    MCPConnection,
    MCPConnectionError,
    MCPConnector,
    MCPProtocolError,
)
from mcp_client.registry import RegistrySnapshot, ToolRegistry

__all__ = [
    "MCPClientError",
    "MCPConnection",
    "MCPConnectionError",
    "MCPConnector",
    "MCPProtocolError",
    "RegistrySnapshot",
    "ToolRegistry",
]
