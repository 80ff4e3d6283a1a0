"""Tool Registry for MCP Client.

Holds the live tool server connections and the flattened list of tools
they expose. The registry state is an immutable snapshot that is swapped
in whole, so readers never see a half-built registry.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

from shared.config import MCPServerConfig
from shared.logging import get_logger
from shared.models import Tool
from mcp_client.client import MCPConnection, MCPConnectionError, MCPConnector, MCPProtocolError

logger = get_logger(__name__)


@dataclass(frozen=True)
class RegistrySnapshot:
    """Connections and tools from one initialization pass."""
    connections: tuple[MCPConnection, ...] = ()
    tools: tuple[Tool, ...] = ()


class ToolRegistry:
    """
    Authoritative list of tools available to the chat backend.

    Provides:
    - Full teardown (`reset`)
    - Connection to every enabled server (`initialize`)
    - Rebuild with an atomic swap (`rebuild`)
    """

    def __init__(self, connector: Optional[MCPConnector] = None) -> None:
        self.connector = connector or MCPConnector()
        self._snapshot = RegistrySnapshot()
        self._lock = asyncio.Lock()

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    def tools(self) -> tuple[Tool, ...]:
        """Current flattened tool list; empty when nothing is connected."""
        return self._snapshot.tools

    def connections(self) -> tuple[MCPConnection, ...]:
        return self._snapshot.connections

    async def reset(self) -> None:
        """Discard all connections and tools."""
        async with self._lock:
            old, self._snapshot = self._snapshot, RegistrySnapshot()
            await self._close_all(old.connections)
        logger.debug("Tool registry reset")

    async def initialize(self, server_configs: Sequence[MCPServerConfig]) -> None:
        """
        Connect to every enabled server and collect their tools.

        Failing servers are logged and skipped; initialization never aborts.
        The previous snapshot is replaced without closing its connections,
        so call `reset` first or use `rebuild`.
        """
        async with self._lock:
            self._snapshot = await self._build(server_configs)

    async def rebuild(self, server_configs: Sequence[MCPServerConfig]) -> None:
        """Build a fresh snapshot, swap it in, then close the old connections."""
        async with self._lock:
            snapshot = await self._build(server_configs)
            old, self._snapshot = self._snapshot, snapshot
            await self._close_all(old.connections)

    async def _build(self, server_configs: Sequence[MCPServerConfig]) -> RegistrySnapshot:
        enabled = [s for s in server_configs if s.enabled]
        for server in enabled:
            logger.info("Adding MCP server", server=server.name)

        # Connections are independent; results come back in config order.
        results = await asyncio.gather(
            *(self._connect(server) for server in enabled)
        )
        connections = [c for c in results if c is not None]

        tools: list[Tool] = []
        live: list[MCPConnection] = []
        for connection in connections:
            try:
                server_tools = await self.connector.list_tools(connection)
            except (MCPProtocolError, MCPConnectionError) as e:
                logger.error(
                    "Failed to list tools",
                    server=connection.name,
                    error=str(e)
                )
                await connection.close()
                continue
            live.append(connection)
            tools.extend(server_tools)

        logger.info(
            "Tool registry initialized",
            server_count=len(live),
            tool_count=len(tools)
        )
        return RegistrySnapshot(connections=tuple(live), tools=tuple(tools))

    async def _connect(self, server: MCPServerConfig) -> Optional[MCPConnection]:
        try:
            return await self.connector.connect(server)
        except MCPConnectionError as e:
            logger.error(
                "Failed to create MCP client",
                server=server.name,
                endpoint=server.endpoint,
                error=str(e)
            )
            return None

    async def _close_all(self, connections: Sequence[MCPConnection]) -> None:
        for connection in connections:
            await connection.close()
