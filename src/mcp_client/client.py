"""MCP Client for tool server connections.

Opens sessions to remote MCP tool servers, lists their tools and invokes
them. Each connection's transport runs in its own task so the connection
can be closed later from whatever task triggers a reconnect.
"""

import asyncio
from contextlib import AsyncExitStack, suppress
from datetime import timedelta
from typing import Any, AsyncContextManager, Optional

from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.shared.exceptions import McpError
from pydantic import ValidationError

from shared.config import MCPServerConfig
from shared.logging import get_logger
from shared.models import ServerInfo, Tool

logger = get_logger(__name__)


class MCPClientError(Exception):
    """Base exception for MCP Client errors."""
    pass


class MCPConnectionError(MCPClientError):
    """Connection to an MCP server failed."""
    pass


class MCPProtocolError(MCPClientError):
    """An MCP server response could not be parsed."""
    pass


class MCPConnection:
    """
    A live session with one tool server.

    Created by `MCPConnector.connect`; the transport stays open until
    `close` is called or the server drops the stream.
    """

    def __init__(
        self,
        config: MCPServerConfig,
        session: Optional[ClientSession] = None,
        server_info: Optional[ServerInfo] = None
    ) -> None:
        self.config = config
        self.session = session
        self.server_info = server_info
        self._closing = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        """Configured server name."""
        return self.config.name

    @property
    def endpoint(self) -> str:
        return self.config.endpoint

    @property
    def is_connected(self) -> bool:
        return self.session is not None

    def _require_session(self) -> ClientSession:
        if self.session is None:
            raise MCPConnectionError(f"MCP server '{self.name}' is not connected")
        return self.session

    async def list_tools(self) -> list[Tool]:
        """
        List the tools exposed by this server.

        Returns:
            Tools in server order, bound to this connection

        Raises:
            MCPConnectionError: If the connection is closed
            MCPProtocolError: If the listing cannot be parsed
        """
        session = self._require_session()
        try:
            result = await session.list_tools()
            tools = [
                Tool(
                    name=t.name,
                    description=t.description or "",
                    input_schema=t.inputSchema,
                    server=self.name
                ).bind(self)
                for t in result.tools
            ]
        except (McpError, ValidationError, AttributeError, TypeError) as e:
            raise MCPProtocolError(
                f"Invalid tool listing from MCP server '{self.name}': {e}"
            ) from e

        logger.info(
            "Tools available",
            server=self.server_info.name if self.server_info else self.name,
            tools=[t.name for t in tools]
        )
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        """
        Invoke a tool on this server.

        Returns:
            JSON text of the MCP CallToolResult
        """
        session = self._require_session()
        logger.debug("Calling tool", server=self.name, tool=name)
        try:
            result = await session.call_tool(name, arguments)
        except McpError as e:
            raise MCPClientError(f"Tool '{name}' failed on '{self.name}': {e}") from e
        return result.model_dump_json(by_alias=True, exclude_none=True)

    async def close(self, timeout: float = 5.0) -> None:
        """Close the session and its transport. Safe to call repeatedly."""
        self._closing.set()
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("MCP connection did not close in time", server=self.name)

    async def abort(self) -> None:
        """Cancel the connection task without waiting for a graceful close."""
        self._closing.set()
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


class MCPConnector:
    """
    Establishes connections to MCP tool servers.

    Stateless apart from its timeouts; the registry owns the connections
    it creates.
    """

    def __init__(
        self,
        connect_timeout: float = 30.0,
        read_timeout: timedelta = timedelta(hours=24)
    ) -> None:
        """
        Initialize the connector.

        Args:
            connect_timeout: Seconds allowed for the HTTP connect and the
                MCP initialize handshake
            read_timeout: How long an idle event stream may stay silent
        """
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

    def _transport(self, config: MCPServerConfig) -> AsyncContextManager[tuple]:
        """Open the transport streams for a server."""
        if config.transport == "streamable_http":
            return streamablehttp_client(
                config.endpoint,
                timeout=self.connect_timeout,
                sse_read_timeout=self.read_timeout.total_seconds()
            )
        return sse_client(
            config.endpoint,
            timeout=self.connect_timeout,
            sse_read_timeout=self.read_timeout.total_seconds()
        )

    async def _serve(self, connection: MCPConnection, ready: asyncio.Future) -> None:
        """Hold the transport and session open until the connection closes."""
        try:
            async with AsyncExitStack() as stack:
                streams = await stack.enter_async_context(self._transport(connection.config))
                read, write = streams[0], streams[1]
                session = await stack.enter_async_context(ClientSession(read, write))
                init = await session.initialize()

                connection.session = session
                connection.server_info = ServerInfo(
                    name=init.serverInfo.name,
                    version=init.serverInfo.version or ""
                )
                if not ready.done():
                    ready.set_result(None)

                await connection._closing.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.warning(
                    "MCP connection terminated",
                    server=connection.name,
                    error=str(e)
                )
        finally:
            connection.session = None
            if not ready.done():
                ready.set_exception(MCPConnectionError("Connection task cancelled"))

    async def connect(self, config: MCPServerConfig) -> MCPConnection:
        """
        Connect to a tool server and perform the MCP handshake.

        Args:
            config: Server descriptor

        Returns:
            Live connection

        Raises:
            MCPConnectionError: On transport failure, handshake rejection,
                protocol mismatch or timeout
        """
        logger.info("Creating MCP client", server=config.name, endpoint=config.endpoint)

        connection = MCPConnection(config)
        ready = asyncio.get_running_loop().create_future()
        connection._task = asyncio.create_task(
            self._serve(connection, ready),
            name=f"mcp-connection:{config.name}"
        )

        try:
            await asyncio.wait_for(ready, timeout=self.connect_timeout)
        except asyncio.TimeoutError as e:
            await connection.abort()
            raise MCPConnectionError(
                f"Timed out connecting to MCP server '{config.name}' at {config.endpoint}"
            ) from e
        except MCPConnectionError:
            await connection.close()
            raise
        except Exception as e:
            await connection.close()
            raise MCPConnectionError(
                f"Cannot connect to MCP server '{config.name}' at {config.endpoint}: {e}"
            ) from e

        logger.info(
            "Client connected to server",
            server=connection.server_info.name,
            version=connection.server_info.version
        )
        return connection

    async def list_tools(self, connection: MCPConnection) -> list[Tool]:
        """List the tools of a connected server."""
        return await connection.list_tools()
