"""Shared stubs for tool server and clock dependent tests."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from shared.config import MCPServerConfig
from shared.models import Tool
from mcp_client.client import MCPConnectionError, MCPProtocolError


class StubConnection:
    """In-memory stand-in for an MCP connection."""

    def __init__(self, config: MCPServerConfig, tool_names: list[str]) -> None:
        self.config = config
        self.name = config.name
        self.tool_names = tool_names
        self.closed = False
        self.calls: list[tuple[str, dict]] = []

    async def list_tools(self) -> list[Tool]:
        return [
            Tool(name=n, description=f"{n} tool", server=self.name).bind(self)
            for n in self.tool_names
        ]

    async def call_tool(self, name: str, arguments: dict) -> str:
        self.calls.append((name, arguments))
        return json.dumps({"content": [{"type": "text", "text": f"{name} done"}]})

    async def close(self) -> None:
        self.closed = True


class StubConnector:
    """Connector returning stub connections, with scripted failures."""

    def __init__(
        self,
        tools_by_server: dict[str, list[str]],
        failing: tuple[str, ...] = (),
        bad_listing: tuple[str, ...] = ()
    ) -> None:
        self.tools_by_server = tools_by_server
        self.failing = failing
        self.bad_listing = bad_listing
        self.connect_calls: list[str] = []
        self.connections: list[StubConnection] = []

    async def connect(self, config: MCPServerConfig) -> StubConnection:
        self.connect_calls.append(config.name)
        if config.name in self.failing:
            raise MCPConnectionError(f"connection refused by {config.name}")
        connection = StubConnection(config, self.tools_by_server.get(config.name, []))
        self.connections.append(connection)
        return connection

    async def list_tools(self, connection: StubConnection) -> list[Tool]:
        if connection.name in self.bad_listing:
            raise MCPProtocolError("unexpected tool descriptor")
        return await connection.list_tools()


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def server_configs() -> list[MCPServerConfig]:
    return [
        MCPServerConfig(name="weather", endpoint="http://weather.local/sse"),
        MCPServerConfig(name="calendar", endpoint="http://calendar.local/sse"),
        MCPServerConfig(name="files", endpoint="http://files.local/sse", enabled=False),
    ]


@pytest.fixture
def stub_connector() -> StubConnector:
    return StubConnector({
        "weather": ["get_forecast", "get_alerts"],
        "calendar": ["list_events"],
        "files": ["read_file"],
    })


@pytest.fixture
def make_connector():
    return StubConnector


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
