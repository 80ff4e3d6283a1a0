"""Core data models for the MCP chat agent.

Messages are immutable once built: the conversation history only ever
grows by appending new messages, never by editing old ones.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class MessageRole(str, Enum):
    """Author of a message."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class TextContent(BaseModel):
    """Plain text."""
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class FunctionCallContent(BaseModel):
    """A request from the model to invoke a tool."""
    model_config = ConfigDict(frozen=True)

    type: Literal["function_call"] = "function_call"
    call_id: str = ""
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class FunctionResultContent(BaseModel):
    """
    The outcome of a tool invocation.

    `result` is opaque; for MCP tools it is the JSON text of a
    CallToolResult, i.e. ``{"content": [{"type": "text", "text": ...}]}``.
    """
    model_config = ConfigDict(frozen=True)

    type: Literal["function_result"] = "function_result"
    call_id: str = ""
    result: Any = None


class ReasoningContent(BaseModel):
    """Model thinking trace, advisory only."""
    model_config = ConfigDict(frozen=True)

    type: Literal["reasoning"] = "reasoning"
    text: str


Content = Annotated[
    Union[TextContent, FunctionCallContent, FunctionResultContent, ReasoningContent],
    Field(discriminator="type"),
]


class Message(BaseModel):
    """One turn in the conversation."""
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    contents: tuple[Content, ...] = ()

    @property
    def text(self) -> str:
        """Concatenated text of all plain text contents."""
        return "".join(c.text for c in self.contents if isinstance(c, TextContent))

    @classmethod
    def from_text(cls, role: MessageRole, text: str) -> "Message":
        """Build a single-text message."""
        return cls(role=role, contents=(TextContent(text=text),))

    @property
    def function_calls(self) -> list[FunctionCallContent]:
        return [c for c in self.contents if isinstance(c, FunctionCallContent)]


class ServerInfo(BaseModel):
    """Identity a tool server reports during the handshake."""
    name: str
    version: str = ""


class Tool(BaseModel):
    """
    A callable capability exposed by one tool server.

    The input schema is passed through to the chat backend untouched.
    Each tool keeps a handle on the connection that listed it, so it can
    only be invoked while that connection is alive.
    """
    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)
    server: str = ""

    _connection: Any = PrivateAttr(default=None)

    def bind(self, connection: Any) -> "Tool":
        """Attach the owning connection and return self."""
        self._connection = connection
        return self

    @property
    def is_bound(self) -> bool:
        return self._connection is not None

    async def invoke(self, arguments: Optional[dict[str, Any]] = None) -> Any:
        """Invoke the tool on its server and return the raw result."""
        if self._connection is None:
            raise RuntimeError(f"Tool '{self.name}' is not bound to a connection")
        return await self._connection.call_tool(self.name, arguments or {})

    def to_function_schema(self) -> dict[str, Any]:
        """Return the tool in OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema or {"type": "object", "properties": {}},
            },
        }
