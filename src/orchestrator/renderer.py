"""Turn rendering for the operator transcript.

Maps one message to an annotated, human-readable block. Rendering is
pure and never fails: anything it cannot interpret degrades to a line
naming the content type.
"""

import json
from typing import Any

from shared.logging import get_logger
from shared.models import (
    Content,
    FunctionCallContent,
    FunctionResultContent,
    Message,
    MessageRole,
    ReasoningContent,
    TextContent,
)
from mcp_client.client import MCPProtocolError

logger = get_logger(__name__)


PLAIN_TEXT = "-------------------- Plain text ----------------------------\n"
FUNCTION_CALL = "-------------------- Function call -------------------------\n"
FUNCTION_RESULT = "-------------------- Function result -----------------------\n"
USER_TEXT = "-------------------- User text -------------------------\n"
ASSISTANT_REASONING = "-------------------- Assistant reasoning -------------------------\n"
SOMETHING = "-------------------- Something -----------------------------\n"
THOUGHTS = "-------------------- Thoughts -------------------------\n"


def format_arguments(arguments: dict[str, Any] | None) -> str:
    """Render a mapping as ``key: value, key: value``."""
    if not arguments:
        return ""
    return ", ".join(f"{key}: {value}" for key, value in arguments.items())


def content_type_line(content: Content) -> str:
    return f"Content type: {type(content).__name__}\n"


def extract_result_text(result: Any) -> str:
    """
    Pull ``content[0].text`` out of an MCP tool result.

    Raises:
        MCPProtocolError: If the result does not have that shape
    """
    try:
        if isinstance(result, (dict, list)):
            document = result
        else:
            document = json.loads(result if result is not None else "{}")
        text = document["content"][0]["text"]
    # RecursionError: json.loads on deeply nested documents
    except (ValueError, TypeError, KeyError, IndexError, RecursionError) as e:
        raise MCPProtocolError(f"Malformed function result: {e}") from e
    if not isinstance(text, str):
        raise MCPProtocolError("Function result text is not a string")
    return text


def _render_call(content: Content) -> str:
    if isinstance(content, FunctionCallContent):
        return f"{content.name}({format_arguments(content.arguments)})\n"
    return content_type_line(content)


def _render_result(content: Content) -> str:
    if not isinstance(content, FunctionResultContent):
        return content_type_line(content)
    try:
        return f"{extract_result_text(content.result)}\n"
    except MCPProtocolError as e:
        logger.debug("Falling back on function result rendering", error=str(e))
        return content_type_line(content)


def render_message(message: Message) -> str:
    """
    Render a message for the transcript log.

    The first matching rule decides the block:
    plain text, function call, function result, user text,
    assistant reasoning, or a generic fallback. Reasoning contents then
    relabel the block as thoughts.
    """
    contents = message.contents
    text = message.text

    if text:
        label, body = PLAIN_TEXT, text
    elif message.role == MessageRole.ASSISTANT:
        label, body = FUNCTION_CALL, "".join(_render_call(c) for c in contents)
    elif message.role == MessageRole.TOOL:
        label, body = FUNCTION_RESULT, "".join(_render_result(c) for c in contents)
    elif (
        message.role == MessageRole.USER
        and len(contents) == 1
        and isinstance(contents[0], TextContent)
    ):
        label, body = USER_TEXT, contents[0].text
    elif (
        message.role == MessageRole.ASSISTANT
        and contents
        and isinstance(contents[0], ReasoningContent)
    ):
        # Shadowed by the function call rule; kept so the order stays explicit.
        label, body = ASSISTANT_REASONING, contents[0].text
    else:
        label, body = SOMETHING, f"{message.role.value} with {len(contents)} contents."

    # Compatibility quirk: thoughts replace the label but extend the body.
    for content in contents:
        if isinstance(content, ReasoningContent):
            label = THOUGHTS
            body += content.text + "\n"

    return label + body
