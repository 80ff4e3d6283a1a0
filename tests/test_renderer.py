"""Tests for transcript rendering."""

import json

from shared.models import (
    FunctionCallContent,
    FunctionResultContent,
    Message,
    MessageRole,
    ReasoningContent,
    TextContent,
)
from orchestrator.renderer import (
    FUNCTION_CALL,
    FUNCTION_RESULT,
    PLAIN_TEXT,
    SOMETHING,
    THOUGHTS,
    USER_TEXT,
    render_message,
)


def tool_message(*results) -> Message:
    return Message(
        role=MessageRole.TOOL,
        contents=tuple(FunctionResultContent(call_id=f"c{i}", result=r) for i, r in enumerate(results))
    )


class TestRenderDispatch:
    """Tests for the rule order of render_message."""

    def test_plain_text_wins_over_function_call(self):
        """Test that any text renders as plain text, whatever else is present."""
        message = Message(role=MessageRole.ASSISTANT, contents=(
            TextContent(text="Hi"),
            FunctionCallContent(call_id="c1", name="get_forecast", arguments={"city": "Oslo"}),
        ))

        rendered = render_message(message)

        assert rendered == PLAIN_TEXT + "Hi"
        assert FUNCTION_CALL not in rendered

    def test_user_message_with_text_is_plain_text(self):
        """Test that the plain text rule also covers user messages."""
        rendered = render_message(Message.from_text(MessageRole.USER, "hello"))

        assert rendered.startswith(PLAIN_TEXT)

    def test_function_call_lists_arguments_on_one_line(self):
        """Test the function call block."""
        message = Message(role=MessageRole.ASSISTANT, contents=(
            FunctionCallContent(call_id="c1", name="get_forecast", arguments={"city": "Oslo", "days": 3}),
            FunctionCallContent(call_id="c2", name="list_events"),
        ))

        rendered = render_message(message)

        assert rendered == FUNCTION_CALL + "get_forecast(city: Oslo, days: 3)\nlist_events()\n"

    def test_function_result_extracts_content_text(self):
        """Test that the MCP content wrapper is unwrapped."""
        rendered = render_message(tool_message('{"content":[{"text":"42"}]}'))

        assert rendered == FUNCTION_RESULT + "42\n"

    def test_function_result_accepts_parsed_documents(self):
        """Test a result that is already a mapping."""
        rendered = render_message(tool_message({"content": [{"type": "text", "text": "sunny"}]}))

        assert "sunny" in rendered

    def test_malformed_function_result_falls_back(self):
        """Test that an unparseable result never raises."""
        rendered = render_message(tool_message("not json at all", '{"content": []}', None, 17))

        assert rendered.startswith(FUNCTION_RESULT)
        assert rendered.count("Content type: FunctionResultContent\n") == 4

    def test_deeply_nested_function_result_falls_back(self):
        """Test that a result too deep to decode renders its type name."""
        rendered = render_message(tool_message("[" * 100000 + "]" * 100000))

        assert rendered == FUNCTION_RESULT + "Content type: FunctionResultContent\n"

    def test_function_result_mixed_with_valid_lines(self):
        """Test one line per result, good and bad."""
        good = json.dumps({"content": [{"type": "text", "text": "ok"}]})
        rendered = render_message(tool_message(good, "{"))

        assert rendered == FUNCTION_RESULT + "ok\nContent type: FunctionResultContent\n"

    def test_tool_message_with_foreign_content(self):
        """Test that non-result contents fall back to their type name."""
        message = Message(role=MessageRole.TOOL, contents=(
            FunctionCallContent(call_id="c1", name="x"),
        ))

        assert render_message(message) == FUNCTION_RESULT + "Content type: FunctionCallContent\n"

    def test_user_text_block_for_empty_text(self):
        """Test the user text rule, reached only when the text is empty."""
        rendered = render_message(Message.from_text(MessageRole.USER, ""))

        assert rendered == USER_TEXT

    def test_generic_fallback(self):
        """Test the fallback for anything unmatched."""
        rendered = render_message(Message(role=MessageRole.SYSTEM, contents=()))

        assert rendered == SOMETHING + "system with 0 contents."

    def test_assistant_reasoning_only_uses_function_call_rule(self):
        """Test that reasoning-only assistant messages hit the function call rule first."""
        message = Message(role=MessageRole.ASSISTANT, contents=(ReasoningContent(text="hmm"),))

        rendered = render_message(message)

        assert "Content type: ReasoningContent\n" in rendered


class TestThoughtsQuirk:
    """
    Reasoning contents relabel the block as thoughts while the body keeps
    what the earlier rule produced. Kept for transcript compatibility.
    """

    def test_thoughts_relabel_and_append(self):
        """Test label replacement with body concatenation."""
        message = Message(role=MessageRole.ASSISTANT, contents=(
            ReasoningContent(text="think"),
            TextContent(text="Hi"),
        ))

        rendered = render_message(message)

        assert rendered == THOUGHTS + "Hi" + "think\n"
        assert PLAIN_TEXT not in rendered

    def test_multiple_reasoning_items_concatenate(self):
        """Test that every reasoning item is appended in order."""
        message = Message(role=MessageRole.ASSISTANT, contents=(
            ReasoningContent(text="first"),
            FunctionCallContent(call_id="c1", name="get_alerts"),
            ReasoningContent(text="second"),
        ))

        rendered = render_message(message)

        assert rendered == (
            THOUGHTS
            + "Content type: ReasoningContent\n"
            + "get_alerts()\n"
            + "Content type: ReasoningContent\n"
            + "first\nsecond\n"
        )

    def test_render_does_not_mutate(self):
        """Test that rendering leaves the message untouched."""
        message = Message(role=MessageRole.ASSISTANT, contents=(ReasoningContent(text="x"),))
        before = message.model_dump()

        render_message(message)

        assert message.model_dump() == before
