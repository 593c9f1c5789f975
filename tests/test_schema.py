"""Tests for the message and tool-result data model."""

import json

import pytest
from pydantic import ValidationError

from tripflow.core.schema import (
    NO_OUTPUT,
    Message,
    Role,
    ToolCall,
    ToolResult,
)


def test_messages_are_immutable() -> None:
    """Messages cannot be modified after creation."""

    message = Message.user("hello")
    with pytest.raises(ValidationError):
        message.content = "changed"


def test_assistant_tool_calls_rendered_as_json_text() -> None:
    """Tool call arguments are serialised as JSON strings for the provider."""

    call = ToolCall(id="call_1", name="hotel_search", arguments={"city": "杭州"})
    data = Message.assistant("", [call]).to_llm_dict()

    function = data["tool_calls"][0]["function"]
    assert data["role"] == "assistant"
    assert function["name"] == "hotel_search"
    assert json.loads(function["arguments"]) == {"city": "杭州"}


def test_user_image_rendered_as_content_parts() -> None:
    """An attached image turns the content into text and image parts."""

    data = Message.user("what is this?", base64_image="aGVsbG8=").to_llm_dict()

    assert data["content"][0] == {"type": "text", "text": "what is this?"}
    assert data["content"][1]["image_url"]["url"] == "data:image/png;base64,aGVsbG8="

    image_only = Message.user("", base64_image="aGVsbG8=").to_llm_dict()
    assert [part["type"] for part in image_only["content"]] == ["image_url"]


def test_tool_message_links_call() -> None:
    """Tool messages carry the call id and tool name."""

    data = Message.tool("42", tool_call_id="call_7", name="calculator").to_llm_dict()
    assert data == {
        "role": "tool",
        "content": "42",
        "tool_call_id": "call_7",
        "name": "calculator",
    }
    assert Message.tool("x", "c", "n").role is Role.TOOL


def test_tool_result_text_precedence() -> None:
    """Output wins over error, error over the placeholder."""

    assert ToolResult.ok("out").text == "out"
    assert ToolResult.fail("bad").text == "bad"
    assert ToolResult().text == NO_OUTPUT
    assert ToolResult.ok("out", count=2).metadata == {"count": 2}
