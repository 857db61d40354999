"""Tests for the bundled example provider."""

import pytest

from mcp_runtime.mcp.errors import InvalidArgumentError, MissingArgumentError
from mcp_runtime.mcp.features import McpFeatures, McpRequest
from mcp_runtime.mcp.parameters import Parameters
from mcp_runtime.mcp.registry import CapabilityRegistry
from mcp_runtime.providers.example import (
    complete_note,
    complete_style,
    count_handler,
    echo_handler,
    greeting_prompt,
    note_resource,
    ping_handler,
    register,
)


def make_request(session, arguments: dict, progress_token=None) -> McpRequest:
    return McpRequest(Parameters(arguments, "arguments"), McpFeatures(session, progress_token=progress_token))


class TestExampleHandlers:
    """Tests for example capability handlers."""

    async def test_ping_handler(self, session):
        """Test ping handler returns text content."""
        result = await ping_handler(make_request(session, {}))
        assert len(result) == 1
        assert result[0].type == "text"
        assert result[0].text == "pong"

    async def test_echo_handler_with_message(self, session):
        """Test echo handler with valid message."""
        result = await echo_handler(make_request(session, {"message": "Test message"}))
        assert result == "Echo: Test message"

    async def test_echo_handler_without_message(self, session):
        """Test echo handler without message raises a missing-argument error."""
        with pytest.raises(MissingArgumentError):
            await echo_handler(make_request(session, {}))

    async def test_count_stops_when_cancelled(self, session):
        request = make_request(session, {"to": 5})
        request.features.cancellation.cancel("stop")
        assert await count_handler(request) == "Cancelled at 0"

    async def test_count_defaults_to_three(self, session):
        assert await count_handler(make_request(session, {})) == "Counted to 3"

    @pytest.mark.parametrize("to", [0, -2])
    async def test_count_rejects_non_positive(self, session, to):
        with pytest.raises(InvalidArgumentError):
            await count_handler(make_request(session, {"to": to}))

    async def test_greeting_defaults(self, session):
        messages = await greeting_prompt(make_request(session, {}))
        assert messages[0].content.text == "Write a casual greeting for there."

    async def test_note_resource(self, session):
        contents = await note_resource(make_request(session, {"name": "usage"}))
        assert contents[0].mimeType == "text/markdown"

    async def test_completions(self, session):
        styles = await complete_style(make_request(session, {"argument": {"value": "p"}}))
        assert styles == ["pirate"]
        notes = await complete_note(make_request(session, {"argument": {"value": ""}}))
        assert notes.values == ["welcome", "usage"]


def test_register_tools():
    """Test that register adds every example capability."""
    registry = CapabilityRegistry()
    register(registry)
    assert registry.tool_count == 5
    assert registry.get_tool("example-ping") is not None
    assert registry.get_tool("example-echo") is not None
    assert registry.get_prompt("greeting") is not None
    assert registry.get_completion("greeting") is not None
    assert [t.uri for t in registry.list_resource_templates()] == ["example://notes/{name}"]
