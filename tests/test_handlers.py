"""Tests for MCP method dispatch."""

import asyncio
import json

import pytest

from mcp_runtime.mcp.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    RESOURCE_NOT_FOUND,
    McpError,
)
from mcp_runtime.mcp.features import LogLevel
from mcp_runtime.mcp.handlers import LATEST_PROTOCOL_VERSION, MCPHandlers
from mcp_runtime.mcp.models import CompletionResult, ToolCallResult, TextContent
from mcp_runtime.mcp.registry import get_registry

INIT_PARAMS = {
    "protocolVersion": "2025-03-26",
    "capabilities": {"sampling": {}, "roots": {"listChanged": True}},
    "clientInfo": {"name": "test", "version": "1.0"},
}


class TestLifecycle:
    """Tests for initialize and ping."""

    async def test_initialize_records_client_state(self, handlers, session):
        result, error = await handlers.dispatch("initialize", INIT_PARAMS, session, 1)
        assert error is None
        assert result["protocolVersion"] == "2025-03-26"
        assert result["serverInfo"]["name"] == handlers.settings.server_name
        assert session.supports_sampling
        assert session.supports_roots
        assert session.protocol_version == "2025-03-26"

    async def test_initialize_advertises_capabilities(self, handlers, session):
        result, _ = await handlers.dispatch("initialize", INIT_PARAMS, session, 1)
        capabilities = result["capabilities"]
        assert "logging" in capabilities
        assert "completions" in capabilities
        assert "tools" in capabilities
        assert "prompts" in capabilities
        assert capabilities["resources"]["subscribe"] is True

    async def test_empty_catalog_omits_capabilities(self, registry, settings, session):
        result, _ = await MCPHandlers(registry, settings).dispatch("initialize", INIT_PARAMS, session, 1)
        assert "tools" not in result["capabilities"]
        assert "resources" not in result["capabilities"]

    async def test_unknown_version_gets_latest(self, handlers, session):
        params = dict(INIT_PARAMS, protocolVersion="1999-01-01")
        result, _ = await handlers.dispatch("initialize", params, session, 1)
        assert result["protocolVersion"] == LATEST_PROTOCOL_VERSION

    async def test_initialized_notification(self, handlers, session):
        result, error = await handlers.dispatch("notifications/initialized", {}, session)
        assert result is None and error is None
        assert session.initialized

    async def test_ping(self, handlers, session):
        assert await handlers.dispatch("ping", {}, session, 1) == ({}, None)

    async def test_unknown_method(self, handlers, session):
        result, error = await handlers.dispatch("nope/nothing", {}, session, 1)
        assert result is None
        assert error["code"] == METHOD_NOT_FOUND


class TestTools:
    """Tests for tools/list and tools/call."""

    async def test_list_hides_annotations_for_old_protocol(self, handlers, session):
        await handlers.dispatch("initialize", dict(INIT_PARAMS, protocolVersion="2024-11-05"), session, 1)
        result, _ = await handlers.dispatch("tools/list", {}, session, 2)
        ping = next(t for t in result["tools"] if t["name"] == "example-ping")
        assert "annotations" not in ping

    async def test_list_shows_annotations_for_new_protocol(self, handlers, session):
        await handlers.dispatch("initialize", INIT_PARAMS, session, 1)
        result, _ = await handlers.dispatch("tools/list", {}, session, 2)
        ping = next(t for t in result["tools"] if t["name"] == "example-ping")
        assert ping["annotations"]["readOnlyHint"] is True
        assert "nextCursor" not in result

    async def test_list_pagination(self, registry, settings, session):
        async def tool(request):
            return "x"

        for i in range(5):
            registry.register_tool(f"tool-{i}", "d", tool)
        handlers = MCPHandlers(registry, settings.model_copy(update={"tools_page_size": 2}))

        names = []
        cursor = None
        pages = 0
        while True:
            params = {} if cursor is None else {"cursor": cursor}
            result, error = await handlers.dispatch("tools/list", params, session, 1)
            assert error is None
            names.extend(t["name"] for t in result["tools"])
            pages += 1
            cursor = result.get("nextCursor")
            if cursor is None:
                break
        assert names == [f"tool-{i}" for i in range(5)]
        assert pages == 3

    async def test_bad_cursor(self, handlers, session):
        _, error = await handlers.dispatch("tools/list", {"cursor": "zzz"}, session, 1)
        assert error["code"] == INVALID_PARAMS

    async def test_call_returns_content(self, handlers, session):
        result, error = await handlers.dispatch(
            "tools/call", {"name": "example-echo", "arguments": {"message": "hi"}}, session, 1
        )
        assert error is None
        assert result == {"content": [{"type": "text", "text": "Echo: hi"}], "isError": False}

    async def test_call_missing_argument(self, handlers, session):
        _, error = await handlers.dispatch(
            "tools/call", {"name": "example-echo", "arguments": {}}, session, 1
        )
        assert error["code"] == INVALID_PARAMS
        assert "message" in error["message"]

    async def test_call_missing_name(self, handlers, session):
        _, error = await handlers.dispatch("tools/call", {}, session, 1)
        assert error == {"code": INVALID_PARAMS, "message": "Missing required argument: name"}

    async def test_call_unknown_tool(self, handlers, session):
        _, error = await handlers.dispatch("tools/call", {"name": "ghost"}, session, 1)
        assert error["code"] == INVALID_PARAMS
        assert "ghost" in error["message"]

    async def test_tool_call_result_passthrough(self, registry, settings, session):
        async def failing(request):
            return ToolCallResult(content=[TextContent(text="nope")], isError=True)

        registry.register_tool("failing", "d", failing)
        result, _ = await MCPHandlers(registry, settings).dispatch(
            "tools/call", {"name": "failing"}, session, 1
        )
        assert result["isError"] is True

    async def test_protocol_error_from_handler(self, registry, settings, session):
        async def refusing(request):
            raise McpError("Quota exceeded", -32001)

        registry.register_tool("refusing", "d", refusing)
        _, error = await MCPHandlers(registry, settings).dispatch(
            "tools/call", {"name": "refusing"}, session, 1
        )
        assert error == {"code": -32001, "message": "Quota exceeded"}

    async def test_unexpected_error_is_hidden(self, registry, settings, session):
        async def crashing(request):
            raise RuntimeError("secret database password")

        registry.register_tool("crashing", "d", crashing)
        _, error = await MCPHandlers(registry, settings).dispatch(
            "tools/call", {"name": "crashing"}, session, 1
        )
        assert error["code"] == INTERNAL_ERROR
        assert "secret" not in error["message"]

    async def test_handler_sees_security_and_meta(self, registry, settings, session):
        seen = {}

        async def inspect(request):
            seen["security"] = request.security
            seen["token"] = request.features.progress.token
            seen["id"] = request.request_id
            seen["arg"] = request.parameters.get("x").as_integer()
            return []

        registry.register_tool("inspect", "d", inspect)
        await MCPHandlers(registry, settings).dispatch(
            "tools/call",
            {"name": "inspect", "arguments": {"x": 3}, "_meta": {"progressToken": "p1"}},
            session,
            7,
            security="Bearer abc",
        )
        assert seen == {"security": "Bearer abc", "token": "p1", "id": 7, "arg": 3}

    async def test_progress_notifications(self, handlers, session, outbox):
        result, _ = await handlers.dispatch(
            "tools/call",
            {"name": "example-count", "arguments": {"to": 3}, "_meta": {"progressToken": 5}},
            session,
            1,
        )
        assert result["content"][0]["text"] == "Counted to 3"
        progress = [m for m in outbox(session) if m["method"] == "notifications/progress"]
        assert [m["params"]["progress"] for m in progress] == [1, 2, 3]
        assert all(m["params"]["progressToken"] == 5 for m in progress)

    async def test_cancellation_reaches_running_handler(self, registry, settings, session):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow(request):
            started.set()
            await release.wait()
            result = request.features.cancellation.result()
            return f"{result.is_requested}:{result.reason}:{result.payload}"

        registry.register_tool("slow", "d", slow)
        handlers = MCPHandlers(registry, settings)
        task = asyncio.create_task(handlers.dispatch("tools/call", {"name": "slow"}, session, 9))
        await started.wait()
        await handlers.dispatch(
            "notifications/cancelled", {"requestId": 9, "reason": "user abort"}, session
        )
        release.set()
        result, _ = await task
        assert result["content"][0]["text"] == "True:user abort:9"
        # Finished requests are no longer cancellable
        assert session.cancel_request(9, "late") is False

    async def test_sampling_through_tool(self, handlers, session, outbox):
        await handlers.dispatch("initialize", INIT_PARAMS, session, 1)
        task = asyncio.create_task(
            handlers.dispatch("tools/call", {"name": "example-summarize", "arguments": {"text": "long"}}, session, 2)
        )
        event = await asyncio.wait_for(session.queue.get(), timeout=1)
        outbound = json.loads(event["data"])
        assert outbound["method"] == "sampling/createMessage"
        session.deliver_response(
            {
                "jsonrpc": "2.0",
                "id": outbound["id"],
                "result": {
                    "role": "assistant",
                    "content": {"type": "text", "text": "short"},
                    "model": "m",
                },
            }
        )
        result, error = await asyncio.wait_for(task, timeout=1)
        assert error is None
        assert result["content"][0]["text"] == "short"

    async def test_sampling_unsupported_by_client(self, handlers, session):
        _, error = await handlers.dispatch(
            "tools/call", {"name": "example-summarize", "arguments": {"text": "x"}}, session, 1
        )
        assert "not supported" in error["message"]


class TestPrompts:
    async def test_list(self, handlers, session):
        result, _ = await handlers.dispatch("prompts/list", {}, session, 1)
        assert [p["name"] for p in result["prompts"]] == ["greeting"]

    async def test_get(self, handlers, session):
        result, error = await handlers.dispatch(
            "prompts/get", {"name": "greeting", "arguments": {"name": "Ada", "style": "formal"}}, session, 1
        )
        assert error is None
        assert result["description"] == "Writes a greeting for someone."
        assert result["messages"][0] == {
            "role": "user",
            "content": {"type": "text", "text": "Write a formal greeting for Ada."},
        }
        assert result["messages"][1]["role"] == "assistant"

    async def test_string_result_becomes_user_message(self, registry, settings, session):
        async def plain(request):
            return "Just text"

        registry.register_prompt("plain", "d", plain)
        result, _ = await MCPHandlers(registry, settings).dispatch("prompts/get", {"name": "plain"}, session, 1)
        assert result["messages"] == [{"role": "user", "content": {"type": "text", "text": "Just text"}}]

    async def test_unknown_prompt(self, handlers, session):
        _, error = await handlers.dispatch("prompts/get", {"name": "ghost"}, session, 1)
        assert error["code"] == INVALID_PARAMS


class TestResources:
    """Tests for resources and templates."""

    async def test_list(self, handlers, session):
        result, _ = await handlers.dispatch("resources/list", {}, session, 1)
        assert result["resources"] == [
            {
                "uri": "example://readme",
                "name": "readme",
                "description": "About this server",
                "mimeType": "text/plain",
            }
        ]

    async def test_templates_list(self, handlers, session):
        result, _ = await handlers.dispatch("resources/templates/list", {}, session, 1)
        assert [t["uriTemplate"] for t in result["resourceTemplates"]] == ["example://notes/{name}"]

    async def test_read_static_string_result(self, handlers, session):
        result, error = await handlers.dispatch("resources/read", {"uri": "example://readme"}, session, 1)
        assert error is None
        assert result["contents"] == [
            {
                "uri": "example://readme",
                "mimeType": "text/plain",
                "text": "This server exposes example tools, prompts and resources.",
            }
        ]

    async def test_read_template(self, handlers, session):
        result, error = await handlers.dispatch("resources/read", {"uri": "example://notes/welcome"}, session, 1)
        assert error is None
        contents = result["contents"][0]
        assert contents["uri"] == "example://notes/welcome"
        assert contents["mimeType"] == "text/markdown"
        assert contents["text"] == "Welcome to the example provider."

    async def test_read_unknown(self, handlers, session):
        _, error = await handlers.dispatch("resources/read", {"uri": "example://nothing/here/at/all"}, session, 1)
        assert error["code"] == RESOURCE_NOT_FOUND

    async def test_read_missing_uri(self, handlers, session):
        _, error = await handlers.dispatch("resources/read", {}, session, 1)
        assert error["code"] == INVALID_PARAMS

    async def test_subscribe_runs_hooks_and_loop(self, registry, settings, session, outbox):
        calls = []

        async def on_subscribe(request):
            calls.append(("subscribe", request.parameters.get("uri").as_string()))

        async def on_unsubscribe(request):
            calls.append(("unsubscribe", request.parameters.get("uri").as_string()))

        registry.register_resource("x://live", "live", "d", on_subscribe)
        registry.register_subscriber("x://live", on_subscribe)
        registry.register_unsubscriber("x://live", on_unsubscribe)
        handlers = MCPHandlers(registry, settings)

        assert await handlers.dispatch("resources/subscribe", {"uri": "x://live"}, session, 1) == ({}, None)
        assert session.subscriptions.is_active("x://live")
        await asyncio.sleep(0.12)
        updates = [m for m in outbox(session) if m["method"] == "notifications/resources/updated"]
        assert len(updates) >= 2
        assert updates[0]["params"] == {"uri": "x://live"}

        # Subscribing again keeps the running loop
        await handlers.dispatch("resources/subscribe", {"uri": "x://live"}, session, 2)

        assert await handlers.dispatch("resources/unsubscribe", {"uri": "x://live"}, session, 3) == ({}, None)
        assert not session.subscriptions.is_active("x://live")
        assert calls == [
            ("subscribe", "x://live"),
            ("subscribe", "x://live"),
            ("unsubscribe", "x://live"),
        ]


class TestCompletion:
    """Tests for completion/complete."""

    async def test_prompt_completion(self, handlers, session):
        result, _ = await handlers.dispatch(
            "completion/complete",
            {"ref": {"type": "ref/prompt", "name": "greeting"}, "argument": {"name": "style", "value": "f"}},
            session,
            1,
        )
        assert result == {"completion": {"values": ["formal", "friendly"], "total": 2, "hasMore": False}}

    async def test_resource_completion(self, handlers, session):
        result, _ = await handlers.dispatch(
            "completion/complete",
            {
                "ref": {"type": "ref/resource", "uri": "example://notes/{name}"},
                "argument": {"name": "name", "value": "w"},
            },
            session,
            1,
        )
        assert result["completion"]["values"] == ["welcome"]

    async def test_unknown_reference_is_empty(self, handlers, session):
        result, error = await handlers.dispatch(
            "completion/complete",
            {"ref": {"type": "ref/prompt", "name": "ghost"}, "argument": {"name": "a", "value": ""}},
            session,
            1,
        )
        assert error is None
        assert result == {"completion": {"values": [], "total": 0, "hasMore": False}}

    async def test_results_are_capped(self, registry, settings, session):
        async def many(request):
            return [f"v{i}" for i in range(150)]

        registry.register_completion("big", many)
        result, _ = await MCPHandlers(registry, settings).dispatch(
            "completion/complete", {"ref": {"type": "ref/prompt", "name": "big"}}, session, 1
        )
        completion = result["completion"]
        assert len(completion["values"]) == 100
        assert completion["total"] == 150
        assert completion["hasMore"] is True

    async def test_handler_built_result_is_capped(self, registry, settings, session):
        async def built(request):
            return CompletionResult(values=[f"v{i}" for i in range(120)])

        registry.register_completion("built", built)
        result, _ = await MCPHandlers(registry, settings).dispatch(
            "completion/complete", {"ref": {"type": "ref/prompt", "name": "built"}}, session, 1
        )
        assert result["completion"]["values"] == [f"v{i}" for i in range(100)]
        assert result["completion"]["total"] == 120
        assert result["completion"]["hasMore"] is True

    def test_completion_result_of(self):
        assert CompletionResult.of(["a"]).to_json() == {
            "completion": {"values": ["a"], "total": 1, "hasMore": False}
        }


class TestLoggingAndNotifications:
    async def test_set_level(self, handlers, session):
        assert await handlers.dispatch("logging/setLevel", {"level": "warning"}, session, 1) == ({}, None)
        assert session.log_level == LogLevel.WARNING

    async def test_set_invalid_level(self, handlers, session):
        _, error = await handlers.dispatch("logging/setLevel", {"level": "loud"}, session, 1)
        assert error["code"] == INVALID_PARAMS
        assert session.log_level == LogLevel.INFO

    async def test_roots_list_changed_marks_stale(self, handlers, session):
        session.update_roots([])
        assert not session.roots_stale
        await handlers.dispatch("notifications/roots/list_changed", {}, session)
        assert session.roots_stale

    async def test_cancel_unknown_request_is_ignored(self, handlers, session):
        result, error = await handlers.dispatch(
            "notifications/cancelled", {"requestId": 404, "reason": "x"}, session
        )
        assert result is None and error is None


@pytest.mark.parametrize("method", [
    "initialize", "ping", "tools/list", "tools/call", "prompts/list", "prompts/get",
    "resources/list", "resources/read", "resources/templates/list", "resources/subscribe",
    "resources/unsubscribe", "completion/complete", "logging/setLevel",
    "notifications/initialized", "notifications/cancelled", "notifications/roots/list_changed",
])
def test_every_protocol_method_is_routed(method):
    assert method in MCPHandlers(get_registry()).methods
