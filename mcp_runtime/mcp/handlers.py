"""MCP method handlers for JSON-RPC requests."""

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from mcp_runtime.config.loader import Settings, get_settings
from mcp_runtime.mcp.cancellation import Cancellation
from mcp_runtime.mcp.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    InvalidArgumentError,
    McpError,
    ResourceNotFoundError,
    make_error_data,
)
from mcp_runtime.mcp.features import LogLevel, McpFeatures, McpRequest
from mcp_runtime.mcp.models import (
    BlobResourceContents,
    CompletionResult,
    InitializeParams,
    InitializeResult,
    ListResult,
    McpModel,
    PromptMessage,
    ServerInfo,
    TextContent,
    TextResourceContents,
    ToolCallResult,
)
from mcp_runtime.mcp.pagination import Paginator
from mcp_runtime.mcp.parameters import Parameters
from mcp_runtime.mcp.registry import CapabilityRegistry, Handler
from mcp_runtime.mcp.session import McpSession

logger = logging.getLogger(__name__)

# MCP protocol versions we support, oldest first
SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26", "2025-06-18")
LATEST_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[-1]


def negotiate_protocol_version(requested: str | None) -> str:
    """Echo the client's version when we speak it, otherwise offer our latest."""
    if requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested  # type: ignore[return-value]
    return LATEST_PROTOCOL_VERSION


def _dump(item: Any) -> Any:
    if isinstance(item, McpModel):
        return item.to_json()
    return item


@dataclass
class DispatchContext:
    """Transport-level facts about the message being dispatched."""

    session: McpSession
    request_id: int | str | None = None
    security: Any = None
    cancellation: Cancellation | None = None


class MCPHandlers:
    """Handlers for MCP protocol methods.

    Every handler takes the raw params dict and the dispatch context and
    returns the JSON-ready ``result`` (``None`` for notifications).
    """

    def __init__(self, registry: CapabilityRegistry, settings: Settings | None = None):
        self.registry = registry
        self.settings = settings or get_settings()
        self._methods = {
            "initialize": self.handle_initialize,
            "notifications/initialized": self.handle_initialized,
            "ping": self.handle_ping,
            "tools/list": self.handle_tools_list,
            "tools/call": self.handle_tools_call,
            "prompts/list": self.handle_prompts_list,
            "prompts/get": self.handle_prompts_get,
            "resources/list": self.handle_resources_list,
            "resources/templates/list": self.handle_resource_templates_list,
            "resources/read": self.handle_resources_read,
            "resources/subscribe": self.handle_resources_subscribe,
            "resources/unsubscribe": self.handle_resources_unsubscribe,
            "completion/complete": self.handle_completion_complete,
            "logging/setLevel": self.handle_logging_set_level,
            "notifications/cancelled": self.handle_cancelled,
            "notifications/roots/list_changed": self.handle_roots_list_changed,
        }

    @property
    def methods(self) -> list[str]:
        return list(self._methods)

    # ---------------------------------------------------------------------
    # Request context
    # ---------------------------------------------------------------------

    def _build_request(
        self, ctx: DispatchContext, parameters: Parameters, params: dict[str, Any]
    ) -> McpRequest:
        meta = Parameters(params.get("_meta"), "_meta")
        progress_token = meta.get("progressToken").value
        if not isinstance(progress_token, (int, str)) or isinstance(progress_token, bool):
            progress_token = None
        features = McpFeatures(
            ctx.session,
            cancellation=ctx.cancellation,
            progress_token=progress_token,
            root_list_timeout=self.settings.root_list_timeout.total_seconds(),
        )
        return McpRequest(
            parameters,
            features,
            meta=meta,
            security=ctx.security,
            request_id=ctx.request_id,
        )

    @staticmethod
    def _list(key: str, items: list[dict[str, Any]], page_size: int | None, cursor: Any) -> dict[str, Any]:
        paginator = Paginator(items, page_size or max(len(items), 1))
        page = paginator.page(None if cursor is None else str(cursor))
        return ListResult(key=key, items=list(page.items), nextCursor=page.cursor).to_json()

    # ---------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------

    async def handle_initialize(self, params: dict[str, Any], ctx: DispatchContext) -> dict[str, Any]:
        """Handle the initialize request."""
        session = ctx.session
        try:
            init_params = InitializeParams(**params)
            requested_version: str | None = init_params.protocolVersion
            session.client_capabilities = dict(init_params.capabilities)
        except ValidationError as e:
            logger.warning(f"Invalid initialize params: {e}")
            # Still proceed with whatever the client did send
            requested_version = params.get("protocolVersion")
            declared = params.get("capabilities")
            session.client_capabilities = dict(declared) if isinstance(declared, dict) else {}

        session.protocol_version = negotiate_protocol_version(requested_version)
        session.mark_roots_stale()

        capabilities: dict[str, Any] = {"logging": {}, "completions": {}}
        if self.registry.tool_count:
            capabilities["tools"] = {"listChanged": False}
        if self.registry.prompt_count:
            capabilities["prompts"] = {"listChanged": False}
        if self.registry.resource_count:
            capabilities["resources"] = {"subscribe": True, "listChanged": False}

        result = InitializeResult(
            protocolVersion=session.protocol_version,
            capabilities=capabilities,
            serverInfo=ServerInfo(
                name=self.settings.server_name,
                version=self.settings.server_version,
            ),
        )
        return result.model_dump()

    async def handle_initialized(self, params: dict[str, Any], ctx: DispatchContext) -> None:
        """Handle the notifications/initialized notification (no response)."""
        ctx.session.initialized = True
        logger.info("Client confirmed initialization")
        return None

    async def handle_ping(self, params: dict[str, Any], ctx: DispatchContext) -> dict[str, Any]:
        return {}

    # ---------------------------------------------------------------------
    # Tools
    # ---------------------------------------------------------------------

    async def handle_tools_list(self, params: dict[str, Any], ctx: DispatchContext) -> dict[str, Any]:
        """Handle the tools/list request."""
        version = ctx.session.protocol_version
        tools = [tool.to_mcp_tool(version).to_json() for tool in self.registry.list_tools()]
        return self._list("tools", tools, self.settings.tools_page_size, params.get("cursor"))

    async def handle_tools_call(self, params: dict[str, Any], ctx: DispatchContext) -> dict[str, Any]:
        """Handle the tools/call request."""
        root = Parameters(params, "params")
        name = root.require("name").as_string()
        tool = self.registry.get_tool(name) if name is not None else None
        if tool is None:
            raise McpError(f"Tool with name {name} is not available", INVALID_PARAMS)

        logger.info(f"Calling tool: {name}")
        request = self._build_request(ctx, root.get("arguments"), params)
        result = await tool.handler(request)

        if isinstance(result, ToolCallResult):
            return result.to_json()
        if isinstance(result, str):
            result = [TextContent(text=result)]
        return {"content": [_dump(item) for item in result], "isError": False}

    # ---------------------------------------------------------------------
    # Prompts
    # ---------------------------------------------------------------------

    async def handle_prompts_list(self, params: dict[str, Any], ctx: DispatchContext) -> dict[str, Any]:
        prompts = [prompt.to_mcp_prompt().to_json() for prompt in self.registry.list_prompts()]
        return self._list("prompts", prompts, self.settings.prompts_page_size, params.get("cursor"))

    async def handle_prompts_get(self, params: dict[str, Any], ctx: DispatchContext) -> dict[str, Any]:
        root = Parameters(params, "params")
        name = root.require("name").as_string()
        prompt = self.registry.get_prompt(name) if name is not None else None
        if prompt is None:
            raise McpError(f"Prompt with name {name} is not available", INVALID_PARAMS)

        request = self._build_request(ctx, root.get("arguments"), params)
        result = await prompt.handler(request)

        if isinstance(result, str):
            result = [PromptMessage.text(result)]
        return {
            "description": prompt.description,
            "messages": [_dump(message) for message in result],
        }

    # ---------------------------------------------------------------------
    # Resources
    # ---------------------------------------------------------------------

    async def handle_resources_list(self, params: dict[str, Any], ctx: DispatchContext) -> dict[str, Any]:
        resources = [r.to_mcp_resource().to_json() for r in self.registry.list_resources()]
        return self._list("resources", resources, self.settings.resources_page_size, params.get("cursor"))

    async def handle_resource_templates_list(
        self, params: dict[str, Any], ctx: DispatchContext
    ) -> dict[str, Any]:
        templates = [
            t.to_mcp_resource_template().to_json() for t in self.registry.list_resource_templates()
        ]
        return self._list(
            "resourceTemplates",
            templates,
            self.settings.resource_templates_page_size,
            params.get("cursor"),
        )

    async def handle_resources_read(self, params: dict[str, Any], ctx: DispatchContext) -> dict[str, Any]:
        """Read a static resource, or a template resource with its URI variables."""
        uri = Parameters(params, "params").require("uri").as_string()
        if uri is None:
            raise InvalidArgumentError("Resource uri must be a string")
        entry, variables = self.registry.find_resource(uri)
        if entry is None:
            raise ResourceNotFoundError(uri)

        arguments = {key: value for key, value in params.items() if key != "_meta"}
        arguments.update(variables)
        request = self._build_request(ctx, Parameters(arguments, "params"), params)
        result = await entry.handler(request)

        if isinstance(result, str):
            result = [TextResourceContents(uri=uri, mimeType=entry.mime_type, text=result)]
        contents = []
        for item in result:
            if isinstance(item, (TextResourceContents, BlobResourceContents)):
                item = item.model_copy(update={"uri": uri})
            elif isinstance(item, dict):
                item = {**item, "uri": uri}
            contents.append(_dump(item))
        return {"contents": contents}

    async def handle_resources_subscribe(
        self, params: dict[str, Any], ctx: DispatchContext
    ) -> dict[str, Any]:
        uri = Parameters(params, "params").require("uri").as_string()
        if uri is None:
            raise InvalidArgumentError("Resource uri must be a string")

        subscriber = self.registry.get_subscriber(uri)
        if subscriber is not None:
            await self._run_hook(subscriber.handler, ctx, params)
        ctx.session.subscriptions.subscribe(uri)
        return {}

    async def handle_resources_unsubscribe(
        self, params: dict[str, Any], ctx: DispatchContext
    ) -> dict[str, Any]:
        uri = Parameters(params, "params").require("uri").as_string()
        if uri is None:
            raise InvalidArgumentError("Resource uri must be a string")

        ctx.session.subscriptions.unsubscribe(uri)
        unsubscriber = self.registry.get_unsubscriber(uri)
        if unsubscriber is not None:
            await self._run_hook(unsubscriber.handler, ctx, params)
        return {}

    async def _run_hook(self, handler: Handler, ctx: DispatchContext, params: dict[str, Any]) -> None:
        await handler(self._build_request(ctx, Parameters(params, "params"), params))

    # ---------------------------------------------------------------------
    # Completion and logging
    # ---------------------------------------------------------------------

    async def handle_completion_complete(
        self, params: dict[str, Any], ctx: DispatchContext
    ) -> dict[str, Any]:
        """Complete a prompt or resource argument.

        The reference is ``ref.name`` for prompts and ``ref.uri`` for
        resources; an unknown reference completes to nothing.
        """
        root = Parameters(params, "params")
        ref = root.require("ref")
        reference = ref.get("name").as_string() or ref.get("uri").as_string()
        completion = self.registry.get_completion(reference) if reference else None
        if completion is None:
            logger.debug(f"No completion registered for {reference!r}")
            return CompletionResult().to_json()

        result = await completion.handler(self._build_request(ctx, root, params))
        if isinstance(result, CompletionResult):
            return result.capped().to_json()
        return CompletionResult.of([str(value) for value in result]).to_json()

    async def handle_logging_set_level(
        self, params: dict[str, Any], ctx: DispatchContext
    ) -> dict[str, Any]:
        level = Parameters(params, "params").require("level").as_string()
        try:
            ctx.session.log_level = LogLevel(str(level).lower())
        except ValueError:
            raise InvalidArgumentError(f"Unknown log level: {level}") from None
        return {}

    # ---------------------------------------------------------------------
    # Client notifications
    # ---------------------------------------------------------------------

    async def handle_cancelled(self, params: dict[str, Any], ctx: DispatchContext) -> None:
        root = Parameters(params, "params")
        request_id = root.get("requestId").value
        if request_id is None:
            logger.debug("Cancellation without requestId ignored")
            return None
        reason = root.get("reason").as_string() or "Cancelled by client"
        ctx.session.cancel_request(request_id, reason)
        return None

    async def handle_roots_list_changed(self, params: dict[str, Any], ctx: DispatchContext) -> None:
        ctx.session.mark_roots_stale()
        return None

    # ---------------------------------------------------------------------
    # Dispatch
    # ---------------------------------------------------------------------

    async def dispatch(
        self,
        method: str,
        params: dict[str, Any] | None,
        session: McpSession,
        request_id: int | str | None = None,
        security: Any = None,
    ) -> tuple[Any | None, dict[str, Any] | None]:
        """
        Dispatch a method call to the appropriate handler.

        Returns (result, error) tuple. One will be None.
        """
        handler = self._methods.get(method)
        if handler is None:
            return None, make_error_data(METHOD_NOT_FOUND, f"Method not found: {method}")

        ctx = DispatchContext(session, request_id, security)
        if request_id is not None:
            ctx.cancellation = Cancellation()
            session.register_request(request_id, ctx.cancellation)

        try:
            result = await handler(params or {}, ctx)
            return result, None
        except McpError as e:
            logger.info(f"Method {method} failed: {e.message}")
            return None, e.to_error_data()
        except ValidationError as e:
            details = "; ".join(error["msg"] for error in e.errors())
            return None, make_error_data(INVALID_PARAMS, f"Invalid params: {details}")
        except Exception:
            logger.exception(f"Error handling method {method}")
            return None, make_error_data(INTERNAL_ERROR)
        finally:
            if request_id is not None:
                session.clear_request(request_id)
