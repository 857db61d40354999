"""Example provider - demonstrates the capability implementation pattern."""

import asyncio

from mcp_runtime.mcp.errors import InvalidArgumentError, MissingArgumentError
from mcp_runtime.mcp.features import McpRequest
from mcp_runtime.mcp.models import (
    CompletionResult,
    PromptMessage,
    Role,
    TextContent,
    TextResourceContents,
    ToolAnnotations,
)
from mcp_runtime.mcp.registry import REF_RESOURCE, CapabilityRegistry, PromptArgument
from mcp_runtime.mcp.sampling import TextMessage

GREETING_STYLES = ["casual", "formal", "friendly", "pirate"]
NOTES = {
    "welcome": "Welcome to the example provider.",
    "usage": "Call tools with tools/call and read notes with resources/read.",
}


async def ping_handler(request: McpRequest) -> list[TextContent]:
    """Handle the example-ping tool call."""
    return [TextContent(text="pong")]


async def echo_handler(request: McpRequest) -> str:
    """Handle the example-echo tool call."""
    message = request.parameters.require("message").as_string()
    if not message:
        raise MissingArgumentError("message")
    return f"Echo: {message}"


async def count_handler(request: McpRequest) -> str:
    """Count to ``to``, reporting progress and honouring cancellation."""
    to = request.parameters.get("to").as_integer()
    if to is None:
        to = 3
    if to <= 0:
        raise InvalidArgumentError("'to' must be positive")

    progress = request.features.progress
    progress.total(to)
    for step in range(1, to + 1):
        if request.features.cancellation.is_requested:
            return f"Cancelled at {step - 1}"
        await progress.send(step, f"Counted {step}")
        await asyncio.sleep(0)
    await request.features.logger.info(f"Counted to {to}")
    return f"Counted to {to}"


async def summarize_handler(request: McpRequest) -> str:
    """Ask the client's model to summarize ``text``."""
    text = request.parameters.require("text").as_string()
    response = await request.features.sampling.request(
        messages=[TextMessage(text=f"Summarize: {text}")],
        max_tokens=200,
        intelligence_priority=0.8,
        system_prompt="You are a concise assistant.",
    )
    return response.as_text_message().text


async def roots_handler(request: McpRequest) -> list[TextContent]:
    """List the roots exposed by the client."""
    roots = await request.features.roots.list_roots()
    return [TextContent(text=root.uri) for root in roots]


async def greeting_prompt(request: McpRequest) -> list[PromptMessage]:
    name = request.parameters.get("name").as_string() or "there"
    style = request.parameters.get("style").as_string() or "casual"
    return [
        PromptMessage.text(f"Write a {style} greeting for {name}."),
        PromptMessage.text("Sure, here is a greeting.", role=Role.ASSISTANT),
    ]


async def complete_style(request: McpRequest) -> list[str]:
    prefix = request.parameters.get("argument").get("value").as_string() or ""
    return [style for style in GREETING_STYLES if style.startswith(prefix)]


async def readme_resource(request: McpRequest) -> str:
    return "This server exposes example tools, prompts and resources."


async def note_resource(request: McpRequest) -> list[TextResourceContents]:
    """Read one note; ``name`` comes from the URI template."""
    name = request.parameters.require("name").as_string()
    text = NOTES.get(name or "")
    if text is None:
        raise InvalidArgumentError(f"Unknown note: {name}")
    return [TextResourceContents(mimeType="text/markdown", text=text)]


async def complete_note(request: McpRequest) -> CompletionResult:
    prefix = request.parameters.get("argument").get("value").as_string() or ""
    return CompletionResult.of([name for name in NOTES if name.startswith(prefix)])


def register(registry: CapabilityRegistry) -> None:
    """Register all example provider capabilities with the registry."""

    # Tool: example-ping
    registry.register_tool(
        name="example-ping",
        description="Returns a simple pong response. Use this to test if the MCP server is working.",
        input_schema={
            "type": "object",
            "properties": {},
            "required": [],
        },
        handler=ping_handler,
        annotations=ToolAnnotations(title="Ping", readOnlyHint=True, destructiveHint=False),
    )

    # Tool: example-echo
    registry.register_tool(
        name="example-echo",
        description="Echoes back the provided message. Use this to test tool argument passing.",
        input_schema={
            "type": "object",
            "properties": {
                "message": {
                    "type": "string",
                    "description": "The message to echo back",
                },
            },
            "required": ["message"],
        },
        handler=echo_handler,
    )

    # Tool: example-count
    registry.register_tool(
        name="example-count",
        description="Counts up to a number, sending progress notifications.",
        input_schema={
            "type": "object",
            "properties": {"to": {"type": "integer", "minimum": 1}},
        },
        handler=count_handler,
    )

    # Tool: example-summarize
    registry.register_tool(
        name="example-summarize",
        description="Summarizes text using the client's language model.",
        input_schema={
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        },
        handler=summarize_handler,
    )

    # Tool: example-roots
    registry.register_tool(
        name="example-roots",
        description="Lists the roots the client has shared.",
        input_schema=None,
        handler=roots_handler,
    )

    registry.register_prompt(
        name="greeting",
        description="Writes a greeting for someone.",
        handler=greeting_prompt,
        arguments=[
            PromptArgument("name", "Who to greet", required=True),
            PromptArgument("style", "Greeting style"),
        ],
    )
    registry.register_completion("greeting", complete_style)

    registry.register_resource(
        uri="example://readme",
        name="readme",
        description="About this server",
        handler=readme_resource,
    )
    registry.register_resource(
        uri="example://notes/{name}",
        name="note",
        description="A named note",
        handler=note_resource,
        mime_type="text/markdown",
    )
    registry.register_completion("example://notes/{name}", complete_note, REF_RESOURCE)
