"""SSE (Server-Sent Events) transport for MCP."""

import asyncio
from typing import Any, AsyncGenerator

from sse_starlette.sse import EventSourceResponse

from mcp_runtime.mcp.session import McpSession, SessionManager
from mcp_runtime.utils.logging import get_logger

log = get_logger("transport")

KEEPALIVE_SECONDS = 30.0


async def stream_session_events(
    session: McpSession,
    message_endpoint: str,
    manager: SessionManager | None = None,
) -> AsyncGenerator[dict[str, Any], None]:
    """Yield the endpoint event, then the session's outbound messages."""
    try:
        # Send initial endpoint event
        yield {
            "event": "endpoint",
            "data": f"{message_endpoint}?session_id={session.session_id}",
        }

        # Stream events from session queue
        while not session.closed:
            try:
                event = await asyncio.wait_for(session.queue.get(), timeout=KEEPALIVE_SECONDS)
                yield event
            except asyncio.TimeoutError:
                # Send keepalive ping
                yield {"event": "ping", "data": ""}
    except asyncio.CancelledError:
        log.info("SSE stream cancelled", session_id=session.session_id)
        raise
    finally:
        if manager is not None:
            manager.remove_session(session.session_id)
        else:
            session.close()


async def create_sse_response(
    session: McpSession,
    message_endpoint: str,
    manager: SessionManager | None = None,
) -> EventSourceResponse:
    """Create an SSE response for a session."""
    return EventSourceResponse(stream_session_events(session, message_endpoint, manager))
