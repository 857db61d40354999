"""FastAPI MCP Server - Main application entrypoint."""

import json
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mcp_runtime import __version__
from mcp_runtime.config.loader import get_settings
from mcp_runtime.mcp.errors import PARSE_ERROR, make_error_data
from mcp_runtime.mcp.handlers import LATEST_PROTOCOL_VERSION, MCPHandlers
from mcp_runtime.mcp.jsonrpc import JsonRpcProcessor
from mcp_runtime.mcp.registry import get_registry
from mcp_runtime.mcp.session import get_session_manager
from mcp_runtime.mcp.transport_sse import create_sse_response
from mcp_runtime.utils.logging import get_logger, set_request_id, setup_logging

MESSAGE_ENDPOINT = "/message"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    setup_logging()
    log = get_logger("startup")

    settings = get_settings()
    log.info(
        "Starting MCP server",
        server_name=settings.server_name,
        version=settings.server_version,
    )

    log.info("Loading providers", providers=settings.providers)
    registry = get_registry()
    results = registry.load_providers(settings.providers)

    for provider, success in results.items():
        if success:
            log.info("Loaded provider", provider=provider)
        else:
            log.warning("Failed to load provider", provider=provider)

    log.info(
        "Capability registry ready",
        tool_count=registry.tool_count,
        prompt_count=registry.prompt_count,
        resource_count=registry.resource_count,
        provider_count=registry.provider_count,
    )

    # Start session cleanup task
    session_manager = get_session_manager()
    await session_manager.start_cleanup_task()

    yield

    # Shutdown
    log.info("Shutting down MCP server")
    session_manager.stop_cleanup_task()
    session_manager.close_all()


# Create FastAPI app
app = FastAPI(
    title="MCP Runtime",
    description="Model Context Protocol server over JSON-RPC 2.0 and SSE",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for MCP compatibility
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


# Request ID middleware
@app.middleware("http")
async def add_request_id_middleware(request: Request, call_next):
    """Add request ID to all requests."""
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# =============================================================================
# Health and Info Endpoints
# =============================================================================


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict:
    """Root endpoint with server info."""
    settings = get_settings()
    registry = get_registry()

    return {
        "name": settings.server_name,
        "version": settings.server_version,
        "description": "Model Context Protocol server",
        "endpoints": {
            "health": "/health",
            "sse": "/sse",
            "message": MESSAGE_ENDPOINT,
            "docs": "/docs",
        },
        "tools_available": registry.tool_count,
        "prompts_available": registry.prompt_count,
        "resources_available": registry.resource_count,
        "active_sessions": get_session_manager().session_count,
        "mcp_protocol_version": LATEST_PROTOCOL_VERSION,
    }


# =============================================================================
# MCP Endpoints
# =============================================================================


@app.get("/sse")
async def sse_endpoint(request: Request):
    """
    SSE endpoint for MCP session establishment.

    Returns an SSE stream that:
    1. Sends an 'endpoint' event with the message URL
    2. Streams responses, notifications and server-initiated requests
    """
    session_manager = get_session_manager()
    session = session_manager.create_session()

    log = get_logger("sse")
    log.info("SSE session created", session_id=session.session_id)

    return await create_sse_response(session, MESSAGE_ENDPOINT, session_manager)


@app.post("/message")
async def message_endpoint(request: Request) -> JSONResponse:
    """
    Message endpoint for JSON-RPC messages.

    Accepts JSON-RPC 2.0 requests, notifications and responses to
    server-initiated requests. With a session_id the response is also pushed
    to the session's SSE stream; without one the message runs in a detached
    session that lives for this request only.
    """
    log = get_logger("message")
    session_manager = get_session_manager()

    # Get session ID if provided
    session_id = request.query_params.get("session_id")
    if session_id:
        session = session_manager.get_session(session_id)
        if session is None:
            log.warning("Unknown session", session_id=session_id)
            return JSONResponse(
                status_code=404,
                content={"error": f"Session not found: {session_id}"},
            )
        detached = False
    else:
        session = session_manager.create_detached_session()
        detached = True

    # Parse request body
    try:
        body = await request.body()
    except Exception as e:
        return JSONResponse(
            content={
                "jsonrpc": "2.0",
                "id": None,
                "error": make_error_data(PARSE_ERROR, f"Could not read request body: {e}"),
            }
        )

    # The security context is handed to capability handlers uninterpreted
    security = request.headers.get("Authorization")

    processor = JsonRpcProcessor(MCPHandlers(get_registry(), get_settings()))
    try:
        response = await processor.handle_message(body, session, security)
    finally:
        if detached:
            session.close()

    if response is None:
        # Notification or client response - no response needed
        return JSONResponse(content={"status": "ok"}, status_code=202)

    response_data = response.model_dump()

    # If there's a session, also push to SSE
    if not detached:
        await session.send_event("message", json.dumps(response_data))

    return JSONResponse(content=response_data)


# =============================================================================
# Main Entry Point
# =============================================================================


def main() -> None:
    """Run the server with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "mcp_runtime.main:app",
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()
