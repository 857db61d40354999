"""Pytest configuration and fixtures."""

import json
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from mcp_runtime.config.loader import Settings
from mcp_runtime.main import app
from mcp_runtime.mcp.handlers import MCPHandlers
from mcp_runtime.mcp.registry import get_registry, reset_registry
from mcp_runtime.mcp.session import McpSession, reset_session_manager


@pytest.fixture
def client():
    """Synchronous test client for FastAPI app."""
    return TestClient(app)


@pytest.fixture
async def async_client():
    """Async test client for FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset the global registry and sessions, and reload the example provider."""
    reset_registry()
    reset_session_manager()
    registry = get_registry()
    registry.load_provider("example")
    yield
    reset_session_manager()
    reset_registry()


@pytest.fixture
def registry():
    """Get a fresh, empty capability registry."""
    reset_registry()
    return get_registry()


@pytest.fixture
def settings():
    """Settings with short timeouts, independent of the environment."""
    return Settings(
        _env_file=None,
        root_list_timeout=timedelta(seconds=1),
        subscription_timeout=timedelta(seconds=1),
        subscription_interval=timedelta(milliseconds=50),
    )


@pytest.fixture
def session():
    """A standalone session with fast subscription loops."""
    session = McpSession("test-session", subscription_interval=0.05, subscription_timeout=1.0)
    yield session
    session.close()


@pytest.fixture
def handlers(settings):
    """Dispatcher over the global registry with the example provider loaded."""
    return MCPHandlers(get_registry(), settings)


@pytest.fixture
def outbox():
    """Drain a session's queue, returning the decoded JSON-RPC messages."""
    def _drain(session: McpSession) -> list[dict]:
        messages = []
        while not session.queue.empty():
            event = session.queue.get_nowait()
            messages.append(json.loads(event["data"]))
        return messages
    return _drain


@pytest.fixture
def sample_jsonrpc_request():
    """Sample JSON-RPC request factory."""
    def _make_request(method: str, params: dict = None, id: int = 1):
        return {
            "jsonrpc": "2.0",
            "id": id,
            "method": method,
            "params": params or {},
        }
    return _make_request
