"""MCP sessions: outbound message queue, client state and session registry."""

import asyncio
import itertools
import json
import logging
import uuid
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from typing import Any

from mcp_runtime.config.loader import get_settings
from mcp_runtime.mcp.cancellation import Cancellation
from mcp_runtime.mcp.features import LogLevel, send_resource_update
from mcp_runtime.mcp.models import Root
from mcp_runtime.mcp.subscriptions import DEFAULT_INTERVAL, DEFAULT_TIMEOUT, SubscriptionTable

logger = logging.getLogger(__name__)

# Session timeout (30 minutes)
SESSION_TIMEOUT = timedelta(minutes=30)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class McpSession:
    """State of one client connection.

    Outbound messages (responses pushed on the stream, notifications and
    server-initiated requests) go through ``queue`` in send order. A detached
    session has no stream: outbound messages are dropped.
    """

    def __init__(
        self,
        session_id: str,
        subscription_interval: float = DEFAULT_INTERVAL,
        subscription_timeout: float = DEFAULT_TIMEOUT,
        manager: "SessionManager | None" = None,
        detached: bool = False,
    ):
        self.session_id = session_id
        self.created_at = _now()
        self.last_activity = _now()
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.detached = detached
        self._closed = False
        self._manager = manager

        self.client_capabilities: dict[str, Any] = {}
        self.protocol_version: str | None = None
        self.initialized = False
        self.log_level = LogLevel.INFO

        self._request_ids = itertools.count(1)
        self._pending: dict[int | str, asyncio.Future] = {}
        self._in_flight: dict[int | str, Cancellation] = {}

        self.roots: list[Root] = []
        self.roots_stale = True

        self.subscriptions = SubscriptionTable(
            self._push_update,
            interval=subscription_interval,
            timeout=subscription_timeout,
        )

    @classmethod
    def create_detached(cls, **kwargs: Any) -> "McpSession":
        return cls(f"detached-{uuid.uuid4()}", detached=True, **kwargs)

    @property
    def closed(self) -> bool:
        return self._closed

    def touch(self) -> None:
        """Update last activity timestamp."""
        self.last_activity = _now()

    def is_expired(self) -> bool:
        """Check if the session has expired."""
        return _now() - self.last_activity > SESSION_TIMEOUT

    # ---------------------------------------------------------------------
    # Client capabilities
    # ---------------------------------------------------------------------

    @property
    def supports_sampling(self) -> bool:
        return "sampling" in self.client_capabilities

    @property
    def supports_roots(self) -> bool:
        return "roots" in self.client_capabilities

    def update_roots(self, roots: list[Root]) -> None:
        self.roots = list(roots)
        self.roots_stale = False

    def mark_roots_stale(self) -> None:
        self.roots_stale = True

    # ---------------------------------------------------------------------
    # Outbound
    # ---------------------------------------------------------------------

    async def send_event(self, event_type: str, data: Any) -> None:
        """Queue an event to be sent to the client."""
        if self.detached:
            logger.debug(f"Dropping {event_type} event for detached session")
            return
        if not self._closed:
            await self.queue.put({"event": event_type, "data": data})

    async def send(self, message: dict[str, Any]) -> None:
        """Queue a JSON-RPC message for the client."""
        await self.send_event("message", json.dumps(message))

    def next_request_id(self) -> int:
        return next(self._request_ids)

    async def send_request(self, message: dict[str, Any], timeout: float) -> dict[str, Any]:
        """Send a server-initiated request and wait for the client's response.

        Raises ``asyncio.TimeoutError`` if no response arrives in time.
        """
        request_id = message["id"]
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self.send(message)
            return await asyncio.wait_for(future, timeout)
        finally:
            self._pending.pop(request_id, None)

    def deliver_response(self, payload: dict[str, Any]) -> bool:
        """Complete the outstanding request answered by ``payload``."""
        future = self._pending.get(payload.get("id"))
        if future is None or future.done():
            logger.debug(f"No pending request for response id {payload.get('id')!r}")
            return False
        future.set_result(payload)
        return True

    async def _push_update(self, uri: str) -> None:
        await send_resource_update(self, uri, force=True)

    def peers(self) -> list["McpSession"]:
        """All live sessions sharing this session's registry, itself included."""
        peers = [] if self._manager is None else list(self._manager)
        if self not in peers:
            peers.append(self)
        return peers

    # ---------------------------------------------------------------------
    # In-flight requests
    # ---------------------------------------------------------------------

    def register_request(self, request_id: int | str, cancellation: Cancellation) -> None:
        self._in_flight[request_id] = cancellation

    def clear_request(self, request_id: int | str) -> None:
        self._in_flight.pop(request_id, None)

    def cancel_request(self, request_id: int | str, reason: str) -> bool:
        cancellation = self._in_flight.get(request_id)
        if cancellation is None:
            logger.debug(f"Cancellation for unknown request {request_id!r} ignored")
            return False
        return cancellation.cancel(reason, request_id)

    def close(self) -> None:
        """Mark the session as closed."""
        self._closed = True
        self.subscriptions.close()
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()


class SessionManager:
    """Manages MCP sessions."""

    def __init__(
        self,
        subscription_interval: float = DEFAULT_INTERVAL,
        subscription_timeout: float = DEFAULT_TIMEOUT,
    ):
        self._sessions: dict[str, McpSession] = {}
        self._cleanup_task: asyncio.Task | None = None
        self.subscription_interval = subscription_interval
        self.subscription_timeout = subscription_timeout

    def __iter__(self) -> Iterator[McpSession]:
        return iter(list(self._sessions.values()))

    def create_session(self) -> McpSession:
        """Create a new session."""
        session_id = str(uuid.uuid4())
        session = McpSession(
            session_id,
            subscription_interval=self.subscription_interval,
            subscription_timeout=self.subscription_timeout,
            manager=self,
        )
        self._sessions[session_id] = session
        logger.info(f"Created session: {session_id}")
        return session

    def create_detached_session(self) -> McpSession:
        """A one-request session for clients that post without a stream."""
        return McpSession.create_detached(
            subscription_interval=self.subscription_interval,
            subscription_timeout=self.subscription_timeout,
            manager=self,
        )

    def get_session(self, session_id: str) -> McpSession | None:
        """Get a session by ID."""
        session = self._sessions.get(session_id)
        if session is not None:
            if session.is_expired():
                self.remove_session(session_id)
                return None
            session.touch()
        return session

    def remove_session(self, session_id: str) -> None:
        """Remove a session."""
        session = self._sessions.pop(session_id, None)
        if session:
            session.close()
            logger.info(f"Removed session: {session_id}")

    async def cleanup_expired(self) -> None:
        """Remove expired sessions."""
        expired = [
            sid for sid, session in self._sessions.items() if session.is_expired()
        ]
        for sid in expired:
            self.remove_session(sid)
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired sessions")

    async def start_cleanup_task(self) -> None:
        """Start background task to clean up expired sessions."""
        async def cleanup_loop():
            while True:
                await asyncio.sleep(60)  # Check every minute
                await self.cleanup_expired()

        self._cleanup_task = asyncio.create_task(cleanup_loop())

    def stop_cleanup_task(self) -> None:
        """Stop the cleanup background task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.remove_session(session_id)

    @property
    def session_count(self) -> int:
        """Return the number of active sessions."""
        return len(self._sessions)


# Global session manager
_session_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    """Get the global session manager, sized from settings."""
    global _session_manager
    if _session_manager is None:
        settings = get_settings()
        _session_manager = SessionManager(
            subscription_interval=settings.subscription_interval.total_seconds(),
            subscription_timeout=settings.subscription_timeout.total_seconds(),
        )
    return _session_manager


def reset_session_manager() -> None:
    """Close all sessions and drop the global manager (useful for testing)."""
    global _session_manager
    if _session_manager is not None:
        _session_manager.stop_cleanup_task()
        _session_manager.close_all()
    _session_manager = None
