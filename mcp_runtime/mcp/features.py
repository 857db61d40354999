"""Per-request context handed to capability handlers.

Every handler receives one ``McpRequest``. Besides the request parameters it
carries ``features``: the request's cancellation token and handles for talking
back to the client (sampling, progress, logging, roots and subscriptions).
"""

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from mcp_runtime.mcp.cancellation import Cancellation
from mcp_runtime.mcp.errors import RootsError
from mcp_runtime.mcp.models import Root, create_jsonrpc_notification, create_jsonrpc_request
from mcp_runtime.mcp.parameters import Parameters
from mcp_runtime.mcp.sampling import Sampling

if TYPE_CHECKING:
    from mcp_runtime.mcp.session import McpSession

logger = logging.getLogger(__name__)

METHOD_NOTIFICATION_PROGRESS = "notifications/progress"
METHOD_NOTIFICATION_MESSAGE = "notifications/message"
METHOD_NOTIFICATION_UPDATED = "notifications/resources/updated"
METHOD_ROOTS_LIST = "roots/list"


# =============================================================================
# Progress
# =============================================================================


class Progress:
    """Best-effort progress notifications for the current request.

    Sending is enabled only when the client supplied ``_meta.progressToken``.
    Values must strictly increase and never exceed ``total``; others are
    dropped. Reaching ``total`` ends the stream.
    """

    def __init__(self, session: "McpSession", token: int | str | None = None):
        self._session = session
        self._token = token
        self._total = 0
        self._last: float | None = None
        self._sending = token is not None

    @property
    def token(self) -> int | str | None:
        return self._token

    @property
    def enabled(self) -> bool:
        return self._sending

    def total(self, total: int) -> None:
        self._total = total

    async def send(self, progress: int | float, message: str | None = None) -> bool:
        """Notify the client; returns ``True`` if a notification went out."""
        if not self._sending or progress > self._total:
            return False
        if self._last is not None and progress <= self._last:
            return False

        params: dict[str, Any] = {
            "progressToken": self._token,
            "progress": progress,
            "total": self._total,
        }
        if message is not None:
            params["message"] = message
        self._last = progress
        if progress >= self._total:
            self._sending = False
        await self._session.send(create_jsonrpc_notification(METHOD_NOTIFICATION_PROGRESS, params))
        return True

    def stop_sending(self) -> None:
        self._sending = False


# =============================================================================
# Client logging
# =============================================================================


class LogLevel(str, Enum):
    """Client-visible log levels, in increasing severity."""

    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    ALERT = "alert"
    EMERGENCY = "emergency"

    @property
    def severity(self) -> int:
        return list(LogLevel).index(self)


class McpLogger:
    """Sends ``notifications/message`` to the client.

    Messages below the session's level (``logging/setLevel``, default info)
    are not sent.
    """

    def __init__(self, session: "McpSession", name: str = "mcp-runtime"):
        self._session = session
        self.name = name

    async def log(self, level: LogLevel, message: Any) -> bool:
        if level.severity < self._session.log_level.severity:
            return False
        params = {"level": level.value, "logger": self.name, "data": message}
        await self._session.send(create_jsonrpc_notification(METHOD_NOTIFICATION_MESSAGE, params))
        return True

    async def debug(self, message: Any) -> bool:
        return await self.log(LogLevel.DEBUG, message)

    async def info(self, message: Any) -> bool:
        return await self.log(LogLevel.INFO, message)

    async def notice(self, message: Any) -> bool:
        return await self.log(LogLevel.NOTICE, message)

    async def warn(self, message: Any) -> bool:
        return await self.log(LogLevel.WARNING, message)

    async def error(self, message: Any) -> bool:
        return await self.log(LogLevel.ERROR, message)

    async def critical(self, message: Any) -> bool:
        return await self.log(LogLevel.CRITICAL, message)

    async def alert(self, message: Any) -> bool:
        return await self.log(LogLevel.ALERT, message)


# =============================================================================
# Roots
# =============================================================================


class Roots:
    """Access to the roots the client exposes.

    The list is fetched with ``roots/list`` on first use and again after the
    client sends ``notifications/roots/list_changed``.
    """

    def __init__(self, session: "McpSession", timeout: float):
        self._session = session
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return self._session.supports_roots

    async def list_roots(self) -> list[Root]:
        if not self.enabled:
            raise RootsError("Roots feature is not supported by the client")
        if not self._session.roots_stale:
            return list(self._session.roots)

        request_id = self._session.next_request_id()
        try:
            response = await self._session.send_request(
                create_jsonrpc_request(request_id, METHOD_ROOTS_LIST), self._timeout
            )
        except asyncio.TimeoutError:
            raise RootsError(f"Roots list timeout after {self._timeout}s") from None

        roots = self._parse(response)
        self._session.update_roots(roots)
        return list(roots)

    @staticmethod
    def _parse(response: dict[str, Any]) -> list[Root]:
        error = response.get("error")
        if isinstance(error, dict):
            raise RootsError(str(error.get("message", "Roots request failed")))
        result = response.get("result")
        roots = result.get("roots") if isinstance(result, dict) else None
        if not isinstance(roots, list):
            raise RootsError("Wrong roots response format")
        try:
            return [Root.model_validate(root) for root in roots]
        except ValueError as e:
            raise RootsError("Wrong roots response format") from e


# =============================================================================
# Subscriptions
# =============================================================================


class Subscriptions:
    """Push "resource updated" notifications to subscribed clients."""

    def __init__(self, session: "McpSession"):
        self._session = session

    async def send_update(self, uri: str) -> int:
        """Notify every session subscribed to ``uri``; returns how many were notified."""
        sessions = self._session.peers()
        notified = 0
        for session in sessions:
            if await send_resource_update(session, uri):
                notified += 1
        return notified

    async def send_session_update(self, uri: str) -> bool:
        """Notify the current session only, if it is subscribed to ``uri``."""
        return await send_resource_update(self._session, uri)


async def send_resource_update(session: "McpSession", uri: str, force: bool = False) -> bool:
    if not force and not session.subscriptions.is_active(uri):
        return False
    await session.send(create_jsonrpc_notification(METHOD_NOTIFICATION_UPDATED, {"uri": uri}))
    return True


# =============================================================================
# Request context
# =============================================================================


class McpFeatures:
    """Client-facing handles bundled for one request."""

    def __init__(
        self,
        session: "McpSession",
        cancellation: Cancellation | None = None,
        progress_token: int | str | None = None,
        root_list_timeout: float = 5.0,
    ):
        self.session = session
        self.cancellation = cancellation or Cancellation()
        self.sampling = Sampling(session)
        self.progress = Progress(session, progress_token)
        self.logger = McpLogger(session)
        self.roots = Roots(session, root_list_timeout)
        self.subscriptions = Subscriptions(session)


class McpRequest:
    """What a capability handler receives.

    ``security`` is the transport's opaque per-request security context; the
    runtime passes it through without interpreting it.
    """

    def __init__(
        self,
        parameters: Parameters,
        features: McpFeatures,
        meta: Parameters | None = None,
        security: Any = None,
        request_id: int | str | None = None,
    ):
        self.parameters = parameters
        self.features = features
        self.meta = meta or Parameters.empty("_meta")
        self.security = security
        self.request_id = request_id

    def __repr__(self) -> str:
        return f"McpRequest(id={self.request_id!r}, parameters={self.parameters!r})"

    @property
    def session_id(self) -> str:
        return self.features.session.session_id
