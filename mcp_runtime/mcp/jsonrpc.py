"""JSON-RPC 2.0 message processing."""

import json
import logging
from typing import Any

from pydantic import ValidationError

from mcp_runtime.mcp.errors import INVALID_REQUEST, PARSE_ERROR, make_error_data
from mcp_runtime.mcp.handlers import MCPHandlers
from mcp_runtime.mcp.models import JsonRpcError, JsonRpcRequest, JsonRpcResponse, is_response
from mcp_runtime.mcp.session import McpSession

logger = logging.getLogger(__name__)


class JsonRpcProcessor:
    """Process JSON-RPC 2.0 messages."""

    def __init__(self, handlers: MCPHandlers):
        self.handlers = handlers

    def parse_request(
        self, raw_data: str | bytes
    ) -> tuple[JsonRpcRequest | dict[str, Any] | None, dict | None, Any]:
        """
        Parse a JSON-RPC message from raw data.

        Returns (message, error, id). ``message`` is a ``JsonRpcRequest`` for
        requests and notifications, or the raw dict when the client is
        answering one of our own requests. On error it is None and ``id`` is
        whatever id could be recovered.
        """
        # Try to parse JSON
        try:
            if isinstance(raw_data, bytes):
                raw_data = raw_data.decode("utf-8")
            data = json.loads(raw_data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return None, make_error_data(PARSE_ERROR, f"Invalid JSON: {e}"), None

        if not isinstance(data, dict):
            return None, make_error_data(
                INVALID_REQUEST, "Invalid JSON-RPC request: expected an object"
            ), None

        request_id = data.get("id")
        if not isinstance(request_id, (int, str)) or isinstance(request_id, bool):
            request_id = None

        if is_response(data):
            return data, None, request_id

        # Validate JSON-RPC structure
        try:
            request = JsonRpcRequest(**data)
            return request, None, request_id
        except ValidationError as e:
            return None, make_error_data(
                INVALID_REQUEST, f"Invalid JSON-RPC request: {e.errors()[0]['msg']}"
            ), request_id

    async def process_request(
        self,
        request: JsonRpcRequest,
        session: McpSession,
        security: Any = None,
    ) -> JsonRpcResponse | None:
        """
        Process a validated JSON-RPC request.

        Returns None for notifications (requests without id).
        """
        is_notification = request.id is None

        # Dispatch to handler
        result, error = await self.handlers.dispatch(
            request.method,
            request.params,
            session,
            request_id=request.id,
            security=security,
        )

        # Notifications don't get responses
        if is_notification:
            if error is not None:
                logger.debug(f"Notification {request.method} failed: {error['message']}")
            return None

        # Build response
        if error is not None:
            return JsonRpcResponse(
                id=request.id,
                error=JsonRpcError(**error),
            )
        else:
            return JsonRpcResponse(
                id=request.id,
                result=result,
            )

    async def handle_message(
        self,
        raw_data: str | bytes,
        session: McpSession,
        security: Any = None,
    ) -> JsonRpcResponse | None:
        """
        Handle a raw JSON-RPC message end-to-end.

        Returns a response, or None for notifications and client responses.
        """
        message, parse_error, request_id = self.parse_request(raw_data)

        if parse_error is not None:
            return JsonRpcResponse(
                id=request_id,
                error=JsonRpcError(**parse_error),
            )

        if isinstance(message, dict):
            session.deliver_response(message)
            return None

        return await self.process_request(message, session, security)  # type: ignore[arg-type]

    def serialize_response(self, response: JsonRpcResponse) -> str:
        """Serialize a JSON-RPC response to JSON string."""
        return json.dumps(response.model_dump())
