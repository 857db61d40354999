"""JSON-RPC 2.0 error codes, MCP exceptions and error response helpers."""

from typing import Any

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700  # Invalid JSON was received
INVALID_REQUEST = -32600  # The JSON sent is not a valid Request object
METHOD_NOT_FOUND = -32601  # The method does not exist / is not available
INVALID_PARAMS = -32602  # Invalid method parameter(s)
INTERNAL_ERROR = -32603  # Internal JSON-RPC error

# Custom error codes (server-defined, must be between -32000 and -32099)
RESOURCE_NOT_FOUND = -32002  # Requested resource URI is not registered


def error_message(code: int) -> str:
    """Get the standard message for a JSON-RPC error code."""
    messages = {
        PARSE_ERROR: "Parse error",
        INVALID_REQUEST: "Invalid Request",
        METHOD_NOT_FOUND: "Method not found",
        INVALID_PARAMS: "Invalid params",
        INTERNAL_ERROR: "Internal error",
        RESOURCE_NOT_FOUND: "Resource not found",
    }
    return messages.get(code, "Unknown error")


def make_error_data(code: int, message: str | None = None, data: Any = None) -> dict[str, Any]:
    """Create an error object for JSON-RPC response."""
    error: dict[str, Any] = {
        "code": code,
        "message": message or error_message(code),
    }
    if data is not None:
        error["data"] = data
    return error


# =============================================================================
# Exceptions
# =============================================================================


class McpError(Exception):
    """Protocol error raised by the runtime or by capability handlers.

    The message is sent to the client as-is, so it must not carry internals.
    """

    def __init__(self, message: str, code: int = INTERNAL_ERROR, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    def to_error_data(self) -> dict[str, Any]:
        return make_error_data(self.code, self.message, self.data)


class MissingArgumentError(McpError):
    """A required request parameter is absent."""

    def __init__(self, name: str):
        super().__init__(f"Missing required argument: {name}", INVALID_PARAMS)
        self.name = name


class InvalidArgumentError(McpError, ValueError):
    """A parameter is present but outside its declared range or shape."""

    def __init__(self, message: str):
        super().__init__(message, INVALID_PARAMS)


class ResourceNotFoundError(McpError):
    """No static resource or template matches the requested URI."""

    def __init__(self, uri: str):
        super().__init__(f"Resource does not exist: {uri}", RESOURCE_NOT_FOUND, {"uri": uri})
        self.uri = uri


class ConfigurationError(ValueError):
    """Invalid server configuration value, detected at startup."""


class TemplateSyntaxError(ValueError):
    """Malformed URI template, detected at registration time."""


class SamplingError(McpError):
    """A sampling exchange with the client failed."""


class SamplingTimeoutError(SamplingError):
    """The client did not answer a sampling request in time."""


class SamplingTypeMismatchError(SamplingError):
    """A sampling response was read through the wrong typed accessor."""


class RootsError(McpError):
    """Listing the client's roots failed."""
