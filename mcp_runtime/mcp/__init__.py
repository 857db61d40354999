"""MCP (Model Context Protocol) implementation with JSON-RPC 2.0."""

from mcp_runtime.mcp.cancellation import Cancellation, CancellationResult
from mcp_runtime.mcp.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    RESOURCE_NOT_FOUND,
    ConfigurationError,
    InvalidArgumentError,
    McpError,
    MissingArgumentError,
    ResourceNotFoundError,
    RootsError,
    SamplingError,
    SamplingTimeoutError,
    SamplingTypeMismatchError,
    TemplateSyntaxError,
)
from mcp_runtime.mcp.features import LogLevel, McpFeatures, McpRequest
from mcp_runtime.mcp.models import (
    AudioContent,
    BlobResourceContents,
    CompletionResult,
    EmbeddedResource,
    ImageContent,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    PromptMessage,
    Role,
    Root,
    TextContent,
    TextResourceContents,
    Tool,
    ToolAnnotations,
    ToolCallResult,
)
from mcp_runtime.mcp.pagination import Page, Paginator
from mcp_runtime.mcp.parameters import Parameters
from mcp_runtime.mcp.registry import CapabilityRegistry, PromptArgument, get_registry
from mcp_runtime.mcp.sampling import (
    AudioMessage,
    ImageMessage,
    IncludeContext,
    SamplingRequest,
    SamplingResponse,
    StopReason,
    TextMessage,
)
from mcp_runtime.mcp.uri_template import UriTemplate

__all__ = [
    "AudioContent",
    "AudioMessage",
    "BlobResourceContents",
    "Cancellation",
    "CancellationResult",
    "CapabilityRegistry",
    "CompletionResult",
    "ConfigurationError",
    "EmbeddedResource",
    "ImageContent",
    "ImageMessage",
    "IncludeContext",
    "InvalidArgumentError",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "LogLevel",
    "McpError",
    "McpFeatures",
    "McpRequest",
    "MissingArgumentError",
    "Page",
    "Paginator",
    "Parameters",
    "PromptArgument",
    "PromptMessage",
    "ResourceNotFoundError",
    "Role",
    "Root",
    "RootsError",
    "SamplingError",
    "SamplingRequest",
    "SamplingResponse",
    "SamplingTimeoutError",
    "SamplingTypeMismatchError",
    "StopReason",
    "TemplateSyntaxError",
    "TextContent",
    "TextMessage",
    "TextResourceContents",
    "Tool",
    "ToolAnnotations",
    "ToolCallResult",
    "UriTemplate",
    "get_registry",
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "RESOURCE_NOT_FOUND",
]
