"""Pydantic models for MCP JSON-RPC 2.0 protocol."""

import base64
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# JSON-RPC 2.0 Base Models
# =============================================================================


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request object."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: int | str | None = None  # None for notifications
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("params", mode="before")
    @classmethod
    def _null_params(cls, value: Any) -> Any:
        return {} if value is None else value


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response object."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: int | str | None = None
    result: Any = None
    error: JsonRpcError | None = None

    def model_dump(self, **kwargs: Any) -> dict[str, Any]:
        """Custom serialization to exclude None fields appropriately."""
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            error = self.error.model_dump()
            if error.get("data") is None:
                error.pop("data", None)
            data["error"] = error
        else:
            data["result"] = self.result
        return data


def create_jsonrpc_notification(method: str, params: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "method": method, "params": params}


def create_jsonrpc_request(
    request_id: int | str, method: str, params: dict[str, Any] | None = None
) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


def is_response(payload: dict[str, Any]) -> bool:
    """A client answer to a server-initiated request has an id but no method."""
    return "method" not in payload and "id" in payload


# =============================================================================
# MCP Content Types
# =============================================================================


class Role(str, Enum):
    """Author of a prompt or sampling message."""

    USER = "user"
    ASSISTANT = "assistant"


class McpModel(BaseModel):
    """Base for protocol payloads; serializes without unset optionals."""

    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class TextContent(McpModel):
    """Text content returned by tools and prompts."""

    type: Literal["text"] = "text"
    text: str


class ImageContent(McpModel):
    """Image content (base64 encoded)."""

    type: Literal["image"] = "image"
    data: str  # base64 encoded
    mimeType: str

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> "ImageContent":
        return cls(data=base64.b64encode(data).decode("ascii"), mimeType=mime_type)


class AudioContent(McpModel):
    """Audio content (base64 encoded)."""

    type: Literal["audio"] = "audio"
    data: str  # base64 encoded
    mimeType: str

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> "AudioContent":
        return cls(data=base64.b64encode(data).decode("ascii"), mimeType=mime_type)


class TextResourceContents(McpModel):
    """Text body of a resource."""

    uri: str | None = None
    mimeType: str | None = "text/plain"
    text: str


class BlobResourceContents(McpModel):
    """Binary body of a resource (base64 encoded)."""

    uri: str | None = None
    mimeType: str | None = "application/octet-stream"
    blob: str

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str, uri: str | None = None) -> "BlobResourceContents":
        return cls(uri=uri, mimeType=mime_type, blob=base64.b64encode(data).decode("ascii"))


ResourceContents = TextResourceContents | BlobResourceContents


class EmbeddedResource(McpModel):
    """A resource embedded in a tool result or prompt message."""

    type: Literal["resource"] = "resource"
    resource: TextResourceContents | BlobResourceContents


Content = TextContent | ImageContent | AudioContent | EmbeddedResource


class PromptMessage(McpModel):
    """One message produced by a prompt."""

    role: Role = Role.USER
    content: Content

    @classmethod
    def text(cls, text: str, role: Role = Role.USER) -> "PromptMessage":
        return cls(role=role, content=TextContent(text=text))


# =============================================================================
# MCP Capability Models
# =============================================================================


class ToolAnnotations(McpModel):
    """Behavioural hints about a tool, sent from protocol version 2025 on."""

    title: str = ""
    readOnlyHint: bool = False
    destructiveHint: bool = True
    idempotentHint: bool = False
    openWorldHint: bool = True


class Tool(McpModel):
    """MCP tool definition."""

    name: str = Field(..., description="Tool name")
    description: str = Field(..., description="Human-readable description")
    inputSchema: dict[str, Any] = Field(
        ..., description="JSON Schema for tool input"
    )
    annotations: ToolAnnotations | None = None


class ToolCallResult(McpModel):
    """Result of a tool call."""

    content: list[Content]
    isError: bool = False

    def to_json(self) -> dict[str, Any]:
        return {"content": [item.to_json() for item in self.content], "isError": self.isError}


class PromptArgumentInfo(McpModel):
    name: str
    description: str = ""
    required: bool = False


class Prompt(McpModel):
    """MCP prompt definition."""

    name: str
    description: str
    arguments: list[PromptArgumentInfo] = Field(default_factory=list)


class Resource(McpModel):
    """MCP static resource definition."""

    uri: str
    name: str
    description: str
    mimeType: str


class ResourceTemplate(McpModel):
    """MCP resource template definition."""

    uriTemplate: str
    name: str
    description: str
    mimeType: str


class CompletionResult(McpModel):
    """Candidate values for a completion request.

    The protocol caps a single response at 100 values; extra candidates are
    dropped and reported through ``hasMore``.
    """

    values: list[str] = Field(default_factory=list)
    total: int | None = None
    hasMore: bool = False

    @classmethod
    def of(cls, values: list[str], max_values: int = 100) -> "CompletionResult":
        values = list(values)
        return cls(
            values=values[:max_values],
            total=len(values),
            hasMore=len(values) > max_values,
        )

    def capped(self, max_values: int = 100) -> "CompletionResult":
        """This result trimmed to ``max_values``, keeping the reported total."""
        if len(self.values) <= max_values:
            return self
        total = len(self.values) if self.total is None else self.total
        return CompletionResult(values=self.values[:max_values], total=total, hasMore=True)

    def to_json(self) -> dict[str, Any]:
        total = len(self.values) if self.total is None else self.total
        return {"completion": {"values": self.values, "total": total, "hasMore": self.hasMore}}


class Root(McpModel):
    """A filesystem or URI root exposed by the client."""

    uri: str
    name: str | None = None


# =============================================================================
# MCP Protocol Models
# =============================================================================


class ClientInfo(BaseModel):
    """Client information sent during initialization."""

    name: str
    version: str


class ServerInfo(BaseModel):
    """Server information returned during initialization."""

    name: str
    version: str


class InitializeParams(BaseModel):
    """Parameters for initialize request."""

    protocolVersion: str
    capabilities: dict[str, Any] = Field(default_factory=dict)
    clientInfo: ClientInfo


class InitializeResult(BaseModel):
    """Result of initialize request."""

    protocolVersion: str
    capabilities: dict[str, Any]
    serverInfo: ServerInfo
    instructions: str = ""


class ListResult(BaseModel):
    """Generic page of a list method; ``key`` names the items field."""

    key: str
    items: list[dict[str, Any]]
    nextCursor: str = ""

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {self.key: self.items}
        if self.nextCursor:
            data["nextCursor"] = self.nextCursor
        return data
