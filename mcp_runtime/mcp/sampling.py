"""Server-initiated sampling: asking the client to run an LLM completion.

The server sends ``sampling/createMessage`` to the client over the session's
outbound channel and waits, bounded by the request timeout, for the client to
post the answer back.

Usage inside a tool handler:
    response = await request.features.sampling.request(
        messages=[TextMessage(text="Summarize this")],
        max_tokens=200,
        intelligence_priority=0.8,
    )
    summary = response.as_text_message().text
"""

import asyncio
import base64
import binascii
import logging
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mcp_runtime.mcp.errors import (
    SamplingError,
    SamplingTimeoutError,
    SamplingTypeMismatchError,
)
from mcp_runtime.mcp.models import Role, create_jsonrpc_request

if TYPE_CHECKING:
    from mcp_runtime.mcp.session import McpSession

logger = logging.getLogger(__name__)

METHOD_SAMPLING_CREATE_MESSAGE = "sampling/createMessage"


class StopReason(str, Enum):
    """Why the client's model stopped generating."""

    END_TURN = "endTurn"
    STOP_SEQUENCE = "stopSequence"
    MAX_TOKENS = "maxTokens"

    @classmethod
    def parse(cls, reason: str | None) -> "StopReason | None":
        if reason is None:
            return None
        normalized = reason.replace("_", "").lower()
        for stop_reason in cls:
            if stop_reason.value.lower() == normalized:
                return stop_reason
        logger.debug(f"Unknown sampling stop reason: {reason}")
        return None


class IncludeContext(str, Enum):
    """Which MCP context the client should attach to the prompt."""

    NONE = "none"
    THIS_SERVER = "thisServer"
    ALL_SERVERS = "allServers"


# =============================================================================
# Sampling messages
# =============================================================================


class TextMessage(BaseModel):
    type: Literal["text"] = "text"
    text: str
    role: Role = Role.USER

    def to_json(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": {"type": self.type, "text": self.text}}


class _BinaryMessage(BaseModel):
    data: bytes
    mime_type: str
    role: Role = Role.USER

    def encode_base64_data(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_json(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "content": {
                "type": self.type,
                "data": self.encode_base64_data(),
                "mimeType": self.mime_type,
            },
        }


class ImageMessage(_BinaryMessage):
    type: Literal["image"] = "image"


class AudioMessage(_BinaryMessage):
    type: Literal["audio"] = "audio"


SamplingMessage = TextMessage | ImageMessage | AudioMessage


# =============================================================================
# Request
# =============================================================================


def _check_unit_range(value: float | None, label: str) -> float | None:
    if value is not None and not 0 <= value <= 1:
        raise ValueError(f"{label} must be in range [0, 1]")
    return value


class SamplingRequest(BaseModel):
    """A validated ``sampling/createMessage`` request.

    Temperature and the three model priorities are range-checked when the
    request is built, so an invalid request never reaches the client.
    """

    model_config = ConfigDict(frozen=True)

    messages: list[SamplingMessage] = Field(default_factory=list)
    max_tokens: int = 100
    temperature: float | None = None
    cost_priority: float | None = None
    speed_priority: float | None = None
    intelligence_priority: float | None = None
    stop_sequences: list[str] | None = None
    system_prompt: str | None = None
    include_context: IncludeContext | None = None
    hints: list[str] | None = None
    metadata: Any = None
    timeout: timedelta = timedelta(seconds=5)

    @field_validator("temperature")
    @classmethod
    def _temperature_range(cls, value: float | None) -> float | None:
        return _check_unit_range(value, "Temperature")

    @field_validator("cost_priority")
    @classmethod
    def _cost_priority_range(cls, value: float | None) -> float | None:
        return _check_unit_range(value, "Cost priority")

    @field_validator("speed_priority")
    @classmethod
    def _speed_priority_range(cls, value: float | None) -> float | None:
        return _check_unit_range(value, "Speed priority")

    @field_validator("intelligence_priority")
    @classmethod
    def _intelligence_priority_range(cls, value: float | None) -> float | None:
        return _check_unit_range(value, "Intelligence priority")

    def to_params(self) -> dict[str, Any]:
        """Wire form of the request parameters."""
        model_preferences: dict[str, Any] = {}
        if self.hints is not None:
            model_preferences["hints"] = [{"name": hint} for hint in self.hints]
        if self.speed_priority is not None:
            model_preferences["speedPriority"] = self.speed_priority
        if self.cost_priority is not None:
            model_preferences["costPriority"] = self.cost_priority
        if self.intelligence_priority is not None:
            model_preferences["intelligencePriority"] = self.intelligence_priority

        params: dict[str, Any] = {
            "modelPreferences": model_preferences,
            "messages": [message.to_json() for message in self.messages],
            "maxTokens": self.max_tokens,
        }
        if self.system_prompt is not None:
            params["systemPrompt"] = self.system_prompt
        if self.temperature is not None:
            params["temperature"] = self.temperature
        if self.include_context is not None:
            params["includeContext"] = self.include_context.value
        if self.stop_sequences is not None:
            params["stopSequences"] = list(self.stop_sequences)
        if self.metadata is not None:
            params["metadata"] = self.metadata
        return params


# =============================================================================
# Response
# =============================================================================


class SamplingResponse:
    """The client's answer: exactly one message variant plus model details."""

    def __init__(self, message: SamplingMessage, model: str, stop_reason: StopReason | None = None):
        self.message = message
        self.model = model
        self.stop_reason = stop_reason

    def __repr__(self) -> str:
        return f"SamplingResponse(type={self.message.type}, model={self.model!r})"

    def as_text_message(self) -> TextMessage:
        if isinstance(self.message, TextMessage):
            return self.message
        raise SamplingTypeMismatchError("Sampling message is not text")

    def as_image_message(self) -> ImageMessage:
        if isinstance(self.message, ImageMessage):
            return self.message
        raise SamplingTypeMismatchError("Sampling message is not an image")

    def as_audio_message(self) -> AudioMessage:
        if isinstance(self.message, AudioMessage):
            return self.message
        raise SamplingTypeMismatchError("Sampling message is not audio")

    @classmethod
    def from_jsonrpc(cls, payload: dict[str, Any]) -> "SamplingResponse":
        """Decode a JSON-RPC response posted by the client."""
        error = payload.get("error")
        if isinstance(error, dict):
            raise SamplingError(str(error.get("message", "Sampling request failed")))

        result = payload.get("result")
        if not isinstance(result, dict):
            raise SamplingError("Sampling result not found")

        try:
            role = Role(str(result.get("role", "assistant")).lower())
            content = result["content"]
            message_type = content["type"]
            if message_type == "text":
                message: SamplingMessage = TextMessage(text=content["text"], role=role)
            elif message_type in ("image", "audio"):
                data = base64.b64decode(content["data"], validate=True)
                message_cls = ImageMessage if message_type == "image" else AudioMessage
                message = message_cls(data=data, mime_type=content["mimeType"], role=role)
            else:
                raise SamplingError(f"Unsupported sampling message type: {message_type}")
            model = result["model"]
        except (KeyError, TypeError, ValueError, binascii.Error) as e:
            raise SamplingError("Wrong sampling response format") from e

        return cls(message, model, StopReason.parse(result.get("stopReason")))


# =============================================================================
# Exchange
# =============================================================================


class Sampling:
    """Per-request handle for sending sampling requests to the client."""

    def __init__(self, session: "McpSession"):
        self._session = session

    @property
    def enabled(self) -> bool:
        """Whether the connected client declared the sampling capability."""
        return self._session.supports_sampling

    async def request(self, request: SamplingRequest | None = None, **fields: Any) -> SamplingResponse:
        """Send a sampling request and wait for the client's response.

        Either pass a built ``SamplingRequest`` or its fields as keyword
        arguments.
        """
        if request is None:
            request = SamplingRequest(**fields)
        if not self.enabled:
            raise SamplingError("Sampling feature is not supported by client")

        request_id = self._session.next_request_id()
        payload = create_jsonrpc_request(
            request_id, METHOD_SAMPLING_CREATE_MESSAGE, request.to_params()
        )
        logger.debug(f"Sampling request {request_id} sent to session {self._session.session_id}")
        try:
            response = await self._session.send_request(
                payload, request.timeout.total_seconds()
            )
        except asyncio.TimeoutError:
            raise SamplingTimeoutError(
                f"Sampling response timeout after {request.timeout.total_seconds()}s"
            ) from None
        return SamplingResponse.from_jsonrpc(response)
