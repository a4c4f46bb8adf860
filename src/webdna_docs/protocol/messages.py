"""Newline-delimited JSON message types exchanged with the worker.

Every line on the wire is one JSON object whose `type` field selects the
message kind:

| type        | direction      | fields                       |
|-------------|----------------|------------------------------|
| init        | engine→worker  |                              |
| ready       | worker→engine  |                              |
| list_tools  | engine→worker  | id?                          |
| tools       | worker→engine  | tools, id?                   |
| invoke_tool | engine→worker  | tool, params, id             |
| tool_result | worker→engine  | id, result                   |
| tool_error  | worker→engine  | id, error.message, error.code?|
| ping        | worker→engine  | id, timestamp?, uptime?      |
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class ProtocolError(ValueError):
    """Raised when a line cannot be decoded into a known message."""

    def __init__(self, message: str, raw: str, payload: Any = None) -> None:
        super().__init__(message)
        self.raw = raw
        self.payload = payload

    @property
    def request_id(self) -> str | None:
        """The id carried by a well-formed JSON object, if any."""
        if isinstance(self.payload, dict) and isinstance(self.payload.get("id"), str):
            return self.payload["id"]
        return None


class _Message(BaseModel):
    model_config = ConfigDict(extra="ignore")


class InitMessage(_Message):
    type: Literal["init"] = "init"


class ReadyMessage(_Message):
    type: Literal["ready"] = "ready"


class ListToolsMessage(_Message):
    type: Literal["list_tools"] = "list_tools"
    id: str | None = None


class ToolsMessage(_Message):
    type: Literal["tools"] = "tools"
    tools: list[dict[str, Any]]
    id: str | None = None


class InvokeToolMessage(_Message):
    type: Literal["invoke_tool"] = "invoke_tool"
    tool: str
    params: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None


class ToolResultMessage(_Message):
    type: Literal["tool_result"] = "tool_result"
    id: str
    result: Any = None


class ErrorDetail(BaseModel):
    message: str
    code: str | None = None


class ToolErrorMessage(_Message):
    type: Literal["tool_error"] = "tool_error"
    id: str | None = None
    error: ErrorDetail


class PingMessage(_Message):
    type: Literal["ping"] = "ping"
    id: str | None = None
    timestamp: int | None = None
    uptime: int | None = None


Message = Annotated[
    Union[
        InitMessage,
        ReadyMessage,
        ListToolsMessage,
        ToolsMessage,
        InvokeToolMessage,
        ToolResultMessage,
        ToolErrorMessage,
        PingMessage,
    ],
    Field(discriminator="type"),
]

# Messages an engine caller can wait on.
Request = Union[ListToolsMessage, InvokeToolMessage]
Response = Union[ToolsMessage, ToolResultMessage, ToolErrorMessage]

_MESSAGE_ADAPTER: TypeAdapter[Any] = TypeAdapter(Message)


def decode_message(line: str | bytes) -> Message:
    """Parse one wire line into its message model."""
    raw = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line
    raw = raw.strip()
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"Invalid JSON: {exc.msg}", raw) from exc
    if not isinstance(payload, dict):
        raise ProtocolError("Message must be a JSON object", raw, payload)
    try:
        return _MESSAGE_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        kind = payload.get("type")
        raise ProtocolError(f"Invalid {kind or 'untyped'} message: {exc.error_count()} error(s)", raw, payload) from exc


def encode_message(message: BaseModel) -> str:
    """Serialize a message to one newline-terminated line.

    Unset optional envelope fields (such as a missing `id`) are omitted; the
    payload itself is written verbatim, nulls included.
    """
    return json.dumps(message_payload(message), ensure_ascii=False) + "\n"


def message_payload(message: BaseModel) -> dict[str, Any]:
    data = message.model_dump(mode="json")
    return {key: value for key, value in data.items() if value is not None}


def error_message(request_id: str | None, message: str, code: str | None = None) -> ToolErrorMessage:
    return ToolErrorMessage(id=request_id, error=ErrorDetail(message=message, code=code))
