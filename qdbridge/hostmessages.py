"""JSON messages exchanged between the client and the host server."""

from __future__ import annotations

import json
from enum import IntEnum
from typing import Any

HOST_MESSAGE_VERSION = 1

_RESPONSE_FIELD = "response"
_REQUEST_FIELD = "request"
_VERSION_FIELD = "_version"


class RequestType(IntEnum):
    """Requests a client sends to the host server."""

    UNKNOWN = 0
    DEVICES = 1
    WATCH_DEVICES = 2
    STOP_SERVER = 3
    WATCH_MESSAGES = 4
    MESSAGES = 5
    MESSAGES_AND_CLEAR = 6


class ResponseType(IntEnum):
    """Responses the host server sends to a client."""

    UNKNOWN = 0
    DEVICES = 1
    NEW_DEVICE = 2
    DISCONNECTED_DEVICE = 3
    STOPPING = 4
    INVALID_REQUEST = 5
    UNSUPPORTED_VERSION = 6
    MESSAGES = 7


_REQUEST_STRINGS = {
    RequestType.DEVICES: "devices",
    RequestType.WATCH_DEVICES: "watch-devices",
    RequestType.STOP_SERVER: "stop-server",
    RequestType.MESSAGES: "messages",
    RequestType.WATCH_MESSAGES: "watch-messages",
    RequestType.MESSAGES_AND_CLEAR: "messages-and-clear",
}

_RESPONSE_STRINGS = {
    ResponseType.DEVICES: "devices",
    ResponseType.NEW_DEVICE: "new-device",
    ResponseType.DISCONNECTED_DEVICE: "disconnected-device",
    ResponseType.STOPPING: "stopping",
    ResponseType.MESSAGES: "messages",
    ResponseType.INVALID_REQUEST: "invalid-request",
    ResponseType.UNSUPPORTED_VERSION: "unsupported-version",
}

_REQUESTS_BY_STRING = {text: kind for kind, text in _REQUEST_STRINGS.items()}
_RESPONSES_BY_STRING = {text: kind for kind, text in _RESPONSE_STRINGS.items()}


def _serialise(obj: dict[str, Any]) -> bytes:
    text = json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    return text.encode("utf-8") + b"\n"


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not value.is_integer():
        return 0
    return int(value)


def check_host_message_version(obj: dict[str, Any]) -> bool:
    """Tell whether a message carries the supported version."""
    return _as_int(obj.get(_VERSION_FIELD)) == HOST_MESSAGE_VERSION


def request_type_string(type_: RequestType) -> str:
    """Return the wire name of a request type."""
    try:
        return _REQUEST_STRINGS[RequestType(type_)]
    except (KeyError, ValueError):
        raise ValueError(f"request type {type_!r} has no wire name") from None


def response_type_string(type_: ResponseType) -> str:
    """Return the wire name of a response type."""
    try:
        return _RESPONSE_STRINGS[ResponseType(type_)]
    except (KeyError, ValueError):
        raise ValueError(f"response type {type_!r} has no wire name") from None


def create_request(type_: RequestType) -> bytes:
    """Build a serialised request line."""
    obj = {
        _VERSION_FIELD: HOST_MESSAGE_VERSION,
        _REQUEST_FIELD: request_type_string(type_),
    }
    return _serialise(obj)


def request_type(obj: dict[str, Any]) -> RequestType:
    """Return the type of a request object, UNKNOWN if unrecognised."""
    value = obj.get(_REQUEST_FIELD)
    if not isinstance(value, str):
        return RequestType.UNKNOWN
    return _REQUESTS_BY_STRING.get(value, RequestType.UNKNOWN)


def initialize_response(type_: ResponseType) -> dict[str, Any]:
    """Start a response object of the given type."""
    return {
        _VERSION_FIELD: HOST_MESSAGE_VERSION,
        _RESPONSE_FIELD: response_type_string(type_),
    }


def response_type(obj: dict[str, Any]) -> ResponseType:
    """Return the type of a response object, UNKNOWN if unrecognised."""
    value = obj.get(_RESPONSE_FIELD)
    if not isinstance(value, str):
        return ResponseType.UNKNOWN
    return _RESPONSES_BY_STRING.get(value, ResponseType.UNKNOWN)


def serialise_response(obj: dict[str, Any]) -> bytes:
    """Serialise a response object as one compact JSON line."""
    return _serialise(obj)