"""Envelope codec: bytes to typed requests, typed responses to bytes.

The codec is format-only.  Malformed input never escapes as anything other
than :class:`~toolhost.protocol.errors.ParseError` or
:class:`~toolhost.protocol.errors.InvalidRequestError`, which the router
turns into protocol-level error responses.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from toolhost.protocol.errors import InvalidRequestError, ParseError
from toolhost.protocol.models import JSONRPC_VERSION, JsonRpcRequest, JsonRpcResponse, RequestId


def decode(data: bytes | str) -> JsonRpcRequest:
    """Parse one envelope into a request (or notification, when ``id`` is absent).

    Raises:
        ParseError: invalid UTF-8, invalid JSON, or a top-level non-object.
        InvalidRequestError: a JSON object that is not a usable request.
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"invalid UTF-8: {exc.reason}") from exc

    try:
        raw: Any = json.loads(data)
    except json.JSONDecodeError as exc:
        raise ParseError(exc.msg) from exc

    if isinstance(raw, list):
        raise InvalidRequestError("batch requests are not supported")
    if not isinstance(raw, dict):
        raise ParseError(f"expected a JSON object, got {type(raw).__name__}")

    request_id = _recover_id(raw)

    if "id" in raw and request_id is None:
        raise InvalidRequestError("'id' must be a string or an integer")
    if raw.get("jsonrpc", JSONRPC_VERSION) != JSONRPC_VERSION:
        raise InvalidRequestError("unsupported 'jsonrpc' version", request_id=request_id)

    method = raw.get("method")
    if not isinstance(method, str) or not method:
        raise InvalidRequestError("'method' must be a non-empty string", request_id=request_id)

    params = raw.get("params")
    if params is not None and not isinstance(params, dict | list):
        raise InvalidRequestError("'params' must be an object or an array", request_id=request_id)

    try:
        return JsonRpcRequest(method=method, id=request_id, params=params)
    except ValidationError as exc:
        raise InvalidRequestError(str(exc), request_id=request_id) from exc


def encode(response: JsonRpcResponse) -> bytes:
    """Serialize a response to compact UTF-8 JSON (no framing)."""
    payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": response.id}
    if response.error is not None:
        error: dict[str, Any] = {"code": response.error.code, "message": response.error.message}
        if response.error.data is not None:
            error["data"] = response.error.data
        payload["error"] = error
    else:
        payload["result"] = response.result
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")


def encode_line(response: JsonRpcResponse) -> bytes:
    """Serialize a response for newline-delimited transports."""
    return encode(response) + b"\n"


def decode_response(data: bytes | str) -> JsonRpcResponse:
    """Parse a response envelope, e.g. on the caller side of a transport."""
    try:
        raw: Any = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ParseError(str(exc)) from exc
    if not isinstance(raw, dict):
        raise ParseError("expected a JSON object")
    try:
        return JsonRpcResponse.model_validate(raw)
    except ValidationError as exc:
        raise InvalidRequestError(str(exc), request_id=_recover_id(raw)) from exc


def _recover_id(raw: dict[str, Any]) -> RequestId | None:
    """Return the envelope id if it has a usable type, else ``None``."""
    value = raw.get("id")
    if isinstance(value, bool):
        return None
    if isinstance(value, int | str):
        return value
    return None
