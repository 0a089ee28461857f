"""Tests for protocol error types."""

import pytest

from toolhost.protocol import errors
from toolhost.protocol.errors import (
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    ParseError,
    ProtocolError,
    RequestCancelledError,
    ToolExecutionError,
    ToolNotFoundError,
)


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (ParseError("x"), -32700),
        (InvalidRequestError("x"), -32600),
        (MethodNotFoundError("x"), -32601),
        (InvalidParamsError("x"), -32602),
        (InternalError("x"), -32603),
        (ToolExecutionError("t", "x"), -32000),
        (ToolNotFoundError("t"), -32001),
        (RequestCancelledError("x"), -32800),
    ],
)
def test_codes(exc: ProtocolError, code: int) -> None:
    assert exc.code == code
    assert exc.to_error().code == code


def test_codes_are_distinct() -> None:
    codes = [
        errors.PARSE_ERROR,
        errors.INVALID_REQUEST,
        errors.METHOD_NOT_FOUND,
        errors.INVALID_PARAMS,
        errors.INTERNAL_ERROR,
        errors.TOOL_EXECUTION_ERROR,
        errors.TOOL_NOT_FOUND,
        errors.REQUEST_CANCELLED,
    ]
    assert len(set(codes)) == len(codes)


def test_tool_execution_message_passes_detail_through() -> None:
    exc = ToolExecutionError("read_query", "no such table: users")
    assert exc.message == "Tool execution failed: read_query: no such table: users"
    assert exc.detail == "no such table: users"


def test_method_not_found_names_method() -> None:
    error = MethodNotFoundError("resources/list").to_error()
    assert error.message == "Method not found: resources/list"
    assert error.data is None


def test_data_is_carried() -> None:
    error = ProtocolError("boom", data={"hint": 1}).to_error()
    assert error.data == {"hint": 1}


def test_default_message_is_class_name() -> None:
    assert ProtocolError().message == "ProtocolError"


def test_invalid_request_keeps_id() -> None:
    assert InvalidRequestError("x", request_id="abc").request_id == "abc"


def test_startup_errors_are_not_protocol_errors() -> None:
    assert not issubclass(errors.DuplicateToolError, ProtocolError)
    assert issubclass(errors.ToolLoadError, errors.RegistryError)
