"""JSON-RPC 2.0 error codes, protocol error kinds and the Outcome type."""

from enum import Enum
from typing import Any

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700  # Invalid JSON was received
INVALID_REQUEST = -32600  # The JSON sent is not a valid Request object
METHOD_NOT_FOUND = -32601  # The method does not exist / is not available
INVALID_PARAMS = -32602  # Invalid method parameter(s)
INTERNAL_ERROR = -32603  # Internal JSON-RPC error

# MCP server-defined error codes
RESOURCE_NOT_FOUND = -32002  # No resource or template matches the URI


class ErrorKind(Enum):
    """Protocol error kinds, each bound to its wire code."""

    PARSE_ERROR = "parse_error"
    INVALID_REQUEST = "invalid_request"
    METHOD_NOT_FOUND = "method_not_found"
    INVALID_PARAMS = "invalid_params"
    INTERNAL_ERROR = "internal_error"
    RESOURCE_NOT_FOUND = "resource_not_found"
    # Registry kinds
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"

    @property
    def code(self) -> int:
        return _KIND_CODES[self]


_KIND_CODES = {
    ErrorKind.PARSE_ERROR: PARSE_ERROR,
    ErrorKind.INVALID_REQUEST: INVALID_REQUEST,
    ErrorKind.METHOD_NOT_FOUND: METHOD_NOT_FOUND,
    ErrorKind.INVALID_PARAMS: INVALID_PARAMS,
    ErrorKind.INTERNAL_ERROR: INTERNAL_ERROR,
    ErrorKind.RESOURCE_NOT_FOUND: RESOURCE_NOT_FOUND,
    ErrorKind.ALREADY_EXISTS: INVALID_PARAMS,
    ErrorKind.NOT_FOUND: RESOURCE_NOT_FOUND,
}


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
# Outcome
# =============================================================================


class Success:
    """Successful outcome carrying a payload."""

    __slots__ = ("value",)

    def __init__(self, value: Any = None):
        self.value = value

    @property
    def ok(self) -> bool:
        return True

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Success) and other.value == self.value

    def __repr__(self) -> str:
        return f"Success({self.value!r})"


class Failure:
    """Typed failure: an error kind, a message and optional data.

    ``fault`` is set when the failure was produced by catching an exception
    rather than returned by a handler.
    """

    __slots__ = ("kind", "message", "data", "fault")

    def __init__(
        self,
        kind: ErrorKind,
        message: str | None = None,
        data: Any = None,
        fault: bool = False,
    ):
        self.kind = kind
        self.message = message or error_message(kind.code)
        self.data = data
        self.fault = fault

    @classmethod
    def from_exception(cls, exc: BaseException) -> "Failure":
        """Wrap a caught exception as an internal error."""
        if isinstance(exc, ProtocolError):
            return exc.failure
        return cls(ErrorKind.INTERNAL_ERROR, str(exc) or type(exc).__name__, fault=True)

    @property
    def ok(self) -> bool:
        return False

    @property
    def code(self) -> int:
        return self.kind.code

    def to_error(self) -> dict[str, Any]:
        """Render as a JSON-RPC error object."""
        return make_error_data(self.code, self.message, self.data)

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Failure)
            and other.kind is self.kind
            and other.message == self.message
            and other.data == self.data
        )

    def __repr__(self) -> str:
        return f"Failure({self.kind.name}, {self.message!r})"


Outcome = Success | Failure


class ProtocolError(Exception):
    """Exception form of a typed failure, for handlers that prefer raising."""

    def __init__(self, kind: ErrorKind, message: str, data: Any = None):
        super().__init__(message)
        self.failure = Failure(kind, message, data)
