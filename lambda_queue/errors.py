"""
Error taxonomy for function dispatch.

Every failure the invocation client classifies is a DispatchError carrying
a ``kind`` discriminator, so callers can branch on ``err.kind`` instead of
inspecting concrete exception types. Anything not listed here propagates
unchanged.
"""

from typing import Any

from lambda_queue.constants import ErrorKind


class ConfigurationError(Exception):
    """Raised when the worker is started with invalid configuration."""


class BackendRequestError(Exception):
    """
    Raised by a backend adapter when the call itself was rejected.

    Mirrors the structured error object a backend client reports: a string
    ``code``, a message and, when known, the HTTP status code. The invocation
    client turns it into a TransportError.
    """

    def __init__(self, code: str, message: str, status_code: int | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


class DispatchError(Exception):
    """Base class for classified dispatch failures."""

    kind: ErrorKind

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for logging."""
        return {"error_kind": self.kind.value, "error": str(self)}


class RemoteFunctionError(DispatchError):
    """
    The function ran but its response encodes an application error.

    Attributes:
        response: The parsed response payload returned by the function.
        error_message: ``errorMessage`` from the response, if present.
        error_type: ``errorType`` from the response, if present.
    """

    kind = ErrorKind.REMOTE_FUNCTION

    def __init__(self, response: dict[str, Any] | None = None):
        response = response or {}
        self.response = response
        self.error_message = response.get("errorMessage")
        self.error_type = response.get("errorType")
        super().__init__(self.error_message or self.error_type or "Remote function error")

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "error_type": self.error_type,
            "response": self.response,
        }


class TransportError(DispatchError):
    """
    The backend rejected the call before producing a function response.

    Covers auth failures, unknown functions, malformed requests and similar
    service-side rejections.
    """

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, code: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    @classmethod
    def from_backend_error(cls, error: BackendRequestError) -> "TransportError":
        return cls(error.message, error.code, error.status_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "code": self.code,
            "status_code": self.status_code,
        }


class RateLimitExceeded(DispatchError):
    """The backend returned a rate-limit response on every attempt."""

    kind = ErrorKind.RATE_LIMIT_EXCEEDED

    def __init__(self, attempts: int):
        super().__init__(f"Rate limit exceeded after {attempts} attempts.")
        self.attempts = attempts

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "attempts": self.attempts}


class PayloadParseError(DispatchError):
    """A synchronous response payload could not be parsed as JSON."""

    kind = ErrorKind.PAYLOAD_PARSE

    def __init__(self, raw_payload: str | bytes | None):
        super().__init__(f"JSON Parse Error: {raw_payload!r}")
        self.raw_payload = raw_payload

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "raw_payload": repr(self.raw_payload)}
