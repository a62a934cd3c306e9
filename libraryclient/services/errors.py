"""Library client exception definitions."""

from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """Uniform failure raised by every client operation.

    ``message`` is always a non-empty, human readable string. ``status`` is the
    HTTP status when the failure came from a response, and ``payload`` keeps
    whatever body the server returned.
    """

    default_message = "Request failed"

    def __init__(
        self,
        message: str | None = None,
        status: int | None = None,
        payload: Any = None,
    ) -> None:
        self.message = message or self.default_message
        self.status = status
        self.payload = payload
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "status": self.status, "payload": self.payload}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, status={self.status!r})"


class NetworkError(ApiError):
    """Raised when the backend could not be reached."""

    default_message = "Network error. Please check your internet connection."


class RequestCancelledError(ApiError):
    """Raised when a tracked request was superseded or cancelled."""

    default_message = "Request was cancelled"


class InvalidResponseError(ApiError):
    """Raised when a successful response carries an unreadable body."""

    default_message = "Invalid response from server"


class ResponseValidationError(ApiError):
    """Raised when a response does not match the expected result shape."""

    default_message = "Unexpected response structure received from the server"


class NocNotEligibleError(ApiError):
    """Raised when a student cannot be issued a library clearance."""

    default_message = "Student is not eligible for a NOC"


__all__ = [
    "ApiError",
    "NetworkError",
    "RequestCancelledError",
    "InvalidResponseError",
    "ResponseValidationError",
    "NocNotEligibleError",
]
