"""Decoding of backend responses into data or a normalised ApiError.

The backend is inconsistent about declaring content types, so successful
responses fall back through JSON, text and binary decoding and never raise.
Failed responses are reduced to an ApiError value; callers decide whether to
raise it via ``ParsedResponse.unwrap``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from libraryclient.services.errors import ApiError

logger = logging.getLogger(__name__)

ResultKind = Literal["json", "text", "binary", "empty", "error"]

BINARY_CONTENT_TYPES = ("application/pdf", "application/octet-stream", "image/")


def empty_success() -> dict[str, Any]:
    """Marker returned when a successful response carried no usable data."""
    return {"status": True}


@dataclass(frozen=True)
class ParsedResponse:
    ok: bool
    kind: ResultKind
    data: Any = None
    error: ApiError | None = None
    status: int | None = None

    def unwrap(self) -> Any:
        """Return the decoded data or raise the normalised error."""
        if self.error is not None:
            raise self.error
        return self.data


def generic_failure_message(status: int) -> str:
    return f"Request failed with status {status}"


def extract_error_message(payload: Any) -> str | None:
    """Pull a display message out of a decoded error body.

    ``message`` wins; otherwise every value of ``errors`` is flattened and
    joined (Laravel validation bags map field names to lists of messages).
    """
    if not isinstance(payload, dict):
        return None

    message = payload.get("message")
    if isinstance(message, str) and message.strip():
        return message.strip()

    errors = payload.get("errors")
    if isinstance(errors, dict):
        values: list[Any] = list(errors.values())
    elif isinstance(errors, (list, tuple)):
        values = list(errors)
    elif isinstance(errors, str):
        values = [errors]
    else:
        return None

    flattened: list[str] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            flattened.extend(str(item) for item in value if item is not None)
        elif value is not None:
            flattened.append(str(value))
    joined = " ".join(part for part in flattened if part)
    return joined or None


def _content_type(response: httpx.Response) -> str:
    return response.headers.get("content-type", "").lower()


def _is_json(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip()
    return media_type == "application/json" or media_type.endswith("+json")


def _is_binary(content_type: str) -> bool:
    return any(marker in content_type for marker in BINARY_CONTENT_TYPES)


def _build_error(response: httpx.Response, content_type: str) -> ApiError:
    status = response.status_code
    if _is_json(content_type) or not content_type:
        try:
            payload = response.json()
        except ValueError:
            logger.debug("Error body for status %s is not JSON", status)
        else:
            message = (
                extract_error_message(payload)
                or response.reason_phrase
                or generic_failure_message(status)
            )
            return ApiError(message, status=status, payload=payload)
    return ApiError(
        generic_failure_message(status), status=status, payload=response.text or None
    )


def _success(kind: ResultKind, data: Any, status: int) -> ParsedResponse:
    return ParsedResponse(ok=True, kind=kind, data=data, status=status)


def parse_response(response: httpx.Response) -> ParsedResponse:
    """Decode *response* into a ParsedResponse.

    Args:
        response: A fully read httpx response.

    Returns:
        ParsedResponse whose ``error`` is set for non-2xx statuses.
    """
    content_type = _content_type(response)
    status = response.status_code

    if not response.is_success:
        error = _build_error(response, content_type)
        return ParsedResponse(ok=False, kind="error", error=error, status=status)

    body = response.content

    if _is_json(content_type):
        try:
            return _success("json", response.json(), status)
        except ValueError:
            logger.warning(
                "Response labelled %s is not valid JSON (status %s)",
                content_type,
                status,
            )
            if not body:
                return _success("empty", empty_success(), status)
            return _success("text", response.text, status)

    if _is_binary(content_type):
        return _success("binary", body, status)

    if content_type.startswith("text/"):
        text = response.text
        try:
            return _success("json", json.loads(text), status)
        except ValueError:
            return _success("text", text, status)

    # Missing or unrecognised content type.
    if not body:
        return _success("empty", empty_success(), status)
    try:
        return _success("json", response.json(), status)
    except ValueError:
        pass
    try:
        return _success("text", body.decode("utf-8"), status)
    except UnicodeDecodeError:
        pass
    return _success("binary", body, status)


__all__ = [
    "ParsedResponse",
    "empty_success",
    "extract_error_message",
    "generic_failure_message",
    "parse_response",
]
