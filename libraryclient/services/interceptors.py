"""
Standard interceptors installed on the pipeline at startup.

- auth header injection for calls to the library API
- notice payload reshaping into the backend's wire format
- session teardown on 401 responses
- network / 401 error recovery into well-formed JSON responses
- development-mode response logging
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

import httpx

from libraryclient.core.config import ApiConfig, Settings
from libraryclient.services.errors import ApiError
from libraryclient.services.pipeline import (
    ErrorHandler,
    HttpPipeline,
    RequestConfig,
    RequestInterceptor,
    ResponseInterceptor,
)
from libraryclient.services.session import FORCE_LOGOUT_KEY, Navigator, SessionStore

logger = logging.getLogger(__name__)

NOTICES_ENDPOINT = "/notices"
NETWORK_ERROR_STATUS = 0
NETWORK_ERROR_MESSAGE = "Network error. Please check your internet connection."
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."

_GREEN = "\033[1;32m"
_RED = "\033[1;31m"
_RESET = "\033[0m"


def _json_response(status: int, payload: dict[str, Any], request: httpx.Request | None) -> httpx.Response:
    return httpx.Response(status, json=payload, request=request)


def _synthetic_request(url: str, config: RequestConfig) -> httpx.Request | None:
    try:
        return httpx.Request(config.method, url)
    except (httpx.InvalidURL, httpx.UnsupportedProtocol, ValueError):
        return None


def end_session(session: SessionStore, navigator: Navigator, sign_in_path: str) -> None:
    """Drop persisted credentials and send the user to sign-in."""
    session.clear_auth()
    if sign_in_path not in navigator.current_path:
        navigator.navigate(sign_in_path)


# =============================================================================
# Request interceptors
# =============================================================================


def auth_header_interceptor(
    config: ApiConfig, session: SessionStore
) -> RequestInterceptor:
    """Attach ``Authorization: Bearer`` to API calls that lack it."""

    async def inject_auth(url: str, request: RequestConfig) -> tuple[str, RequestConfig]:
        if not url.startswith(config.get_base_url()) or "authorization" in request.headers:
            return url, request

        headers = httpx.Headers(request.headers)
        if "content-type" not in headers:
            headers["Content-Type"] = "application/json"

        token = session.token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        return url, request.replace(headers=headers)

    return inject_auth


def reshape_notice_payload(body: dict[str, Any]) -> dict[str, Any]:
    """Map an internal notice shape onto the fields the backend expects."""
    return {
        "title": body.get("title"),
        "description": body.get("description"),
        "user_id": body.get("user_id") or 1,
        "course_code": body.get("course_code") or None,
        "semester": body.get("semester") or None,
        "notification_type": body.get("notification_type") or "general",
        "expires_at": body.get("expires_at") or body.get("expiry_date") or None,
    }


def notice_payload_interceptor(config: ApiConfig) -> RequestInterceptor:
    """Rewrite JSON bodies of POST/PUT calls to the notices endpoint."""

    async def format_notice(url: str, request: RequestConfig) -> tuple[str, RequestConfig]:
        target = f"{config.get_base_url()}{NOTICES_ENDPOINT}"
        if target not in url or request.method not in ("POST", "PUT"):
            return url, request
        if not isinstance(request.content, (str, bytes)) or not request.content:
            return url, request

        try:
            current = json.loads(request.content)
        except ValueError as exc:
            logger.error("Error formatting notification data: %s", exc)
            return url, request
        if not isinstance(current, dict):
            return url, request

        headers = httpx.Headers(request.headers)
        headers.pop("content-length", None)
        return url, request.replace(
            headers=headers, content=json.dumps(reshape_notice_payload(current))
        )

    return format_notice


# =============================================================================
# Response interceptors
# =============================================================================


def session_expiry_interceptor(
    session: SessionStore, navigator: Navigator, sign_in_path: str = "/signin"
) -> ResponseInterceptor:
    """Clear the session and redirect to sign-in on 401 responses."""

    async def handle_auth_status(response: httpx.Response) -> httpx.Response:
        if response.status_code == 401:
            logger.warning("Received 401 from %s; ending session", response.request.url)
            end_session(session, navigator, sign_in_path)
        elif response.status_code == 403:
            logger.warning("Access forbidden: %s", response.request.url)
        return response

    return handle_auth_status


def dev_logging_interceptor() -> ResponseInterceptor:
    async def log_response(response: httpx.Response) -> httpx.Response:
        request = response.request
        if response.is_success:
            logger.info(
                "%s%s %s %s%s", _GREEN, request.method, request.url, response.status_code, _RESET
            )
        else:
            logger.warning(
                "%s%s %s %s%s", _RED, request.method, request.url, response.status_code, _RESET
            )
        return response

    return log_response


# =============================================================================
# Error handlers
# =============================================================================


def find_status(error: BaseException) -> int | None:
    """Return the HTTP status carried by *error* or an error it explicitly wraps.

    Only ``raise ... from`` chains are followed; an error that merely occurred
    while another was being handled says nothing about the session.
    """
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ApiError) and current.status is not None:
            return current.status
        if isinstance(current, httpx.HTTPStatusError):
            return current.response.status_code
        current = current.__cause__
    return None


def network_error_handler(
    session: SessionStore,
    navigator: Navigator,
    sign_in_path: str = "/signin",
    teardown_delay: float = 0.1,
    scheduler: Callable[[float, Callable[[], None]], Any] | None = None,
) -> ErrorHandler:
    """Turn transport failures and 401 errors into JSON responses.

    The session teardown for a 401 is deferred by *teardown_delay* seconds so
    the triggering call can settle first.
    """

    def schedule(delay: float, callback: Callable[[], None]) -> Any:
        if scheduler is not None:
            return scheduler(delay, callback)
        return asyncio.get_running_loop().call_later(delay, callback)

    def teardown() -> None:
        session.set(FORCE_LOGOUT_KEY, "true")
        end_session(session, navigator, sign_in_path)

    async def handle_error(
        error: Exception, url: str, request: RequestConfig
    ) -> httpx.Response:
        if isinstance(error, httpx.TransportError):
            logger.error("Network error for %s %s: %s", request.method, url, error)
            return _json_response(
                NETWORK_ERROR_STATUS,
                {"success": False, "message": NETWORK_ERROR_MESSAGE},
                _synthetic_request(url, request),
            )

        if find_status(error) == 401:
            logger.warning("Authentication failed for %s %s", request.method, url)
            schedule(teardown_delay, teardown)
            return _json_response(
                401,
                {"status": False, "message": SESSION_EXPIRED_MESSAGE},
                _synthetic_request(url, request),
            )

        logger.error("Fetch error for %s %s: %r", request.method, url, error)
        raise error

    return handle_error


def setup_interceptors(
    pipeline: HttpPipeline,
    config: ApiConfig,
    session: SessionStore,
    navigator: Navigator,
    settings: Settings,
) -> None:
    """Install the standard interceptor chain on *pipeline*."""
    pipeline.add_request_interceptor(auth_header_interceptor(config, session))
    pipeline.add_request_interceptor(notice_payload_interceptor(config))
    pipeline.add_response_interceptor(
        session_expiry_interceptor(session, navigator, settings.sign_in_path)
    )
    pipeline.add_error_handler(
        network_error_handler(
            session,
            navigator,
            sign_in_path=settings.sign_in_path,
            teardown_delay=settings.session_teardown_delay_seconds,
        )
    )
    if not config.is_production():
        pipeline.add_response_interceptor(dev_logging_interceptor())


__all__ = [
    "NETWORK_ERROR_MESSAGE",
    "NETWORK_ERROR_STATUS",
    "SESSION_EXPIRED_MESSAGE",
    "auth_header_interceptor",
    "dev_logging_interceptor",
    "end_session",
    "find_status",
    "network_error_handler",
    "notice_payload_interceptor",
    "reshape_notice_payload",
    "session_expiry_interceptor",
    "setup_interceptors",
]
