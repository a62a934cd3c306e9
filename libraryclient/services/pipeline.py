"""
Interceptor pipeline wrapped around the network transport.

Every backend call goes through ``HttpPipeline.fetch``: the request is
normalised, bare API paths get the base URL prepended, request interceptors
rewrite url and config in registration order, the injected httpx client sends
it, response interceptors see independent copies of the response, and any
failure is offered to the error handlers in order.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import AsyncIterable, Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import Any

import httpx

from libraryclient.core.metrics import record_interceptor_failure
from libraryclient.core.telemetry import get_tracer

logger = logging.getLogger(__name__)

RequestContent = bytes | str | AsyncIterable[bytes] | None


@dataclass
class RequestConfig:
    """Everything about an outgoing request except its URL."""

    method: str = "GET"
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    content: RequestContent = None
    params: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        if not isinstance(self.headers, httpx.Headers):
            self.headers = httpx.Headers(self.headers)

    def replace(self, **changes: Any) -> "RequestConfig":
        """Return a copy with *changes* applied; headers are copied, not shared."""
        changes.setdefault("headers", httpx.Headers(self.headers))
        return replace(self, **changes)


RequestInterceptor = Callable[[str, RequestConfig], Awaitable[tuple[str, RequestConfig]]]
ResponseInterceptor = Callable[[httpx.Response], Awaitable[httpx.Response]]
ErrorHandler = Callable[[Exception, str, RequestConfig], Awaitable[httpx.Response]]


class InterceptorKind(str, enum.Enum):
    REQUEST = "request"
    RESPONSE = "response"
    ERROR = "error"


def duplicate_response(response: httpx.Response) -> httpx.Response:
    """Return an independently readable copy of a fully read response."""
    return httpx.Response(
        status_code=response.status_code,
        headers=httpx.Headers(response.headers),
        content=response.content,
        request=response.request if _has_request(response) else None,
        extensions=dict(response.extensions),
    )


def _has_request(response: httpx.Response) -> bool:
    try:
        response.request
    except RuntimeError:
        return False
    return True


def is_absolute_url(url: str) -> bool:
    return url.startswith("//") or "://" in url.split("?", 1)[0]


class HttpPipeline:
    """Owns the three ordered interceptor lists and the network transport."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url_resolver: Callable[[], str],
        endpoint_prefixes: Iterable[str] = (),
    ) -> None:
        self._client = client
        self._base_url_resolver = base_url_resolver
        self._endpoint_prefixes = tuple(endpoint_prefixes)
        self._interceptors: dict[InterceptorKind, list[Callable[..., Any]]] = {
            kind: [] for kind in InterceptorKind
        }

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_request_interceptor(self, interceptor: RequestInterceptor) -> int:
        return self._add(InterceptorKind.REQUEST, interceptor)

    def add_response_interceptor(self, interceptor: ResponseInterceptor) -> int:
        return self._add(InterceptorKind.RESPONSE, interceptor)

    def add_error_handler(self, handler: ErrorHandler) -> int:
        return self._add(InterceptorKind.ERROR, handler)

    def _add(self, kind: InterceptorKind, interceptor: Callable[..., Any]) -> int:
        entries = self._interceptors[kind]
        entries.append(interceptor)
        return len(entries)

    def remove_interceptor(self, kind: InterceptorKind | str, handle: int) -> None:
        """Remove the entry registered under the 1-based *handle*.

        Out-of-range handles are ignored.
        """
        entries = self._interceptors[InterceptorKind(kind)]
        if 0 < handle <= len(entries):
            del entries[handle - 1]

    def clear_interceptors(self, kind: InterceptorKind | str | None = None) -> None:
        if kind is None:
            for entries in self._interceptors.values():
                entries.clear()
            return
        self._interceptors[InterceptorKind(kind)].clear()

    def interceptors(self, kind: InterceptorKind | str) -> tuple[Callable[..., Any], ...]:
        return tuple(self._interceptors[InterceptorKind(kind)])

    # ------------------------------------------------------------------
    # Request flow
    # ------------------------------------------------------------------

    def ensure_base_url(self, url: str) -> str:
        """Prepend the base URL to bare paths that belong to the API."""
        if is_absolute_url(url):
            return url
        for endpoint in self._endpoint_prefixes:
            if (
                url == endpoint
                or url.startswith(f"{endpoint}/")
                or url.startswith(f"{endpoint}?")
            ):
                return f"{self._base_url_resolver()}{url}"
        return url

    @staticmethod
    def _request_content(request: httpx.Request) -> RequestContent:
        stream = request.stream
        if isinstance(stream, httpx.AsyncByteStream) and not isinstance(
            stream, httpx.SyncByteStream
        ):
            return stream
        return request.read()

    @classmethod
    def _normalize(
        cls,
        target: str | httpx.URL | httpx.Request,
        config: RequestConfig | None,
    ) -> tuple[str, RequestConfig]:
        if not isinstance(target, httpx.Request):
            return str(target), config or RequestConfig()

        headers = httpx.Headers(target.headers)
        # Recomputed by the transport once interceptors have settled the body.
        headers.pop("content-length", None)
        decomposed = RequestConfig(
            method=target.method,
            headers=headers,
            content=cls._request_content(target),
        )
        if config is None:
            return str(target.url), decomposed

        # Fields set on the explicit config win over those of the request object.
        headers.update(config.headers)
        return str(target.url), RequestConfig(
            method=config.method,
            headers=headers,
            content=config.content if config.content is not None else decomposed.content,
            params=config.params,
        )

    async def fetch(
        self,
        target: str | httpx.URL | httpx.Request,
        config: RequestConfig | None = None,
    ) -> httpx.Response:
        """Send a request through the interceptor chain.

        Args:
            target: URL (absolute or bare API path) or a prepared httpx.Request
            config: Request settings; when *target* is a Request, fields set
                here take precedence over the request's own

        Returns:
            The response produced by the last response interceptor, or the
            response returned by an error handler that resolved a failure
        """
        url, request_config = self._normalize(target, config)
        original_url = url

        with get_tracer().start_as_current_span(
            "library.fetch",
            attributes={"http.request.method": request_config.method, "library.target": url},
        ) as span:
            try:
                url = self.ensure_base_url(url)
                for interceptor in self.interceptors(InterceptorKind.REQUEST):
                    url, request_config = await interceptor(url, request_config)

                response = await self._send(url, request_config)

                for interceptor in self.interceptors(InterceptorKind.RESPONSE):
                    response = await interceptor(duplicate_response(response))
            except Exception as exc:
                span.set_attribute("library.error.type", type(exc).__name__)
                response = await self._handle_error(exc, original_url, request_config)
            span.set_attribute("http.response.status_code", response.status_code)
            return response

    async def _send(self, url: str, config: RequestConfig) -> httpx.Response:
        request = self._client.build_request(
            config.method,
            url,
            headers=config.headers,
            content=config.content,
            params=config.params,
        )
        return await self._client.send(request)

    async def _handle_error(
        self, error: Exception, url: str, config: RequestConfig
    ) -> httpx.Response:
        current = error
        for handler in self.interceptors(InterceptorKind.ERROR):
            try:
                response = await handler(current, url, config)
            except Exception as inner:
                if inner is not current:
                    current = inner
                continue
            record_interceptor_failure(type(error).__name__, "resolved")
            return response

        record_interceptor_failure(type(error).__name__, "raised")
        if current is error:
            raise error
        raise current from error

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = [
    "ErrorHandler",
    "HttpPipeline",
    "InterceptorKind",
    "RequestConfig",
    "RequestInterceptor",
    "ResponseInterceptor",
    "duplicate_response",
    "is_absolute_url",
]
