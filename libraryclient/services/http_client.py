"""
HTTP client for the library backend.

GET requests consult the response cache and the in-flight registry; mutating
verbs invalidate cache entries once they succeed. Every request is sent
through the interceptor pipeline and decoded by the response parser.
"""

from __future__ import annotations

import asyncio
import json
import logging
import mimetypes
import time
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from libraryclient.core.config import ApiConfig, Settings
from libraryclient.core.metrics import observe_api_request
from libraryclient.services.cache import CacheStore, is_cacheable
from libraryclient.services.cache_keys import build_cache_key, build_url
from libraryclient.services.errors import (
    ApiError,
    InvalidResponseError,
    NetworkError,
    RequestCancelledError,
)
from libraryclient.services.inflight import CancellationToken, InFlightRegistry
from libraryclient.services.interceptors import NETWORK_ERROR_STATUS
from libraryclient.services.pipeline import HttpPipeline, RequestConfig
from libraryclient.services.response_parser import extract_error_message, parse_response
from libraryclient.services.session import SessionStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class UploadFile:
    """Binary payload attached to a multipart upload."""

    filename: str
    content: bytes
    content_type: str | None = None

    @classmethod
    def from_path(cls, path: Path | str, content_type: str | None = None) -> "UploadFile":
        file_path = Path(path)
        guessed = content_type or mimetypes.guess_type(file_path.name)[0]
        return cls(
            filename=file_path.name,
            content=file_path.read_bytes(),
            content_type=guessed or "application/octet-stream",
        )


def _render_field(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value)
    return str(value)


def build_form_fields(fields: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    """Flatten *fields* into multipart form pairs.

    ``None`` values are skipped, sequences expand to ``name[index]`` and
    mappings are sent as JSON strings.
    """
    pairs: list[tuple[str, str]] = []
    for name, value in (fields or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                if item is not None:
                    pairs.append((f"{name}[{index}]", _render_field(item)))
        else:
            pairs.append((name, _render_field(value)))
    return pairs


def upload_failure_message(status: int) -> str:
    return f"Upload failed with status {status}"


class HttpClient:
    """Verb-level access to the library API."""

    def __init__(
        self,
        pipeline: HttpPipeline,
        config: ApiConfig,
        session: SessionStore,
        cache: CacheStore,
        registry: InFlightRegistry,
        settings: Settings,
    ) -> None:
        self._pipeline = pipeline
        self._config = config
        self._session = session
        self._cache = cache
        self._registry = registry
        self._settings = settings

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def registry(self) -> InFlightRegistry:
        return self._registry

    def build_url(self, endpoint: str, params: Mapping[str, Any] | None = None) -> str:
        return build_url(self._config.get_base_url(), endpoint, params)

    def _headers(self, **extra: str) -> httpx.Headers:
        headers = httpx.Headers({"Accept": "application/json"})
        token = self._session.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        headers.update(extra)
        return headers

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _fetch(
        self, method: str, endpoint: str, url: str, config: RequestConfig
    ) -> httpx.Response:
        started = time.perf_counter()
        result = "error"
        try:
            response = await self._pipeline.fetch(url, config)
            result = "success" if response.is_success else "http_error"
            return response
        except asyncio.CancelledError:
            result = "cancelled"
            raise
        except httpx.HTTPError as exc:
            result = "network_error"
            raise NetworkError(status=NETWORK_ERROR_STATUS) from exc
        finally:
            observe_api_request(endpoint, method, result, time.perf_counter() - started)

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        url = self.build_url(endpoint, params)
        if body is None:
            config = RequestConfig(method=method, headers=self._headers())
        else:
            config = RequestConfig(
                method=method,
                headers=self._headers(**{"Content-Type": "application/json"}),
                content=json.dumps(body),
            )

        try:
            response = await self._fetch(method, endpoint, url, config)
            parsed = parse_response(response)
            if parsed.status == NETWORK_ERROR_STATUS and parsed.error is not None:
                raise NetworkError(status=NETWORK_ERROR_STATUS, payload=parsed.error.payload)
            return parsed.unwrap()
        except ApiError as exc:
            logger.error("%s %s failed: %s", method, endpoint, exc.message)
            raise

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    async def get(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        *,
        use_cache: bool = True,
        cache_time: float | None = None,
        signal: CancellationToken | None = None,
    ) -> Any:
        """Fetch *endpoint*, serving allow-listed endpoints from the cache.

        Args:
            endpoint: Path relative to the API base URL
            params: Query parameters; ``None`` and empty values are dropped
            use_cache: Whether to read from and write to the response cache
            cache_time: TTL in seconds for the stored entry
            signal: Caller-owned token that aborts the request when tripped

        Returns:
            The decoded response body

        Raises:
            RequestCancelledError: The request was superseded by a newer one
                for the same key, or cancelled explicitly
            ApiError: The backend answered with a failure status
        """
        key = build_cache_key(endpoint, params)

        if use_cache:
            hit, cached = self._cache.lookup(key)
            if hit:
                logger.debug("Cache hit for %s", key)
                return cached

        if signal is not None and signal.cancelled:
            raise RequestCancelledError(signal.reason)

        task = asyncio.ensure_future(self._request("GET", endpoint, params=params))
        handle = self._registry.register(key, task, signal)
        try:
            data = await task
        except asyncio.CancelledError:
            if handle.cancelled:
                logger.debug("GET %s cancelled: %s", key, handle.token.reason)
                raise RequestCancelledError(handle.token.reason) from None
            raise
        finally:
            self._registry.release(handle)

        # The transport may finish before the caller resumes; a handle cancelled
        # in that window must not deliver or cache its result.
        if handle.cancelled:
            logger.debug("GET %s cancelled after completion: %s", key, handle.token.reason)
            raise RequestCancelledError(handle.token.reason)

        if use_cache and is_cacheable(endpoint, self._settings.cacheable_endpoints):
            self._cache.set(key, data, ttl=cache_time)
        return data

    async def _mutate(
        self,
        method: str,
        endpoint: str,
        body: Any,
        clear_cache_pattern: str | None,
    ) -> Any:
        data = await self._request(method, endpoint, body=body)
        if clear_cache_pattern:
            self._cache.invalidate(clear_cache_pattern)
        return data

    async def post(
        self, endpoint: str, body: Any = None, *, clear_cache_pattern: str | None = None
    ) -> Any:
        return await self._mutate("POST", endpoint, body, clear_cache_pattern)

    async def put(
        self, endpoint: str, body: Any = None, *, clear_cache_pattern: str | None = None
    ) -> Any:
        return await self._mutate("PUT", endpoint, body, clear_cache_pattern)

    async def delete(
        self, endpoint: str, body: Any = None, *, clear_cache_pattern: str | None = None
    ) -> Any:
        return await self._mutate("DELETE", endpoint, body, clear_cache_pattern)

    # ------------------------------------------------------------------
    # Multipart uploads
    # ------------------------------------------------------------------

    async def _stream_body(
        self, body: bytes, on_progress: ProgressCallback | None
    ) -> AsyncIterator[bytes]:
        total = len(body)
        chunk_size = self._settings.upload_chunk_size
        sent = 0
        for start in range(0, total, chunk_size):
            chunk = body[start : start + chunk_size]
            yield chunk
            sent += len(chunk)
            if on_progress is not None:
                on_progress(sent * 100 // total)

    def _encode_multipart(
        self,
        url: str,
        fields: Mapping[str, Any] | None,
        file: UploadFile | None,
        file_field: str,
    ) -> tuple[httpx.Headers, bytes]:
        parts: list[tuple[str, Any]] = [
            (name, (None, value.encode("utf-8"))) for name, value in build_form_fields(fields)
        ]
        if file is not None:
            parts.append((file_field, (file.filename, file.content, file.content_type)))
        if not parts:
            raise ValueError("An upload needs at least one form field or a file")

        encoded = httpx.Request("POST", url, files=parts)
        body = encoded.read()
        headers = self._headers(
            **{
                "Content-Type": encoded.headers["content-type"],
                "Content-Length": str(len(body)),
            }
        )
        return headers, body

    async def upload(
        self,
        endpoint: str,
        fields: Mapping[str, Any] | None = None,
        file: UploadFile | None = None,
        *,
        method: str = "POST",
        on_progress: ProgressCallback | None = None,
        clear_cache_pattern: str | None = None,
        file_field: str = "file",
    ) -> Any:
        """Send a multipart form, reporting progress as the body is streamed.

        Args:
            endpoint: Path relative to the API base URL
            fields: Flat form fields
            file: Optional binary payload attached under *file_field*
            method: ``POST`` or ``PUT``; a PUT carrying a file is sent as a
                POST with a ``_method=PUT`` field
            on_progress: Called with the completed percentage (0-100)
            clear_cache_pattern: Cache key substring invalidated on success
            file_field: Form field name of the binary payload

        Returns:
            The decoded JSON body of the successful response
        """
        verb = method.upper()
        form = dict(fields or {})
        if verb == "PUT" and file is not None:
            verb = "POST"
            form["_method"] = "PUT"

        url = self.build_url(endpoint)
        headers, body = self._encode_multipart(url, form, file, file_field)
        config = RequestConfig(
            method=verb,
            headers=headers,
            content=self._stream_body(body, on_progress),
        )

        try:
            response = await self._fetch(verb, endpoint, url, config)
            data = self._decode_upload(response)
        except ApiError as exc:
            logger.error("Upload to %s failed: %s", endpoint, exc.message)
            raise

        if clear_cache_pattern:
            self._cache.invalidate(clear_cache_pattern)
        return data

    @staticmethod
    def _decode_upload(response: httpx.Response) -> Any:
        status = response.status_code
        if status == NETWORK_ERROR_STATUS:
            raise NetworkError(status=status)

        if response.is_success:
            try:
                return response.json()
            except ValueError:
                raise InvalidResponseError(status=status, payload=response.text or None) from None

        try:
            payload = response.json()
        except ValueError:
            raise ApiError(
                upload_failure_message(status), status=status, payload=response.text or None
            ) from None
        message = extract_error_message(payload) or upload_failure_message(status)
        raise ApiError(message, status=status, payload=payload)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def cancel_request(self, endpoint: str, params: Mapping[str, Any] | None = None) -> bool:
        """Cancel the pending GET for *endpoint* and *params*, if any."""
        return self._registry.cancel(build_cache_key(endpoint, params))

    def clear_cache(self, pattern: str | None = None) -> int:
        return self._cache.invalidate(pattern)

    async def aclose(self) -> None:
        self._registry.cancel_all()
        await self._pipeline.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = [
    "HttpClient",
    "ProgressCallback",
    "UploadFile",
    "build_form_fields",
    "upload_failure_message",
]
