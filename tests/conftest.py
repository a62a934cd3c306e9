from __future__ import annotations

import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio

PROJECT_DIR = Path(__file__).resolve().parents[1]
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

from libraryclient.core.config import Settings  # noqa: E402
from libraryclient.main import LibraryApp, create_library_api  # noqa: E402

BASE_URL = "http://localhost:8000/api"

Handler = Callable[[httpx.Request], Any]


class FakeBackend:
    """Scriptable stand-in for the library backend behind an httpx MockTransport."""

    base_url = BASE_URL

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Handler] = {}

    def route(self, method: str, path: str, handler: Handler | None = None, **response: Any):
        """Register *handler* (or a canned ``httpx.Response(**response)``) for a path."""
        if handler is None:
            canned = dict(response)
            status = canned.pop("status_code", 200)

            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status, **canned)

        self._routes[(method.upper(), path)] = handler
        return handler

    def calls(self, method: str | None = None, path: str | None = None) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if (method is None or request.method == method.upper())
            and (path is None or self.path_of(request) == path)
        ]

    @staticmethod
    def path_of(request: httpx.Request) -> str:
        path = request.url.path
        prefix = httpx.URL(BASE_URL).path
        return path[len(prefix) :] if path.startswith(prefix) else path

    @staticmethod
    def json_body(request: httpx.Request) -> Any:
        return json.loads(request.content)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self._routes.get((request.method, self.path_of(request)))
        if handler is None:
            return httpx.Response(404, json={"status": False, "message": "Not Found"})
        result = handler(request)
        if isinstance(result, httpx.Response):
            return result
        return await result

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        LIBRARY_API_ENVIRONMENT="test",
        LIBRARY_API_URL_TEST=BASE_URL,
        LIBRARY_SESSION_FILE=tmp_path / "session.json",
        LIBRARY_SESSION_TEARDOWN_DELAY_SECONDS=0,
        LIBRARY_UPLOAD_CHUNK_SIZE=16,
        OTEL_ENABLED=False,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def library_app(settings: Settings, backend: FakeBackend):
    app: LibraryApp = create_library_api(settings, transport=backend.transport)
    yield app
    await app.aclose()
