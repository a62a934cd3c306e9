"""Tests for the standard interceptors."""

from __future__ import annotations

import asyncio
import json
import logging

import httpx
import pytest

from libraryclient.core.config import ApiConfig, Settings
from libraryclient.services.errors import ApiError
from libraryclient.services.interceptors import (
    NETWORK_ERROR_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    auth_header_interceptor,
    dev_logging_interceptor,
    find_status,
    network_error_handler,
    notice_payload_interceptor,
    reshape_notice_payload,
    session_expiry_interceptor,
    setup_interceptors,
)
from libraryclient.services.pipeline import HttpPipeline, InterceptorKind, RequestConfig
from libraryclient.services.session import FORCE_LOGOUT_KEY, Navigator, SessionStore

BASE_URL = "http://localhost:8000/api"


@pytest.fixture
def config(settings):
    return ApiConfig(settings)


@pytest.fixture
def session():
    store = SessionStore()
    store.save_login("secret-token", {"id": 9, "name": "Librarian"})
    return store


@pytest.fixture
def navigator():
    return Navigator("/admin/books")


def json_request(method: str, body: dict) -> RequestConfig:
    return RequestConfig(
        method=method,
        headers={"Content-Type": "application/json", "Content-Length": "999"},
        content=json.dumps(body),
    )


class TestAuthHeaderInterceptor:
    @pytest.mark.asyncio
    async def test_adds_bearer_token_and_json_content_type(self, config, session):
        interceptor = auth_header_interceptor(config, session)

        url, request = await interceptor(f"{BASE_URL}/books", RequestConfig())

        assert url == f"{BASE_URL}/books"
        assert request.headers["authorization"] == "Bearer secret-token"
        assert request.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_keeps_explicit_authorization(self, config, session):
        interceptor = auth_header_interceptor(config, session)
        original = RequestConfig(headers={"Authorization": "Bearer other"})

        _, request = await interceptor(f"{BASE_URL}/books", original)

        assert request is original
        assert request.headers["authorization"] == "Bearer other"

    @pytest.mark.asyncio
    async def test_skips_foreign_hosts(self, config, session):
        interceptor = auth_header_interceptor(config, session)
        original = RequestConfig()

        _, request = await interceptor("https://cdn.example.com/logo.png", original)

        assert request is original
        assert "authorization" not in request.headers

    @pytest.mark.asyncio
    async def test_keeps_multipart_content_type(self, config, session):
        interceptor = auth_header_interceptor(config, session)
        original = RequestConfig(headers={"Content-Type": "multipart/form-data; boundary=xyz"})

        _, request = await interceptor(f"{BASE_URL}/ebooks", original)

        assert request.headers["content-type"] == "multipart/form-data; boundary=xyz"

    @pytest.mark.asyncio
    async def test_without_token_only_sets_content_type(self, config):
        interceptor = auth_header_interceptor(config, SessionStore())

        _, request = await interceptor(f"{BASE_URL}/books", RequestConfig())

        assert "authorization" not in request.headers
        assert request.headers["content-type"] == "application/json"


class TestNoticePayloadInterceptor:
    @pytest.mark.asyncio
    async def test_reshapes_notice_body(self, config):
        interceptor = notice_payload_interceptor(config)
        original = json_request(
            "POST", {"title": "X", "description": "Y", "expiry_date": "2024-01-01"}
        )

        _, request = await interceptor(f"{BASE_URL}/notices", original)

        body = json.loads(request.content)
        assert body == {
            "title": "X",
            "description": "Y",
            "user_id": 1,
            "course_code": None,
            "semester": None,
            "notification_type": "general",
            "expires_at": "2024-01-01",
        }
        assert "content-length" not in request.headers
        assert request.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_update_keeps_supplied_fields(self, config):
        interceptor = notice_payload_interceptor(config)
        original = json_request(
            "PUT",
            {
                "title": "Exam",
                "description": "Schedule",
                "user_id": 4,
                "course_code": "BCA",
                "semester": 2,
                "notification_type": "exam",
                "expires_at": "2024-02-01",
                "expiry_date": "2030-01-01",
                "priority": "high",
            },
        )

        _, request = await interceptor(f"{BASE_URL}/notices/12", original)

        body = json.loads(request.content)
        assert body["user_id"] == 4
        assert body["notification_type"] == "exam"
        assert body["expires_at"] == "2024-02-01"
        assert "priority" not in body

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "url"),
        [("GET", f"{BASE_URL}/notices"), ("POST", f"{BASE_URL}/books"), ("DELETE", f"{BASE_URL}/notices/1")],
    )
    async def test_other_calls_untouched(self, config, method, url):
        interceptor = notice_payload_interceptor(config)
        original = json_request(method, {"title": "X"})

        _, request = await interceptor(url, original)

        assert request is original

    @pytest.mark.asyncio
    async def test_invalid_json_is_left_alone(self, config, caplog):
        interceptor = notice_payload_interceptor(config)
        original = RequestConfig(method="POST", content="{broken")

        with caplog.at_level(logging.ERROR):
            _, request = await interceptor(f"{BASE_URL}/notices", original)

        assert request is original
        assert "Error formatting notification data" in caplog.text

    def test_reshape_defaults(self):
        assert reshape_notice_payload({}) == {
            "title": None,
            "description": None,
            "user_id": 1,
            "course_code": None,
            "semester": None,
            "notification_type": "general",
            "expires_at": None,
        }


class TestSessionExpiryInterceptor:
    @pytest.mark.asyncio
    async def test_401_clears_session_and_redirects(self, session, navigator):
        interceptor = session_expiry_interceptor(session, navigator, "/signin")
        request = httpx.Request("GET", f"{BASE_URL}/books")
        response = httpx.Response(401, text="<html>Unauthorized</html>", request=request)

        result = await interceptor(response)

        assert result is response
        assert session.token is None
        assert navigator.current_path == "/signin"

    @pytest.mark.asyncio
    async def test_no_redirect_when_already_on_sign_in(self, session):
        navigator = Navigator("/signin")
        interceptor = session_expiry_interceptor(session, navigator, "/signin")
        request = httpx.Request("POST", f"{BASE_URL}/login")

        await interceptor(httpx.Response(401, request=request))

        assert navigator.history == ["/signin"]
        assert session.token is None

    @pytest.mark.asyncio
    async def test_403_only_warns(self, session, navigator, caplog):
        interceptor = session_expiry_interceptor(session, navigator)
        request = httpx.Request("GET", f"{BASE_URL}/users")

        with caplog.at_level(logging.WARNING):
            await interceptor(httpx.Response(403, request=request))

        assert session.token == "secret-token"
        assert navigator.current_path == "/admin/books"
        assert "Access forbidden" in caplog.text


class TestNetworkErrorHandler:
    @pytest.mark.asyncio
    async def test_transport_error_becomes_synthetic_response(self, session, navigator):
        handler = network_error_handler(session, navigator)
        request = httpx.Request("GET", f"{BASE_URL}/books")

        response = await handler(
            httpx.ConnectError("refused", request=request), f"{BASE_URL}/books", RequestConfig()
        )

        assert response.status_code == 0
        assert response.json() == {"success": False, "message": NETWORK_ERROR_MESSAGE}
        assert session.token == "secret-token"

    @pytest.mark.asyncio
    async def test_401_error_schedules_teardown(self, session, navigator):
        scheduled: list[tuple[float, object]] = []
        handler = network_error_handler(
            session,
            navigator,
            teardown_delay=0.25,
            scheduler=lambda delay, callback: scheduled.append((delay, callback)),
        )

        response = await handler(
            ApiError("Unauthenticated.", status=401), f"{BASE_URL}/books", RequestConfig()
        )

        assert response.status_code == 401
        assert response.json() == {"status": False, "message": SESSION_EXPIRED_MESSAGE}
        assert session.token == "secret-token"

        delay, callback = scheduled[0]
        assert delay == 0.25
        callback()

        assert session.token is None
        assert session.get(FORCE_LOGOUT_KEY) == "true"
        assert navigator.current_path == "/signin"

    @pytest.mark.asyncio
    async def test_wrapped_401_uses_event_loop_timer(self, session, navigator):
        handler = network_error_handler(session, navigator, teardown_delay=0)
        request = httpx.Request("GET", f"{BASE_URL}/books")
        status_error = httpx.HTTPStatusError(
            "unauthorized", request=request, response=httpx.Response(401, request=request)
        )
        try:
            raise RuntimeError("wrapper") from status_error
        except RuntimeError as exc:
            wrapped = exc

        response = await handler(wrapped, f"{BASE_URL}/books", RequestConfig())
        await asyncio.sleep(0.01)

        assert response.status_code == 401
        assert session.token is None

    @pytest.mark.asyncio
    async def test_error_raised_while_handling_401_keeps_session(self, session, navigator):
        scheduled = []
        handler = network_error_handler(
            session, navigator, scheduler=lambda delay, callback: scheduled.append(callback)
        )
        try:
            try:
                raise ApiError("Unauthenticated.", status=401)
            except ApiError:
                raise ValueError("unrelated failure")
        except ValueError as exc:
            error = exc

        with pytest.raises(ValueError):
            await handler(error, f"{BASE_URL}/books", RequestConfig())

        assert scheduled == []
        assert session.token == "secret-token"

    @pytest.mark.asyncio
    async def test_other_errors_are_reraised(self, session, navigator):
        handler = network_error_handler(session, navigator)
        error = ValueError("boom")

        with pytest.raises(ValueError) as excinfo:
            await handler(error, f"{BASE_URL}/books", RequestConfig())

        assert excinfo.value is error
        assert session.token == "secret-token"


def _raised_during(error: Exception, context: Exception) -> Exception:
    try:
        raise context
    except Exception:
        try:
            raise error
        except Exception as exc:
            return exc


def _raised_from(error: Exception, cause: Exception) -> Exception:
    try:
        raise error from cause
    except Exception as exc:
        return exc


class _StatusAttribute(Exception):
    status = 401


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ApiError("x", status=422), 422),
        (ApiError("x"), None),
        (ValueError("plain"), None),
        (_raised_from(RuntimeError("wrapper"), ApiError("expired", status=401)), 401),
        (_raised_during(KeyError("unrelated"), ApiError("expired", status=401)), None),
        (_StatusAttribute("not an api error"), None),
    ],
    ids=["api-error", "no-status", "plain", "explicit-cause", "implicit-context", "foreign-status"],
)
def test_find_status(error, expected):
    assert find_status(error) == expected


class TestDevLogger:
    @pytest.mark.asyncio
    async def test_logs_success_and_failure(self, caplog):
        interceptor = dev_logging_interceptor()
        request = httpx.Request("GET", f"{BASE_URL}/books")

        with caplog.at_level(logging.INFO, logger="libraryclient.services.interceptors"):
            ok = await interceptor(httpx.Response(200, request=request))
            failed = await interceptor(httpx.Response(500, request=request))

        assert ok.status_code == 200
        assert failed.status_code == 500
        levels = [record.levelname for record in caplog.records]
        assert levels == ["INFO", "WARNING"]
        assert "\033[1;32m" in caplog.records[0].getMessage()
        assert "\033[1;31m" in caplog.records[1].getMessage()


class TestSetupInterceptors:
    def _install(self, environment: str, tmp_path) -> HttpPipeline:
        settings = Settings(LIBRARY_API_ENVIRONMENT=environment, LIBRARY_SESSION_FILE=tmp_path / "s.json")
        config = ApiConfig(settings)
        pipeline = HttpPipeline(httpx.AsyncClient(), config.get_base_url)
        setup_interceptors(pipeline, config, SessionStore(), Navigator(), settings)
        return pipeline

    def test_development_installs_dev_logger(self, tmp_path):
        pipeline = self._install("development", tmp_path)

        assert len(pipeline.interceptors(InterceptorKind.REQUEST)) == 2
        assert len(pipeline.interceptors(InterceptorKind.RESPONSE)) == 2
        assert len(pipeline.interceptors(InterceptorKind.ERROR)) == 1

    def test_production_skips_dev_logger(self, tmp_path):
        pipeline = self._install("production", tmp_path)

        assert len(pipeline.interceptors(InterceptorKind.RESPONSE)) == 1
