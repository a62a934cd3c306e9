from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from libraryclient.api.endpoints import API_ENDPOINT_PREFIXES
from libraryclient.api.facade import LibraryApi
from libraryclient.core.config import ApiConfig, Settings, get_settings
from libraryclient.core.telemetry import configure_opentelemetry, instrument_httpx
from libraryclient.services.cache import CacheStore
from libraryclient.services.http_client import HttpClient
from libraryclient.services.inflight import InFlightRegistry
from libraryclient.services.interceptors import setup_interceptors
from libraryclient.services.pipeline import HttpPipeline
from libraryclient.services.session import Navigator, SessionStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    root.setLevel(level.upper())
    # httpx logs every request at INFO.
    transport_level = logging.DEBUG if level.upper() == "DEBUG" else logging.WARNING
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(transport_level)


@dataclass
class LibraryApp:
    """Every collaborator of a running client, wired together."""

    settings: Settings
    config: ApiConfig
    session: SessionStore
    navigator: Navigator
    cache: CacheStore
    registry: InFlightRegistry
    pipeline: HttpPipeline
    client: HttpClient
    api: LibraryApi

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "LibraryApp":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def create_library_api(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> LibraryApp:
    """Application factory for the library client."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    configure_opentelemetry(
        service_name=settings.otel_service_name,
        service_version=settings.otel_service_version,
        otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        otlp_headers=settings.otel_exporter_otlp_headers,
        enabled=settings.otel_enabled,
    )
    # Must run before the AsyncClient is built for its transport to be traced.
    instrument_httpx(enabled=settings.otel_enabled)

    config = ApiConfig(settings)
    session = SessionStore(settings.session_file)
    navigator = Navigator()
    cache = CacheStore(default_ttl=settings.cache_ttl_seconds)
    registry = InFlightRegistry()

    http = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.request_timeout_seconds),
        transport=transport,
    )
    pipeline = HttpPipeline(http, config.get_base_url, API_ENDPOINT_PREFIXES)
    setup_interceptors(pipeline, config, session, navigator, settings)

    client = HttpClient(pipeline, config, session, cache, registry, settings)
    api = LibraryApi(client, session)

    logger.info(
        "Library client ready (environment=%s, base_url=%s)",
        config.current_environment,
        config.get_base_url(),
    )
    return LibraryApp(
        settings=settings,
        config=config,
        session=session,
        navigator=navigator,
        cache=cache,
        registry=registry,
        pipeline=pipeline,
        client=client,
        api=api,
    )


__all__ = ["LibraryApp", "configure_logging", "create_library_api"]
