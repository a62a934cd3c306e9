from __future__ import annotations

from prometheus_client import Counter, Histogram

CACHE_EVENTS = Counter(
    "werev_library_cache_events_total",
    "Response cache operations recorded by the library client.",
    labelnames=("cache", "event"),
)
API_REQUESTS = Counter(
    "werev_library_api_requests_total",
    "Outbound library API requests.",
    labelnames=("endpoint", "method", "result"),
)
API_REQUEST_LATENCY = Histogram(
    "werev_library_api_request_seconds",
    "Latency of outbound library API requests.",
    labelnames=("endpoint", "method"),
)
INTERCEPTOR_FAILURES = Counter(
    "werev_library_interceptor_failures_total",
    "Errors routed through the interceptor pipeline.",
    labelnames=("stage", "outcome"),
)
CANCELLED_REQUESTS = Counter(
    "werev_library_cancelled_requests_total",
    "In-flight GET requests cancelled before settling.",
    labelnames=("reason",),
)


def endpoint_family(endpoint: str) -> str:
    """Reduce an endpoint path to its first segment to bound label cardinality."""
    path = endpoint.split("?", 1)[0].strip("/")
    return "/" + path.split("/", 1)[0] if path else "/"


def record_cache_event(cache: str, event: str) -> None:
    """Increment a cache event counter."""
    CACHE_EVENTS.labels(cache=cache, event=event).inc()


def observe_api_request(
    endpoint: str, method: str, result: str, duration_seconds: float
) -> None:
    """Record API request result and latency."""
    family = endpoint_family(endpoint)
    API_REQUESTS.labels(endpoint=family, method=method, result=result).inc()
    API_REQUEST_LATENCY.labels(endpoint=family, method=method).observe(
        duration_seconds
    )


def record_interceptor_failure(stage: str, outcome: str) -> None:
    """Record an error seen by the interceptor pipeline and how it ended."""
    INTERCEPTOR_FAILURES.labels(stage=stage, outcome=outcome).inc()


def record_cancelled_request(reason: str) -> None:
    CANCELLED_REQUESTS.labels(reason=reason).inc()
