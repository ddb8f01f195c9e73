from __future__ import annotations

import time
from typing import Callable, Optional

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Info, generate_latest

from creator_ledger.core.settings import S

METRICS_ENABLED = S.metrics_enabled

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_ERRORS = Counter(
    "http_request_errors_total",
    "Total HTTP requests resulting in server errors",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "In-progress HTTP requests",
    ["method", "path"],
)
UPTIME_SECONDS = Gauge(
    "app_uptime_seconds",
    "Application uptime in seconds",
)
APP_INFO = Info(
    "app",
    "Application metadata",
)

TIPS_CREATED = Counter(
    "ledger_tips_created_total",
    "Tips accepted and left pending payment",
    ["currency"],
)
TIP_CONFIRMATIONS = Counter(
    "ledger_tip_confirmations_total",
    "Tip payment confirmations by outcome",
    ["outcome", "result"],
)
WEBHOOK_EVENTS = Counter(
    "ledger_webhook_events_total",
    "Webhook events by type and handling result",
    ["event_type", "result"],
)
SUBSCRIPTION_CANCELLATIONS = Counter(
    "ledger_subscription_cancellations_total",
    "Subscription cancellations by mode",
    ["mode"],
)
GATEWAY_ERRORS = Counter(
    "ledger_gateway_errors_total",
    "Payment gateway failures by operation",
    ["operation"],
)

_START_TIME = time.monotonic()


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    if route and getattr(route, "path", None):
        return route.path
    return request.url.path


def record_tip_created(currency: str) -> None:
    TIPS_CREATED.labels(currency=currency).inc()


def record_tip_confirmation(outcome: str, result: str) -> None:
    TIP_CONFIRMATIONS.labels(outcome=outcome, result=result).inc()


def record_webhook_event(event_type: str, result: str) -> None:
    WEBHOOK_EVENTS.labels(event_type=event_type, result=result).inc()


def record_cancellation(immediately: bool) -> None:
    SUBSCRIPTION_CANCELLATIONS.labels(mode="immediate" if immediately else "period_end").inc()


def record_gateway_error(operation: str) -> None:
    GATEWAY_ERRORS.labels(operation=operation).inc()


async def metrics_middleware(request: Request, call_next: Callable[[Request], Response]) -> Response:
    path = _route_path(request)
    method = request.method
    start = time.perf_counter()
    IN_PROGRESS.labels(method=method, path=path).inc()
    status_code = 500
    response: Optional[Response] = None
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        IN_PROGRESS.labels(method=method, path=path).dec()
        REQUEST_LATENCY.labels(method=method, path=path).observe(time.perf_counter() - start)
        REQUEST_COUNT.labels(method=method, path=path, status=str(status_code)).inc()
        if status_code >= 500:
            REQUEST_ERRORS.labels(method=method, path=path, status=str(status_code)).inc()


def set_app_info(name: str, version: str) -> None:
    APP_INFO.info({"name": name, "version": version})


def metrics_endpoint() -> Response:
    UPTIME_SECONDS.set(time.monotonic() - _START_TIME)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
