from __future__ import annotations

from prometheus_client import Counter, Histogram

http_requests = Counter(
    "headsdown_http_requests_total",
    "HTTP requests served, by templated route.",
    labelnames=("method", "route", "status_code"),
)
http_request_seconds = Histogram(
    "headsdown_http_request_duration_seconds",
    "Time to produce the HTTP response. Background work after the ack is not included.",
    labelnames=("method", "route"),
)
http_rate_limited = Counter(
    "headsdown_http_rate_limited_total",
    "HTTP requests refused by the per-client limit.",
    labelnames=("method", "route"),
)
dm_routing = Counter(
    "headsdown_dm_routing_total",
    "Inbound direct messages evaluated by the routing engine, by outcome.",
    labelnames=("outcome",),
)
slack_api_errors = Counter(
    "headsdown_slack_api_errors_total",
    "Failed Slack Web API calls.",
    labelnames=("method",),
)
availability_commands = Counter(
    "headsdown_availability_commands_total",
    "Availability commands handled, by action.",
    labelnames=("action",),
)


def observe_http_request(
    *, method: str, route: str, status_code: int, seconds: float, rate_limited: bool
) -> None:
    http_requests.labels(method=method, route=route, status_code=str(status_code)).inc()
    http_request_seconds.labels(method=method, route=route).observe(max(seconds, 0.0))
    if rate_limited:
        http_rate_limited.labels(method=method, route=route).inc()


def observe_dm_routing(*, outcome: str) -> None:
    dm_routing.labels(outcome=outcome or "unknown").inc()


def observe_slack_api_error(*, method: str) -> None:
    slack_api_errors.labels(method=method or "unknown").inc()


def observe_availability_command(*, action: str) -> None:
    availability_commands.labels(action=action).inc()
