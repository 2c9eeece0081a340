"""Prometheus metrics for monitoring review throughput, decisions and autosave health"""

from prometheus_client import Counter, Histogram

# Workflow metrics
status_transition_counter = Counter(
    "authorization_status_transitions_total",
    "Status changes applied to authorization requests",
    ["from_status", "to_status"],
)

decision_counter = Counter(
    "authorization_decision_total",
    "Terminal decisions recorded",
    ["outcome"],  # approved | rejected
)

request_created_counter = Counter(
    "authorization_requests_created_total",
    "Authorization requests created",
    ["priority"],
)

# Autosave metrics
autosave_counter = Counter(
    "autosave_attempts_total",
    "Review-form autosave attempts",
    ["outcome"],  # saved | error | conflict | skipped
)

autosave_latency_histogram = Histogram(
    "autosave_latency_seconds",
    "Autosave persistence call duration",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transition(from_status: str, to_status: str) -> None:
    """Count a status change; terminal targets also count as decisions"""
    status_transition_counter.labels(from_status=from_status, to_status=to_status).inc()
    if to_status in ("approved", "rejected"):
        decision_counter.labels(outcome=to_status).inc()
