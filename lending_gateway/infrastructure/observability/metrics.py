"""Prometheus metrics for decision outcomes, overrides and policy health"""

from prometheus_client import Counter, Histogram

# Decision metrics
decision_counter = Counter(
    "lending_decision_total",
    "Total lending decisions appended",
    ["outcome", "source"],  # Approve | Reject | Review | Hold; automatic | recalculation | manual
)

manual_override_counter = Counter(
    "lending_manual_override_total",
    "Manual decisions recorded by lenders",
    ["decision"],
)

recalculation_conflict_counter = Counter(
    "lending_recalculation_conflicts_total",
    "Optimistic version conflicts hit while committing a recalculation",
)

policy_load_failures_counter = Counter(
    "lending_policy_load_failures_total",
    "Partner bank policies rejected at load",
    ["bank_code"],
)

decision_duration_histogram = Histogram(
    "lending_decision_duration_seconds",
    "Time to compute and append a decision",
    ["source"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_decision(outcome: str, source: str, duration_seconds: float) -> None:
    """Record decision metrics for monitoring approval rates per decision source"""
    decision_counter.labels(outcome=outcome, source=source).inc()
    decision_duration_histogram.labels(source=source).observe(duration_seconds)
    if source == "manual":
        manual_override_counter.labels(decision=outcome).inc()
