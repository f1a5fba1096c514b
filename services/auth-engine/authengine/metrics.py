"""Prometheus counters for authentication outcomes."""

from __future__ import annotations

from prometheus_client import Counter

AUTH_EVENTS = Counter(
    "authengine_events_total",
    "Authentication operations by outcome.",
    ["operation", "outcome"],
)


def record(operation: str, outcome: str) -> None:
    AUTH_EVENTS.labels(operation=operation, outcome=outcome).inc()
