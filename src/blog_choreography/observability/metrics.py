"""Prometheus metrics for the bus and the services.

The bus never surfaces dispatch failures to producers; these counters and
the dispatcher's failure journal are the only place they show up.
"""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)

from blog_choreography import __version__

SYSTEM_INFO = Info("blog_choreography", "Choreography service information")

# ---------------------------------------------------------------------------
# Bus metrics
# ---------------------------------------------------------------------------

EVENTS_APPENDED = Counter(
    "blog_events_appended_total",
    "Events accepted into the event log",
    ["kind"],
)

EVENTS_REJECTED = Counter(
    "blog_events_rejected_total",
    "Raw events rejected at ingestion",
)

LOG_LENGTH = Gauge(
    "blog_event_log_length",
    "Number of events in the event log",
)

DISPATCH_TOTAL = Counter(
    "blog_dispatch_total",
    "Dispatch attempts per subscriber",
    ["subscriber", "outcome"],
)

DISPATCH_LATENCY = Histogram(
    "blog_dispatch_latency_seconds",
    "Time to deliver one event to one subscriber",
    ["subscriber"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

DISPATCH_QUEUE_DEPTH = Gauge(
    "blog_dispatch_queue_depth",
    "Appended events waiting for broadcast",
)

# ---------------------------------------------------------------------------
# Projection metrics
# ---------------------------------------------------------------------------

PROJECTION_RESULTS = Counter(
    "blog_projection_results_total",
    "Events folded into a projection, by outcome",
    ["service", "kind", "outcome"],
)

REPLAYED_EVENTS = Counter(
    "blog_replayed_events_total",
    "Events folded during startup replay",
    ["service"],
)

MODERATION_DECISIONS = Counter(
    "blog_moderation_decisions_total",
    "Moderation decisions by status",
    ["status"],
)


def start_metrics_server(port: int, role: str = "unknown") -> None:
    """Start Prometheus metrics HTTP server in a background thread."""
    SYSTEM_INFO.info({
        "version": __version__,
        "role": role,
    })
    start_http_server(port)


# ---------------------------------------------------------------------------
# Convenience helpers
# ---------------------------------------------------------------------------

def record_append(kind: str, log_length: int) -> None:
    EVENTS_APPENDED.labels(kind=kind).inc()
    LOG_LENGTH.set(log_length)


def record_dispatch(subscriber: str, outcome: str, seconds: float) -> None:
    """Record one delivery attempt to one subscriber."""
    DISPATCH_TOTAL.labels(subscriber=subscriber, outcome=outcome).inc()
    DISPATCH_LATENCY.labels(subscriber=subscriber).observe(seconds)


def record_projection(service: str, kind: str, outcome: str) -> None:
    PROJECTION_RESULTS.labels(service=service, kind=kind, outcome=outcome).inc()
