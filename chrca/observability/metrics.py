"""Prometheus metrics for chrca."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# RCA metrics
rca_requests_total = Counter(
    "chrca_rca_requests_total",
    "Total RCA evidence requests",
    ["symptom", "outcome"],
)

rca_duration_seconds = Histogram(
    "chrca_rca_duration_seconds",
    "RCA evidence collection duration in seconds",
    ["symptom"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# Telemetry probe metrics
probe_queries_total = Counter(
    "chrca_probe_queries_total",
    "Total telemetry probe queries by outcome",
    ["status"],
)

# Rule metrics
candidates_scored_total = Counter(
    "chrca_candidates_scored_total",
    "Total cause candidates scored",
    ["cause"],
)

# Invariant metrics
invariant_violations_total = Counter(
    "chrca_invariant_violations_total",
    "Total internal invariant violations detected at runtime",
    ["invariant_name"],
)
