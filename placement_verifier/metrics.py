# File: placement_verifier/metrics.py
"""
Prometheus metrics for verification runs.

The verifier is a one-shot process, so metrics live in a dedicated registry
and are exported with write_to_textfile for the node-exporter textfile
collector instead of being served.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, write_to_textfile

REGISTRY = CollectorRegistry()

METRICS = {
    "runs": Counter(
        "placement_verifier_runs_total",
        "Verification runs by verdict",
        ["verdict"],
        registry=REGISTRY,
    ),
    "failures": Counter(
        "placement_verifier_failures_total",
        "Verification failures by error kind",
        ["kind"],
        registry=REGISTRY,
    ),
    "duration": Histogram(
        "placement_verifier_duration_ms",
        "Time taken for one verification run in milliseconds",
        buckets=(100, 250, 500, 1000, 2500, 5000, 10000, 30000),
        registry=REGISTRY,
    ),
    "control_plane_nodes": Gauge(
        "placement_verifier_control_plane_nodes",
        "Control-plane nodes observed in the last run",
        registry=REGISTRY,
    ),
    "last_run_passed": Gauge(
        "placement_verifier_last_run_passed",
        "1 if the last verification run passed, else 0",
        registry=REGISTRY,
    ),
}


def export_textfile(path: Optional[str], registry: CollectorRegistry = REGISTRY):
    """Write the registry to `path` if one is configured."""
    if path:
        write_to_textfile(path, registry)


def record_run(
    passed: bool,
    failure_kind: Optional[str] = None,
    duration_ms: Optional[float] = None,
    control_plane_nodes: Optional[int] = None,
):
    """Record one run's outcome. Runs that fail before the pipeline starts pass no timing."""
    METRICS["runs"].labels(verdict="pass" if passed else "fail").inc()
    if failure_kind:
        METRICS["failures"].labels(kind=failure_kind).inc()
    if duration_ms is not None:
        METRICS["duration"].observe(duration_ms)
    if control_plane_nodes is not None:
        METRICS["control_plane_nodes"].set(control_plane_nodes)
    METRICS["last_run_passed"].set(1 if passed else 0)
