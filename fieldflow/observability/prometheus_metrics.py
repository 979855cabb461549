"""
Prometheus metric definitions + /metrics route.
With PROMETHEUS_MULTIPROC_DIR set, metrics from every worker process are
aggregated through the multiprocess collector.
"""

import os

from fastapi import APIRouter, Response
from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CollectorRegistry,
    multiprocess,
    CONTENT_TYPE_LATEST,
)

from fieldflow.config import ENABLE_PROMETHEUS

router = APIRouter()

# ────────── registry ───────────────────────────────────────
if os.getenv("PROMETHEUS_MULTIPROC_DIR"):
    _REGISTRY: CollectorRegistry | None = CollectorRegistry()
    multiprocess.MultiProcessCollector(_REGISTRY)
else:
    _REGISTRY = None  # default global registry

_kw = {"registry": _REGISTRY} if _REGISTRY is not None else {}

# ────────── metric definitions ─────────────────────────────
workflows_triggered = Counter(
    "fieldflow_workflow_triggered_total",
    "Workflow instances created by event triggers",
    ["event"],
    **_kw,
)

workflow_started = Counter(
    "fieldflow_workflow_started_total",
    "executions of the run loop that got past the status check",
    **_kw,
)

workflow_finished = Counter(
    "fieldflow_workflow_finished_total",
    "Run loop invocations by outcome",
    ["status"],
    **_kw,
)

step_results = Counter(
    "fieldflow_step_results_total",
    "Step attempts by action and outcome",
    ["action", "status"],
    **_kw,
)

step_duration = Histogram(
    "fieldflow_step_duration_seconds",
    "Step handler duration (seconds)",
    ["action"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
    **_kw,
)

control_signals = Counter(
    "fieldflow_control_signals_total",
    "cancel / pause / resume requests",
    ["signal", "outcome"],
    **_kw,
)

queue_jobs_processed = Counter(
    "fieldflow_queue_jobs_processed_total",
    "Queue jobs handled by workers",
    ["queue", "status"],
    **_kw,
)

# ────────── /metrics endpoint ──────────────────────────────
if ENABLE_PROMETHEUS:
    @router.get("/metrics")
    def metrics() -> Response:            # pragma: no cover
        """Prometheus scrape endpoint."""
        registry = _REGISTRY
        if registry is None:
            from prometheus_client import REGISTRY as registry
        return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
