"""FastAPI entrypoint with the workflow worker running in-process."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from fieldflow.config import ENABLE_OTEL, ENABLE_PROMETHEUS, NUM_WORKFLOW_WORKERS, WORKER_POLL_INTERVAL
from fieldflow.engine.workflow_engine import build_engine
from fieldflow.observability.otel_tracing import init_tracer
from fieldflow.observability.prometheus_metrics import router as metrics_router
from fieldflow.persistence.database import init_models

# ──────────────────────── routers ─────────────────────────
from fieldflow.interfaces.api.event_endpoints import router as event_router
from fieldflow.interfaces.api.workflow_definition_endpoints import router as definition_router
from fieldflow.interfaces.api.workflow_instance_endpoints import router as instance_router

from fieldflow.worker.workflow_worker import run_workflow_worker

# ──────────────────────── logging ──────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ─────────────────── lifespan context manager ──────────────

@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[valid-type]
    """Init DB, start workers on startup; cancel on shutdown."""
    await init_models()

    engine = build_engine()
    app.state.engine = engine

    workers: list[asyncio.Task] = []
    for _ in range(NUM_WORKFLOW_WORKERS):
        workers.append(asyncio.create_task(run_workflow_worker(engine, interval_seconds=WORKER_POLL_INTERVAL)))
    logger.info("WorkflowWorkers started: %s", NUM_WORKFLOW_WORKERS)

    app.state.workers = workers  # type: ignore[attr-defined]
    try:
        yield
    finally:
        for w in workers:
            w.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        logger.info("All workers shut down.")

# ───────────────────────── FastAPI app ─────────────────────

app = FastAPI(title="FieldFlow API", description="Event-triggered workflow automation", lifespan=lifespan)

if ENABLE_OTEL:
    init_tracer("fieldflow")

if ENABLE_PROMETHEUS:
    app.include_router(metrics_router)

app.include_router(event_router)
app.include_router(instance_router)
app.include_router(definition_router)


@app.get("/")
async def root():  # pragma: no cover
    return {"message": "FieldFlow API is running"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000, reload=False)
