import asyncio
import logging

import click
from prometheus_client import start_http_server

from fieldflow.config import METRICS_PORT, WORKER_CONCURRENCY, WORKER_POLL_INTERVAL
from fieldflow.engine.workflow_engine import build_engine
from fieldflow.persistence.database import AsyncSessionLocal, init_models
from fieldflow.worker.workflow_worker import poll_once, run_workflow_worker


async def _main(once: bool, interval: float, concurrency: int) -> None:
    await init_models()
    engine = build_engine(AsyncSessionLocal)
    if once:
        claimed = await poll_once(engine, session_factory=AsyncSessionLocal, concurrency=concurrency)
        click.echo(f"processed {claimed} job(s)")
    else:
        await run_workflow_worker(engine, interval_seconds=interval, concurrency=concurrency)


@click.command()
@click.option("--once", is_flag=True, help="Run only one poll cycle (for debugging).")
@click.option("--interval", default=WORKER_POLL_INTERVAL, type=float, help="Polling interval in seconds.")
@click.option("--concurrency", default=WORKER_CONCURRENCY, type=int, help="Max jobs executed at once.")
@click.option("--metrics-port", default=METRICS_PORT, type=int, help="Port to expose Prometheus metrics (0 disables).")
def cli(once, interval, concurrency, metrics_port):
    """
    Start the workflow worker.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    if metrics_port and not once:
        start_http_server(metrics_port)

    asyncio.run(_main(once, interval, concurrency))


if __name__ == "__main__":
    cli()
