"""Worker for the posting service.

Connects to Temporal, polls the posting task queue and runs the posting
sweep workflow and its activity.

Run with --start to also start the sweep workflow (no-op if it is already
running).
"""

import argparse
import asyncio
import sys
from pathlib import Path

from temporalio.common import WorkflowIDReusePolicy
from temporalio.exceptions import WorkflowAlreadyStartedError
from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from activities.posting import get_services, run_posting_sweep
from core.config import get_settings
from core.observability.logging import configure_from_settings, get_logger
from temporal_client import get_temporal_client
from workflows.posting_sweep_workflow import (
    DEFAULT_WORKFLOW_ID,
    PostingSweepWorkflow,
    PostingSweepWorkflowInput,
)


logger = get_logger(__name__)


async def start_sweep_workflow(client, task_queue: str, interval_seconds: int) -> None:
    """Start the singleton sweep workflow unless it is already running."""
    try:
        handle = await client.start_workflow(
            PostingSweepWorkflow.run,
            PostingSweepWorkflowInput(interval_seconds=interval_seconds),
            id=DEFAULT_WORKFLOW_ID,
            task_queue=task_queue,
            id_reuse_policy=WorkflowIDReusePolicy.ALLOW_DUPLICATE,
        )
        logger.info(f"Started workflow {handle.id}")
    except WorkflowAlreadyStartedError:
        logger.info(f"Workflow {DEFAULT_WORKFLOW_ID} already running")


async def run_worker(start: bool = False):
    """Start worker listening on the posting task queue.

    Raises:
        Exception: If connection to Temporal fails
    """
    settings = get_settings()
    configure_from_settings(settings)

    # Fail fast on a bad database path or missing encryption key
    get_services()

    client = await get_temporal_client(settings)
    logger.info(f"Connected to Temporal: {client.namespace}")

    if start:
        await start_sweep_workflow(client, settings.temporal_task_queue, settings.sweep_interval_seconds)

    worker = Worker(
        client,
        task_queue=settings.temporal_task_queue,
        workflows=[PostingSweepWorkflow],
        activities=[run_posting_sweep],
    )
    logger.info(f"Worker running on queue '{settings.temporal_task_queue}'... (Ctrl+C to stop)")
    try:
        await worker.run()
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Posting Service Temporal Worker")
    parser.add_argument(
        "--start", "-s",
        action="store_true",
        help="Start the posting sweep workflow if it is not running"
    )

    args = parser.parse_args()
    asyncio.run(run_worker(start=args.start))


if __name__ == "__main__":
    main()
