"""Test the Temporal pieces without Temporal Cloud.

The sweep activity runs in temporalio's ActivityEnvironment against a
temporary database. The workflow runs in the time-skipping test server,
which is downloaded on first use; that test is skipped when the server
cannot be started.
"""

import asyncio
import uuid

import pytest
from temporalio import activity
from temporalio.testing import ActivityEnvironment, WorkflowEnvironment
from temporalio.worker import Worker

from activities.posting import PostingSweepInput, run_posting_sweep
from conftest import INVOICE_SNAPSHOT, TENANT
from core.models import PostingStatus
from workflows.posting_sweep_workflow import PostingSweepWorkflow, PostingSweepWorkflowInput


def test_temporal_imports():
    """Test that Temporal libraries and workflow modules import."""
    from temporalio import workflow
    from temporalio.client import Client

    assert workflow is not None
    assert Client is not None
    assert PostingSweepWorkflow is not None


def test_sweep_activity(monkeypatch, services, connector, xero_connection):
    monkeypatch.setattr("activities.posting._services", services)
    item = services.queue.enqueue(TENANT, "invoice", "INV-001", payload=INVOICE_SNAPSHOT)

    report = asyncio.run(ActivityEnvironment().run(run_posting_sweep, PostingSweepInput(batch_size=10)))

    assert report["succeeded"] == 1
    assert report["scanned"] == 1
    assert isinstance(report["started_at"], str)
    assert services.queue.get(item.id).status == PostingStatus.SUCCESS


def test_workflow_input_defaults():
    input = PostingSweepWorkflowInput()
    assert input.interval_seconds == 60
    assert input.total_sweeps == 0


@activity.defn(name="run_posting_sweep")
async def fake_sweep(input: PostingSweepInput) -> dict:
    return {"scanned": 0, "batch_size": input.batch_size}


async def _run_workflow_until_stopped():
    try:
        env = await WorkflowEnvironment.start_time_skipping()
    except Exception as e:
        pytest.skip(f"Temporal test server unavailable: {e}")

    async with env:
        task_queue = f"posting-sync-test-{uuid.uuid4()}"
        async with Worker(
            env.client,
            task_queue=task_queue,
            workflows=[PostingSweepWorkflow],
            activities=[fake_sweep],
        ):
            handle = await env.client.start_workflow(
                PostingSweepWorkflow.run,
                PostingSweepWorkflowInput(interval_seconds=60, batch_size=7),
                id=f"posting-sweep-test-{uuid.uuid4()}",
                task_queue=task_queue,
            )
            await handle.signal(PostingSweepWorkflow.stop)
            total = await handle.result()
            last_report = await handle.query(PostingSweepWorkflow.last_report)
            return total, last_report


def test_sweep_workflow_stops_on_signal():
    total, last_report = asyncio.run(_run_workflow_until_stopped())

    assert total == 1
    assert last_report == {"scanned": 0, "batch_size": 7}
