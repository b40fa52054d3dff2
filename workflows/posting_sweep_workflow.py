"""
Posting Sweep Workflow

Long-running schedule for the sync dispatcher:
SWEEP → WAIT(interval) → SWEEP → ... → CONTINUE_AS_NEW

The history is reset with continue_as_new after a fixed number of sweeps.
Send the `stop` signal to end the workflow after the current wait.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.posting import PostingSweepInput, run_posting_sweep


DEFAULT_WORKFLOW_ID = "posting-sweep"


@dataclass
class PostingSweepWorkflowInput:
    """Input for the posting sweep workflow"""
    interval_seconds: int = 60
    sweeps_per_run: int = 100
    batch_size: Optional[int] = None
    activity_timeout_seconds: int = 900

    # Carried across continue_as_new
    total_sweeps: int = 0


@workflow.defn
class PostingSweepWorkflow:
    """Runs run_posting_sweep every interval_seconds until stopped."""

    def __init__(self) -> None:
        self._stop_requested = False
        self._last_report: Optional[Dict[str, Any]] = None
        self._total_sweeps = 0

    @workflow.run
    async def run(self, input: PostingSweepWorkflowInput) -> int:
        self._total_sweeps = input.total_sweeps

        for _ in range(input.sweeps_per_run):
            self._last_report = await workflow.execute_activity(
                run_posting_sweep,
                PostingSweepInput(batch_size=input.batch_size),
                start_to_close_timeout=timedelta(seconds=input.activity_timeout_seconds),
                retry_policy=RetryPolicy(
                    initial_interval=timedelta(seconds=5),
                    maximum_interval=timedelta(minutes=1),
                    maximum_attempts=3,
                ),
            )
            self._total_sweeps += 1

            try:
                await workflow.wait_condition(
                    lambda: self._stop_requested,
                    timeout=timedelta(seconds=input.interval_seconds),
                )
            except asyncio.TimeoutError:
                pass

            if self._stop_requested:
                workflow.logger.info(f"Stop requested after {self._total_sweeps} sweeps")
                return self._total_sweeps

        workflow.continue_as_new(PostingSweepWorkflowInput(
            interval_seconds=input.interval_seconds,
            sweeps_per_run=input.sweeps_per_run,
            batch_size=input.batch_size,
            activity_timeout_seconds=input.activity_timeout_seconds,
            total_sweeps=self._total_sweeps,
        ))

    @workflow.signal
    def stop(self) -> None:
        self._stop_requested = True

    @workflow.query
    def last_report(self) -> Optional[Dict[str, Any]]:
        return self._last_report

    @workflow.query
    def total_sweeps(self) -> int:
        return self._total_sweeps
