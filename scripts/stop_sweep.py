"""Stop the posting sweep workflow.

Sends the `stop` signal to the running sweep workflow, waits for it to
finish its current wait, and prints the number of sweeps it ran. With
--status, only prints the last sweep report.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.observability.logging import configure_from_settings, get_logger
from temporal_client import get_temporal_client
from workflows.posting_sweep_workflow import DEFAULT_WORKFLOW_ID, PostingSweepWorkflow


logger = get_logger(__name__)


async def stop_sweep(workflow_id: str, status_only: bool = False):
    """Signal the sweep workflow to stop, or query its last report.

    Raises:
        Exception: If the workflow does not exist or Temporal is unreachable
    """
    settings = get_settings()
    configure_from_settings(settings)

    client = await get_temporal_client(settings)
    handle = client.get_workflow_handle(workflow_id)

    if status_only:
        return {
            "total_sweeps": await handle.query(PostingSweepWorkflow.total_sweeps),
            "last_report": await handle.query(PostingSweepWorkflow.last_report),
        }

    logger.info(f"Stopping workflow {workflow_id}...")
    await handle.signal(PostingSweepWorkflow.stop)
    total = await handle.result()
    logger.info(f"Workflow {workflow_id} stopped after {total} sweeps")
    return {"total_sweeps": total}


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Stop or inspect the posting sweep workflow")
    parser.add_argument("--workflow-id", default=DEFAULT_WORKFLOW_ID)
    parser.add_argument("--status", action="store_true", help="Print the last report without stopping")
    args = parser.parse_args()

    try:
        result = asyncio.run(stop_sweep(args.workflow_id, status_only=args.status))
        print(json.dumps(result, indent=2))
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
