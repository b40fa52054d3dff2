"""Posting activities.

Temporal activity that runs one sync dispatcher sweep. The services are
built once per worker process and reused across sweeps.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from temporalio import activity

from core.config import get_settings
from core.observability.logging import get_logger, with_correlation
from sync_dispatcher.factory import PostingServices, build_services


logger = get_logger(__name__)

_services: Optional[PostingServices] = None


def get_services() -> PostingServices:
    global _services
    if _services is None:
        _services = build_services(get_settings())
    return _services


@dataclass
class PostingSweepInput:
    """Input for run_posting_sweep activity.

    Attributes:
        batch_size: Max items to attempt (None = POSTING_SWEEP_BATCH_SIZE)
    """
    batch_size: Optional[int] = None


@activity.defn
async def run_posting_sweep(input: PostingSweepInput) -> Dict[str, Any]:
    """Run one dispatcher sweep and return its report."""
    info = activity.info()
    with with_correlation(
        workflow_id=info.workflow_id,
        workflow_run_id=info.workflow_run_id,
        activity_name=info.activity_type,
        task_queue=info.task_queue,
    ):
        services = get_services()
        report = await services.dispatcher.sweep(limit=input.batch_size)
        return report.to_dict()
