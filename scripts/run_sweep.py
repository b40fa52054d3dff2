"""Run one posting sweep locally, without Temporal.

Useful to drain the queue by hand or to check a connection after
reconnecting it. Prints the sweep report as JSON.
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
from sync_dispatcher.factory import build_services


logger = get_logger(__name__)


async def run_sweep(batch_size: int = None) -> dict:
    settings = get_settings()
    configure_from_settings(settings)
    services = build_services(settings)
    report = await services.dispatcher.sweep(limit=batch_size)
    return report.to_dict()


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Run one posting sweep")
    parser.add_argument("--batch-size", "-n", type=int, default=None, help="Max items to attempt")
    args = parser.parse_args()

    try:
        report = asyncio.run(run_sweep(args.batch_size))
        print(json.dumps(report, indent=2))
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
