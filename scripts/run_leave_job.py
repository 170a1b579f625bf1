#!/usr/bin/env python3
"""Leave jobs — run a scheduled leave job once, from cron or by hand.

The API process normally runs both jobs through its in-process scheduler.
Deployments that prefer system cron (SCHEDULER_ENABLED=false) call this
script instead; both jobs are safe to re-run.

Usage:
    python scripts/run_leave_job.py auto-approval          # stale pending leaves
    python scripts/run_leave_job.py carry-forward          # yearly rollover
    python scripts/run_leave_job.py carry-forward --json   # machine-readable summary

Exit codes:
    0 = job completed, no per-item failures
    1 = job completed but some items failed (see log)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from hrops.database import engine
from hrops.leave.jobs import run_auto_approval, run_carry_forward
from hrops.logging_config import configure_logging

logger = logging.getLogger("run_leave_job")

JOBS = {
    "auto-approval": run_auto_approval,
    "carry-forward": run_carry_forward,
}


async def _run(job: str):
    try:
        return await JOBS[job]()
    finally:
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run a scheduled leave job once",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Cron schedule (recommended):
    0 */2 * * *    auto-approval   (every 2 hours)
    0 0 1 1 *      carry-forward   (Jan 1st, 00:00)
""",
    )
    parser.add_argument("job", choices=sorted(JOBS), help="Job to run")
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args()

    configure_logging(args.log_level)

    summary = asyncio.run(_run(args.job))

    if args.json:
        print(summary.model_dump_json(indent=2))
    else:
        logger.info(
            "%s: scanned=%d eligible=%d processed=%d skipped=%d failed=%d",
            summary.job, summary.scanned, summary.eligible,
            summary.processed, summary.skipped, summary.failed,
        )
    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
