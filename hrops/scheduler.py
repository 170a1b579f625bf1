"""Background scheduler for the leave jobs (APScheduler, asyncio flavour).

The scheduler only decides *when* a job runs; the job bodies live in
``hrops.leave.jobs`` and can be triggered by any other orchestrator.
"""

from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from hrops.config import settings
from hrops.leave.jobs import run_auto_approval, run_carry_forward

logger = logging.getLogger(__name__)


def build_scheduler() -> AsyncIOScheduler:
    """Create a scheduler with both leave jobs registered (not started)."""
    scheduler = AsyncIOScheduler(timezone="UTC")

    # Every 2 hours by default: stale manager/HR/admin requests
    scheduler.add_job(
        func=run_auto_approval,
        trigger=CronTrigger.from_crontab(settings.AUTO_APPROVAL_CRON, timezone="UTC"),
        id="leave_auto_approval",
        name="Auto-approve stale pending leave requests",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    # Jan 1st 00:00 by default: yearly balance carry-forward
    scheduler.add_job(
        func=run_carry_forward,
        trigger=CronTrigger.from_crontab(settings.CARRY_FORWARD_CRON, timezone="UTC"),
        id="leave_carry_forward",
        name="Carry forward unused leave balance",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    logger.info(
        "Leave jobs scheduled: auto-approval '%s', carry-forward '%s'",
        settings.AUTO_APPROVAL_CRON, settings.CARRY_FORWARD_CRON,
    )
    return scheduler


def start_scheduler() -> Optional[AsyncIOScheduler]:
    """Start the scheduler unless disabled via ``SCHEDULER_ENABLED``."""
    if not settings.SCHEDULER_ENABLED:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")
        return None
    scheduler = build_scheduler()
    scheduler.start()
    logger.info("Scheduler started")
    return scheduler


def stop_scheduler(scheduler: Optional[AsyncIOScheduler]) -> None:
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
