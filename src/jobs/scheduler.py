"""APScheduler wiring for the lifecycle jobs."""
from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from src.core.config import SchedulerSettings
from src.jobs.lifecycle import (
    EXPIRED_SUBSCRIPTIONS,
    EXPIRING_SUBSCRIPTIONS,
    SCHEDULED_ASSIGNMENTS,
    STALE_ASSIGNMENTS,
    STALE_TRANSACTIONS,
    LifecycleJobs,
)


logger = logging.getLogger(__name__)


def build_scheduler(jobs: LifecycleJobs, config: SchedulerSettings) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=config.timezone)
    triggers = {
        STALE_ASSIGNMENTS: IntervalTrigger(
            minutes=config.stale_assignment_interval_minutes
        ),
        SCHEDULED_ASSIGNMENTS: IntervalTrigger(
            minutes=config.scheduled_assignment_interval_minutes
        ),
        STALE_TRANSACTIONS: CronTrigger(
            hour=config.stale_transaction_hour, minute=0, timezone=config.timezone
        ),
        EXPIRING_SUBSCRIPTIONS: CronTrigger(
            hour=config.expiring_notice_hour, minute=0, timezone=config.timezone
        ),
        EXPIRED_SUBSCRIPTIONS: CronTrigger(
            hour=config.expired_transition_hour, minute=0, timezone=config.timezone
        ),
    }
    for name, trigger in triggers.items():
        scheduler.add_job(
            jobs.run,
            trigger,
            args=[name],
            id=name,
            name=name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
    logger.info(f"Scheduled {len(triggers)} lifecycle jobs in {config.timezone}")
    return scheduler
