"""Time-driven subscription and billing maintenance.

Every job opens its own sessions, handles rows one at a time and never lets an
exception reach the scheduler. A row that fails is logged and skipped; the
rest of the batch still runs.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.clock import as_utc, utcnow
from src.core.config import settings
from src.repositories.assignment_repo import AssignmentRepo
from src.repositories.billing_repo import BillingRepo
from src.repositories.subscription_repo import SubscriptionRepo
from src.services.assignments import PlanAssignmentService
from src.services.locks import JobLock
from src.services.notifications import NotificationGateway, SubscriptionNotice, notify_owner
from src.services.resolver import days_until


logger = logging.getLogger(__name__)

STALE_ASSIGNMENTS = "stale_assignments"
STALE_TRANSACTIONS = "stale_transactions"
EXPIRING_SUBSCRIPTIONS = "expiring_subscriptions"
EXPIRED_SUBSCRIPTIONS = "expired_subscriptions"
SCHEDULED_ASSIGNMENTS = "scheduled_assignments"

SYSTEM_ACTOR = "system-cleanup"


@dataclass
class JobResult:
    job: str
    matched: int = 0
    affected: int = 0
    failed: int = 0
    skipped: bool = False


class LifecycleJobs:
    """The scheduled jobs, runnable from the scheduler or on demand."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: NotificationGateway,
        job_lock: Optional[JobLock] = None,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.job_lock = job_lock or JobLock()

    @property
    def jobs(self) -> Dict[str, Callable[..., Awaitable[JobResult]]]:
        return {
            STALE_ASSIGNMENTS: self.cleanup_stale_assignments,
            STALE_TRANSACTIONS: self.expire_stale_transactions,
            EXPIRING_SUBSCRIPTIONS: self.notify_expiring_subscriptions,
            EXPIRED_SUBSCRIPTIONS: self.expire_subscriptions,
            SCHEDULED_ASSIGNMENTS: self.apply_scheduled_assignments,
        }

    async def run(self, job_name: str, now: Optional[datetime] = None) -> JobResult:
        """Run a job by name. Raises ``KeyError`` for unknown names."""

        job = self.jobs[job_name]
        return await job(now=now)

    async def _guarded(
        self, name: str, body: Callable[[JobResult], Awaitable[None]]
    ) -> JobResult:
        result = JobResult(job=name)
        try:
            async with self.job_lock.hold(name) as acquired:
                if not acquired:
                    result.skipped = True
                    return result
                logger.info(f"Job {name} started")
                await body(result)
        except Exception:
            logger.exception(f"Job {name} aborted")
            result.failed += 1
        logger.info(
            f"Job {name} finished: matched={result.matched} "
            f"affected={result.affected} failed={result.failed}"
        )
        return result

    async def cleanup_stale_assignments(
        self,
        now: Optional[datetime] = None,
        merchant_id: Optional[str] = None,
        threshold_minutes: Optional[int] = None,
    ) -> JobResult:
        """Delete IMMEDIATE assignments that never got applied."""

        now = now or utcnow()
        minutes = threshold_minutes or settings.billing.stale_assignment_minutes
        cutoff = now - timedelta(minutes=minutes)

        async def body(result: JobResult) -> None:
            async with self.session_factory() as session:
                ids = await AssignmentRepo(session).list_stale_immediate_ids(cutoff, merchant_id)
            result.matched = len(ids)

            for assignment_id in ids:
                try:
                    async with self.session_factory() as session:
                        if await AssignmentRepo(session).delete_unapplied(assignment_id):
                            await session.commit()
                            result.affected += 1
                except Exception:
                    logger.exception(f"Failed to delete stale assignment {assignment_id}")
                    result.failed += 1

        return await self._guarded(STALE_ASSIGNMENTS, body)

    async def manual_cleanup(
        self, merchant_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> JobResult:
        return await self.cleanup_stale_assignments(
            now=now,
            merchant_id=merchant_id,
            threshold_minutes=settings.billing.manual_cleanup_minutes,
        )

    async def expire_stale_transactions(self, now: Optional[datetime] = None) -> JobResult:
        now = now or utcnow()
        cutoff = now - timedelta(days=settings.billing.stale_transaction_days)

        async def body(result: JobResult) -> None:
            async with self.session_factory() as session:
                ids = await BillingRepo(session).list_stale_pending_ids(cutoff)
            result.matched = len(ids)

            for row_id in ids:
                try:
                    async with self.session_factory() as session:
                        if await BillingRepo(session).expire_pending(row_id, now, SYSTEM_ACTOR):
                            await session.commit()
                            result.affected += 1
                except Exception:
                    logger.exception(f"Failed to expire billing transaction {row_id}")
                    result.failed += 1

        return await self._guarded(STALE_TRANSACTIONS, body)

    async def notify_expiring_subscriptions(
        self, now: Optional[datetime] = None
    ) -> JobResult:
        """Warn owners and admins about subscriptions ending within the window."""

        now = now or utcnow()
        window_start = now + timedelta(days=settings.billing.expiring_window_start_days)
        window_end = now + timedelta(days=settings.billing.expiring_window_end_days)

        async def body(result: JobResult) -> None:
            async with self.session_factory() as session:
                subscriptions = await SubscriptionRepo(session).list_active_ending_between(
                    window_start, window_end
                )
            result.matched = len(subscriptions)

            for subscription in subscriptions:
                end_date = as_utc(subscription.end_date)
                notice = SubscriptionNotice(
                    plan_name=subscription.plan.name,
                    expiration_date=end_date,
                    days_left=days_until(end_date, now),
                )
                merchant = subscription.merchant
                try:
                    await notify_owner(
                        merchant,
                        self.gateway.notify_subscription_expiring_soon,
                        self.gateway.notify_subscription_expiring_soon_by_email,
                        notice,
                    )
                    await self.gateway.notify_admins_subscription_expiring_soon(
                        merchant.id, merchant.name, notice
                    )
                    result.affected += 1
                except Exception:
                    logger.exception(
                        f"Failed to send expiry warning for subscription {subscription.id}"
                    )
                    result.failed += 1

        return await self._guarded(EXPIRING_SUBSCRIPTIONS, body)

    async def expire_subscriptions(self, now: Optional[datetime] = None) -> JobResult:
        """Move ACTIVE subscriptions past their end date to EXPIRED."""

        now = now or utcnow()

        async def body(result: JobResult) -> None:
            async with self.session_factory() as session:
                subscriptions = await SubscriptionRepo(session).list_active_ended_before(now)
            result.matched = len(subscriptions)

            for subscription in subscriptions:
                try:
                    async with self.session_factory() as session:
                        changed = await SubscriptionRepo(session).mark_expired(
                            subscription.id, now
                        )
                        await session.commit()
                except Exception:
                    logger.exception(f"Failed to expire subscription {subscription.id}")
                    result.failed += 1
                    continue
                if not changed:
                    continue
                result.affected += 1

                merchant = subscription.merchant
                notice = SubscriptionNotice(
                    plan_name=subscription.plan.name,
                    expiration_date=as_utc(subscription.end_date),
                )
                try:
                    await notify_owner(
                        merchant,
                        self.gateway.notify_subscription_expired,
                        self.gateway.notify_subscription_expired_by_email,
                        notice,
                    )
                    await self.gateway.notify_admins_subscription_expired(
                        merchant.id, merchant.name, notice
                    )
                except Exception:
                    logger.exception(
                        f"Subscription {subscription.id} expired but notification failed"
                    )

        return await self._guarded(EXPIRED_SUBSCRIPTIONS, body)

    async def apply_scheduled_assignments(
        self, now: Optional[datetime] = None
    ) -> JobResult:
        now = now or utcnow()

        async def body(result: JobResult) -> None:
            async with self.session_factory() as session:
                service = PlanAssignmentService(session, self.gateway)
                matched, applied, failed = await service.apply_due_scheduled(now)
            result.matched = matched
            result.affected = applied
            result.failed = failed

        return await self._guarded(SCHEDULED_ASSIGNMENTS, body)
