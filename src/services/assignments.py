"""Plan assignment orchestration.

Creating an assignment and applying it are separate steps. Scheduled
assignments sit inert until applied; immediate ones are applied before
``assign`` returns. Both paths go through :meth:`PlanAssignmentService.apply`'s
locked core. Direct upgrades skip the assignment row but share the same
merchant lock and subscription switch.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.clock import as_utc, utcnow
from src.core.config import settings
from src.core.exceptions import (
    AlreadyApplied,
    AlreadySubscribed,
    AssignmentNotFound,
    DuplicatePendingAssignment,
    MerchantNotFound,
    MissingEndDate,
    MissingScheduledDate,
    PlanInactive,
    PlanNotFound,
)
from src.db.models.billing_transaction import BillingTransaction
from src.db.models.enums import AssignmentType, BillingCycle, DurationType, PlanStatus
from src.db.models.plan import Plan
from src.db.models.plan_assignment import PlanAssignment
from src.db.models.subscription import Subscription
from src.repositories.assignment_repo import AssignmentRepo
from src.repositories.merchant_repo import MerchantRepo
from src.repositories.plan_repo import PlanRepo
from src.repositories.subscription_repo import SubscriptionRepo
from src.services.ledger import BillingLedger
from src.services.locks import merchant_guard
from src.services.notifications import (
    NotificationGateway,
    PlanAssignedNotice,
    SubscriptionRenewedNotice,
    notify_owner,
)


logger = logging.getLogger(__name__)

CANCELLATION_REASON = "Plan changed by admin"
UPGRADE_REASON = "Upgraded to new plan"
ADMIN_PAYMENT_METHOD = "Admin Assignment"
SELF_UPGRADE_PAYMENT_METHOD = "Self Upgrade"
SYSTEM_ACTOR = "system"

CYCLE_DELTAS = {
    BillingCycle.MONTHLY: relativedelta(months=1),
    BillingCycle.YEARLY: relativedelta(years=1),
    BillingCycle.WEEKLY: relativedelta(weeks=1),
    BillingCycle.DAILY: relativedelta(days=1),
}


def add_billing_cycle(moment: datetime, cycle: BillingCycle) -> datetime:
    """Advance ``moment`` by one unit of ``cycle``; month ends clamp."""

    return moment + CYCLE_DELTAS[cycle]


@dataclass
class UpgradeResult:
    subscription: Subscription
    transaction: Optional[BillingTransaction] = None


class PlanAssignmentService:
    """State machine behind "assign plan X to merchant Y"."""

    def __init__(
        self, session: AsyncSession, gateway: NotificationGateway | None = None
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.assignments = AssignmentRepo(session)
        self.merchants = MerchantRepo(session)
        self.plans = PlanRepo(session)
        self.subscriptions = SubscriptionRepo(session)
        self.ledger = BillingLedger(session)

    async def assign(
        self,
        *,
        merchant_id: str,
        plan_id: str,
        assignment_type: AssignmentType = AssignmentType.IMMEDIATE,
        scheduled_date: Optional[datetime] = None,
        duration_type: DurationType = DurationType.PERMANENT,
        end_date: Optional[datetime] = None,
        notes: Optional[str] = None,
        assigned_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PlanAssignment:
        """Record an assignment and, for IMMEDIATE ones, apply it.

        A repeat of a recent pending assignment by the same admin and of the
        same type refreshes that row instead of adding another; any other
        repeat inside the window is rejected.
        """

        now = now or utcnow()
        if await self.merchants.get(merchant_id) is None:
            raise MerchantNotFound()
        plan = await self.plans.get(plan_id)
        if plan is None:
            raise PlanNotFound()
        if plan.status != PlanStatus.ACTIVE:
            raise PlanInactive()
        if assignment_type == AssignmentType.SCHEDULED and scheduled_date is None:
            raise MissingScheduledDate()
        if duration_type == DurationType.TEMPORARY and end_date is None:
            raise MissingEndDate()

        values = dict(
            merchant_id=merchant_id,
            plan_id=plan_id,
            assignment_type=assignment_type,
            scheduled_date=scheduled_date if assignment_type == AssignmentType.SCHEDULED else None,
            duration_type=duration_type,
            end_date=end_date if duration_type == DurationType.TEMPORARY else None,
            notes=notes,
            assigned_by=assigned_by,
            is_applied=False,
        )

        subscription = None
        async with merchant_guard(merchant_id):
            try:
                if await self.merchants.lock(merchant_id) is None:
                    raise MerchantNotFound()
                # Checked under the lock so two racing requests cannot both pass.
                if await self.subscriptions.has_active_for_plan(merchant_id, plan_id):
                    raise AlreadySubscribed()
                assignment = await self._create_or_refresh(values, now)
                if assignment_type == AssignmentType.IMMEDIATE:
                    subscription = await self._apply_locked(assignment.id, now)
                await self.session.commit()
            except Exception:
                await self.session.rollback()
                raise

        if subscription is None:
            logger.info(
                f"Scheduled plan {plan_id} for merchant {merchant_id} "
                f"at {scheduled_date.isoformat()} (assignment {assignment.id})"
            )
            return assignment

        await self._notify_assigned(assignment, subscription)
        return assignment

    async def _create_or_refresh(self, values: Dict[str, Any], now: datetime) -> PlanAssignment:
        cutoff = now - timedelta(minutes=settings.billing.duplicate_assignment_minutes)
        merchant_id, plan_id = values["merchant_id"], values["plan_id"]

        purged = await self.assignments.purge_unapplied(merchant_id, plan_id, cutoff)
        if purged:
            logger.info(
                f"Purged {purged} abandoned assignment(s) of plan {plan_id} "
                f"for merchant {merchant_id}"
            )

        existing = await self.assignments.find_recent_pending(merchant_id, plan_id, cutoff)
        if existing is None:
            return await self.assignments.create(**values)
        if (
            existing.assigned_by != values["assigned_by"]
            or existing.assignment_type != values["assignment_type"]
        ):
            raise DuplicatePendingAssignment()

        for key in ("scheduled_date", "duration_type", "end_date", "notes"):
            setattr(existing, key, values[key])
        await self.session.flush()
        logger.info(f"Refreshed pending assignment {existing.id} instead of duplicating it")
        return existing

    async def upgrade(
        self,
        merchant_id: str,
        plan_id: str,
        *,
        payment_reference: Optional[str] = None,
        payment_method: Optional[str] = None,
        upgraded_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UpgradeResult:
        """Move a merchant straight onto ``plan_id`` without an assignment row.

        ``upgraded_by`` is the admin acting for the merchant; leave it empty
        for a self-service upgrade. Paid plans open a PENDING transaction
        that finance verifies later.
        """

        now = now or utcnow()
        if await self.merchants.get(merchant_id) is None:
            raise MerchantNotFound()
        plan = await self.plans.get(plan_id)
        if plan is None:
            raise PlanNotFound()
        if plan.status != PlanStatus.ACTIVE:
            raise PlanInactive("Cannot upgrade to inactive plan")

        transaction = None
        async with merchant_guard(merchant_id):
            try:
                if await self.merchants.lock(merchant_id) is None:
                    raise MerchantNotFound()
                if await self.subscriptions.has_active_for_plan(merchant_id, plan_id):
                    raise AlreadySubscribed()

                paid = not plan.is_free
                cycle_end = add_billing_cycle(now, plan.billing_cycle)
                subscription = await self._switch_subscription(
                    merchant_id,
                    plan,
                    now,
                    end_date=cycle_end if paid else None,
                    cancelled_by=upgraded_by or SYSTEM_ACTOR,
                    reason=UPGRADE_REASON,
                )
                if paid:
                    default_method = (
                        ADMIN_PAYMENT_METHOD if upgraded_by else SELF_UPGRADE_PAYMENT_METHOD
                    )
                    transaction = await self.ledger.create(
                        merchant_id=merchant_id,
                        plan_id=plan.id,
                        subscription_id=subscription.id,
                        amount=plan.price,
                        payment_reference=payment_reference,
                        payment_method=payment_method or default_method,
                        billing_period_start=now,
                        billing_period_end=cycle_end,
                        notes=(
                            f"Admin upgrade by {upgraded_by}"
                            if upgraded_by
                            else "Merchant self-upgrade"
                        ),
                        processed_by=upgraded_by or SYSTEM_ACTOR,
                        validate_refs=False,
                    )
                await self.session.commit()
            except Exception:
                await self.session.rollback()
                raise

        logger.info(f"Merchant {merchant_id} upgraded to plan {plan.name}")
        await self._notify_renewed(merchant_id, plan, subscription)
        return UpgradeResult(subscription=subscription, transaction=transaction)

    async def apply(
        self, assignment_id: str, now: Optional[datetime] = None
    ) -> Subscription:
        """Apply a pending assignment exactly once.

        Everything happens in one transaction under the merchant lock; any
        failure rolls back and leaves the assignment unapplied for a retry.
        """

        assignment = await self.assignments.get(assignment_id)
        if assignment is None:
            raise AssignmentNotFound()
        if assignment.is_applied:
            raise AlreadyApplied()

        async with merchant_guard(assignment.merchant_id):
            try:
                subscription = await self._apply_locked(assignment_id, now or utcnow())
                await self.session.commit()
            except Exception:
                await self.session.rollback()
                raise

        await self._notify_assigned(assignment, subscription)
        return subscription

    async def _apply_locked(self, assignment_id: str, now: datetime) -> Subscription:
        assignment = await self.assignments.get_for_update(assignment_id)
        if assignment is None:
            raise AssignmentNotFound()
        if assignment.is_applied:
            raise AlreadyApplied()
        if await self.merchants.lock(assignment.merchant_id) is None:
            raise MerchantNotFound()

        plan = assignment.plan
        paid = not plan.is_free
        cycle_end = add_billing_cycle(now, plan.billing_cycle)

        if assignment.duration_type == DurationType.TEMPORARY and assignment.end_date:
            end_date = as_utc(assignment.end_date)
        elif paid:
            end_date = cycle_end
        else:
            end_date = None

        subscription = await self._switch_subscription(
            assignment.merchant_id,
            plan,
            now,
            end_date=end_date,
            cancelled_by=assignment.assigned_by,
            reason=CANCELLATION_REASON,
        )

        assignment.is_applied = True
        assignment.applied_at = now

        if paid:
            await self.ledger.create(
                merchant_id=assignment.merchant_id,
                plan_id=plan.id,
                subscription_id=subscription.id,
                amount=plan.price,
                payment_method=ADMIN_PAYMENT_METHOD,
                billing_period_start=now,
                billing_period_end=end_date or cycle_end,
                notes=f"Admin upgrade by {assignment.assigned_by or SYSTEM_ACTOR}",
                processed_by=assignment.assigned_by,
                validate_refs=False,
            )

        await self.session.flush()
        logger.info(
            f"Applied assignment {assignment.id}: merchant {assignment.merchant_id} "
            f"moved to plan {plan.name}"
        )
        return subscription

    async def _switch_subscription(
        self,
        merchant_id: str,
        plan: Plan,
        now: datetime,
        *,
        end_date: Optional[datetime],
        cancelled_by: Optional[str],
        reason: str,
    ) -> Subscription:
        """Close every open subscription and start one on ``plan``. Caller holds the lock."""

        cancelled = await self.subscriptions.cancel_open(
            merchant_id, cancelled_at=now, cancelled_by=cancelled_by, reason=reason
        )
        if cancelled:
            logger.info(f"Cancelled {cancelled} open subscription(s) of merchant {merchant_id}")
        return await self.subscriptions.create(
            merchant_id=merchant_id,
            plan_id=plan.id,
            start_date=now,
            end_date=end_date,
            next_billing_date=None if plan.is_free else add_billing_cycle(now, plan.billing_cycle),
            monthly_price=plan.price,
            billing_cycle=plan.billing_cycle,
        )

    async def _notify_assigned(
        self, assignment: PlanAssignment, subscription: Subscription
    ) -> None:
        if self.gateway is None:
            return
        try:
            merchant = await self.merchants.get(assignment.merchant_id)
            plan = await self.plans.get(assignment.plan_id)
            if merchant is None or plan is None:
                return
            notice = PlanAssignedNotice(
                plan_name=plan.name,
                assigned_by=assignment.assigned_by or "Administrator",
                start_date=as_utc(subscription.start_date),
                end_date=as_utc(subscription.end_date),
            )
            await notify_owner(
                merchant,
                self.gateway.notify_plan_assigned,
                self.gateway.notify_plan_assigned_by_email,
                notice,
            )
        except Exception:
            logger.exception(
                f"Failed to send plan assignment notification for {assignment.id}"
            )

    async def _notify_renewed(
        self, merchant_id: str, plan: Plan, subscription: Subscription
    ) -> None:
        if self.gateway is None:
            return
        try:
            merchant = await self.merchants.get(merchant_id)
            if merchant is None:
                return
            notice = SubscriptionRenewedNotice(
                plan_name=plan.name,
                start_date=as_utc(subscription.start_date),
                end_date=as_utc(subscription.end_date),
                amount=plan.price,
            )
            await notify_owner(
                merchant,
                self.gateway.notify_subscription_renewed,
                self.gateway.notify_subscription_renewed_by_email,
                notice,
            )
        except Exception:
            logger.exception(f"Failed to send upgrade notification for merchant {merchant_id}")

    async def list_pending(self, merchant_id: Optional[str] = None) -> List[PlanAssignment]:
        return await self.assignments.list_pending(merchant_id)

    async def cancel_pending(self, assignment_id: str) -> None:
        assignment = await self.assignments.get(assignment_id)
        if assignment is None:
            raise AssignmentNotFound()
        if assignment.is_applied:
            raise AlreadyApplied("Cannot cancel already applied assignment")

        try:
            if not await self.assignments.delete_unapplied(assignment_id):
                raise AlreadyApplied("Cannot cancel already applied assignment")
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info(f"Cancelled pending assignment {assignment_id}")

    async def apply_due_scheduled(
        self, now: Optional[datetime] = None
    ) -> Tuple[int, int, int]:
        """Apply every SCHEDULED assignment whose date has passed.

        Each assignment commits or rolls back on its own. Returns
        ``(matched, applied, failed)``.
        """

        now = now or utcnow()
        ids = await self.assignments.list_due_scheduled_ids(now)
        applied = failed = 0
        for assignment_id in ids:
            try:
                await self.apply(assignment_id, now=now)
                applied += 1
            except AlreadyApplied:
                logger.info(f"Scheduled assignment {assignment_id} already applied")
            except Exception:
                logger.exception(f"Failed to apply scheduled assignment {assignment_id}")
                failed += 1
        return len(ids), applied, failed
