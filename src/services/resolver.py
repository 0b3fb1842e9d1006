"""Effective-subscription resolution.

A merchant with no ACTIVE subscription row is implicitly on the free plan.
That entitlement is derived on every read and never written back.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.clock import as_utc, utcnow
from src.core.config import settings
from src.db.models.enums import BillingCycle, MerchantStatus, SubscriptionStatus
from src.db.models.merchant import Merchant
from src.db.models.plan import Plan
from src.repositories.merchant_repo import MerchantRepo
from src.repositories.plan_repo import PlanRepo
from src.repositories.subscription_repo import SubscriptionRepo
from src.schemas.plan import PlanRead
from src.schemas.subscription import ResolvedSubscription, TrialStatus


logger = logging.getLogger(__name__)

VIRTUAL_ID_PREFIX = "virtual-free-"


def virtual_subscription_id(merchant_id: str) -> str:
    return f"{VIRTUAL_ID_PREFIX}{merchant_id}"


def virtual_free_subscription(
    merchant_id: str, free_plan: Plan, start_date: datetime
) -> ResolvedSubscription:
    return ResolvedSubscription(
        id=virtual_subscription_id(merchant_id),
        merchant_id=merchant_id,
        plan_id=free_plan.id,
        status=SubscriptionStatus.ACTIVE,
        start_date=start_date,
        end_date=None,
        next_billing_date=None,
        monthly_price=Decimal("0"),
        billing_cycle=BillingCycle.MONTHLY,
        synthetic=True,
        plan=PlanRead.model_validate(free_plan),
    )


def days_until(moment: datetime, now: datetime) -> int:
    """Whole days left until ``moment``, rounded up."""

    return math.ceil((moment - now) / timedelta(days=1))


class SubscriptionResolver:
    """Read-only view of a merchant's effective subscription."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.merchants = MerchantRepo(session)
        self.plans = PlanRepo(session)
        self.subscriptions = SubscriptionRepo(session)

    async def free_plan(self) -> Plan | None:
        return await self.plans.get_active_by_name(settings.billing.free_plan_name)

    async def resolve(
        self, merchant_id: str, now: Optional[datetime] = None
    ) -> ResolvedSubscription | None:
        subscription = await self.subscriptions.get_active_with_plan(merchant_id)
        if subscription is not None:
            return ResolvedSubscription.model_validate(subscription)

        merchant: Merchant | None = await self.merchants.get(merchant_id)
        if merchant is None or merchant.status != MerchantStatus.ACTIVE:
            logger.warning(f"No plan resolvable for merchant {merchant_id}: merchant missing or inactive")
            return None

        free_plan = await self.free_plan()
        if free_plan is None:
            logger.warning(
                f"No plan resolvable for merchant {merchant_id}: "
                f"free plan '{settings.billing.free_plan_name}' missing or inactive"
            )
            return None

        return virtual_free_subscription(merchant_id, free_plan, now or utcnow())

    async def trial_status(
        self, merchant_id: str, now: Optional[datetime] = None
    ) -> TrialStatus:
        now = now or utcnow()
        resolved = await self.resolve(merchant_id, now=now)
        if resolved is None:
            return TrialStatus(merchant_id=merchant_id, has_subscription=False)

        end_date = as_utc(resolved.end_date)
        days_remaining = None
        if end_date is not None:
            days_remaining = max(0, days_until(end_date, now))

        return TrialStatus(
            merchant_id=merchant_id,
            has_subscription=True,
            plan_name=resolved.plan.name,
            is_trial=(
                resolved.plan.name == settings.billing.free_plan_name
                and end_date is not None
                and resolved.status == SubscriptionStatus.ACTIVE
            ),
            is_expired=end_date is not None and end_date <= now,
            days_remaining=days_remaining,
            synthetic=resolved.synthetic,
        )
