"""Repository utilities for merchant subscriptions."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.db.models.enums import BillingCycle, SubscriptionStatus
from src.db.models.subscription import Subscription


OPEN_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.PENDING,
    SubscriptionStatus.SUSPENDED,
)


class SubscriptionRepo:
    """Data-access helpers for :class:`Subscription`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, subscription_id: str) -> Subscription | None:
        result = await self.session.execute(
            select(Subscription).where(Subscription.id == subscription_id)
        )
        return result.scalar_one_or_none()

    async def get_active_with_plan(self, merchant_id: str) -> Subscription | None:
        result = await self.session.execute(
            select(Subscription)
            .options(selectinload(Subscription.plan))
            .where(
                Subscription.merchant_id == merchant_id,
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
            .order_by(Subscription.start_date.desc())
        )
        return result.scalars().first()

    async def has_active_for_plan(self, merchant_id: str, plan_id: str) -> bool:
        result = await self.session.execute(
            select(Subscription.id).where(
                Subscription.merchant_id == merchant_id,
                Subscription.plan_id == plan_id,
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
        )
        return result.first() is not None

    async def list_for_merchant(self, merchant_id: str) -> List[Subscription]:
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.merchant_id == merchant_id)
            .order_by(Subscription.created_at.asc())
        )
        return list(result.scalars().all())

    async def cancel_open(
        self,
        merchant_id: str,
        *,
        cancelled_at: datetime,
        cancelled_by: Optional[str],
        reason: str,
    ) -> int:
        """Cancel every ACTIVE, PENDING or SUSPENDED subscription of a merchant."""

        result = await self.session.execute(
            update(Subscription)
            .where(
                Subscription.merchant_id == merchant_id,
                Subscription.status.in_(OPEN_STATUSES),
            )
            .values(
                status=SubscriptionStatus.CANCELLED,
                cancelled_at=cancelled_at,
                cancelled_by=cancelled_by,
                cancellation_reason=reason,
                updated_at=cancelled_at,
            )
            .execution_options(synchronize_session="fetch")
        )
        return int(result.rowcount or 0)

    async def create(
        self,
        *,
        merchant_id: str,
        plan_id: str,
        start_date: datetime,
        end_date: Optional[datetime],
        next_billing_date: Optional[datetime],
        monthly_price: Decimal,
        billing_cycle: BillingCycle,
    ) -> Subscription:
        subscription = Subscription(
            merchant_id=merchant_id,
            plan_id=plan_id,
            status=SubscriptionStatus.ACTIVE,
            start_date=start_date,
            end_date=end_date,
            next_billing_date=next_billing_date,
            monthly_price=monthly_price,
            billing_cycle=billing_cycle,
        )
        self.session.add(subscription)
        await self.session.flush()
        return subscription

    async def list_active_ending_between(
        self, start: datetime, end: datetime
    ) -> List[Subscription]:
        result = await self.session.execute(
            select(Subscription)
            .options(selectinload(Subscription.plan), selectinload(Subscription.merchant))
            .where(
                Subscription.status == SubscriptionStatus.ACTIVE,
                Subscription.end_date.is_not(None),
                Subscription.end_date >= start,
                Subscription.end_date <= end,
            )
            .order_by(Subscription.end_date.asc())
        )
        return list(result.scalars().all())

    async def list_active_ended_before(self, moment: datetime) -> List[Subscription]:
        result = await self.session.execute(
            select(Subscription)
            .options(selectinload(Subscription.plan), selectinload(Subscription.merchant))
            .where(
                Subscription.status == SubscriptionStatus.ACTIVE,
                Subscription.end_date.is_not(None),
                Subscription.end_date < moment,
            )
            .order_by(Subscription.end_date.asc())
        )
        return list(result.scalars().all())

    async def mark_expired(self, subscription_id: str, moment: datetime) -> bool:
        """Move an ACTIVE subscription to EXPIRED; False if it was no longer ACTIVE."""

        result = await self.session.execute(
            update(Subscription)
            .where(
                Subscription.id == subscription_id,
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
            .values(status=SubscriptionStatus.EXPIRED, updated_at=moment)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)
