"""Repository for merchant records and plan membership queries."""
from __future__ import annotations

from typing import List, Tuple

from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.db.models.enums import MerchantStatus, SubscriptionStatus
from src.db.models.merchant import Merchant
from src.db.models.subscription import Subscription


def _has_active_subscription():
    return exists().where(
        Subscription.merchant_id == Merchant.id,
        Subscription.status == SubscriptionStatus.ACTIVE,
    )


def _has_active_subscription_to(plan_id: str):
    return exists().where(
        Subscription.merchant_id == Merchant.id,
        Subscription.plan_id == plan_id,
        Subscription.status == SubscriptionStatus.ACTIVE,
    )


class MerchantRepo:
    """Data-access helpers for :class:`Merchant`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, merchant_id: str) -> Merchant | None:
        result = await self.session.execute(
            select(Merchant).where(Merchant.id == merchant_id)
        )
        return result.scalar_one_or_none()

    async def lock(self, merchant_id: str) -> Merchant | None:
        """Select the merchant row ``FOR UPDATE`` for the rest of the transaction."""

        result = await self.session.execute(
            select(Merchant)
            .where(Merchant.id == merchant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def count_active(self) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(Merchant)
            .where(Merchant.status == MerchantStatus.ACTIVE)
        )
        return int(result.scalar_one() or 0)

    async def count_plan_members(self, plan_id: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(Merchant)
            .where(
                Merchant.status == MerchantStatus.ACTIVE,
                _has_active_subscription_to(plan_id),
            )
        )
        return int(result.scalar_one() or 0)

    async def list_plan_members(
        self, plan_id: str, skip: int, limit: int
    ) -> List[Tuple[Merchant, Subscription]]:
        """Active merchants holding an explicit ACTIVE subscription to ``plan_id``."""

        result = await self.session.execute(
            select(Merchant, Subscription)
            .join(Subscription, Subscription.merchant_id == Merchant.id)
            .options(selectinload(Subscription.plan))
            .where(
                Merchant.status == MerchantStatus.ACTIVE,
                Subscription.plan_id == plan_id,
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
            .order_by(Merchant.created_at.asc(), Merchant.id.asc())
            .offset(skip)
            .limit(limit)
        )
        return [(merchant, subscription) for merchant, subscription in result.all()]

    async def count_unsubscribed(self) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(Merchant)
            .where(
                Merchant.status == MerchantStatus.ACTIVE,
                ~_has_active_subscription(),
            )
        )
        return int(result.scalar_one() or 0)

    async def list_unsubscribed(self, skip: int, limit: int) -> List[Merchant]:
        """Active merchants with no ACTIVE subscription at all."""

        result = await self.session.execute(
            select(Merchant)
            .where(
                Merchant.status == MerchantStatus.ACTIVE,
                ~_has_active_subscription(),
            )
            .order_by(Merchant.created_at.asc(), Merchant.id.asc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())
