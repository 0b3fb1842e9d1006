"""Repository utilities for monthly usage counters."""
from __future__ import annotations

import uuid
from typing import Dict

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.usage import SubscriptionUsage


class UsageRepo:
    """Data-access helpers for :class:`SubscriptionUsage`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, merchant_id: str, period: str) -> SubscriptionUsage | None:
        result = await self.session.execute(
            select(SubscriptionUsage).where(
                SubscriptionUsage.merchant_id == merchant_id,
                SubscriptionUsage.period == period,
            )
        )
        return result.scalar_one_or_none()

    async def increment(
        self, merchant_id: str, period: str, feature: str, amount: int
    ) -> Dict[str, int]:
        """Add ``amount`` to one counter and return the period's counters.

        The row is created on first use and then locked, so concurrent
        increments for the same merchant and month serialize.
        """

        await self.session.execute(
            text(
                """
                INSERT INTO subscription_usage (id, merchant_id, period, usage)
                VALUES (:id, :merchant_id, :period, '{}')
                ON CONFLICT (merchant_id, period) DO NOTHING
                """
            ),
            {"id": str(uuid.uuid4()), "merchant_id": merchant_id, "period": period},
        )
        result = await self.session.execute(
            select(SubscriptionUsage)
            .where(
                SubscriptionUsage.merchant_id == merchant_id,
                SubscriptionUsage.period == period,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one()
        counters = dict(row.usage or {})
        counters[feature] = int(counters.get(feature, 0)) + amount
        row.usage = counters
        await self.session.flush()
        return counters
