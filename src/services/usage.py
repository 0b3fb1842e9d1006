"""Metered usage against plan limits.

Counters live per merchant and calendar month. A limit of ``-1`` or ``None``
means unlimited, a boolean limit switches a feature on or off, and a key the
plan does not mention is not allowed at all.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.clock import utcnow
from src.core.exceptions import MerchantNotFound
from src.repositories.merchant_repo import MerchantRepo
from src.repositories.usage_repo import UsageRepo
from src.services.resolver import SubscriptionResolver


logger = logging.getLogger(__name__)

UNLIMITED = -1
NO_PLAN = "No Plan"


def usage_period(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


@dataclass
class UsageCheck:
    allowed: bool
    current_usage: int
    limit: int
    plan_name: str


@dataclass
class UsageStatistics:
    plan_name: str
    limits: Dict[str, Any] = field(default_factory=dict)
    usage: Dict[str, int] = field(default_factory=dict)
    percentages: Dict[str, int] = field(default_factory=dict)


class UsageService:
    """Reads and bumps the monthly counters and checks them against the plan."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.repo = UsageRepo(session)
        self.resolver = SubscriptionResolver(session)

    async def current_usage(
        self, merchant_id: str, now: Optional[datetime] = None
    ) -> Dict[str, int]:
        row = await self.repo.get(merchant_id, usage_period(now or utcnow()))
        return dict(row.usage) if row is not None else {}

    async def increment_usage(
        self,
        merchant_id: str,
        feature: str,
        amount: int = 1,
        now: Optional[datetime] = None,
    ) -> Dict[str, int]:
        if await MerchantRepo(self.session).get(merchant_id) is None:
            raise MerchantNotFound()
        period = usage_period(now or utcnow())
        try:
            counters = await self.repo.increment(merchant_id, period, feature, amount)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.debug(f"Usage {feature} of merchant {merchant_id} now {counters[feature]} ({period})")
        return counters

    async def can_perform_action(
        self,
        merchant_id: str,
        feature: str,
        required_amount: int = 1,
        now: Optional[datetime] = None,
    ) -> UsageCheck:
        now = now or utcnow()
        resolved = await self.resolver.resolve(merchant_id, now=now)
        if resolved is None:
            return UsageCheck(allowed=False, current_usage=0, limit=0, plan_name=NO_PLAN)

        plan_name = resolved.plan.name
        current = int((await self.current_usage(merchant_id, now)).get(feature, 0))
        limits = resolved.plan.limits or {}
        if feature not in limits:
            return UsageCheck(allowed=False, current_usage=current, limit=0, plan_name=plan_name)

        limit = limits[feature]
        # bool before int: True is an int too
        if isinstance(limit, bool):
            return UsageCheck(
                allowed=limit,
                current_usage=current,
                limit=UNLIMITED if limit else 0,
                plan_name=plan_name,
            )
        if limit is None or limit == UNLIMITED:
            return UsageCheck(
                allowed=True, current_usage=current, limit=UNLIMITED, plan_name=plan_name
            )
        limit = int(limit)
        return UsageCheck(
            allowed=current + required_amount <= limit,
            current_usage=current,
            limit=limit,
            plan_name=plan_name,
        )

    async def usage_statistics(
        self, merchant_id: str, now: Optional[datetime] = None
    ) -> UsageStatistics:
        now = now or utcnow()
        resolved = await self.resolver.resolve(merchant_id, now=now)
        if resolved is None:
            return UsageStatistics(plan_name=NO_PLAN)

        limits = dict(resolved.plan.limits or {})
        usage = await self.current_usage(merchant_id, now)
        percentages = {}
        for key, limit in limits.items():
            if isinstance(limit, bool) or not isinstance(limit, (int, float)) or limit <= 0:
                continue
            # half up, so 2.5% reads as 3%
            percentages[key] = math.floor(usage.get(key, 0) / limit * 100 + 0.5)
        return UsageStatistics(
            plan_name=resolved.plan.name, limits=limits, usage=usage, percentages=percentages
        )
