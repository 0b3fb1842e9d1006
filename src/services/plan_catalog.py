"""Plan catalog management."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.exceptions import (
    DuplicatePlanName,
    PlanHasActiveSubscribers,
    PlanInUse,
    PlanNotFound,
)
from src.db.models.enums import PlanStatus
from src.db.models.plan import Plan
from src.repositories.merchant_repo import MerchantRepo
from src.repositories.plan_repo import PlanRepo
from src.schemas.common import Page, Pagination
from src.schemas.plan import (
    PlanCreate,
    PlanQuery,
    PlanRead,
    PlanStatistics,
    PlanStatisticsEntry,
    PlanUpdate,
    PlanWithCount,
)


logger = logging.getLogger(__name__)


class PlanCatalog:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.plans = PlanRepo(session)
        self.merchants = MerchantRepo(session)

    async def get(self, plan_id: str) -> Plan:
        plan = await self.plans.get(plan_id)
        if plan is None:
            raise PlanNotFound()
        return plan

    async def create(self, payload: PlanCreate, created_by: Optional[str] = None) -> Plan:
        if await self.plans.get_by_name(payload.name) is not None:
            raise DuplicatePlanName()
        try:
            plan = await self.plans.create(
                **payload.model_dump(), status=PlanStatus.ACTIVE, created_by=created_by
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info(f"Created plan {plan.name} ({plan.id})")
        return plan

    async def update(self, plan_id: str, payload: PlanUpdate) -> Plan:
        plan = await self.get(plan_id)
        changes = payload.model_dump(exclude_unset=True)
        if "name" in changes and changes["name"] != plan.name:
            if await self.plans.get_by_name(changes["name"]) is not None:
                raise DuplicatePlanName()

        try:
            for key, value in changes.items():
                setattr(plan, key, value)
            await self.session.flush()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return plan

    async def delete(self, plan_id: str) -> None:
        plan = await self.get(plan_id)
        counts = await self.plans.active_subscriber_counts([plan.id])
        if counts.get(plan.id):
            raise PlanHasActiveSubscribers()
        if await self.plans.has_history(plan.id):
            raise PlanInUse()
        try:
            await self.plans.delete(plan)
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.warning(f"Plan {plan_id} gained references while being deleted")
            raise PlanInUse()
        except Exception:
            await self.session.rollback()
            raise
        logger.info(f"Deleted plan {plan.name} ({plan.id})")

    async def list_plans(self, query: PlanQuery) -> Page[PlanWithCount]:
        plans, total = await self.plans.search(
            status=query.status,
            search=query.search,
            show_on_landing=query.show_on_landing,
            sort_by=query.sort_by,
            sort_order=query.sort_order,
            skip=(query.page - 1) * query.limit,
            limit=query.limit,
        )
        counts = await self.plans.active_subscriber_counts([plan.id for plan in plans])
        data = [
            PlanWithCount.model_validate(plan).model_copy(
                update={"active_subscriptions": counts.get(plan.id, 0)}
            )
            for plan in plans
        ]
        return Page[PlanWithCount](
            data=data, pagination=Pagination.build(query.page, query.limit, total)
        )

    async def list_public(self) -> List[PlanRead]:
        """Active plans flagged for the landing page, in display order."""

        return [
            PlanRead.model_validate(plan)
            for plan in await self.plans.list_active()
            if plan.show_on_landing
        ]

    async def statistics(self) -> PlanStatistics:
        plans = await self.plans.list_active()
        counts = await self.plans.active_subscriber_counts([plan.id for plan in plans])
        unsubscribed = await self.merchants.count_unsubscribed()

        entries = []
        for plan in plans:
            explicit = counts.get(plan.id, 0)
            subscribers = explicit
            if plan.name == settings.billing.free_plan_name:
                subscribers += unsubscribed
            entries.append(
                PlanStatisticsEntry.model_validate(
                    {
                        **PlanRead.model_validate(plan).model_dump(),
                        "active_subscribers": subscribers,
                        "monthly_revenue": Decimal(plan.price) * explicit,
                    }
                )
            )

        return PlanStatistics(
            plans=entries, total_revenue=await self.plans.verified_revenue()
        )
