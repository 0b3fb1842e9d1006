"""Repository utilities for subscription plans."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.billing_transaction import BillingTransaction
from src.db.models.enums import PlanStatus, SubscriptionStatus, TransactionStatus
from src.db.models.plan import Plan
from src.db.models.plan_assignment import PlanAssignment
from src.db.models.subscription import Subscription


SORTABLE_COLUMNS = {
    "displayOrder": Plan.display_order,
    "display_order": Plan.display_order,
    "name": Plan.name,
    "price": Plan.price,
    "createdAt": Plan.created_at,
    "created_at": Plan.created_at,
}


class PlanRepo:
    """Data-access helpers for :class:`Plan`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, plan_id: str) -> Plan | None:
        result = await self.session.execute(select(Plan).where(Plan.id == plan_id))
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Plan | None:
        result = await self.session.execute(select(Plan).where(Plan.name == name))
        return result.scalar_one_or_none()

    async def get_active_by_name(self, name: str) -> Plan | None:
        result = await self.session.execute(
            select(Plan).where(Plan.name == name, Plan.status == PlanStatus.ACTIVE)
        )
        return result.scalar_one_or_none()

    async def create(self, **values: Any) -> Plan:
        plan = Plan(**values)
        self.session.add(plan)
        await self.session.flush()
        return plan

    async def delete(self, plan: Plan) -> None:
        await self.session.delete(plan)
        await self.session.flush()

    async def has_history(self, plan_id: str) -> bool:
        """True when any subscription, assignment or transaction points at the plan."""

        referencing = (
            select(Subscription.id).where(Subscription.plan_id == plan_id),
            select(PlanAssignment.id).where(PlanAssignment.plan_id == plan_id),
            select(BillingTransaction.id).where(BillingTransaction.plan_id == plan_id),
        )
        for query in referencing:
            result = await self.session.execute(select(query.exists()))
            if result.scalar():
                return True
        return False

    async def search(
        self,
        *,
        status: Optional[PlanStatus] = None,
        search: Optional[str] = None,
        show_on_landing: Optional[bool] = None,
        sort_by: str = "displayOrder",
        sort_order: str = "asc",
        skip: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Plan], int]:
        conditions = []
        if status is not None:
            conditions.append(Plan.status == status)
        if show_on_landing is not None:
            conditions.append(Plan.show_on_landing == show_on_landing)
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(
                or_(
                    func.lower(Plan.name).like(pattern),
                    func.lower(Plan.description).like(pattern),
                )
            )

        column = SORTABLE_COLUMNS.get(sort_by, Plan.display_order)
        ordering = column.desc() if sort_order == "desc" else column.asc()

        result = await self.session.execute(
            select(Plan).where(*conditions).order_by(ordering, Plan.id).offset(skip).limit(limit)
        )
        total = await self.session.execute(
            select(func.count()).select_from(Plan).where(*conditions)
        )
        return list(result.scalars().all()), int(total.scalar_one() or 0)

    async def list_active(self) -> List[Plan]:
        result = await self.session.execute(
            select(Plan)
            .where(Plan.status == PlanStatus.ACTIVE)
            .order_by(Plan.display_order.asc(), Plan.id)
        )
        return list(result.scalars().all())

    async def active_subscriber_counts(self, plan_ids: List[str]) -> Dict[str, int]:
        """Map plan id to its number of ACTIVE subscriptions."""

        if not plan_ids:
            return {}
        result = await self.session.execute(
            select(Subscription.plan_id, func.count())
            .where(
                Subscription.plan_id.in_(plan_ids),
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
            .group_by(Subscription.plan_id)
        )
        counts = {plan_id: 0 for plan_id in plan_ids}
        counts.update({plan_id: int(count) for plan_id, count in result.all()})
        return counts

    async def verified_revenue(self) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(BillingTransaction.amount), 0)).where(
                BillingTransaction.status == TransactionStatus.VERIFIED
            )
        )
        return Decimal(str(result.scalar_one() or 0))
