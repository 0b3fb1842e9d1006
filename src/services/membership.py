"""Plan membership listing.

For the free plan the listing is the concatenation of two ordered sets:
merchants with an explicit free subscription, then active merchants with no
subscription at all. The latter are shown with a virtual free entitlement that
starts when the merchant was created. Pages are cut across the seam without
materializing either set.
"""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.clock import as_utc
from src.core.config import settings
from src.core.exceptions import PlanNotFound
from src.repositories.merchant_repo import MerchantRepo
from src.repositories.plan_repo import PlanRepo
from src.schemas.common import Page, Pagination
from src.schemas.subscription import MerchantSummary, PlanMember, ResolvedSubscription
from src.services.resolver import virtual_free_subscription


class MembershipService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.merchants = MerchantRepo(session)
        self.plans = PlanRepo(session)

    async def list_members(
        self,
        plan_id: str,
        page: int = 1,
        limit: int = 10,
    ) -> Page[PlanMember]:
        plan = await self.plans.get(plan_id)
        if plan is None:
            raise PlanNotFound()

        skip = (page - 1) * limit
        explicit_total = await self.merchants.count_plan_members(plan_id)
        data = [
            PlanMember(
                merchant=MerchantSummary.model_validate(merchant),
                subscription=ResolvedSubscription.model_validate(subscription),
                subscription_type="explicit",
            )
            for merchant, subscription in (
                await self.merchants.list_plan_members(plan_id, skip, limit)
                if skip < explicit_total
                else []
            )
        ]

        total = explicit_total
        if plan.name == settings.billing.free_plan_name:
            virtual_total = await self.merchants.count_unsubscribed()
            total += virtual_total

            remaining = limit - len(data)
            if remaining > 0 and virtual_total:
                virtual_skip = max(0, skip - explicit_total)
                for merchant in await self.merchants.list_unsubscribed(virtual_skip, remaining):
                    data.append(
                        PlanMember(
                            merchant=MerchantSummary.model_validate(merchant),
                            subscription=virtual_free_subscription(
                                merchant.id, plan, as_utc(merchant.created_at)
                            ),
                            subscription_type="virtual",
                        )
                    )

        return Page[PlanMember](data=data, pagination=Pagination.build(page, limit, total))
