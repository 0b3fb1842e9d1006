"""Endpoints exposing a merchant's effective subscription and usage."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_db_session, get_notification_gateway, require_merchant_access
from src.auth.jwt import ADMIN_ROLE, require_admin, require_auth
from src.core.clock import utcnow
from src.schemas.subscription import (
    SubscriptionEnvelope, TrialStatus, UpgradeRead, UpgradeRequest
)
from src.schemas.usage import (
    UsageCheckRead, UsageCounters, UsageIncrement, UsageStatisticsRead
)
from src.services.assignments import PlanAssignmentService
from src.services.limits import check_rate_limit
from src.services.notifications import NotificationGateway
from src.services.resolver import SubscriptionResolver
from src.services.usage import UsageService, usage_period


router = APIRouter(prefix="/merchants", tags=["merchants"])


@router.get("/{merchant_id}/subscription", response_model=SubscriptionEnvelope)
async def get_subscription(
    merchant_id: str,
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    resolved = await SubscriptionResolver(db).resolve(merchant_id)
    usage = await UsageService(db).current_usage(merchant_id)
    return SubscriptionEnvelope(subscription=resolved, current_usage=usage)


@router.get("/{merchant_id}/trial-status", response_model=TrialStatus)
async def get_trial_status(
    merchant_id: str,
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    return await SubscriptionResolver(db).trial_status(merchant_id)


@router.post(
    "/{merchant_id}/subscription/upgrade",
    response_model=UpgradeRead,
    status_code=status.HTTP_201_CREATED,
)
async def upgrade_subscription(
    merchant_id: str,
    payload: UpgradeRequest,
    auth=Depends(require_merchant_access),
    db: AsyncSession = Depends(get_db_session),
    gateway: NotificationGateway = Depends(get_notification_gateway),
):
    await check_rate_limit(auth["user_id"], action="upgrade")
    result = await PlanAssignmentService(db, gateway).upgrade(
        merchant_id,
        payload.plan_id,
        payment_reference=payload.payment_reference,
        payment_method=payload.payment_method,
        upgraded_by=auth["user_id"] if auth["role"] == ADMIN_ROLE else None,
    )
    return UpgradeRead.model_validate(result)


@router.get("/{merchant_id}/usage", response_model=UsageStatisticsRead)
async def get_usage_statistics(
    merchant_id: str,
    auth=Depends(require_merchant_access),
    db: AsyncSession = Depends(get_db_session),
):
    statistics = await UsageService(db).usage_statistics(merchant_id)
    return UsageStatisticsRead.model_validate(statistics)


@router.get("/{merchant_id}/usage/{feature}/check", response_model=UsageCheckRead)
async def check_usage(
    merchant_id: str,
    feature: str,
    amount: int = Query(default=1, ge=1),
    auth=Depends(require_merchant_access),
    db: AsyncSession = Depends(get_db_session),
):
    check = await UsageService(db).can_perform_action(merchant_id, feature, amount)
    return UsageCheckRead.model_validate(check)


@router.post("/{merchant_id}/usage", response_model=UsageCounters)
async def increment_usage(
    merchant_id: str,
    payload: UsageIncrement,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    now = utcnow()
    counters = await UsageService(db).increment_usage(
        merchant_id, payload.feature, payload.amount, now=now
    )
    return UsageCounters(merchant_id=merchant_id, period=usage_period(now), usage=counters)
