"""Endpoints for administrative plan assignments."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_db_session, get_notification_gateway
from src.auth.jwt import require_admin
from src.schemas.assignment import AssignmentRead, AssignPlanRequest
from src.schemas.subscription import SubscriptionRead
from src.services.assignments import PlanAssignmentService
from src.services.limits import check_rate_limit, ensure_idempotent
from src.services.notifications import NotificationGateway


router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.post("", response_model=AssignmentRead, status_code=status.HTTP_201_CREATED)
async def assign_plan(
    payload: AssignPlanRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    gateway: NotificationGateway = Depends(get_notification_gateway),
):
    await check_rate_limit(auth["user_id"], action="assignments")
    await ensure_idempotent(auth["user_id"], idempotency_key)

    service = PlanAssignmentService(db, gateway)
    return await service.assign(
        **payload.model_dump(), assigned_by=auth["user_id"]
    )


@router.get("/pending", response_model=List[AssignmentRead])
async def list_pending_assignments(
    merchant_id: Optional[str] = None,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await PlanAssignmentService(db).list_pending(merchant_id)


@router.post("/{assignment_id}/apply", response_model=SubscriptionRead)
async def apply_assignment(
    assignment_id: str,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    gateway: NotificationGateway = Depends(get_notification_gateway),
):
    await check_rate_limit(auth["user_id"], action="assignments")
    return await PlanAssignmentService(db, gateway).apply(assignment_id)


@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_assignment(
    assignment_id: str,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    await check_rate_limit(auth["user_id"], action="assignments")
    await PlanAssignmentService(db).cancel_pending(assignment_id)
