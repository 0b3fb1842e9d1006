"""Endpoints for the plan catalog and plan membership."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_db_session
from src.auth.jwt import require_admin
from src.schemas.common import Page
from src.schemas.plan import (
    PlanCreate, PlanQuery, PlanRead, PlanStatistics, PlanUpdate, PlanWithCount
)
from src.schemas.subscription import PlanMember
from src.services.limits import check_rate_limit
from src.services.membership import MembershipService
from src.services.plan_catalog import PlanCatalog


router = APIRouter(prefix="/plans", tags=["plans"])


@router.post("", response_model=PlanRead, status_code=status.HTTP_201_CREATED)
async def create_plan(
    payload: PlanCreate,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    await check_rate_limit(auth["user_id"], action="plans")
    return await PlanCatalog(db).create(payload, created_by=auth["user_id"])


@router.get("", response_model=Page[PlanWithCount])
async def list_plans(
    query: PlanQuery = Depends(),
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await PlanCatalog(db).list_plans(query)


@router.get("/public", response_model=List[PlanRead])
async def list_public_plans(db: AsyncSession = Depends(get_db_session)):
    return await PlanCatalog(db).list_public()


@router.get("/statistics", response_model=PlanStatistics)
async def plan_statistics(
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await PlanCatalog(db).statistics()


@router.get("/{plan_id}", response_model=PlanRead)
async def get_plan(
    plan_id: str,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await PlanCatalog(db).get(plan_id)


@router.put("/{plan_id}", response_model=PlanRead)
async def update_plan(
    plan_id: str,
    payload: PlanUpdate,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    await check_rate_limit(auth["user_id"], action="plans")
    return await PlanCatalog(db).update(plan_id, payload)


@router.delete("/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_plan(
    plan_id: str,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    await check_rate_limit(auth["user_id"], action="plans")
    await PlanCatalog(db).delete(plan_id)


@router.get("/{plan_id}/merchants", response_model=Page[PlanMember])
async def list_plan_merchants(
    plan_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await MembershipService(db).list_members(plan_id, page=page, limit=limit)
