"""Endpoints for the billing transaction ledger."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_db_session
from src.auth.jwt import require_admin
from src.schemas.billing import (
    BillingTransactionCreate, BillingTransactionRead, TransactionStatusUpdate
)
from src.schemas.common import Page, Pagination
from src.services.ledger import BillingLedger
from src.services.limits import check_rate_limit


router = APIRouter(prefix="/billing", tags=["billing"])


@router.post(
    "/transactions",
    response_model=BillingTransactionRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_transaction(
    payload: BillingTransactionCreate,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    await check_rate_limit(auth["user_id"], action="billing")
    try:
        transaction = await BillingLedger(db).create(
            **payload.model_dump(), processed_by=auth["user_id"]
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return transaction


@router.get("/transactions", response_model=Page[BillingTransactionRead])
async def list_transactions(
    merchant_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    rows, total = await BillingLedger(db).list_transactions(merchant_id, page, limit)
    return Page[BillingTransactionRead](
        data=[BillingTransactionRead.model_validate(row) for row in rows],
        pagination=Pagination.build(page, limit, total),
    )


@router.put("/transactions/{transaction_id}/status", response_model=BillingTransactionRead)
async def update_transaction_status(
    transaction_id: str,
    payload: TransactionStatusUpdate,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    await check_rate_limit(auth["user_id"], action="billing")
    try:
        transaction = await BillingLedger(db).update_status(
            transaction_id, payload.status, processed_by=auth["user_id"]
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return transaction
