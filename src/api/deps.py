"""Shared FastAPI dependencies."""
from __future__ import annotations

from typing import Any, AsyncGenerator, Dict

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.auth.jwt import ADMIN_ROLE, require_auth
from src.core.exceptions import MerchantNotFound
from src.db.session import get_db
from src.jobs.lifecycle import LifecycleJobs
from src.repositories.merchant_repo import MerchantRepo
from src.services.notifications import NotificationGateway


async def get_db_session(
    session: AsyncSession = Depends(get_db),
) -> AsyncGenerator[AsyncSession, None]:
    yield session


def get_notification_gateway(request: Request) -> NotificationGateway:
    return request.app.state.notification_gateway


def get_lifecycle_jobs(request: Request) -> LifecycleJobs:
    return request.app.state.lifecycle_jobs


async def require_merchant_access(
    merchant_id: str,
    auth: Dict[str, Any] = Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
) -> Dict[str, Any]:
    """Admins act for any merchant; everyone else only for merchants they own."""

    if auth["role"] == ADMIN_ROLE:
        return auth
    merchant = await MerchantRepo(db).get(merchant_id)
    if merchant is None:
        raise MerchantNotFound()
    if merchant.owner_user_id != auth["user_id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to act for this merchant",
        )
    return auth
