from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import status

from src.core.clock import utcnow
from src.core.config import settings


API_PREFIX = f"{settings.API_PREFIX}/v1"


@pytest.mark.asyncio
async def test_run_expired_subscriptions_job(client, admin_headers, seed, gateway):
    pro = await seed.plan("Pro", "99.00")
    merchant = await seed.merchant()
    await seed.subscription(merchant, pro, end_date=utcnow() - timedelta(hours=2))

    response = await client.post(
        f"{API_PREFIX}/jobs/expired_subscriptions/run", headers=admin_headers
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "job": "expired_subscriptions",
        "matched": 1,
        "affected": 1,
        "failed": 0,
        "skipped": False,
    }
    assert len(gateway.events) == 3


@pytest.mark.asyncio
async def test_unknown_job_returns_not_found(client, admin_headers):
    response = await client.post(f"{API_PREFIX}/jobs/reindex/run", headers=admin_headers)

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["message"] == "Unknown job reindex"


@pytest.mark.asyncio
async def test_manual_cleanup(client, admin_headers, seed):
    pro = await seed.plan("Pro", "99.00")
    merchant = await seed.merchant()
    await seed.assignment(merchant, pro, created_at=utcnow() - timedelta(minutes=40))

    response = await client.post(
        f"{API_PREFIX}/jobs/cleanup",
        params={"merchant_id": merchant.id},
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["affected"] == 1


@pytest.mark.asyncio
async def test_jobs_require_admin(client, merchant_headers):
    response = await client.post(
        f"{API_PREFIX}/jobs/stale_transactions/run", headers=merchant_headers
    )

    assert response.status_code == status.HTTP_403_FORBIDDEN
