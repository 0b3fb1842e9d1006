from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import status

from src.core.clock import utcnow
from src.core.config import settings


API_PREFIX = f"{settings.API_PREFIX}/v1"


def _payload(merchant_id: str, plan_id: str) -> dict:
    start = utcnow()
    return {
        "merchant_id": merchant_id,
        "plan_id": plan_id,
        "amount": "99.00",
        "payment_reference": "CBE-778812",
        "payment_method": "Bank Transfer",
        "billing_period_start": start.isoformat(),
        "billing_period_end": (start + timedelta(days=30)).isoformat(),
    }


@pytest.mark.asyncio
async def test_record_and_verify_transaction(client, admin_headers, seed):
    pro = await seed.plan("Pro", "99.00")
    merchant = await seed.merchant()

    created = await client.post(
        f"{API_PREFIX}/billing/transactions",
        json=_payload(merchant.id, pro.id),
        headers=admin_headers,
    )

    assert created.status_code == status.HTTP_201_CREATED
    body = created.json()
    assert body["transaction_id"] == f"TXN-{utcnow().year}-001"
    assert body["status"] == "PENDING"
    assert body["amount"] == 99.0
    assert body["currency"] == "ETB"

    verified = await client.put(
        f"{API_PREFIX}/billing/transactions/{body['transaction_id']}/status",
        json={"status": "VERIFIED"},
        headers=admin_headers,
    )
    assert verified.status_code == status.HTTP_200_OK
    assert verified.json()["status"] == "VERIFIED"
    assert verified.json()["processed_at"] is not None

    reopened = await client.put(
        f"{API_PREFIX}/billing/transactions/{body['transaction_id']}/status",
        json={"status": "FAILED"},
        headers=admin_headers,
    )
    assert reopened.status_code == status.HTTP_409_CONFLICT


@pytest.mark.asyncio
async def test_transaction_references_are_checked(client, admin_headers, seed):
    merchant = await seed.merchant()

    response = await client.post(
        f"{API_PREFIX}/billing/transactions",
        json=_payload(merchant.id, "missing-plan"),
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["message"] == "Plan not found"


@pytest.mark.asyncio
async def test_unknown_transaction_status_update(client, admin_headers):
    response = await client.put(
        f"{API_PREFIX}/billing/transactions/TXN-1999-001/status",
        json={"status": "VERIFIED"},
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["message"] == "Transaction not found"


@pytest.mark.asyncio
async def test_list_transactions_paginates(client, admin_headers, seed):
    pro = await seed.plan("Pro", "99.00")
    merchant = await seed.merchant()
    now = utcnow()
    for index in range(3):
        await seed.transaction(
            merchant, pro, f"TXN-2025-00{index + 1}", now - timedelta(days=index)
        )

    response = await client.get(
        f"{API_PREFIX}/billing/transactions",
        params={"page": 1, "limit": 2},
        headers=admin_headers,
    )

    body = response.json()
    assert [row["transaction_id"] for row in body["data"]] == ["TXN-2025-001", "TXN-2025-002"]
    assert body["pagination"]["total"] == 3
    assert body["pagination"]["total_pages"] == 2


@pytest.mark.asyncio
async def test_transaction_subscription_must_belong_to_merchant(client, admin_headers, seed):
    pro = await seed.plan("Pro", "99.00")
    merchant = await seed.merchant("billed")
    other = await seed.merchant("other")
    foreign = await seed.subscription(other, pro)

    missing = await client.post(
        f"{API_PREFIX}/billing/transactions",
        json={**_payload(merchant.id, pro.id), "subscription_id": "missing"},
        headers=admin_headers,
    )
    assert missing.status_code == status.HTTP_404_NOT_FOUND
    assert missing.json()["message"] == "Subscription not found"

    mismatched = await client.post(
        f"{API_PREFIX}/billing/transactions",
        json={**_payload(merchant.id, pro.id), "subscription_id": foreign.id},
        headers=admin_headers,
    )
    assert mismatched.status_code == status.HTTP_400_BAD_REQUEST
    assert mismatched.json()["message"] == "Subscription does not belong to this merchant"
