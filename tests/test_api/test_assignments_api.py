from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import status

from src.core.clock import utcnow
from src.core.config import settings
from src.db.models.enums import PlanStatus


API_PREFIX = f"{settings.API_PREFIX}/v1"


@pytest.mark.asyncio
async def test_immediate_assignment_changes_effective_plan(
    client, admin_headers, merchant_headers, seed
):
    await seed.free_plan()
    pro = await seed.plan("Pro", "99.00")
    merchant = await seed.merchant()

    before = await client.get(
        f"{API_PREFIX}/merchants/{merchant.id}/subscription", headers=merchant_headers
    )
    assert before.json()["subscription"]["synthetic"] is True

    response = await client.post(
        f"{API_PREFIX}/assignments",
        json={"merchant_id": merchant.id, "plan_id": pro.id},
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["is_applied"] is True
    assert body["assigned_by"] == "admin-user"

    after = await client.get(
        f"{API_PREFIX}/merchants/{merchant.id}/subscription", headers=merchant_headers
    )
    subscription = after.json()["subscription"]
    assert subscription["plan"]["name"] == "Pro"
    assert subscription["synthetic"] is False
    assert subscription["monthly_price"] == 99.0

    ledger = await client.get(
        f"{API_PREFIX}/billing/transactions",
        params={"merchant_id": merchant.id},
        headers=admin_headers,
    )
    assert ledger.json()["pagination"]["total"] == 1
    assert ledger.json()["data"][0]["payment_method"] == "Admin Assignment"


@pytest.mark.asyncio
async def test_idempotency_key_rejects_replays(client, admin_headers, seed, fake_redis):
    pro = await seed.plan("Pro", "99.00")
    merchant = await seed.merchant()
    headers = {**admin_headers, "Idempotency-Key": "assign-1"}
    payload = {
        "merchant_id": merchant.id,
        "plan_id": pro.id,
        "assignment_type": "SCHEDULED",
        "scheduled_date": (utcnow() + timedelta(days=1)).isoformat(),
    }

    first = await client.post(f"{API_PREFIX}/assignments", json=payload, headers=headers)
    second = await client.post(f"{API_PREFIX}/assignments", json=payload, headers=headers)

    assert first.status_code == status.HTTP_201_CREATED
    assert second.status_code == status.HTTP_409_CONFLICT
    assert second.json()["message"] == "Duplicate request (idempotency)"
    assert "billing:idempotency:assignments:admin-user:assign-1" in fake_redis.store


@pytest.mark.asyncio
async def test_rate_limit_is_enforced(client, admin_headers, seed, fake_redis, monkeypatch):
    monkeypatch.setattr(settings.limits, "rate_limit_rpm", 1)
    pro = await seed.plan("Pro", "99.00")
    merchant = await seed.merchant()
    payload = {
        "merchant_id": merchant.id,
        "plan_id": pro.id,
        "assignment_type": "SCHEDULED",
        "scheduled_date": (utcnow() + timedelta(days=1)).isoformat(),
    }

    first = await client.post(f"{API_PREFIX}/assignments", json=payload, headers=admin_headers)
    second = await client.post(f"{API_PREFIX}/assignments", json=payload, headers=admin_headers)

    assert first.status_code == status.HTTP_201_CREATED
    assert second.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    assert second.json()["message"] == "Rate limit exceeded"
    assert 1 <= int(second.headers["Retry-After"]) <= settings.limits.rate_limit_window_seconds

    # Budgets are per action; plan edits still go through.
    plan = await client.post(
        f"{API_PREFIX}/plans",
        json={"name": "Growth", "price": "49.00"},
        headers=admin_headers,
    )
    assert plan.status_code == status.HTTP_201_CREATED


@pytest.mark.asyncio
async def test_assignment_validation_errors(client, admin_headers, seed):
    archived = await seed.plan("Legacy", "5.00", status=PlanStatus.ARCHIVED)
    pro = await seed.plan("Pro", "99.00")
    merchant = await seed.merchant()

    inactive = await client.post(
        f"{API_PREFIX}/assignments",
        json={"merchant_id": merchant.id, "plan_id": archived.id},
        headers=admin_headers,
    )
    assert inactive.status_code == status.HTTP_400_BAD_REQUEST
    assert inactive.json()["message"] == "Cannot assign inactive plan"

    unscheduled = await client.post(
        f"{API_PREFIX}/assignments",
        json={"merchant_id": merchant.id, "plan_id": pro.id, "assignment_type": "SCHEDULED"},
        headers=admin_headers,
    )
    assert unscheduled.status_code == status.HTTP_400_BAD_REQUEST

    unknown = await client.post(
        f"{API_PREFIX}/assignments",
        json={"merchant_id": "missing", "plan_id": pro.id},
        headers=admin_headers,
    )
    assert unknown.status_code == status.HTTP_404_NOT_FOUND
    assert unknown.json()["message"] == "Merchant not found"


@pytest.mark.asyncio
async def test_scheduled_assignment_lifecycle(client, admin_headers, seed):
    await seed.free_plan()
    pro = await seed.plan("Pro", "99.00")
    merchant = await seed.merchant()
    payload = {
        "merchant_id": merchant.id,
        "plan_id": pro.id,
        "assignment_type": "SCHEDULED",
        "scheduled_date": (utcnow() + timedelta(days=1)).isoformat(),
    }

    created = await client.post(f"{API_PREFIX}/assignments", json=payload, headers=admin_headers)
    assignment_id = created.json()["id"]
    assert created.json()["is_applied"] is False

    pending = await client.get(f"{API_PREFIX}/assignments/pending", headers=admin_headers)
    assert [row["id"] for row in pending.json()] == [assignment_id]

    applied = await client.post(
        f"{API_PREFIX}/assignments/{assignment_id}/apply", headers=admin_headers
    )
    assert applied.status_code == status.HTTP_200_OK
    assert applied.json()["plan_id"] == pro.id

    again = await client.post(
        f"{API_PREFIX}/assignments/{assignment_id}/apply", headers=admin_headers
    )
    assert again.status_code == status.HTTP_409_CONFLICT
    assert again.json()["message"] == "Plan assignment already applied"

    cancel_applied = await client.delete(
        f"{API_PREFIX}/assignments/{assignment_id}", headers=admin_headers
    )
    assert cancel_applied.status_code == status.HTTP_409_CONFLICT


@pytest.mark.asyncio
async def test_cancel_pending_assignment(client, admin_headers, seed):
    pro = await seed.plan("Pro", "99.00")
    merchant = await seed.merchant()
    created = await client.post(
        f"{API_PREFIX}/assignments",
        json={
            "merchant_id": merchant.id,
            "plan_id": pro.id,
            "assignment_type": "SCHEDULED",
            "scheduled_date": (utcnow() + timedelta(days=2)).isoformat(),
        },
        headers=admin_headers,
    )
    assignment_id = created.json()["id"]

    deleted = await client.delete(f"{API_PREFIX}/assignments/{assignment_id}", headers=admin_headers)
    missing = await client.post(
        f"{API_PREFIX}/assignments/{assignment_id}/apply", headers=admin_headers
    )

    assert deleted.status_code == status.HTTP_204_NO_CONTENT
    assert missing.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.asyncio
async def test_second_admin_cannot_stack_a_pending_assignment(
    client, admin_headers, auth_header, seed
):
    pro = await seed.plan("Pro", "99.00")
    merchant = await seed.merchant()
    payload = {
        "merchant_id": merchant.id,
        "plan_id": pro.id,
        "assignment_type": "SCHEDULED",
        "scheduled_date": (utcnow() + timedelta(days=1)).isoformat(),
    }

    first = await client.post(f"{API_PREFIX}/assignments", json=payload, headers=admin_headers)
    second = await client.post(
        f"{API_PREFIX}/assignments",
        json=payload,
        headers=auth_header(user_id="admin-2", role="admin"),
    )
    repeat = await client.post(
        f"{API_PREFIX}/assignments",
        json={**payload, "notes": "moved"},
        headers=admin_headers,
    )

    assert first.status_code == status.HTTP_201_CREATED
    assert second.status_code == status.HTTP_409_CONFLICT
    assert second.json()["message"].startswith("There is already a pending assignment")
    assert repeat.status_code == status.HTTP_201_CREATED
    assert repeat.json()["id"] == first.json()["id"]
    assert repeat.json()["notes"] == "moved"
