from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from src.core.exceptions import (
    DuplicatePlanName,
    PlanHasActiveSubscribers,
    PlanInUse,
    PlanNotFound,
)
from src.db.models.enums import PlanStatus, SubscriptionStatus, TransactionStatus
from src.schemas.plan import PlanCreate, PlanQuery, PlanUpdate
from src.services.plan_catalog import PlanCatalog
from src.core.clock import utcnow


@pytest.mark.asyncio
async def test_create_plan_and_reject_duplicate_name(test_db):
    catalog = PlanCatalog(test_db)
    plan = await catalog.create(
        PlanCreate(name="Growth", price=Decimal("49.00"), features=["reports"]),
        created_by="admin-user",
    )

    assert plan.status == PlanStatus.ACTIVE
    assert plan.created_by == "admin-user"
    with pytest.raises(DuplicatePlanName):
        await catalog.create(PlanCreate(name="Growth", price=Decimal("1")))


@pytest.mark.asyncio
async def test_update_checks_name_conflicts(test_db, seed):
    await seed.plan("Basic", "10.00")
    pro = await seed.plan("Pro", "99.00")
    catalog = PlanCatalog(test_db)

    updated = await catalog.update(pro.id, PlanUpdate(price=Decimal("120.00"), is_popular=True))
    assert updated.price == Decimal("120.00")
    assert updated.is_popular is True

    with pytest.raises(DuplicatePlanName):
        await catalog.update(pro.id, PlanUpdate(name="Basic"))
    with pytest.raises(PlanNotFound):
        await catalog.update("missing", PlanUpdate(price=Decimal("1")))


@pytest.mark.asyncio
async def test_delete_refuses_plans_with_subscribers(test_db, seed):
    pro = await seed.plan("Pro", "99.00")
    unused = await seed.plan("Unused", "5.00")
    merchant = await seed.merchant()
    await seed.subscription(merchant, pro)
    catalog = PlanCatalog(test_db)

    with pytest.raises(PlanHasActiveSubscribers):
        await catalog.delete(pro.id)

    await catalog.delete(unused.id)
    with pytest.raises(PlanNotFound):
        await catalog.get(unused.id)


@pytest.mark.asyncio
async def test_list_filters_sorts_and_counts(test_db, seed):
    await seed.free_plan()
    pro = await seed.plan("Pro", "99.00", display_order=3)
    await seed.plan("Basic", "10.00", display_order=2)
    await seed.plan("Legacy", "5.00", status=PlanStatus.ARCHIVED, display_order=4)
    merchant = await seed.merchant()
    await seed.subscription(merchant, pro)
    catalog = PlanCatalog(test_db)

    page = await catalog.list_plans(PlanQuery(status=PlanStatus.ACTIVE, sort_by="price", sort_order="desc"))
    assert [plan.name for plan in page.data] == ["Pro", "Basic", "Free"]
    assert page.data[0].active_subscriptions == 1
    assert page.pagination.total == 3

    searched = await catalog.list_plans(PlanQuery(search="PRO"))
    assert [plan.name for plan in searched.data] == ["Pro"]


@pytest.mark.asyncio
async def test_public_list_shows_landing_plans_only(test_db, seed):
    await seed.free_plan()
    await seed.plan("Pro", "99.00", display_order=2)
    await seed.plan("Hidden", "20.00", show_on_landing=False)
    await seed.plan("Legacy", "5.00", status=PlanStatus.INACTIVE)

    plans = await PlanCatalog(test_db).list_public()

    assert [plan.name for plan in plans] == ["Free", "Pro"]


@pytest.mark.asyncio
async def test_statistics_include_virtual_free_members(test_db, seed):
    free = await seed.free_plan()
    pro = await seed.plan("Pro", "99.00")
    paying = await seed.merchant("paying")
    await seed.subscription(paying, pro)
    explicit_free = await seed.merchant("explicit-free")
    await seed.subscription(explicit_free, free)
    await seed.merchant("unsubscribed-1")
    await seed.merchant("unsubscribed-2")
    await seed.transaction(paying, pro, "TXN-2026-001", utcnow(), status=TransactionStatus.VERIFIED)
    await seed.transaction(paying, pro, "TXN-2026-002", utcnow(), status=TransactionStatus.PENDING)

    stats = await PlanCatalog(test_db).statistics()

    by_name = {entry.name: entry for entry in stats.plans}
    assert by_name["Free"].active_subscribers == 3
    assert by_name["Pro"].active_subscribers == 1
    assert by_name["Pro"].monthly_revenue == Decimal("99.00")
    assert stats.total_revenue == Decimal("99.00")


def test_plan_update_rejects_explicit_nulls():
    with pytest.raises(ValidationError, match="name cannot be null"):
        PlanUpdate(name=None)
    with pytest.raises(ValidationError, match="display_order, status cannot be null"):
        PlanUpdate.model_validate({"status": None, "display_order": None, "is_popular": True})

    assert PlanUpdate().model_dump(exclude_unset=True) == {}


@pytest.mark.asyncio
async def test_delete_refuses_plans_with_any_history(test_db, seed):
    merchant = await seed.merchant()
    cancelled = await seed.plan("Cancelled", "20.00")
    await seed.subscription(merchant, cancelled, status=SubscriptionStatus.CANCELLED)
    pending = await seed.plan("Pending", "30.00")
    await seed.assignment(merchant, pending)
    billed = await seed.plan("Billed", "40.00")
    await seed.transaction(merchant, billed, "TXN-2026-001", utcnow())
    catalog = PlanCatalog(test_db)

    for plan in (cancelled, pending, billed):
        with pytest.raises(PlanInUse):
            await catalog.delete(plan.id)
        assert (await catalog.get(plan.id)).name == plan.name


@pytest.mark.asyncio
async def test_delete_turns_foreign_key_failures_into_conflicts(test_db, seed, monkeypatch):
    merchant = await seed.merchant()
    expired = await seed.plan("Expired", "20.00")
    await seed.subscription(merchant, expired, status=SubscriptionStatus.EXPIRED)
    catalog = PlanCatalog(test_db)

    async def no_history(plan_id):
        return False

    # A reference written between the history check and the delete.
    monkeypatch.setattr(catalog.plans, "has_history", no_history)

    with pytest.raises(PlanInUse):
        await catalog.delete(expired.id)
    assert (await catalog.get(expired.id)).name == "Expired"
