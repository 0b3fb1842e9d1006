from __future__ import annotations

import pytest

from src.core.clock import as_utc
from src.core.exceptions import PlanNotFound
from src.db.models.enums import MerchantStatus
from src.services.membership import MembershipService


async def _free_plan_population(seed):
    """3 explicit Free subscribers and 7 merchants with no subscription, interleaved."""

    free = await seed.free_plan()
    pro = await seed.plan("Pro", "99.00")
    explicit, virtual = [], []
    for index in range(10):
        merchant = await seed.merchant(f"merchant-{index}")
        if index in (1, 4, 8):
            await seed.subscription(merchant, free)
            explicit.append(merchant.id)
        else:
            virtual.append(merchant.id)

    paying = await seed.merchant("paying")
    await seed.subscription(paying, pro)
    await seed.merchant("dormant", status=MerchantStatus.INACTIVE)
    return free, pro, explicit, virtual, paying


@pytest.mark.asyncio
async def test_free_plan_pages_span_both_sets(test_db, seed):
    free, _, explicit, virtual, _ = await _free_plan_population(seed)
    service = MembershipService(test_db)

    first = await service.list_members(free.id, page=1, limit=5)
    second = await service.list_members(free.id, page=2, limit=5)
    third = await service.list_members(free.id, page=3, limit=5)

    assert first.pagination.total == 10
    assert first.pagination.total_pages == 2
    assert [row.subscription_type for row in first.data] == ["explicit"] * 3 + ["virtual"] * 2
    assert [row.merchant.id for row in first.data] == explicit + virtual[:2]
    assert [row.merchant.id for row in second.data] == virtual[2:]
    assert all(row.subscription_type == "virtual" for row in second.data)
    assert third.data == []


@pytest.mark.asyncio
async def test_page_boundary_inside_the_seam(test_db, seed):
    free, _, explicit, virtual, _ = await _free_plan_population(seed)
    service = MembershipService(test_db)

    first = await service.list_members(free.id, page=1, limit=4)
    second = await service.list_members(free.id, page=2, limit=4)
    last = await service.list_members(free.id, page=3, limit=4)

    assert [row.merchant.id for row in first.data] == explicit + virtual[:1]
    assert [row.merchant.id for row in second.data] == virtual[1:5]
    assert [row.merchant.id for row in last.data] == virtual[5:]
    assert first.pagination.total_pages == 3


@pytest.mark.asyncio
async def test_page_entirely_inside_explicit_set(test_db, seed):
    free, _, explicit, _, _ = await _free_plan_population(seed)

    page = await MembershipService(test_db).list_members(free.id, page=1, limit=2)

    assert [row.merchant.id for row in page.data] == explicit[:2]
    assert page.pagination.total == 10


@pytest.mark.asyncio
async def test_virtual_rows_carry_synthetic_subscriptions(test_db, seed):
    free, _, _, virtual, _ = await _free_plan_population(seed)

    page = await MembershipService(test_db).list_members(free.id, page=2, limit=5)

    row = page.data[0]
    assert row.subscription.id == f"virtual-free-{row.merchant.id}"
    assert row.subscription.synthetic is True
    assert row.subscription.plan.id == free.id
    assert row.subscription.start_date == as_utc(row.merchant.created_at)

    again = await MembershipService(test_db).list_members(free.id, page=2, limit=5)
    assert again.data[0].subscription.start_date == row.subscription.start_date


@pytest.mark.asyncio
async def test_paid_plan_lists_explicit_members_only(test_db, seed):
    _, pro, _, _, paying = await _free_plan_population(seed)

    page = await MembershipService(test_db).list_members(pro.id, page=1, limit=10)

    assert [row.merchant.id for row in page.data] == [paying.id]
    assert page.data[0].subscription_type == "explicit"
    assert page.pagination.total == 1


@pytest.mark.asyncio
async def test_unknown_plan(test_db):
    with pytest.raises(PlanNotFound):
        await MembershipService(test_db).list_members("missing")
