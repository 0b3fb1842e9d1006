from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest

from src.core.clock import utcnow
from src.core.config import NotificationSettings
from src.services.notifications import (
    SUBSCRIPTION_EXPIRED,
    HttpNotificationGateway,
    LoggingNotificationGateway,
    SubscriptionNotice,
    build_gateway,
    notify_owner,
)


@pytest.mark.asyncio
async def test_http_gateway_posts_one_event_per_admin():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return httpx.Response(202)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    gateway = HttpNotificationGateway(
        "http://gateway.test/notify", admin_user_ids=["admin-1", "admin-2"], client=client
    )
    notice = SubscriptionNotice(plan_name="Pro", expiration_date=utcnow())

    await gateway.notify_admins_subscription_expired("m-1", "Shop", notice)
    await gateway.aclose()

    assert [body["recipient"] for body in requests] == ["admin-1", "admin-2"]
    assert all(body["kind"] == SUBSCRIPTION_EXPIRED for body in requests)
    assert requests[0]["details"]["plan_name"] == "Pro"


@pytest.mark.asyncio
async def test_http_gateway_raises_on_error_status():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    gateway = HttpNotificationGateway("http://gateway.test/notify", client=client)
    notice = SubscriptionNotice(plan_name="Pro", expiration_date=utcnow(), days_left=1)

    with pytest.raises(httpx.HTTPStatusError):
        await gateway.notify_subscription_expiring_soon("m-1", "Shop", "owner-1", notice)
    await gateway.aclose()


@pytest.mark.asyncio
async def test_owner_without_contact_is_skipped():
    gateway = LoggingNotificationGateway()
    merchant = SimpleNamespace(id="m-1", name="Shop", owner_user_id=None, owner_email=None)
    notice = SubscriptionNotice(plan_name="Pro", expiration_date=utcnow())

    delivered = await notify_owner(
        merchant,
        gateway.notify_subscription_expired,
        gateway.notify_subscription_expired_by_email,
        notice,
    )

    assert delivered is False


def test_build_gateway_selects_backend():
    assert isinstance(build_gateway(NotificationSettings()), LoggingNotificationGateway)
    with pytest.raises(ValueError):
        build_gateway(NotificationSettings(backend="http"))
