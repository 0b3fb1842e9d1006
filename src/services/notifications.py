"""Client side of the external notification gateway.

The gateway owns delivery (in-app, email, SMS). This module only decides who
is told what: merchant owners by user account when linked, by email otherwise,
and every configured admin individually.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from fastapi.encoders import jsonable_encoder

from src.core.config import NotificationSettings


logger = logging.getLogger(__name__)

SUBSCRIPTION_EXPIRING_SOON = "SUBSCRIPTION_EXPIRING_SOON"
SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"
PLAN_ASSIGNED = "PLAN_ASSIGNED"
SUBSCRIPTION_RENEWED = "SUBSCRIPTION_RENEWED"


@dataclass(frozen=True)
class SubscriptionNotice:
    plan_name: str
    expiration_date: datetime
    days_left: Optional[int] = None


@dataclass(frozen=True)
class PlanAssignedNotice:
    plan_name: str
    assigned_by: str
    start_date: datetime
    end_date: Optional[datetime] = None


@dataclass(frozen=True)
class SubscriptionRenewedNotice:
    plan_name: str
    start_date: datetime
    end_date: Optional[datetime]
    amount: Decimal


@dataclass(frozen=True)
class NotificationEvent:
    kind: str
    channel: str  # "user", "email" or "admin"
    recipient: str
    merchant_id: str
    merchant_name: str
    details: Dict[str, Any] = field(default_factory=dict)


class NotificationGateway:
    """Base gateway; subclasses implement :meth:`deliver`."""

    def __init__(self, admin_user_ids: Sequence[str] = ()) -> None:
        self.admin_user_ids: List[str] = list(admin_user_ids)

    async def deliver(self, event: NotificationEvent) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None

    async def _send(
        self,
        kind: str,
        channel: str,
        recipient: str,
        merchant_id: str,
        merchant_name: str,
        details: Any,
    ) -> None:
        await self.deliver(
            NotificationEvent(
                kind=kind,
                channel=channel,
                recipient=recipient,
                merchant_id=merchant_id,
                merchant_name=merchant_name,
                details=dataclasses.asdict(details),
            )
        )

    async def _fan_out_to_admins(
        self, kind: str, merchant_id: str, merchant_name: str, details: Any
    ) -> None:
        for admin_id in self.admin_user_ids:
            await self._send(kind, "admin", admin_id, merchant_id, merchant_name, details)

    async def notify_subscription_expiring_soon(
        self, merchant_id: str, merchant_name: str, owner_user_id: str, details: SubscriptionNotice
    ) -> None:
        await self._send(
            SUBSCRIPTION_EXPIRING_SOON, "user", owner_user_id, merchant_id, merchant_name, details
        )

    async def notify_subscription_expiring_soon_by_email(
        self, merchant_id: str, merchant_name: str, owner_email: str, details: SubscriptionNotice
    ) -> None:
        await self._send(
            SUBSCRIPTION_EXPIRING_SOON, "email", owner_email, merchant_id, merchant_name, details
        )

    async def notify_admins_subscription_expiring_soon(
        self, merchant_id: str, merchant_name: str, details: SubscriptionNotice
    ) -> None:
        await self._fan_out_to_admins(
            SUBSCRIPTION_EXPIRING_SOON, merchant_id, merchant_name, details
        )

    async def notify_subscription_expired(
        self, merchant_id: str, merchant_name: str, owner_user_id: str, details: SubscriptionNotice
    ) -> None:
        await self._send(
            SUBSCRIPTION_EXPIRED, "user", owner_user_id, merchant_id, merchant_name, details
        )

    async def notify_subscription_expired_by_email(
        self, merchant_id: str, merchant_name: str, owner_email: str, details: SubscriptionNotice
    ) -> None:
        await self._send(
            SUBSCRIPTION_EXPIRED, "email", owner_email, merchant_id, merchant_name, details
        )

    async def notify_admins_subscription_expired(
        self, merchant_id: str, merchant_name: str, details: SubscriptionNotice
    ) -> None:
        await self._fan_out_to_admins(SUBSCRIPTION_EXPIRED, merchant_id, merchant_name, details)

    async def notify_plan_assigned(
        self, merchant_id: str, merchant_name: str, owner_user_id: str, details: PlanAssignedNotice
    ) -> None:
        await self._send(PLAN_ASSIGNED, "user", owner_user_id, merchant_id, merchant_name, details)

    async def notify_plan_assigned_by_email(
        self, merchant_id: str, merchant_name: str, owner_email: str, details: PlanAssignedNotice
    ) -> None:
        await self._send(PLAN_ASSIGNED, "email", owner_email, merchant_id, merchant_name, details)

    async def notify_subscription_renewed(
        self,
        merchant_id: str,
        merchant_name: str,
        owner_user_id: str,
        details: SubscriptionRenewedNotice,
    ) -> None:
        await self._send(
            SUBSCRIPTION_RENEWED, "user", owner_user_id, merchant_id, merchant_name, details
        )

    async def notify_subscription_renewed_by_email(
        self,
        merchant_id: str,
        merchant_name: str,
        owner_email: str,
        details: SubscriptionRenewedNotice,
    ) -> None:
        await self._send(
            SUBSCRIPTION_RENEWED, "email", owner_email, merchant_id, merchant_name, details
        )


class LoggingNotificationGateway(NotificationGateway):
    """Writes notifications to the log; used when no gateway URL is configured."""

    async def deliver(self, event: NotificationEvent) -> None:
        logger.info(
            f"Notification {event.kind} via {event.channel} to {event.recipient} "
            f"for merchant {event.merchant_name} ({event.merchant_id})"
        )


class HttpNotificationGateway(NotificationGateway):
    """Posts each notification as JSON to the gateway's webhook endpoint."""

    def __init__(
        self,
        url: str,
        admin_user_ids: Sequence[str] = (),
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(admin_user_ids)
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def deliver(self, event: NotificationEvent) -> None:
        response = await self._client.post(
            self.url, json=jsonable_encoder(dataclasses.asdict(event))
        )
        response.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()


def build_gateway(config: NotificationSettings) -> NotificationGateway:
    if config.backend == "http":
        if not config.webhook_url:
            raise ValueError("notifications.webhook_url is required for the http backend")
        return HttpNotificationGateway(
            config.webhook_url,
            admin_user_ids=config.admin_user_ids,
            timeout=config.timeout_seconds,
        )
    return LoggingNotificationGateway(admin_user_ids=config.admin_user_ids)


OwnerByUser = Callable[[str, str, str, Any], Awaitable[None]]
OwnerByEmail = Callable[[str, str, str, Any], Awaitable[None]]


async def notify_owner(
    merchant: Any, by_user: OwnerByUser, by_email: OwnerByEmail, details: Any
) -> bool:
    """Route a notice to the merchant owner's account, falling back to email.

    Returns False when the merchant has neither, which is logged and skipped.
    """

    if merchant.owner_user_id:
        await by_user(merchant.id, merchant.name, merchant.owner_user_id, details)
        return True
    if merchant.owner_email:
        await by_email(merchant.id, merchant.name, merchant.owner_email, details)
        return True
    logger.warning(f"Merchant {merchant.id} has no owner account or email, notice skipped")
    return False
