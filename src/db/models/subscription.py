"""Subscription model linking merchants to plans."""
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.clock import utcnow
from src.db.base import Base
from src.db.models.enums import BillingCycle, SubscriptionStatus


class Subscription(Base):
    """Binding of a merchant to a plan for a time window.

    ``monthly_price`` and ``billing_cycle`` are snapshots taken when the row is
    created, not live references to the plan.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("ix_subscriptions_merchant_status", "merchant_id", "status"),
        Index("ix_subscriptions_status_end_date", "status", "end_date"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    merchant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False
    )
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("plans.id"), nullable=False, index=True
    )
    status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus, native_enum=False, length=16),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
    )
    start_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    end_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_billing_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    monthly_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    billing_cycle: Mapped[BillingCycle] = mapped_column(
        Enum(BillingCycle, native_enum=False, length=16),
        nullable=False,
        default=BillingCycle.MONTHLY,
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    plan: Mapped["Plan"] = relationship("Plan", lazy="raise")
    merchant: Mapped["Merchant"] = relationship("Merchant", lazy="raise")

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Subscription merchant={self.merchant_id} plan={self.plan_id} {self.status}>"
