"""Per-period metered usage counters."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Dict

from sqlalchemy import JSON, DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from src.core.clock import utcnow
from src.db.base import Base


class SubscriptionUsage(Base):
    """Usage counters of one merchant for one calendar month.

    ``period`` is ``YYYY-MM``; ``usage`` maps a plan limit key to how much of
    it the merchant consumed in that month.
    """

    __tablename__ = "subscription_usage"
    __table_args__ = (
        UniqueConstraint("merchant_id", "period", name="uq_subscription_usage_merchant_period"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    merchant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    usage: Mapped[Dict[str, int]] = mapped_column(JSON, nullable=False, default=dict)
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
