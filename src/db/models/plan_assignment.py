"""Administrative plan change requests."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.clock import utcnow
from src.db.base import Base
from src.db.models.enums import AssignmentType, DurationType


class PlanAssignment(Base):
    """An admin request to move a merchant onto a plan, now or later."""

    __tablename__ = "plan_assignments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    merchant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("plans.id"), nullable=False
    )
    assignment_type: Mapped[AssignmentType] = mapped_column(
        Enum(AssignmentType, native_enum=False, length=16),
        nullable=False,
        default=AssignmentType.IMMEDIATE,
    )
    scheduled_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    duration_type: Mapped[DurationType] = mapped_column(
        Enum(DurationType, native_enum=False, length=16),
        nullable=False,
        default=DurationType.PERMANENT,
    )
    end_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    assigned_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    is_applied: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    applied_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
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

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return (
            f"<PlanAssignment {self.id} merchant={self.merchant_id} "
            f"plan={self.plan_id} applied={self.is_applied}>"
        )
