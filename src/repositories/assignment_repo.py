"""Repository utilities for plan assignments."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.db.models.enums import AssignmentType
from src.db.models.plan_assignment import PlanAssignment


class AssignmentRepo:
    """Data-access helpers for :class:`PlanAssignment`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, **values: Any) -> PlanAssignment:
        assignment = PlanAssignment(**values)
        self.session.add(assignment)
        await self.session.flush()
        return assignment

    async def get(self, assignment_id: str) -> PlanAssignment | None:
        result = await self.session.execute(
            select(PlanAssignment).where(PlanAssignment.id == assignment_id)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, assignment_id: str) -> PlanAssignment | None:
        """Reload the assignment and its plan, locking the row."""

        result = await self.session.execute(
            select(PlanAssignment)
            .options(selectinload(PlanAssignment.plan))
            .where(PlanAssignment.id == assignment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_pending(self, merchant_id: Optional[str] = None) -> List[PlanAssignment]:
        query = (
            select(PlanAssignment)
            .options(selectinload(PlanAssignment.plan))
            .where(PlanAssignment.is_applied.is_(False))
            .order_by(PlanAssignment.created_at.desc())
        )
        if merchant_id:
            query = query.where(PlanAssignment.merchant_id == merchant_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_stale_immediate_ids(
        self, created_before: datetime, merchant_id: Optional[str] = None
    ) -> List[str]:
        query = select(PlanAssignment.id).where(
            PlanAssignment.is_applied.is_(False),
            PlanAssignment.assignment_type == AssignmentType.IMMEDIATE,
            PlanAssignment.created_at < created_before,
        )
        if merchant_id:
            query = query.where(PlanAssignment.merchant_id == merchant_id)
        result = await self.session.execute(query.order_by(PlanAssignment.created_at))
        return list(result.scalars().all())

    async def list_due_scheduled_ids(self, moment: datetime) -> List[str]:
        result = await self.session.execute(
            select(PlanAssignment.id)
            .where(
                PlanAssignment.is_applied.is_(False),
                PlanAssignment.assignment_type == AssignmentType.SCHEDULED,
                PlanAssignment.scheduled_date <= moment,
            )
            .order_by(PlanAssignment.scheduled_date)
        )
        return list(result.scalars().all())

    async def delete_unapplied(self, assignment_id: str) -> bool:
        """Delete an assignment only while it is still unapplied."""

        result = await self.session.execute(
            delete(PlanAssignment)
            .where(
                PlanAssignment.id == assignment_id,
                PlanAssignment.is_applied.is_(False),
            )
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def purge_unapplied(
        self, merchant_id: str, plan_id: str, created_before: datetime
    ) -> int:
        """Drop abandoned unapplied assignments for one merchant and plan."""

        result = await self.session.execute(
            delete(PlanAssignment)
            .where(
                PlanAssignment.merchant_id == merchant_id,
                PlanAssignment.plan_id == plan_id,
                PlanAssignment.is_applied.is_(False),
                PlanAssignment.created_at < created_before,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def find_recent_pending(
        self, merchant_id: str, plan_id: str, created_since: datetime
    ) -> PlanAssignment | None:
        result = await self.session.execute(
            select(PlanAssignment)
            .where(
                PlanAssignment.merchant_id == merchant_id,
                PlanAssignment.plan_id == plan_id,
                PlanAssignment.is_applied.is_(False),
                PlanAssignment.created_at >= created_since,
            )
            .order_by(PlanAssignment.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()
