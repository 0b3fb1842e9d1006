"""Pydantic schemas for plan assignments"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.db.models.enums import AssignmentType, DurationType


class AssignPlanRequest(BaseModel):
    """Payload for assigning a plan to a merchant."""

    merchant_id: str = Field(..., description="Merchant to assign the plan to")
    plan_id: str = Field(..., description="Plan to assign")
    assignment_type: AssignmentType = Field(default=AssignmentType.IMMEDIATE)
    scheduled_date: Optional[datetime] = Field(
        default=None, description="Required for SCHEDULED assignments"
    )
    duration_type: DurationType = Field(default=DurationType.PERMANENT)
    end_date: Optional[datetime] = Field(
        default=None, description="Required for TEMPORARY assignments"
    )
    notes: Optional[str] = Field(default=None, description="Admin notes")


class AssignmentRead(BaseModel):
    id: str
    merchant_id: str
    plan_id: str
    assignment_type: AssignmentType
    scheduled_date: Optional[datetime] = None
    duration_type: DurationType
    end_date: Optional[datetime] = None
    notes: Optional[str] = None
    assigned_by: Optional[str] = None
    is_applied: bool
    applied_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
