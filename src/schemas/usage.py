"""Pydantic schemas for metered usage"""
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class UsageIncrement(BaseModel):
    feature: str = Field(..., min_length=1, description="Plan limit key to count against")
    amount: int = Field(default=1, ge=1)


class UsageCounters(BaseModel):
    merchant_id: str
    period: str
    usage: Dict[str, int]


class UsageCheckRead(BaseModel):
    """Whether one more use of a feature fits the merchant's plan."""

    allowed: bool
    current_usage: int
    limit: int = Field(..., description="-1 means unlimited")
    plan_name: str

    model_config = ConfigDict(from_attributes=True)


class UsageStatisticsRead(BaseModel):
    plan_name: str
    limits: Dict[str, Any]
    usage: Dict[str, int]
    percentages: Dict[str, int]

    model_config = ConfigDict(from_attributes=True)
