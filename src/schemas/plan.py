"""Pydantic schemas for Plan resources"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.db.models.enums import BillingCycle, PlanStatus
from src.schemas.common import Money


class PlanCreate(BaseModel):
    """Schema for creating a plan."""

    name: str = Field(..., min_length=1, description="Plan name, unique")
    description: str = Field(default="", description="Plan description")
    price: Decimal = Field(..., ge=0, description="Price per billing cycle")
    billing_cycle: BillingCycle = Field(
        default=BillingCycle.MONTHLY, description="Billing cycle"
    )
    limits: Dict[str, Any] = Field(
        default_factory=dict, description="Plan limits configuration"
    )
    features: List[str] = Field(
        default_factory=list, description="Ordered feature list for display"
    )
    is_popular: bool = Field(default=False, description="Mark as popular plan")
    display_order: int = Field(default=1, ge=1, description="Display order")
    show_on_landing: bool = Field(default=True, description="Show on landing page")


class PlanUpdate(BaseModel):
    """Partial update of a plan; omitted fields are left unchanged."""

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    billing_cycle: Optional[BillingCycle] = None
    limits: Optional[Dict[str, Any]] = None
    features: Optional[List[str]] = None
    status: Optional[PlanStatus] = None
    is_popular: Optional[bool] = None
    display_order: Optional[int] = Field(default=None, ge=1)
    show_on_landing: Optional[bool] = None

    @model_validator(mode="after")
    def reject_explicit_nulls(self) -> "PlanUpdate":
        """Sending null is not a way to clear a column; omit the field instead."""
        nulls = sorted(name for name in self.model_fields_set if getattr(self, name) is None)
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
        return self


class PlanQuery(BaseModel):
    """Filters accepted by the plan listing."""

    status: Optional[PlanStatus] = None
    search: Optional[str] = None
    show_on_landing: Optional[bool] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    sort_by: str = "displayOrder"
    sort_order: Literal["asc", "desc"] = "asc"


class PlanRead(BaseModel):
    """Schema returned when reading a plan."""

    id: str
    name: str
    description: str
    price: Money
    billing_cycle: BillingCycle
    limits: Dict[str, Any]
    features: List[str]
    status: PlanStatus
    is_popular: bool
    display_order: int
    show_on_landing: bool
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PlanWithCount(PlanRead):
    """Plan plus its number of ACTIVE subscriptions."""

    active_subscriptions: int = 0


class PlanStatisticsEntry(PlanRead):
    active_subscribers: int
    monthly_revenue: Money


class PlanStatistics(BaseModel):
    plans: List[PlanStatisticsEntry]
    total_revenue: Money
