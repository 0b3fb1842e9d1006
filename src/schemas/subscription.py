"""Pydantic schemas for subscriptions and membership listings"""
from datetime import datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.db.models.enums import BillingCycle, MerchantStatus, SubscriptionStatus
from src.schemas.billing import BillingTransactionRead
from src.schemas.common import Money
from src.schemas.plan import PlanRead


class SubscriptionRead(BaseModel):
    """A subscription as seen by callers, persisted or synthesized."""

    id: str
    merchant_id: str
    plan_id: str
    status: SubscriptionStatus
    start_date: datetime
    end_date: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    monthly_price: Money
    billing_cycle: BillingCycle
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    synthetic: bool = Field(
        default=False, description="True for the computed free-tier entitlement"
    )

    model_config = ConfigDict(from_attributes=True)


class ResolvedSubscription(SubscriptionRead):
    """Effective subscription of a merchant with its plan joined."""

    plan: PlanRead


class SubscriptionEnvelope(BaseModel):
    subscription: Optional[ResolvedSubscription] = None
    current_usage: Dict[str, int] = Field(
        default_factory=dict, description="Counters for the current month"
    )


class UpgradeRequest(BaseModel):
    plan_id: str
    payment_reference: Optional[str] = None
    payment_method: Optional[str] = None


class UpgradeRead(BaseModel):
    subscription: SubscriptionRead
    transaction: Optional[BillingTransactionRead] = None

    model_config = ConfigDict(from_attributes=True)


class TrialStatus(BaseModel):
    """Trial view derived from the effective subscription."""

    merchant_id: str
    has_subscription: bool
    plan_name: Optional[str] = None
    is_trial: bool = False
    is_expired: bool = True
    days_remaining: Optional[int] = None
    synthetic: bool = False


class MerchantSummary(BaseModel):
    id: str
    name: str
    status: MerchantStatus
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PlanMember(BaseModel):
    """One row of a plan membership listing."""

    merchant: MerchantSummary
    subscription: ResolvedSubscription
    subscription_type: Literal["explicit", "virtual"]
