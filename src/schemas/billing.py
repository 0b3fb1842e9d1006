"""Pydantic schemas for billing transactions"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.db.models.enums import TransactionStatus
from src.schemas.common import Money


class BillingTransactionCreate(BaseModel):
    merchant_id: str
    plan_id: str
    subscription_id: Optional[str] = None
    amount: Decimal = Field(..., ge=0, description="Transaction amount")
    currency: Optional[str] = Field(default=None, max_length=8)
    payment_reference: Optional[str] = Field(
        default=None, description="Payment reference from external system"
    )
    payment_method: Optional[str] = None
    billing_period_start: datetime
    billing_period_end: datetime
    notes: Optional[str] = None


class TransactionStatusUpdate(BaseModel):
    status: TransactionStatus


class BillingTransactionRead(BaseModel):
    id: str
    transaction_id: str
    merchant_id: str
    plan_id: str
    subscription_id: Optional[str] = None
    amount: Money
    currency: str
    payment_reference: Optional[str] = None
    payment_method: Optional[str] = None
    status: TransactionStatus
    billing_period_start: datetime
    billing_period_end: datetime
    processed_at: Optional[datetime] = None
    processed_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
