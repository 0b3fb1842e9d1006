"""Database models package exports."""

from src.db.models.billing_transaction import BillingSequence, BillingTransaction
from src.db.models.merchant import Merchant
from src.db.models.plan import Plan
from src.db.models.plan_assignment import PlanAssignment
from src.db.models.subscription import Subscription
from src.db.models.usage import SubscriptionUsage

__all__ = [
    "BillingSequence",
    "BillingTransaction",
    "Merchant",
    "Plan",
    "PlanAssignment",
    "Subscription",
    "SubscriptionUsage",
]
