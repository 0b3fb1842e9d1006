"""Repository layer package."""

from src.repositories.assignment_repo import AssignmentRepo
from src.repositories.billing_repo import BillingRepo
from src.repositories.merchant_repo import MerchantRepo
from src.repositories.plan_repo import PlanRepo
from src.repositories.subscription_repo import SubscriptionRepo

__all__ = [
    "AssignmentRepo",
    "BillingRepo",
    "MerchantRepo",
    "PlanRepo",
    "SubscriptionRepo",
]
