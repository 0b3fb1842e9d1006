"""Billing transaction ledger."""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.clock import utcnow
from src.core.config import settings
from src.core.exceptions import (
    MerchantNotFound,
    PlanNotFound,
    SubscriptionMerchantMismatch,
    SubscriptionNotFound,
    TerminalTransaction,
    TransactionNotFound,
)
from src.db.models.billing_transaction import BillingTransaction
from src.db.models.enums import TransactionStatus
from src.repositories.billing_repo import BillingRepo
from src.repositories.merchant_repo import MerchantRepo
from src.repositories.plan_repo import PlanRepo
from src.repositories.subscription_repo import SubscriptionRepo


logger = logging.getLogger(__name__)


def format_transaction_id(year: int, sequence: int) -> str:
    return f"TXN-{year}-{sequence:03d}"


class BillingLedger:
    """Records monetary events and owns their status lifecycle.

    Methods flush but never commit; the caller owns the transaction so a
    ledger entry can share one with the subscription change it belongs to.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.repo = BillingRepo(session)

    async def next_transaction_id(self, now: Optional[datetime] = None) -> str:
        year = (now or utcnow()).year
        sequence = await self.repo.next_sequence(f"TXN-{year}")
        return format_transaction_id(year, sequence)

    async def create(
        self,
        *,
        merchant_id: str,
        plan_id: str,
        amount: Decimal,
        billing_period_start: datetime,
        billing_period_end: datetime,
        subscription_id: Optional[str] = None,
        payment_reference: Optional[str] = None,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
        processed_by: Optional[str] = None,
        currency: Optional[str] = None,
        validate_refs: bool = True,
    ) -> BillingTransaction:
        if validate_refs:
            if await MerchantRepo(self.session).get(merchant_id) is None:
                raise MerchantNotFound()
            if await PlanRepo(self.session).get(plan_id) is None:
                raise PlanNotFound()
            if subscription_id is not None:
                subscription = await SubscriptionRepo(self.session).get(subscription_id)
                if subscription is None:
                    raise SubscriptionNotFound()
                if subscription.merchant_id != merchant_id:
                    raise SubscriptionMerchantMismatch()

        transaction = await self.repo.create(
            transaction_id=await self.next_transaction_id(),
            merchant_id=merchant_id,
            plan_id=plan_id,
            subscription_id=subscription_id,
            amount=amount,
            currency=currency or settings.billing.default_currency,
            payment_reference=payment_reference,
            payment_method=payment_method,
            status=TransactionStatus.PENDING,
            billing_period_start=billing_period_start,
            billing_period_end=billing_period_end,
            notes=notes,
            processed_by=processed_by,
        )
        logger.info(
            f"Recorded billing transaction {transaction.transaction_id} "
            f"for merchant {merchant_id} amount={amount}"
        )
        return transaction

    async def update_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        processed_by: Optional[str] = None,
    ) -> BillingTransaction:
        transaction = await self.repo.get_by_transaction_id(transaction_id)
        if transaction is None:
            raise TransactionNotFound()
        if transaction.status.is_terminal:
            raise TerminalTransaction(
                f"Transaction {transaction_id} is already {transaction.status.value}"
            )

        now = utcnow()
        transaction.status = status
        transaction.processed_at = now
        transaction.processed_by = processed_by
        await self.session.flush()
        logger.info(f"Transaction {transaction_id} moved to {status.value}")
        return transaction

    async def list_transactions(
        self, merchant_id: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> Tuple[List[BillingTransaction], int]:
        return await self.repo.page(merchant_id, (page - 1) * limit, limit)
