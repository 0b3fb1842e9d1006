"""Repository helpers for the billing transaction ledger."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Tuple

from sqlalchemy import func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.billing_transaction import BillingTransaction
from src.db.models.enums import TransactionStatus


class BillingRepo:
    """Data-access helpers for :class:`BillingTransaction`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def next_sequence(self, scope: str) -> int:
        """Atomically increment and return the counter for ``scope``.

        The upsert holds the counter row lock until the surrounding
        transaction ends, so concurrent callers never observe the same value.
        """

        await self.session.execute(
            text(
                """
                INSERT INTO billing_sequences (scope, last_value)
                VALUES (:scope, 1)
                ON CONFLICT (scope)
                DO UPDATE SET last_value = billing_sequences.last_value + 1
                """
            ),
            {"scope": scope},
        )
        result = await self.session.execute(
            text("SELECT last_value FROM billing_sequences WHERE scope = :scope"),
            {"scope": scope},
        )
        return int(result.scalar_one())

    async def create(self, **values: Any) -> BillingTransaction:
        transaction = BillingTransaction(**values)
        self.session.add(transaction)
        await self.session.flush()
        return transaction

    async def get_by_transaction_id(self, transaction_id: str) -> BillingTransaction | None:
        result = await self.session.execute(
            select(BillingTransaction).where(
                BillingTransaction.transaction_id == transaction_id
            )
        )
        return result.scalar_one_or_none()

    async def page(
        self, merchant_id: Optional[str], skip: int, limit: int
    ) -> Tuple[List[BillingTransaction], int]:
        conditions = []
        if merchant_id:
            conditions.append(BillingTransaction.merchant_id == merchant_id)
        result = await self.session.execute(
            select(BillingTransaction)
            .where(*conditions)
            .order_by(BillingTransaction.created_at.desc(), BillingTransaction.id)
            .offset(skip)
            .limit(limit)
        )
        total = await self.session.execute(
            select(func.count()).select_from(BillingTransaction).where(*conditions)
        )
        return list(result.scalars().all()), int(total.scalar_one() or 0)

    async def list_stale_pending_ids(self, created_before: datetime) -> List[str]:
        result = await self.session.execute(
            select(BillingTransaction.id)
            .where(
                BillingTransaction.status == TransactionStatus.PENDING,
                BillingTransaction.created_at < created_before,
            )
            .order_by(BillingTransaction.created_at)
        )
        return list(result.scalars().all())

    async def expire_pending(
        self, row_id: str, moment: datetime, processed_by: str
    ) -> bool:
        """Move a PENDING transaction to EXPIRED; False if already resolved."""

        result = await self.session.execute(
            update(BillingTransaction)
            .where(
                BillingTransaction.id == row_id,
                BillingTransaction.status == TransactionStatus.PENDING,
            )
            .values(
                status=TransactionStatus.EXPIRED,
                processed_at=moment,
                processed_by=processed_by,
                updated_at=moment,
            )
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)
