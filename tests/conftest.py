"""
Pytest configuration for the application
"""
import os
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Dict, List, Optional

import httpx
import jwt
import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine
)

from src.core.clock import utcnow
from src.core.config import settings
from src.db.base import Base
from src.db.models import Merchant, Plan, PlanAssignment, Subscription
from src.db.models.billing_transaction import BillingTransaction
from src.db.models.enums import (
    AssignmentType,
    BillingCycle,
    MerchantStatus,
    PlanStatus,
    SubscriptionStatus,
    TransactionStatus,
)
from src.db.session import get_db
from src.main import create_application
from src.services import limits as limits_service
from src.services.notifications import NotificationEvent, NotificationGateway


# Set test environment and override runtime settings to avoid external deps
os.environ["ENV"] = "test"
settings.ENV = "test"
settings.scheduler.enabled = False
settings.scheduler.lock_backend = "memory"
settings.notifications.admin_user_ids = ["admin-1", "admin-2"]
API_PREFIX = f"{settings.API_PREFIX}/v1"


class FakeRedis:
    """Minimal async Redis stub for rate limiting, idempotency and job locks."""

    def __init__(self) -> None:
        self.store: Dict[str, int | str] = {}

    async def incr(self, key: str) -> int:
        current = int(self.store.get(key, 0)) + 1
        self.store[key] = current
        return current

    async def expire(self, key: str, seconds: int) -> None:
        self.store.setdefault(f"{key}:ttl", seconds)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool:
        if nx and key in self.store:
            return False
        self.store[key] = value
        if ex is not None:
            self.store[f"{key}:ttl"] = ex
        return True

    async def get(self, key: str):
        return self.store.get(key)

    async def delete(self, key: str) -> int:
        return 1 if self.store.pop(key, None) is not None else 0


class RecordingGateway(NotificationGateway):
    """Keeps every delivered notification; can be told to fail."""

    def __init__(self, admin_user_ids=()) -> None:
        super().__init__(admin_user_ids)
        self.events: List[NotificationEvent] = []
        self.fail = False

    async def deliver(self, event: NotificationEvent) -> None:
        if self.fail:
            raise RuntimeError("gateway unavailable")
        self.events.append(event)

    def of_kind(self, kind: str) -> List[NotificationEvent]:
        return [event for event in self.events if event.kind == kind]


class Seeder:
    """Inserts fixture rows directly, bypassing the services under test."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._clock = utcnow() - timedelta(days=30)

    def _next_created_at(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def merchant(
        self,
        name: str = "Merchant",
        status: MerchantStatus = MerchantStatus.ACTIVE,
        owner_user_id: Optional[str] = "owner-1",
        owner_email: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Merchant:
        merchant = Merchant(
            name=name,
            status=status,
            owner_user_id=owner_user_id,
            owner_email=owner_email,
            created_at=created_at or self._next_created_at(),
        )
        self.session.add(merchant)
        await self.session.commit()
        return merchant

    async def plan(
        self,
        name: str = "Pro",
        price: str = "99.00",
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        status: PlanStatus = PlanStatus.ACTIVE,
        display_order: int = 2,
        show_on_landing: bool = True,
    ) -> Plan:
        plan = Plan(
            name=name,
            description=f"{name} plan",
            price=Decimal(price),
            billing_cycle=billing_cycle,
            limits={"max_products": 10},
            features=["catalog"],
            status=status,
            display_order=display_order,
            show_on_landing=show_on_landing,
        )
        self.session.add(plan)
        await self.session.commit()
        return plan

    async def free_plan(self) -> Plan:
        return await self.plan(
            name=settings.billing.free_plan_name, price="0", display_order=1
        )

    async def subscription(
        self,
        merchant: Merchant,
        plan: Plan,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Subscription:
        subscription = Subscription(
            merchant_id=merchant.id,
            plan_id=plan.id,
            status=status,
            start_date=start_date or utcnow() - timedelta(days=10),
            end_date=end_date,
            monthly_price=plan.price,
            billing_cycle=plan.billing_cycle,
        )
        self.session.add(subscription)
        await self.session.commit()
        return subscription

    async def assignment(
        self,
        merchant: Merchant,
        plan: Plan,
        assignment_type: AssignmentType = AssignmentType.IMMEDIATE,
        scheduled_date: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        is_applied: bool = False,
    ) -> PlanAssignment:
        assignment = PlanAssignment(
            merchant_id=merchant.id,
            plan_id=plan.id,
            assignment_type=assignment_type,
            scheduled_date=scheduled_date,
            assigned_by="admin-user",
            is_applied=is_applied,
            created_at=created_at or utcnow(),
        )
        self.session.add(assignment)
        await self.session.commit()
        return assignment

    async def transaction(
        self,
        merchant: Merchant,
        plan: Plan,
        transaction_id: str,
        created_at: datetime,
        status: TransactionStatus = TransactionStatus.PENDING,
        amount: str = "99.00",
    ) -> BillingTransaction:
        transaction = BillingTransaction(
            transaction_id=transaction_id,
            merchant_id=merchant.id,
            plan_id=plan.id,
            amount=Decimal(amount),
            status=status,
            billing_period_start=created_at,
            billing_period_end=created_at + timedelta(days=30),
            created_at=created_at,
        )
        self.session.add(transaction)
        await self.session.commit()
        return transaction


def build_auth_header(user_id: str = "admin-user", role: Optional[str] = "admin") -> Dict[str, str]:
    claims = {"sub": user_id}
    if role:
        claims["role"] = role
    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALG)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_header():
    return build_auth_header


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return build_auth_header()


@pytest.fixture
def merchant_headers() -> Dict[str, str]:
    return build_auth_header(user_id="owner-1", role="merchant")


@pytest_asyncio.fixture
async def test_db_engine(tmp_path):
    """
    Create a fresh SQLite database for each test, with foreign keys enforced.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test_app.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a new database session for a test.
    """
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seed(session_factory) -> AsyncGenerator[Seeder, None]:
    async with session_factory() as session:
        yield Seeder(session)


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway(settings.notifications.admin_user_ids)


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    """Patch the limits module to use an in-memory Redis stub."""

    fake = FakeRedis()
    monkeypatch.setattr(limits_service, "_redis_client", fake, raising=False)
    yield fake
    monkeypatch.setattr(limits_service, "_redis_client", None, raising=False)


@pytest_asyncio.fixture
async def test_app(session_factory, gateway, fake_redis) -> AsyncGenerator[FastAPI, None]:
    """
    Create a FastAPI test application bound to the test database.
    """
    app = create_application(session_factory=session_factory, gateway=gateway)

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    async with LifespanManager(app):
        yield app


@pytest_asyncio.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Create an async HTTP client for testing.
    """
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as client:
        yield client
