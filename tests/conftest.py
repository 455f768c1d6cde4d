import asyncio
import os
import sys
from typing import AsyncGenerator

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_vod_payments.db"
os.environ["LANARI_PAY_API_KEY"] = "test_api_key"
os.environ["LANARI_PAY_API_SECRET"] = "test_api_secret"
os.environ["JWT_SECRET"] = "test_jwt_secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_fake"
os.environ["API_URL"] = "http://test"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import NullPool

from vod_payments.api.dependencies import get_card_gateway, get_gateway
from vod_payments.core.config import settings
from vod_payments.db.base import Base
from vod_payments.db.models import Content, User
from vod_payments.db.session import AsyncSessionLocal, engine
from vod_payments.main import app
from vod_payments.services.gateway_client import LanariPayClient
from vod_payments.services.payment_orchestrator import PaymentOrchestrator
from vod_payments.services.reconciler import Reconciler
from tests.utils import ContentFactory, FakeCardGateway, FakeLanariPay, UserFactory

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest.fixture(scope="session", autouse=True)
def configure_db_for_tests():
    engine.pool = NullPool(engine.pool._creator)
    yield


@pytest_asyncio.fixture(scope="function", autouse=True)
async def recreate_schema_between_tests() -> AsyncGenerator[None, None]:
    """Ensure test isolation by rebuilding every table."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield


@pytest.fixture(autouse=True)
def lanari() -> FakeLanariPay:
    """Every test talks to the fake gateway; nothing reaches the network."""
    fake = FakeLanariPay()
    app.dependency_overrides[get_gateway] = lambda: LanariPayClient(
        settings, transport=fake.transport
    )
    yield fake
    app.dependency_overrides.pop(get_gateway, None)


@pytest.fixture(autouse=True)
def card_gateway() -> FakeCardGateway:
    fake = FakeCardGateway()
    app.dependency_overrides[get_card_gateway] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_card_gateway, None)


@pytest_asyncio.fixture(scope="function")
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
        await session.rollback()


@pytest.fixture
def orchestrator(lanari: FakeLanariPay, card_gateway: FakeCardGateway) -> PaymentOrchestrator:
    return PaymentOrchestrator(
        session_factory=AsyncSessionLocal,
        gateway=LanariPayClient(settings, transport=lanari.transport),
        settings=settings,
        card_gateway=card_gateway,
    )


@pytest.fixture
def reconciler(orchestrator: PaymentOrchestrator) -> Reconciler:
    return Reconciler(orchestrator)


@pytest_asyncio.fixture
async def viewer(db_session: AsyncSession) -> User:
    return await UserFactory.create_viewer(db_session)


@pytest_asyncio.fixture
async def filmmaker(db_session: AsyncSession) -> User:
    return await UserFactory.create_filmmaker(db_session)


@pytest_asyncio.fixture
async def movie(db_session: AsyncSession, filmmaker: User) -> Content:
    return await ContentFactory.create_movie(db_session, filmmaker.id)


@pytest_asyncio.fixture
async def series(db_session: AsyncSession, filmmaker: User) -> tuple[Content, list[Content]]:
    return await ContentFactory.create_series(
        db_session, filmmaker.id, pricing_tiers={"30d": 2000, "90d": 4500}
    )
