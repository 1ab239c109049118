from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config import settings
from database import Base, get_db
from main import app
from models.transaction import Transaction
from models.user import User
from routers import rate_limit
from services.session_token import create_session_token


TEST_PROCESSOR_SECRET = "processor-webhook-secret"
TEST_STRIPE_WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit.reset_local_quotas()
    yield
    rate_limit.reset_local_quotas()
    app.state.disable_rate_limits = previous


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Outbound integrations stay unconfigured unless a test opts in."""
    monkeypatch.setattr(settings, "ADMIN_EMAILS", "")
    monkeypatch.setattr(settings, "MAILGUN_API_KEY", "")
    monkeypatch.setattr(settings, "MAILGUN_DOMAIN", "")
    monkeypatch.setattr(settings, "WOOCOMMERCE_URL", "")
    monkeypatch.setattr(settings, "PAYMENT_PROCESSOR_API_KEY", "")
    monkeypatch.setattr(settings, "PAYMENT_PROCESSOR_API_SECRET", TEST_PROCESSOR_SECRET)
    monkeypatch.setattr(settings, "PAYMENT_PROCESSOR_BASE_URL", "")
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", TEST_STRIPE_WEBHOOK_SECRET)


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "marketplace.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def api_client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, session_maker

    app.dependency_overrides.pop(get_db, None)


async def create_user(session_maker, user_id: str, **fields) -> User:
    fields.setdefault("email", f"{user_id}@example.com")
    fields.setdefault("name", user_id)
    async with session_maker() as session:
        user = User(id=user_id, **fields)
        session.add(user)
        await session.commit()
        return user


async def create_unpaid_transaction(session_maker, transaction_id: str, provider_id: str, client_id: str, amount_cash: str):
    cash = Decimal(amount_cash)
    async with session_maker() as session:
        session.add(
            Transaction(
                id=transaction_id,
                type="VOD_UNLOCK",
                amount_credits=int(cash * 10),
                amount_cash=cash,
                platform_fee=(cash * Decimal("0.20")).quantize(Decimal("0.01")),
                provider_amount=(cash * Decimal("0.80")).quantize(Decimal("0.01")),
                provider_id=provider_id,
                client_id=client_id,
            )
        )
        await session.commit()


def auth_header(user_id: str, email: str = None, role: str = None) -> dict:
    token = create_session_token(user_id, email or f"{user_id}@example.com", role=role)["token"]
    return {"Authorization": f"Bearer {token}"}
