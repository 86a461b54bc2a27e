"""
Pytest configuration and fixtures.

Environment variables are set before any ``app`` import so that
``app.config.settings`` picks them up.
"""

import hashlib
import hmac
import json
import os
import tempfile
import time

_test_data_dir = tempfile.mkdtemp(prefix="relay_test_")
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{_test_data_dir}/test.db"

os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")

import pytest  # noqa: E402
from typing import AsyncGenerator  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from app.main import app  # noqa: E402
from app.database import Base  # noqa: E402
from app.api.deps import get_db  # noqa: E402
from app.models.admin import Admin  # noqa: E402
from app.models.plan import Plan  # noqa: E402
from app.models.site_config import SiteConfig, DEFAULT_SITE_CONFIG_ID  # noqa: E402
from app.models.user import User  # noqa: E402
from app.security import create_access_token, get_password_hash  # noqa: E402
from app.utils.stripe_gateway import stripe_gateway  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"

test_engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)

TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a clean database for each test"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app with the database overridden"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    stripe_gateway.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    stripe_gateway.reset()


@pytest.fixture
async def test_admin(db_session: AsyncSession) -> Admin:
    admin = Admin(
        username="root",
        full_name="Root Admin",
        hashed_password=get_password_hash("AdminPassword123!"),
        role="superadmin",
    )
    db_session.add(admin)
    await db_session.commit()
    await db_session.refresh(admin)
    return admin


@pytest.fixture
def admin_headers(test_admin: Admin) -> dict:
    token = create_access_token(data={"sub": test_admin.username, "role": test_admin.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    user = User(
        email="user@example.com",
        full_name="Test User",
        hashed_password=get_password_hash("UserPassword123!"),
        is_active=True,
        email_verified=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def user_headers(test_user: User) -> dict:
    token = create_access_token(data={"sub": test_user.email, "role": "user"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def pro_plan(db_session: AsyncSession) -> Plan:
    plan = Plan(
        id="pro",
        name="pro",
        display_name="Pro",
        price=19.99,
        currency="usd",
        duration_days=30,
        sort_order=1,
    )
    db_session.add(plan)
    await db_session.commit()
    await db_session.refresh(plan)
    return plan


@pytest.fixture
async def stripe_config(db_session: AsyncSession) -> SiteConfig:
    config = SiteConfig(
        id=DEFAULT_SITE_CONFIG_ID,
        stripe_enabled=True,
        stripe_publishable_key="pk_test_publishable",
        stripe_secret_key="sk_test_secret_key_value",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_test_mode=True,
        stripe_currency="usd",
        stripe_country="US",
    )
    db_session.add(config)
    await db_session.commit()
    return config


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header for ``payload``."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str = "evt_1") -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


@pytest.fixture
def post_webhook(client: AsyncClient, stripe_config: SiteConfig):
    """Post a correctly signed Stripe event and return the response."""

    async def _post(event_type: str, obj: dict, event_id: str = "evt_1"):
        payload = json.dumps(make_event(event_type, obj, event_id))
        return await client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload), "Content-Type": "application/json"},
        )

    return _post
