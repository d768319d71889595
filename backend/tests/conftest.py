"""Pytest fixtures: test client, in-memory DB, back-office accounts, fake mailer."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ["RESEND_API_KEY"] = ""
os.environ["REFERENCE_SERVICE_URL"] = ""
os.environ["TRUST_FORWARDED_FOR"] = "true"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from aje_api.main import app
from aje_api.core.deps import get_mailer
from aje_api.core.rate_limit import _buckets
from aje_api.core.security import hash_password
from aje_api.db.models import AdminUser, Base, SecuritySetting
from aje_api.db.session import get_db
from aje_api.services.mailer import ConfirmationMailer, EmailContent, MailerError

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class FakeMailer(ConfirmationMailer):
    """Records sends instead of calling the provider; fail=True raises like a provider outage."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, EmailContent]] = []

    async def send(self, to: str, content: EmailContent) -> str:
        if self.fail:
            raise MailerError("provider returned 503")
        self.sent.append((to, content))
        return f"msg_{len(self.sent)}"


@pytest.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with async_session_factory() as session:
        yield session


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
async def client(db, mailer):
    async def get_db_override():
        yield db
    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_mailer] = lambda: mailer
    _buckets.clear()
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def committing_client(db, mailer):
    """Each request gets its own session that commits on success and rolls back on error, like get_db."""
    async def get_db_override():
        async with async_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_mailer] = lambda: mailer
    _buckets.clear()
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def rate_limiting_on(db: AsyncSession):
    setting = SecuritySetting(setting_key="rate_limiting", setting_value={"enabled": True, "window_minutes": 60})
    db.add(setting)
    await db.commit()
    return setting


@pytest.fixture
async def admin_user(db: AsyncSession):
    user = AdminUser(
        email="admin@aje.td",
        password_hash=hash_password("password123"),
        full_name="Admin Test",
        role="admin",
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def agent_user(db: AsyncSession):
    user = AdminUser(
        email="agent@aje.td",
        password_hash=hash_password("agent123"),
        full_name="Agent Test",
        role="agent",
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
def login_as(client: AsyncClient):
    """Log in; returns headers carrying the CSRF token for state-changing calls."""
    async def _login(email: str, password: str) -> dict:
        r = await client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        return {"X-CSRF-Token": r.json()["csrf_token"]}
    return _login
