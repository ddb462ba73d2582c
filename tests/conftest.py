import os
# Disable rate limiting and point at an in-memory database BEFORE any app imports
os.environ["RATELIMIT_ENABLED"] = "False"
os.environ["ENVIRONMENT"] = "development"
os.environ["TESTING"] = "True"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-jwt-secret-0123456789abcdef0123456789"
os.environ["INVENTORY_BACKEND"] = "database"

import time
from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncGenerator, List, Optional, Sequence
from uuid import UUID, uuid4

import jwt
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

# Ensure all models are registered in the metadata
from app.models.organization import Organization
from app.models.cost import CostHistory, CostPrediction  # noqa: F401
from app.models.optimization import Resource, OptimizationSuggestion  # noqa: F401
from app.schemas.costs import CostRecord
from app.shared.db.base import Base


@pytest.fixture(autouse=True)
def disable_rate_limiting():
    """Manually disable rate limiting for every test."""
    from app.shared.core.rate_limit import get_limiter
    limiter = get_limiter()
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test; StaticPool keeps it alive across connections."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(bind=test_engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()
        await test_engine.dispose()


@pytest.fixture
async def organization(db: AsyncSession) -> Organization:
    org = Organization(id=uuid4(), name="Acme Corp")
    db.add(org)
    await db.commit()
    return org


@pytest.fixture
async def ac(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async client whose requests share the test database session."""
    from app.main import app
    from app.shared.db.session import get_db

    async def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


def make_token(organization_id: Optional[UUID] = None, sub: str = "user-1", **claims) -> str:
    """Signs a platform-style HS256 token for the test secret."""
    payload = {
        "sub": sub,
        "aud": "authenticated",
        "exp": int(time.time()) + 3600,
        "email": "finops@example.com",
    }
    if organization_id is not None:
        payload["organization_id"] = str(organization_id)
    payload.update(claims)
    return jwt.encode(payload, os.environ["JWT_SECRET"], algorithm="HS256")


@pytest.fixture
def auth_headers(organization: Organization) -> dict:
    return {"Authorization": f"Bearer {make_token(organization.id)}"}


def daily_records(
    amounts: Sequence[float],
    start: date = date(2026, 1, 1),
    service: str = "Amazon EC2",
    region: Optional[str] = "us-east-1"
) -> List[CostRecord]:
    """One CostRecord per consecutive day."""
    return [
        CostRecord(
            date=start + timedelta(days=i),
            amount=Decimal(str(amount)),
            service_category=service,
            region=region
        )
        for i, amount in enumerate(amounts)
    ]
