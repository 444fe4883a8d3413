"""Pytest configuration and fixtures for pricekeeper tests.

Integration fixtures use a file-backed SQLite database per test: every
service operation opens its own session/connection, so an in-memory
database would not be shared between them.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from pricekeeper.config import MarkupDefaults, reset_config
from pricekeeper.db.models import Base
from pricekeeper.integration.reference_source import StaticReferenceSource
from pricekeeper.models import ReferencePrice
from pricekeeper.pricing.service import PricingService


@pytest.fixture(autouse=True)
def test_env(monkeypatch, tmp_path):
    """Point configuration at a throwaway database and keep the sweeper quiet."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path}/env.db")
    monkeypatch.setenv("SWEEPER_ENABLED", "false")
    reset_config()
    yield
    reset_config()


@pytest.fixture
def reference_prices() -> list[ReferencePrice]:
    """Three items across two providers."""
    return [
        ReferencePrice(
            id="openai/gpt-4o",
            name="GPT-4o",
            provider="openai",
            reference_price=Decimal("10"),
        ),
        ReferencePrice(
            id="openai/gpt-4o-mini",
            name="GPT-4o mini",
            provider="openai",
            reference_price=Decimal("0.6"),
        ),
        ReferencePrice(
            id="anthropic/claude-3-haiku",
            name="Claude 3 Haiku",
            provider="anthropic",
            reference_price=Decimal("1.25"),
        ),
    ]


@pytest.fixture
def reference_source(reference_prices) -> StaticReferenceSource:
    return StaticReferenceSource(reference_prices)


@pytest_asyncio.fixture()
async def db_engine(tmp_path):
    """Create a fresh SQLite database with the full schema."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path}/pricekeeper.db",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory) -> AsyncSession:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def service(session_factory, reference_source) -> PricingService:
    """Service with default markup (25% + 0.20) and a static reference feed."""
    return PricingService(
        session_factory,
        reference_source=reference_source,
        markup_defaults=MarkupDefaults(),
    )


@pytest_asyncio.fixture()
async def seeded_service(service) -> PricingService:
    """Service whose catalog has been refreshed once."""
    await service.refresh_catalog()
    return service
