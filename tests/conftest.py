"""
Shared fixtures: in-memory SQLite database, a seeded restaurant with a call
and a menu, settings overrides and a POS factory that records the adapters
it hands out.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENV_MODE", "development")

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from dialorder.core.config import Settings  # noqa: E402
from dialorder.database import Base  # noqa: E402
from dialorder.models import Call, Restaurant, RestaurantStatus  # noqa: E402
from dialorder.schemas import NormalizedMenu  # noqa: E402
from dialorder.services.menu import MenuCatalog  # noqa: E402
from tests.helpers import (  # noqa: E402
    CALLER_PHONE,
    RESTAURANT_ID,
    RESTAURANT_PHONE,
    RecordingProviderFactory,
    build_menu,
)


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


# =============================================================================
# SETTINGS & PROVIDERS
# =============================================================================

@pytest.fixture
def mock_settings() -> Settings:
    return Settings(_env_file=None, env_mode="development", toast_mock=True, clover_mock=True)


@pytest.fixture
def live_settings() -> Settings:
    return Settings(_env_file=None, env_mode="production", toast_mock=False, clover_mock=False)


@pytest.fixture
def mock_factory(mock_settings) -> RecordingProviderFactory:
    return RecordingProviderFactory(mock_settings)


# =============================================================================
# SEED DATA
# =============================================================================

@pytest.fixture
def menu() -> NormalizedMenu:
    return build_menu()


@pytest.fixture
async def restaurant(db) -> Restaurant:
    restaurant = Restaurant(
        id=RESTAURANT_ID,
        name="Sample Diner",
        phone_number=RESTAURANT_PHONE,
        status=RestaurantStatus.ACTIVE,
        pos_provider="toast",
    )
    db.add(restaurant)
    await db.commit()
    return restaurant


@pytest.fixture
async def call(db, restaurant) -> Call:
    call = Call(restaurant_id=restaurant.id, from_number=CALLER_PHONE, to_number=RESTAURANT_PHONE)
    db.add(call)
    await db.commit()
    return call


@pytest.fixture
async def seeded(db, restaurant, call, menu):
    """Restaurant with a call and menu v1 stored."""
    await MenuCatalog(db).replace(restaurant.id, menu)
    return restaurant
