"""
Shared pytest configuration for courtside tests.

Uses an in-memory SQLite database (aiosqlite) and seeded random sources so
match assembly is reproducible.
"""

import itertools
import os
import random

# Must be set before the app (and its rate limiter) is imported
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from courtside.database.db import Base  # noqa: E402
from courtside.models.schemas import (  # noqa: E402
    AddCourt,
    AddPlayer,
    Category,
    Gender,
    Player,
    StartRotation,
)
from courtside.services.rotation_engine import RotationEngine  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def counter_clock(start: int = 1_000):
    """Clock returning 1000, 1001, ... so timestamps are distinct and ordered."""
    ticks = itertools.count(start)
    return lambda: next(ticks)


# ============================================================================
# Engine fixtures
# ============================================================================


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def engine(rng):
    """Engine with a seeded random source and a deterministic clock."""
    return RotationEngine(rng=rng, clock=counter_clock())


@pytest.fixture
def make_player():
    """Factory for standalone Player models (assembler and ledger tests)."""
    def _make(pid, category="Beginners", gender="Male", games=0, share=0.0, name=None):
        return Player(
            id=pid,
            name=name or pid.upper(),
            category=Category(category),
            gender=Gender(gender),
            games_played=games,
            shuttle_share=share,
        )
    return _make


@pytest.fixture
def setup_state(engine):
    """
    Build a setup-phase state with one player per (category, gender) pair.
    Players get ids p-1, p-2, ... in the order given.
    """
    def _build(kinds, courts=1):
        state = engine.initial_state()
        for index, (category, gender) in enumerate(kinds, start=1):
            result = engine.apply(state, AddPlayer(name=f"Player {index}", category=category, gender=gender))
            assert result.applied
            state = result.state
        for _ in range(courts - 1):
            state = engine.apply(state, AddCourt()).state
        return state
    return _build


@pytest.fixture
def active_state(engine, setup_state):
    """Same as setup_state, then started."""
    def _build(kinds, courts=1):
        result = engine.apply(setup_state(kinds, courts=courts), StartRotation())
        assert result.applied
        return result.state
    return _build


# ============================================================================
# Database fixtures
# ============================================================================


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """In-memory database shared by every session of one test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        # Ensure models are imported so Base.metadata includes all tables
        from courtside.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session
