"""
Database connection and management using SQLAlchemy async mode.

Defaults to a local SQLite file through aiosqlite; set DATABASE_URL to any
async SQLAlchemy URL (e.g. postgresql+asyncpg://...) to use another backend.
"""

import os
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from courtside.services.settings_service import get_bool_env

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./courtside.db")

# Create async engine
engine: AsyncEngine = create_async_engine(
    DATABASE_URL,
    echo=get_bool_env("SQL_ECHO", default=False),  # Log SQL queries in debug mode
    future=True,
    pool_pre_ping=True,  # Verify connections before using them
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# Import models to register them with Base.metadata
# This must be after Base is defined to avoid circular imports
from courtside.database import models  # noqa: F401, E402


async def init_database():
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        # checkfirst=True means it won't error if tables already exist
        def create_tables(sync_conn):
            Base.metadata.create_all(bind=sync_conn, checkfirst=True)
        await conn.run_sync(create_tables)
