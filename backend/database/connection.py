"""
PostgreSQL Database Connection Manager
"""
from typing import AsyncGenerator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool
from sqlalchemy.orm import declarative_base
import json
import logging

from .config import postgres_settings

logger = logging.getLogger(__name__)

# Create Base class for models
Base = declarative_base()

# Global engine - created on first use
_engine = None
_async_session_maker = None


def get_engine():
    """Get or create the database engine"""
    global _engine

    if _engine is None:
        if postgres_settings.use_null_pool:
            _engine = create_async_engine(
                postgres_settings.database_url,
                poolclass=NullPool,
                pool_pre_ping=postgres_settings.pool_pre_ping,
                echo=False,
            )
        else:
            _engine = create_async_engine(
                postgres_settings.database_url,
                poolclass=AsyncAdaptedQueuePool,
                pool_size=postgres_settings.pool_size,
                max_overflow=postgres_settings.max_overflow,
                pool_pre_ping=postgres_settings.pool_pre_ping,
                pool_recycle=postgres_settings.pool_recycle,
                echo=False,
            )
        logger.info("Database engine created successfully")

    return _engine


def get_session_maker():
    """Get or create the session maker"""
    global _async_session_maker

    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    return _async_session_maker


async def seed_role_definitions(session: AsyncSession) -> int:
    """Insert the default role definitions that are not stored yet."""
    from app.requests.domain.workflow import default_role_definitions
    from .models import RoleDefinition as RoleDefinitionModel

    result = await session.execute(select(RoleDefinitionModel.name))
    existing = set(result.scalars().all())

    added = 0
    for definition in default_role_definitions():
        if definition.name in existing:
            continue
        session.add(
            RoleDefinitionModel(
                name=definition.name,
                permissions=json.dumps(sorted(definition.permissions)),
            )
        )
        added += 1
    return added


async def init_postgres_db() -> None:
    """
    Create all tables and seed the default role definitions.
    Called during application startup.
    """
    from . import models  # noqa: F401  registers the tables on Base.metadata

    engine = get_engine()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("PostgreSQL tables initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize PostgreSQL tables: {e}")
        raise

    async with get_session_maker()() as session:
        added = await seed_role_definitions(session)
        await session.commit()
    if added:
        logger.info(f"Seeded {added} default role definition(s)")


async def get_postgres_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function that provides a database session to routes.
    The session is rolled back on error and closed after the request completes.
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def close_postgres_db() -> None:
    """Close the database connection pool when the application shuts down."""
    global _engine, _async_session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_maker = None
        logger.info("PostgreSQL connection pool closed")
