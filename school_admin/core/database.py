from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from .config import settings
import logging

logger = logging.getLogger(__name__)


def async_database_url(url: str) -> str:
    """Point plain PostgreSQL URLs at the asyncpg driver"""
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return url.replace(scheme, "postgresql+asyncpg://", 1)
    return url


database_url = async_database_url(settings.database_url)

engine = create_async_engine(
    database_url,
    echo=False,
    poolclass=NullPool,
    pool_pre_ping=True,
)

if engine.dialect.name == "sqlite":
    # SQLite ignores FOR UPDATE. Taking the write lock when the transaction
    # opens serialises check-and-claim sequences the same way row locks do.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=True,
)

Base = declarative_base()


async def get_db():
    """Request-scoped session; rolled back if the handler fails"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database session error: {e}")
            await session.rollback()
            raise


async def create_tables():
    try:
        async with engine.begin() as conn:
            from ..models import Student, Group, Enrollment, User  # noqa: F401

            logger.info(f"Creating tables on {engine.dialect.name}...")
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables ready")
    except Exception as e:
        logger.error(f"Error creating database tables: {e}")
        raise


async def close_db():
    try:
        await engine.dispose()
        logger.info("Database engine disposed")
    except Exception as e:
        logger.error(f"Error disposing database engine: {e}")
