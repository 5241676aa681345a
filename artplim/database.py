import logging

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from .config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": 60},
            poolclass=NullPool,  # avoid multiple pooled connections holding write locks
        )
    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.sql_echo)
async_session_factory = build_session_factory(engine)


async def get_session():
    async with async_session_factory() as session:
        yield session


async def create_schema(bind: AsyncEngine) -> None:
    from .models import company, user, financial_entry  # noqa: F401

    if bind.dialect.name == "sqlite":
        # Configure SQLite pragmas to reduce locking
        try:
            async with bind.connect() as conn:
                await conn.exec_driver_sql("PRAGMA journal_mode=WAL;")
        except OperationalError:
            # The database may be momentarily locked during reloader startup.
            logger.warning("Could not switch SQLite to WAL mode")

    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def init_db():
    await create_schema(engine)
