from sqlalchemy.ext.asyncio import create_async_engine,async_sessionmaker,AsyncSession
from sqlmodel import SQLModel
from gatehouse.config.settings import config_settings
from gatehouse.db.utils import _normalize_db_url
from gatehouse.schema import full_schema  # noqa: F401  registers tables on SQLModel.metadata

DATABASE_URL=_normalize_db_url(config_settings.DATABASE_URL)


def build_engine(url: str = DATABASE_URL, **kwargs):
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False, **kwargs)
    return create_async_engine(url, echo=False, pool_size=config_settings.DB_POOL_SIZE,
                               max_overflow=config_settings.DB_MAX_OVERFLOW, pool_pre_ping=True, **kwargs)


def build_session_maker(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine,class_=AsyncSession,expire_on_commit=False)


async def create_all_tables(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async_engine=build_engine()

async_session=build_session_maker(async_engine)
