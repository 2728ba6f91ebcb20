# db/session.py
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from libs.config import Settings


def build_session_factory(settings: Settings) -> tuple[AsyncEngine, async_sessionmaker]:
    engine = create_async_engine(
        settings.database_url_async,
        pool_size=10, echo=False,
    )
    return engine, async_sessionmaker(engine, expire_on_commit=False)
