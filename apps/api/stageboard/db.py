from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from stageboard.config import settings
from stageboard.models import Base

engine = create_async_engine(settings.database_url, future=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


def _ensure_sqlite_dir(database_url: str) -> None:
  url = make_url(database_url)
  if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)


async def init_db() -> None:
  _ensure_sqlite_dir(settings.database_url)
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
