from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{ROOT / 'data' / 'stageboard_test.db'}")

from stageboard.config import settings
from stageboard.db import SessionLocal, engine, init_db
from stageboard.main import app
from stageboard.metrics import api_metrics, store_call_metrics
from stageboard.models import AuditEvent, Attachment, Board, ChecklistItem, Column, Comment, Task, User
from stageboard.seed import DEMO_USERS, seed
from stageboard.store.client import StoreClient
from stageboard.board.store import BoardStore


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  await init_db()
  async with SessionLocal() as db:
    # Keep seeded users; wipe everything else for deterministic tests.
    await db.execute(delete(AuditEvent))
    await db.execute(delete(Comment))
    await db.execute(delete(ChecklistItem))
    await db.execute(delete(Attachment))
    await db.execute(delete(Task))
    await db.execute(delete(Column))
    await db.execute(delete(Board))
    keep = [email for email, _ in DEMO_USERS]
    await db.execute(delete(User).where(User.email.notin_(keep)))
    await db.commit()
  await seed()
  api_metrics.reset()
  store_call_metrics.reset()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests(anyio_backend: str) -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. stageboard_test.db)."
    )
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


class FlakyTransport(httpx.AsyncBaseTransport):
  """Routes requests to the in-process store, failing the ones ``fail_when`` matches."""

  def __init__(self, inner: httpx.AsyncBaseTransport) -> None:
    self.inner = inner
    self.fail_when: Callable[[httpx.Request], bool] = lambda request: False
    self.requests: list[tuple[str, str]] = []

  async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
    self.requests.append((request.method, request.url.path))
    if self.fail_when(request):
      return httpx.Response(503, json={"detail": "store unavailable"}, request=request)
    return await self.inner.handle_async_request(request)

  def writes(self) -> list[tuple[str, str]]:
    return [r for r in self.requests if r[0] != "GET"]


@pytest.fixture
def store_transport() -> FlakyTransport:
  return FlakyTransport(ASGITransport(app=app))


@pytest.fixture
async def actor_id() -> str:
  return await seeded_user_id("master@stageboard.local")


@pytest.fixture
def store_client(store_transport: FlakyTransport, actor_id: str) -> StoreClient:
  return StoreClient(base_url="http://localhost", actor_id=actor_id, transport=store_transport)


@pytest.fixture
def board_store(store_client: StoreClient) -> BoardStore:
  return BoardStore(store_client)


async def seeded_user_id(email: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == email))
    u = res.scalar_one()
    return u.id


async def board_row_count(project_id: str | None = None) -> int:
  async with SessionLocal() as db:
    cond = Board.project_id.is_(None) if project_id is None else Board.project_id == project_id
    res = await db.execute(select(Board.id).where(cond))
    return len(res.scalars().all())

