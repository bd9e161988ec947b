from __future__ import annotations

import uuid

from fastapi import Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stageboard.db import SessionLocal
from stageboard.models import Board, Column, Task


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


async def get_actor_id(x_actor_id: str | None = Header(default=None)) -> str | None:
  # Authentication lives upstream; the caller's id arrives as an opaque header.
  actor = (x_actor_id or "").strip()
  return actor or None


def _is_uuid(value: str) -> bool:
  try:
    uuid.UUID(str(value))
  except (TypeError, ValueError):
    return False
  return True


async def get_board_or_404(db: AsyncSession, board_id: str) -> Board:
  if not _is_uuid(board_id):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Board not found")
  res = await db.execute(select(Board).where(Board.id == board_id))
  b = res.scalar_one_or_none()
  if not b:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Board not found")
  return b


async def get_column_or_404(db: AsyncSession, column_id: str) -> Column:
  if not _is_uuid(column_id):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Column not found")
  res = await db.execute(select(Column).where(Column.id == column_id))
  c = res.scalar_one_or_none()
  if not c:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Column not found")
  return c


async def get_task_or_404(db: AsyncSession, task_id: str) -> Task:
  if not _is_uuid(task_id):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
  return t
