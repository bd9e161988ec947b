from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stageboard.models import AuditEvent


async def write_audit(
  db: AsyncSession,
  *,
  event_type: str,
  entity_type: str,
  entity_id: str | None,
  board_id: str | None = None,
  task_id: str | None = None,
  actor_id: str | None = None,
  payload: dict[str, Any] | None = None,
) -> None:
  db.add(
    AuditEvent(
      board_id=board_id,
      task_id=task_id,
      actor_id=actor_id,
      event_type=event_type,
      entity_type=entity_type,
      entity_id=entity_id,
      payload=jsonable_encoder(payload or {}),
    )
  )


async def board_audit_events(db: AsyncSession, *, board_id: str, limit: int = 100) -> list[AuditEvent]:
  res = await db.execute(
    select(AuditEvent)
    .where(AuditEvent.board_id == board_id)
    .order_by(AuditEvent.created_at.desc())
    .limit(max(1, min(int(limit), 500)))
  )
  return list(res.scalars().all())
