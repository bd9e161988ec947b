from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from stageboard.audit import board_audit_events, write_audit
from stageboard.constants import DEFAULT_COLUMNS
from stageboard.deps import get_actor_id, get_board_or_404, get_db
from stageboard.loaders import board_out
from stageboard.models import Attachment, Board, ChecklistItem, Column, Comment, Task, utcnow
from stageboard.schemas import BoardCreateIn, BoardOut, BoardUpdateIn, stage_slug

router = APIRouter(prefix="/boards", tags=["boards"])


def _scope(project_id: str | None) -> str | None:
  p = (project_id or "").strip()
  return p or None


async def _delete_board_everything(db: AsyncSession, *, board_id: str) -> None:
  task_ids = select(Task.id).where(Task.column_id.in_(select(Column.id).where(Column.board_id == board_id)))
  await db.execute(delete(Comment).where(Comment.task_id.in_(task_ids)))
  await db.execute(delete(ChecklistItem).where(ChecklistItem.task_id.in_(task_ids)))
  await db.execute(delete(Attachment).where(Attachment.task_id.in_(task_ids)))
  await db.execute(delete(Task).where(Task.column_id.in_(select(Column.id).where(Column.board_id == board_id))))
  await db.execute(delete(Column).where(Column.board_id == board_id))
  await db.execute(delete(Board).where(Board.id == board_id))


@router.get("", response_model=list[BoardOut])
async def list_boards(
  projectId: str | None = None,
  shared: bool = False,
  db: AsyncSession = Depends(get_db),
) -> list[BoardOut]:
  q = select(Board).order_by(Board.created_at.asc())
  if shared:
    q = q.where(Board.project_id.is_(None))
  elif _scope(projectId):
    q = q.where(Board.project_id == _scope(projectId))
  res = await db.execute(q)
  return [await board_out(db, b) for b in res.scalars().all()]


@router.post("", response_model=BoardOut)
async def create_board(
  payload: BoardCreateIn,
  actor_id: str | None = Depends(get_actor_id),
  db: AsyncSession = Depends(get_db),
) -> BoardOut:
  title = payload.title.strip()
  if not title:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
  scope = _scope(payload.projectId)
  # one board per scope; NULL (shared) is checked explicitly since UNIQUE ignores NULLs
  cond = Board.project_id.is_(None) if scope is None else Board.project_id == scope
  exists = await db.execute(select(Board.id).where(cond).limit(1))
  if exists.scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Board already exists for this scope")

  b = Board(project_id=scope, title=title, description=payload.description)
  db.add(b)
  await db.flush()

  for idx, (col_title, color) in enumerate(DEFAULT_COLUMNS):
    db.add(Column(board_id=b.id, title=col_title, stage=stage_slug(col_title), position=idx, color=color, is_default=True))

  await write_audit(
    db,
    event_type="board.created",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    actor_id=actor_id,
    payload={"title": b.title, "projectId": scope},
  )
  await db.commit()
  return await board_out(db, b)


@router.get("/{board_id}", response_model=BoardOut)
async def get_board(board_id: str, db: AsyncSession = Depends(get_db)) -> BoardOut:
  b = await get_board_or_404(db, board_id)
  return await board_out(db, b)


@router.patch("/{board_id}", response_model=BoardOut)
async def update_board(
  board_id: str,
  payload: BoardUpdateIn,
  actor_id: str | None = Depends(get_actor_id),
  db: AsyncSession = Depends(get_db),
) -> BoardOut:
  b = await get_board_or_404(db, board_id)
  if payload.title is not None:
    title = payload.title.strip()
    if not title:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title is required")
    b.title = title
  if payload.description is not None:
    b.description = payload.description
  b.updated_at = utcnow()
  await write_audit(
    db, event_type="board.updated", entity_type="Board", entity_id=b.id, board_id=b.id, actor_id=actor_id, payload={"title": b.title}
  )
  await db.commit()
  return await board_out(db, b)


@router.delete("/{board_id}")
async def delete_board(
  board_id: str,
  actor_id: str | None = Depends(get_actor_id),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await get_board_or_404(db, board_id)
  await _delete_board_everything(db, board_id=board_id)
  await write_audit(db, event_type="board.deleted", entity_type="Board", entity_id=board_id, board_id=board_id, actor_id=actor_id, payload={})
  await db.commit()
  return {"ok": True}


@router.get("/{board_id}/audit")
async def list_board_audit(board_id: str, limit: int = 100, db: AsyncSession = Depends(get_db)) -> list[dict]:
  await get_board_or_404(db, board_id)
  events = await board_audit_events(db, board_id=board_id, limit=limit)
  return [
    {
      "id": e.id,
      "eventType": e.event_type,
      "entityType": e.entity_type,
      "entityId": e.entity_id,
      "taskId": e.task_id,
      "actorId": e.actor_id,
      "payload": e.payload,
      "createdAt": e.created_at,
    }
    for e in events
  ]
