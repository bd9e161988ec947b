from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stageboard.audit import write_audit
from stageboard.deps import get_actor_id, get_board_or_404, get_column_or_404, get_db
from stageboard.loaders import column_out, tasks_out
from stageboard.models import Attachment, ChecklistItem, Column, Comment, Task, utcnow
from stageboard.schemas import ColumnCreateIn, ColumnDeleteOut, ColumnOut, ColumnReorderIn, ColumnUpdateIn, stage_slug

router = APIRouter(tags=["columns"])


@router.get("/boards/{board_id}/columns", response_model=list[ColumnOut])
async def list_columns(board_id: str, db: AsyncSession = Depends(get_db)) -> list[ColumnOut]:
  await get_board_or_404(db, board_id)
  res = await db.execute(select(Column).where(Column.board_id == board_id).order_by(Column.position.asc(), Column.created_at.asc()))
  return [column_out(c) for c in res.scalars().all()]


@router.post("/boards/{board_id}/columns", response_model=ColumnOut)
async def create_column(
  board_id: str,
  payload: ColumnCreateIn,
  actor_id: str | None = Depends(get_actor_id),
  db: AsyncSession = Depends(get_db),
) -> ColumnOut:
  await get_board_or_404(db, board_id)
  pos = payload.position
  if pos is None:
    res = await db.execute(select(func.max(Column.position)).where(Column.board_id == board_id))
    max_pos = res.scalar_one()
    pos = (max_pos + 1) if max_pos is not None else 0
  c = Column(
    board_id=board_id,
    title=payload.title.strip(),
    stage=stage_slug(payload.title),
    position=pos,
    color=payload.color,
    is_default=False,
  )
  db.add(c)
  await db.flush()
  await write_audit(
    db,
    event_type="column.created",
    entity_type="Column",
    entity_id=c.id,
    board_id=board_id,
    actor_id=actor_id,
    payload={"title": c.title, "position": c.position},
  )
  await db.commit()
  return column_out(c)


@router.patch("/columns/{column_id}", response_model=ColumnOut)
async def update_column(
  column_id: str,
  payload: ColumnUpdateIn,
  actor_id: str | None = Depends(get_actor_id),
  db: AsyncSession = Depends(get_db),
) -> ColumnOut:
  c = await get_column_or_404(db, column_id)
  if payload.title is not None:
    c.title = payload.title.strip()
    c.stage = stage_slug(c.title)
  if payload.position is not None:
    c.position = payload.position
  if payload.color is not None:
    c.color = payload.color
  c.updated_at = utcnow()

  await write_audit(
    db,
    event_type="column.updated",
    entity_type="Column",
    entity_id=c.id,
    board_id=c.board_id,
    actor_id=actor_id,
    payload={"title": c.title, "position": c.position, "color": c.color},
  )
  await db.commit()
  return column_out(c)


@router.delete("/columns/{column_id}", response_model=ColumnDeleteOut)
async def delete_column(
  column_id: str,
  reassignTo: str | None = None,
  actor_id: str | None = Depends(get_actor_id),
  db: AsyncSession = Depends(get_db),
) -> ColumnDeleteOut:
  c = await get_column_or_404(db, column_id)
  if c.is_default:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Default columns cannot be deleted")

  tres = await db.execute(select(Task).where(Task.column_id == column_id).order_by(Task.position.asc(), Task.id.asc()))
  orphans = list(tres.scalars().all())
  moved: list[Task] = []
  if orphans and reassignTo:
    target = await get_column_or_404(db, reassignTo)
    if target.board_id != c.board_id or target.id == c.id:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid reassignTo")
    mres = await db.execute(select(func.max(Task.position)).where(Task.column_id == target.id))
    max_pos = mres.scalar_one()
    base = (max_pos + 1) if max_pos is not None else 0
    now = utcnow()
    for idx, t in enumerate(orphans):
      t.column_id = target.id
      t.position = base + idx
      t.updated_at = now
      moved.append(t)
  elif orphans:
    # no target: tasks go with their column
    ids = [t.id for t in orphans]
    await db.execute(delete(Comment).where(Comment.task_id.in_(ids)))
    await db.execute(delete(ChecklistItem).where(ChecklistItem.task_id.in_(ids)))
    await db.execute(delete(Attachment).where(Attachment.task_id.in_(ids)))
    await db.execute(delete(Task).where(Task.id.in_(ids)))

  await db.flush()
  await db.execute(delete(Column).where(Column.id == column_id))
  await write_audit(
    db,
    event_type="column.deleted",
    entity_type="Column",
    entity_id=column_id,
    board_id=c.board_id,
    actor_id=actor_id,
    payload={"title": c.title, "reassignTo": reassignTo, "reassigned": len(moved), "cascaded": len(orphans) - len(moved)},
  )
  await db.commit()
  return ColumnDeleteOut(ok=True, reassignedTasks=await tasks_out(db, moved))


@router.post("/boards/{board_id}/columns/reorder", response_model=list[ColumnOut])
async def reorder_columns(
  board_id: str,
  payload: ColumnReorderIn,
  actor_id: str | None = Depends(get_actor_id),
  db: AsyncSession = Depends(get_db),
) -> list[ColumnOut]:
  await get_board_or_404(db, board_id)
  res = await db.execute(select(Column).where(Column.board_id == board_id))
  columns = {c.id: c for c in res.scalars().all()}
  if len(payload.columnIds) != len(set(payload.columnIds)) or set(payload.columnIds) != set(columns.keys()):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="columnIds must include all columns")
  for idx, column_id in enumerate(payload.columnIds):
    columns[column_id].position = idx
  await write_audit(
    db,
    event_type="columns.reordered",
    entity_type="Board",
    entity_id=board_id,
    board_id=board_id,
    actor_id=actor_id,
    payload={"columnIds": payload.columnIds},
  )
  await db.commit()
  return [column_out(columns[cid]) for cid in payload.columnIds]
