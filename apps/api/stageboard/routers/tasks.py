from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stageboard.audit import write_audit
from stageboard.deps import get_actor_id, get_column_or_404, get_db, get_task_or_404
from stageboard.loaders import task_out, tasks_out
from stageboard.models import Attachment, ChecklistItem, Column, Comment, Task, utcnow
from stageboard.schemas import (
  ChecklistReplaceIn,
  CommentCreateIn,
  CommentOut,
  TaskCreateIn,
  TaskOut,
  TaskReorderIn,
  TaskUpdateIn,
)

router = APIRouter(tags=["tasks"])


async def _board_id_of(db: AsyncSession, column_id: str) -> str:
  res = await db.execute(select(Column.board_id).where(Column.id == column_id))
  return res.scalar_one()


@router.post("/columns/{column_id}/tasks", response_model=TaskOut)
async def create_task(
  column_id: str,
  payload: TaskCreateIn,
  actor_id: str | None = Depends(get_actor_id),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  column = await get_column_or_404(db, column_id)

  pos = payload.position
  if pos is None:
    ores = await db.execute(select(func.max(Task.position)).where(Task.column_id == column.id))
    max_pos = ores.scalar_one()
    pos = (max_pos + 1) if max_pos is not None else 0
  t = Task(
    column_id=column.id,
    title=payload.title,
    description=payload.description,
    assignee_id=payload.assigneeId,
    priority=payload.priority,
    tags=list(payload.tags or []),
    due_date=payload.dueDate,
    position=pos,
  )
  db.add(t)
  await db.flush()
  await write_audit(
    db,
    event_type="task.created",
    entity_type="Task",
    entity_id=t.id,
    board_id=column.board_id,
    task_id=t.id,
    actor_id=actor_id,
    payload={"title": t.title, "columnId": t.column_id, "position": t.position},
  )
  await db.commit()
  return await task_out(db, t)


@router.get("/tasks/{task_id}", response_model=TaskOut)
async def get_task(task_id: str, db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  return await task_out(db, t)


@router.patch("/tasks/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: str,
  payload: TaskUpdateIn,
  actor_id: str | None = Depends(get_actor_id),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  board_id = await _board_id_of(db, t.column_id)
  fields_set = payload.model_fields_set

  if "columnId" in fields_set:
    if not payload.columnId:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="columnId is required")
    target = await get_column_or_404(db, payload.columnId)
    if target.board_id != board_id:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid columnId (must be on the same board)")

  changed: dict = {}
  mapping = [
    ("title", "title"),
    ("description", "description"),
    ("assignee_id", "assigneeId"),
    ("priority", "priority"),
    ("tags", "tags"),
    ("due_date", "dueDate"),
    ("position", "position"),
    ("column_id", "columnId"),
  ]
  for model_attr, field_name in mapping:
    if field_name in fields_set:
      val = getattr(payload, field_name)
      if field_name in ("title", "priority", "position", "tags") and val is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field_name} cannot be null")
      setattr(t, model_attr, list(val) if field_name == "tags" else val)
      if field_name == "description" and isinstance(val, str):
        changed[field_name] = val[:500]
      else:
        changed[field_name] = val
  t.updated_at = utcnow()

  await write_audit(
    db,
    event_type="task.moved" if "columnId" in changed else "task.updated",
    entity_type="Task",
    entity_id=t.id,
    board_id=board_id,
    task_id=t.id,
    actor_id=actor_id,
    payload={"changed": list(changed.keys()), "fields": changed},
  )
  await db.commit()
  return await task_out(db, t)


@router.delete("/tasks/{task_id}")
async def delete_task(
  task_id: str,
  actor_id: str | None = Depends(get_actor_id),
  db: AsyncSession = Depends(get_db),
) -> dict:
  t = await get_task_or_404(db, task_id)
  board_id = await _board_id_of(db, t.column_id)
  await db.execute(delete(Comment).where(Comment.task_id == task_id))
  await db.execute(delete(ChecklistItem).where(ChecklistItem.task_id == task_id))
  await db.execute(delete(Attachment).where(Attachment.task_id == task_id))
  await db.execute(delete(Task).where(Task.id == task_id))
  await write_audit(
    db,
    event_type="task.deleted",
    entity_type="Task",
    entity_id=task_id,
    board_id=board_id,
    actor_id=actor_id,
    payload={"title": t.title},
  )
  await db.commit()
  return {"ok": True}


@router.post("/columns/{column_id}/tasks/reorder", response_model=list[TaskOut])
async def reorder_tasks(
  column_id: str,
  payload: TaskReorderIn,
  actor_id: str | None = Depends(get_actor_id),
  db: AsyncSession = Depends(get_db),
) -> list[TaskOut]:
  column = await get_column_or_404(db, column_id)
  res = await db.execute(select(Task).where(Task.column_id == column.id))
  tasks = {t.id: t for t in res.scalars().all()}
  if len(payload.taskIds) != len(set(payload.taskIds)) or set(payload.taskIds) != set(tasks.keys()):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="taskIds must include all tasks of the column")
  now = utcnow()
  for idx, task_id in enumerate(payload.taskIds):
    tasks[task_id].position = idx
    tasks[task_id].updated_at = now
  await write_audit(
    db,
    event_type="tasks.reordered",
    entity_type="Column",
    entity_id=column.id,
    board_id=column.board_id,
    actor_id=actor_id,
    payload={"taskIds": payload.taskIds},
  )
  await db.commit()
  return await tasks_out(db, [tasks[tid] for tid in payload.taskIds])


@router.post("/tasks/{task_id}/comments", response_model=CommentOut)
async def create_comment(
  task_id: str,
  payload: CommentCreateIn,
  db: AsyncSession = Depends(get_db),
) -> CommentOut:
  t = await get_task_or_404(db, task_id)
  c = Comment(task_id=t.id, author_id=payload.authorId, content=payload.content)
  db.add(c)
  await db.flush()
  await write_audit(
    db,
    event_type="comment.created",
    entity_type="Comment",
    entity_id=c.id,
    board_id=await _board_id_of(db, t.column_id),
    task_id=t.id,
    actor_id=payload.authorId,
    payload={"content": payload.content[:500]},
  )
  await db.commit()
  out = await task_out(db, t)
  return next(x for x in out.comments if x.id == c.id)


@router.put("/tasks/{task_id}/checklist", response_model=TaskOut)
async def replace_checklist(
  task_id: str,
  payload: ChecklistReplaceIn,
  actor_id: str | None = Depends(get_actor_id),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  res = await db.execute(select(ChecklistItem).where(ChecklistItem.task_id == task_id))
  existing = {i.id: i for i in res.scalars().all()}

  keep: set[str] = set()
  for idx, item in enumerate(payload.items):
    row = existing.get(item.id or "")
    if row is None:
      # unknown or client-generated id: the store assigns a fresh one
      row = ChecklistItem(task_id=task_id)
      db.add(row)
    row.text = item.text.strip()
    row.completed = bool(item.completed)
    row.assignee_id = item.assigneeId
    row.due_date = item.dueDate
    row.position = idx
    if row.id:
      keep.add(row.id)

  stale = [iid for iid in existing if iid not in keep]
  if stale:
    await db.execute(delete(ChecklistItem).where(ChecklistItem.id.in_(stale)))
  t.updated_at = utcnow()
  await write_audit(
    db,
    event_type="checklist.replaced",
    entity_type="Task",
    entity_id=t.id,
    board_id=await _board_id_of(db, t.column_id),
    task_id=t.id,
    actor_id=actor_id,
    payload={"count": len(payload.items), "removed": len(stale)},
  )
  await db.commit()
  return await task_out(db, t)
