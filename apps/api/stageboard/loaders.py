from __future__ import annotations

from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stageboard.models import Attachment, Board, ChecklistItem, Column, Comment, Task, User
from stageboard.schemas import (
  AttachmentOut,
  BoardOut,
  ChecklistItemOut,
  ColumnOut,
  CommentOut,
  TaskOut,
  UserRefOut,
)


def _user_ref(u: User | None) -> UserRefOut | None:
  if u is None:
    return None
  return UserRefOut(id=u.id, name=u.name, email=u.email, avatar=u.avatar)


def column_out(c: Column, tasks: list[TaskOut] | None = None) -> ColumnOut:
  return ColumnOut(
    id=c.id,
    boardId=c.board_id,
    title=c.title,
    stage=c.stage,
    position=c.position,
    color=c.color,
    isDefault=bool(c.is_default),
    createdAt=c.created_at,
    tasks=tasks or [],
  )


async def _users_by_id(db: AsyncSession, ids: set[str]) -> dict[str, User]:
  ids = {i for i in ids if i}
  if not ids:
    return {}
  res = await db.execute(select(User).where(User.id.in_(ids)))
  return {u.id: u for u in res.scalars().all()}


async def tasks_out(db: AsyncSession, tasks: list[Task]) -> list[TaskOut]:
  """Build eager task records: assignee, checklist, comments with author, attachments."""
  if not tasks:
    return []
  task_ids = [t.id for t in tasks]

  cres = await db.execute(
    select(ChecklistItem).where(ChecklistItem.task_id.in_(task_ids)).order_by(ChecklistItem.position.asc(), ChecklistItem.created_at.asc())
  )
  checklist: dict[str, list[ChecklistItem]] = defaultdict(list)
  for i in cres.scalars().all():
    checklist[i.task_id].append(i)

  mres = await db.execute(select(Comment).where(Comment.task_id.in_(task_ids)).order_by(Comment.created_at.asc()))
  comments: dict[str, list[Comment]] = defaultdict(list)
  for c in mres.scalars().all():
    comments[c.task_id].append(c)

  ares = await db.execute(select(Attachment).where(Attachment.task_id.in_(task_ids)).order_by(Attachment.created_at.asc()))
  attachments: dict[str, list[Attachment]] = defaultdict(list)
  for a in ares.scalars().all():
    attachments[a.task_id].append(a)

  people = {t.assignee_id for t in tasks if t.assignee_id}
  for rows in comments.values():
    people.update(c.author_id for c in rows)
  users = await _users_by_id(db, people)

  out: list[TaskOut] = []
  for t in tasks:
    out.append(
      TaskOut(
        id=t.id,
        columnId=t.column_id,
        title=t.title,
        description=t.description,
        assigneeId=t.assignee_id,
        assignee=_user_ref(users.get(t.assignee_id or "")),
        priority=t.priority,
        tags=list(t.tags or []),
        dueDate=t.due_date,
        position=t.position,
        checklist=[
          ChecklistItemOut(
            id=i.id,
            taskId=i.task_id,
            text=i.text,
            completed=bool(i.completed),
            assigneeId=i.assignee_id,
            dueDate=i.due_date,
            position=i.position,
          )
          for i in checklist[t.id]
        ],
        comments=[
          CommentOut(
            id=c.id,
            taskId=c.task_id,
            authorId=c.author_id,
            author=_user_ref(users.get(c.author_id)),
            content=c.content,
            createdAt=c.created_at,
            updatedAt=c.updated_at,
          )
          for c in comments[t.id]
        ],
        attachments=[
          AttachmentOut(
            id=a.id,
            taskId=a.task_id,
            name=a.name,
            url=a.url,
            type=a.type,
            uploadedBy=a.uploaded_by,
            createdAt=a.created_at,
          )
          for a in attachments[t.id]
        ],
        createdAt=t.created_at,
        updatedAt=t.updated_at,
      )
    )
  return out


async def task_out(db: AsyncSession, t: Task) -> TaskOut:
  return (await tasks_out(db, [t]))[0]


async def board_out(db: AsyncSession, b: Board) -> BoardOut:
  cres = await db.execute(select(Column).where(Column.board_id == b.id).order_by(Column.position.asc(), Column.created_at.asc()))
  columns = cres.scalars().all()
  by_column: dict[str, list[TaskOut]] = defaultdict(list)
  if columns:
    tres = await db.execute(
      select(Task).where(Task.column_id.in_([c.id for c in columns])).order_by(Task.position.asc(), Task.id.asc())
    )
    for t in await tasks_out(db, list(tres.scalars().all())):
      by_column[t.columnId].append(t)
  return BoardOut(
    id=b.id,
    projectId=b.project_id,
    title=b.title,
    description=b.description,
    columns=[column_out(c, by_column[c.id]) for c in columns],
    createdAt=b.created_at,
    updatedAt=b.updated_at,
  )
