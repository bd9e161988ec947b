"""Translation between store wire records and the board domain model.

Store names (``projectId``, column ``position``, comment ``content``, nested
``columns[].tasks[]``, camelCase keys) stay inside this module.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping

from stageboard.board.domain import Attachment, Board, ChecklistItem, Column, Comment, Person, Task
from stageboard.schemas import (
  AttachmentOut,
  BoardOut,
  ChecklistItemOut,
  ColumnOut,
  CommentOut,
  TaskOut,
  UserRefOut,
  stage_slug,
)

# domain field -> wire field for task writes
_TASK_FIELDS = {
  "title": "title",
  "description": "description",
  "assignee_id": "assigneeId",
  "priority": "priority",
  "tags": "tags",
  "due_date": "dueDate",
  "position": "position",
  "column_id": "columnId",
}

_COLUMN_FIELDS = {
  "title": "title",
  "color": "color",
  "order": "position",
}


def _iso(value: datetime | None) -> str | None:
  return value.isoformat() if value is not None else None


def person_from_wire(u: UserRefOut | None) -> Person | None:
  if u is None:
    return None
  return Person(id=u.id, name=u.name or "", email=u.email, avatar=u.avatar)


def checklist_item_from_wire(i: ChecklistItemOut) -> ChecklistItem:
  return ChecklistItem(id=i.id, text=i.text or "", completed=bool(i.completed), assignee_id=i.assigneeId, due_date=i.dueDate)


def comment_from_wire(c: CommentOut) -> Comment:
  return Comment(
    id=c.id,
    text=c.content or "",
    author_id=c.authorId or (c.author.id if c.author else ""),
    author=person_from_wire(c.author),
    created_at=c.createdAt,
    updated_at=c.updatedAt,
  )


def attachment_from_wire(a: AttachmentOut) -> Attachment:
  return Attachment(id=a.id, name=a.name, url=a.url, type=a.type, uploaded_at=a.createdAt, uploaded_by=a.uploadedBy)


def task_from_wire(t: TaskOut, *, column_id: str | None = None) -> Task:
  return Task(
    id=t.id,
    column_id=t.columnId or column_id or "",
    title=t.title,
    description=t.description,
    assignee_id=t.assigneeId,
    assignee=person_from_wire(t.assignee),
    priority=t.priority or "medium",
    tags=tuple(t.tags or ()),
    due_date=t.dueDate,
    checklist=tuple(checklist_item_from_wire(i) for i in sorted(t.checklist, key=lambda i: i.position)),
    comments=tuple(comment_from_wire(c) for c in sorted(t.comments, key=lambda c: c.createdAt)),
    attachments=tuple(attachment_from_wire(a) for a in t.attachments),
    position=t.position or 0,
    created_at=t.createdAt,
    updated_at=t.updatedAt,
  )


def column_from_wire(c: ColumnOut) -> Column:
  return Column(
    id=c.id,
    title=c.title,
    stage=c.stage or stage_slug(c.title),
    order=c.position or 0,
    color=c.color,
    is_default=bool(c.isDefault),
    created_at=c.createdAt,
  )


def board_from_wire(b: BoardOut) -> Board:
  """Flatten the store's nested columns -> tasks into the board's task list."""
  tasks: list[Task] = []
  for c in b.columns:
    tasks.extend(task_from_wire(t, column_id=c.id) for t in c.tasks)
  return Board(
    id=b.id,
    owner_scope=b.projectId,
    title=b.title,
    columns=tuple(column_from_wire(c) for c in b.columns),
    tasks=tuple(tasks),
  )


def _wire_value(field: str, value: Any) -> Any:
  if field == "due_date":
    return _iso(value)
  if field == "tags":
    return list(value or [])
  return value


def task_create_payload(
  *,
  title: str,
  description: str | None,
  priority: str,
  position: int,
  tags: Iterable[str] = (),
  assignee_id: str | None = None,
  due_date: datetime | None = None,
) -> dict[str, Any]:
  return {
    "title": title,
    "description": description,
    "priority": priority,
    "position": position,
    "tags": list(tags),
    "assigneeId": assignee_id,
    "dueDate": _iso(due_date),
  }


def task_update_payload(updates: Mapping[str, Any]) -> dict[str, Any]:
  """Only fields present in ``updates`` are sent; ``checklist`` travels separately."""
  return {_TASK_FIELDS[k]: _wire_value(k, v) for k, v in updates.items() if k in _TASK_FIELDS}


def column_create_payload(*, title: str, order: int, color: str | None = None) -> dict[str, Any]:
  return {"title": title, "position": order, "color": color}


def column_update_payload(updates: Mapping[str, Any]) -> dict[str, Any]:
  return {_COLUMN_FIELDS[k]: v for k, v in updates.items() if k in _COLUMN_FIELDS}


def checklist_payload(items: Iterable[ChecklistItem]) -> list[dict[str, Any]]:
  return [
    {
      "id": i.id,
      "text": i.text,
      "completed": bool(i.completed),
      "assigneeId": i.assignee_id,
      "dueDate": _iso(i.due_date),
    }
    for i in items
  ]
