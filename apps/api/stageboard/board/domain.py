from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict

Priority = Literal["low", "medium", "high", "urgent"]


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


class _Frozen(BaseModel):
  model_config = ConfigDict(frozen=True)


class Person(_Frozen):
  id: str
  name: str = ""
  email: str | None = None
  avatar: str | None = None


class ChecklistItem(_Frozen):
  id: str
  text: str
  completed: bool = False
  assignee_id: str | None = None
  due_date: datetime | None = None


class Comment(_Frozen):
  id: str
  text: str
  author_id: str
  author: Person | None = None
  created_at: datetime
  updated_at: datetime | None = None


class Attachment(_Frozen):
  id: str
  name: str
  url: str
  type: Literal["image", "document", "link"] = "document"
  uploaded_at: datetime
  uploaded_by: str | None = None


class Column(_Frozen):
  id: str
  title: str
  stage: str
  order: int
  color: str | None = None
  is_default: bool = False
  created_at: datetime | None = None


class Task(_Frozen):
  id: str
  column_id: str
  title: str
  description: str | None = None
  assignee_id: str | None = None
  assignee: Person | None = None
  priority: Priority = "medium"
  tags: tuple[str, ...] = ()
  due_date: datetime | None = None
  checklist: tuple[ChecklistItem, ...] = ()
  comments: tuple[Comment, ...] = ()
  attachments: tuple[Attachment, ...] = ()
  position: int = 0
  created_at: datetime
  updated_at: datetime


class Board(_Frozen):
  id: str
  owner_scope: str | None = None
  title: str
  columns: tuple[Column, ...] = ()
  tasks: tuple[Task, ...] = ()

  def column(self, column_id: str) -> Column | None:
    return next((c for c in self.columns if c.id == column_id), None)

  def task(self, task_id: str) -> Task | None:
    return next((t for t in self.tasks if t.id == task_id), None)

  def tasks_in(self, column_id: str) -> list[Task]:
    return [t for t in self.tasks if t.column_id == column_id]

  def replace_task(self, task: Task) -> Board:
    return self.model_copy(update={"tasks": tuple(task if t.id == task.id else t for t in self.tasks)})

  def replace_column(self, column: Column) -> Board:
    return self.model_copy(update={"columns": tuple(column if c.id == column.id else c for c in self.columns)})

  def without_task(self, task_id: str) -> Board:
    return self.model_copy(update={"tasks": tuple(t for t in self.tasks if t.id != task_id)})


# Editable task fields accepted by BoardStore.update_task.
TASK_EDITABLE_FIELDS = frozenset({"title", "description", "assignee_id", "priority", "tags", "due_date", "checklist", "position", "column_id"})
COLUMN_EDITABLE_FIELDS = frozenset({"title", "color", "order"})
