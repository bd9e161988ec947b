from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal

from dateutil import parser as dateparser
from pydantic import BaseModel, Field
from pydantic import field_validator


Priority = Literal["low", "medium", "high", "urgent"]
AttachmentType = Literal["image", "document", "link"]


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    try:
      dt = dateparser.isoparse(s)
    except ValueError:
      return value
  else:
    return value

  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


def stage_slug(title: str) -> str:
  return re.sub(r"\s+", "_", (title or "").strip().lower())


class UserRefOut(BaseModel):
  id: str
  name: str = ""
  email: str | None = None
  avatar: str | None = None


class ChecklistItemOut(BaseModel):
  id: str
  taskId: str
  text: str
  completed: bool = False
  assigneeId: str | None = None
  dueDate: datetime | None = None
  position: int = 0

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class CommentOut(BaseModel):
  id: str
  taskId: str
  authorId: str
  author: UserRefOut | None = None
  content: str
  createdAt: datetime
  updatedAt: datetime | None = None

  @field_validator("createdAt", "updatedAt", mode="before")
  @classmethod
  def _ts_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class AttachmentOut(BaseModel):
  id: str
  taskId: str
  name: str
  url: str
  type: AttachmentType = "document"
  uploadedBy: str | None = None
  createdAt: datetime

  @field_validator("createdAt", mode="before")
  @classmethod
  def _ts_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskOut(BaseModel):
  id: str
  columnId: str
  title: str
  description: str | None = None
  assigneeId: str | None = None
  assignee: UserRefOut | None = None
  priority: Priority = "medium"
  tags: list[str] = []
  dueDate: datetime | None = None
  position: int = 0
  checklist: list[ChecklistItemOut] = []
  comments: list[CommentOut] = []
  attachments: list[AttachmentOut] = []
  createdAt: datetime
  updatedAt: datetime

  @field_validator("dueDate", "createdAt", "updatedAt", mode="before")
  @classmethod
  def _ts_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class ColumnOut(BaseModel):
  id: str
  boardId: str
  title: str
  stage: str
  position: int
  color: str | None = None
  isDefault: bool = False
  createdAt: datetime
  tasks: list[TaskOut] = []

  @field_validator("createdAt", mode="before")
  @classmethod
  def _ts_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class BoardOut(BaseModel):
  id: str
  projectId: str | None = None
  title: str
  description: str | None = None
  columns: list[ColumnOut] = []
  createdAt: datetime
  updatedAt: datetime

  @field_validator("createdAt", "updatedAt", mode="before")
  @classmethod
  def _ts_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class BoardCreateIn(BaseModel):
  projectId: str | None = None
  title: str = Field(min_length=1, max_length=200)
  description: str | None = None


class BoardUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=200)
  description: str | None = None


class ColumnCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=120)
  position: int | None = None
  color: str | None = None


class ColumnUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=120)
  position: int | None = None
  color: str | None = None


class ColumnReorderIn(BaseModel):
  columnIds: list[str]


class ColumnDeleteOut(BaseModel):
  ok: bool = True
  reassignedTasks: list[TaskOut] = []


class TaskCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=300)
  description: str | None = None
  assigneeId: str | None = None
  priority: Priority = "medium"
  tags: list[str] = []
  dueDate: datetime | None = None
  position: int | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=300)
  description: str | None = None
  assigneeId: str | None = None
  priority: Priority | None = None
  tags: list[str] | None = None
  dueDate: datetime | None = None
  position: int | None = None
  columnId: str | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskReorderIn(BaseModel):
  taskIds: list[str]


class CommentCreateIn(BaseModel):
  content: str = Field(min_length=1, max_length=20000)
  authorId: str = Field(min_length=1)


class ChecklistItemIn(BaseModel):
  # Client-side ids are accepted only if they already exist on the task.
  id: str | None = None
  text: str = Field(min_length=1, max_length=2000)
  completed: bool = False
  assigneeId: str | None = None
  dueDate: datetime | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class ChecklistReplaceIn(BaseModel):
  items: list[ChecklistItemIn]
