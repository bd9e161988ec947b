from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  email: Mapped[str | None] = mapped_column(String, nullable=True, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  avatar: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Board(Base):
  __tablename__ = "kanban_boards"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  # NULL project_id is the shared board; at most one board per project_id.
  project_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Column(Base):
  __tablename__ = "kanban_columns"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("kanban_boards.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  stage: Mapped[str] = mapped_column(String, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  color: Mapped[str | None] = mapped_column(String, nullable=True)
  is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "kanban_tasks"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  column_id: Mapped[str] = mapped_column(String(36), ForeignKey("kanban_columns.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  assignee_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  priority: Mapped[str] = mapped_column(String, nullable=False, default="medium")
  tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
  due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class ChecklistItem(Base):
  __tablename__ = "checklist_items"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("kanban_tasks.id"), nullable=False, index=True)
  text: Mapped[str] = mapped_column(Text, nullable=False)
  completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  assignee_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Comment(Base):
  __tablename__ = "task_comments"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("kanban_tasks.id"), nullable=False, index=True)
  # Opaque current-user id; may not have a users row.
  author_id: Mapped[str] = mapped_column(String, nullable=False)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Attachment(Base):
  __tablename__ = "task_attachments"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(String(36), ForeignKey("kanban_tasks.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  url: Mapped[str] = mapped_column(String, nullable=False)
  type: Mapped[str] = mapped_column(String, nullable=False, default="document")
  uploaded_by: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
  task_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  actor_id: Mapped[str | None] = mapped_column(String, nullable=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
