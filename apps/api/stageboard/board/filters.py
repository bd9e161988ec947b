from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict

from stageboard.board.domain import Board, Task, utcnow
from stageboard.board.reorder import sorted_tasks

DeadlineFilter = Literal["with", "without", "overdue", "upcoming"]


class TaskFilters(BaseModel):
  model_config = ConfigDict(frozen=True)

  search: str = ""
  assignee: str | None = None
  priority: str | None = None
  tags: str = ""
  deadline: DeadlineFilter | None = None


EMPTY_FILTERS = TaskFilters()


def is_active(filters: TaskFilters) -> bool:
  return bool(
    filters.search.strip()
    or (filters.assignee or "").strip()
    or (filters.priority or "").strip()
    or filters.tags.strip()
    or filters.deadline
  )


def _aware(d: datetime) -> datetime:
  return d if d.tzinfo is not None else d.replace(tzinfo=timezone.utc)


def _matches_deadline(task: Task, mode: DeadlineFilter, now: datetime) -> bool:
  if task.due_date is None:
    return mode == "without"
  if mode == "without":
    return False
  due = _aware(task.due_date)
  if mode == "overdue":
    return due < now
  if mode == "upcoming":
    return due >= now
  return True


def matches(task: Task, filters: TaskFilters, *, now: datetime | None = None) -> bool:
  q = filters.search.strip().lower()
  if q and q not in task.title.lower() and q not in (task.description or "").lower():
    return False
  if (filters.assignee or "").strip() and task.assignee_id != filters.assignee:
    return False
  if (filters.priority or "").strip() and task.priority != filters.priority:
    return False
  if filters.deadline:
    if not _matches_deadline(task, filters.deadline, _aware(now) if now else utcnow()):
      return False
  tag_q = filters.tags.strip().lower()
  if tag_q and not any(tag_q in tag.lower() for tag in task.tags):
    return False
  return True


def filter_column_tasks(
  board: Board | None, column_id: str, filters: TaskFilters = EMPTY_FILTERS, *, now: datetime | None = None
) -> list[Task]:
  """Tasks of ``column_id`` that pass every active filter, ordered by position.

  Never touches the board; clearing the filters yields the column's full list again.
  """
  if board is None or not column_id:
    return []
  return sorted_tasks(t for t in board.tasks_in(column_id) if matches(t, filters, now=now))
