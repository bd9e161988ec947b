"""Position bookkeeping for tasks and column order.

Positions are sparse: only the moved task changes, and display order always comes
from sorting. Nothing here relies on stored lists being pre-sorted.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from stageboard.board.domain import Board, Column, Task, utcnow
from stageboard.board.errors import InvariantViolation

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def sorted_columns(columns: Iterable[Column]) -> list[Column]:
  indexed = list(enumerate(columns))
  indexed.sort(key=lambda p: (p[1].order, p[1].created_at or _EPOCH, p[0]))
  return [c for _, c in indexed]


def sorted_tasks(tasks: Iterable[Task]) -> list[Task]:
  return sorted(tasks, key=lambda t: (t.position, t.id))


def first_column(board: Board) -> Column | None:
  cols = sorted_columns(board.columns)
  return cols[0] if cols else None


def next_position(board: Board, column_id: str) -> int:
  """Position for a new task: after the column's highest position."""
  return max((t.position for t in board.tasks if t.column_id == column_id), default=-1) + 1


def _column_count(board: Board, column_id: str, *, exclude_task_id: str | None = None) -> int:
  return sum(1 for t in board.tasks if t.column_id == column_id and t.id != exclude_task_id)


def next_column_order(board: Board) -> int:
  return max((c.order for c in board.columns), default=-1) + 1


def move_task(board: Board, task_id: str, target_column_id: str, target_position: int | None = None) -> Board:
  task = board.task(task_id)
  if task is None:
    raise InvariantViolation(f"Task {task_id} is not on board {board.id}")
  if board.column(target_column_id) is None:
    raise InvariantViolation(f"Column {target_column_id} is not on board {board.id}")
  if target_position is None:
    target_position = _column_count(board, target_column_id, exclude_task_id=task_id)
  if target_position < 0:
    raise InvariantViolation("target position must be >= 0")
  moved = task.model_copy(update={"column_id": target_column_id, "position": target_position, "updated_at": utcnow()})
  return board.replace_task(moved)


def reassign_column_tasks(board: Board, column_id: str) -> tuple[Board, str | None, list[Task]]:
  """Move every task of ``column_id`` to the lowest-order other column.

  Moved tasks are appended after the target's current maximum position, keeping their
  relative order. Returns the new board, the target column id and the moved tasks.
  """
  orphans = sorted_tasks(board.tasks_in(column_id))
  remaining = [c for c in sorted_columns(board.columns) if c.id != column_id]
  if not remaining:
    if orphans:
      raise InvariantViolation("Cannot delete the last column while it still has tasks")
    return board, None, []
  target = remaining[0]
  if not orphans:
    return board, target.id, []

  base = max((t.position for t in board.tasks_in(target.id)), default=-1) + 1
  now = utcnow()
  moved = {
    t.id: t.model_copy(update={"column_id": target.id, "position": base + idx, "updated_at": now})
    for idx, t in enumerate(orphans)
  }
  tasks = tuple(moved.get(t.id, t) for t in board.tasks)
  return board.model_copy(update={"tasks": tasks}), target.id, [moved[t.id] for t in orphans]


def reorder_columns(board: Board, column_ids: list[str]) -> Board:
  if len(column_ids) != len(set(column_ids)) or set(column_ids) != {c.id for c in board.columns}:
    raise InvariantViolation("column ids must list every column of the board exactly once")
  order = {cid: idx for idx, cid in enumerate(column_ids)}
  return board.model_copy(update={"columns": tuple(c.model_copy(update={"order": order[c.id]}) for c in board.columns)})


def reorder_tasks(board: Board, column_id: str, task_ids: list[str]) -> Board:
  if board.column(column_id) is None:
    raise InvariantViolation(f"Column {column_id} is not on board {board.id}")
  current = {t.id for t in board.tasks_in(column_id)}
  if len(task_ids) != len(set(task_ids)) or set(task_ids) != current:
    raise InvariantViolation("task ids must list every task of the column exactly once")
  pos = {tid: idx for idx, tid in enumerate(task_ids)}
  now = utcnow()
  return board.model_copy(
    update={
      "tasks": tuple(
        t.model_copy(update={"position": pos[t.id], "updated_at": now}) if t.id in pos else t for t in board.tasks
      )
    }
  )


def orphaned_tasks(board: Board) -> list[Task]:
  column_ids = {c.id for c in board.columns}
  return [t for t in board.tasks if t.column_id not in column_ids]
