"""Optimistic board state kept in sync with the canonical store.

``BoardStore`` owns the local board snapshots. Every mutation is applied locally first,
sent to the store, and then replaced by the store's record. When the store call fails,
only the entities that mutation touched are put back and the error is raised; other
mutations that finished in the meantime keep their results.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from stageboard.board import reorder
from stageboard.board.domain import (
  COLUMN_EDITABLE_FIELDS,
  TASK_EDITABLE_FIELDS,
  Board,
  Column,
  Comment,
  Task,
  utcnow,
)
from stageboard.board.errors import BoardError, InvariantViolation, StoreError
from stageboard.board.filters import EMPTY_FILTERS, TaskFilters, filter_column_tasks, is_active
from stageboard.board.ids import (
  default_column_id,
  draft_task_id,
  is_canonical,
  is_placeholder,
  local_column_id,
  placeholder_board_id,
  require_canonical,
)
from stageboard.board.materializer import BoardMaterializer, column_mapping
from stageboard.board.wire import (
  board_from_wire,
  checklist_payload,
  column_create_payload,
  column_from_wire,
  column_update_payload,
  comment_from_wire,
  task_create_payload,
  task_from_wire,
  task_update_payload,
)
from stageboard.config import settings
from stageboard.constants import DEFAULT_COLUMNS, DEFAULT_PRIORITY
from stageboard.schemas import stage_slug
from stageboard.store.client import StoreApiError, StoreClient

logger = logging.getLogger(__name__)

_TASK_CREATE_FIELDS = frozenset({"assignee_id", "priority", "tags", "due_date"})


def scaffold_board(owner_scope: str | None, title: str | None = None) -> Board:
  """Client-side board used until the store has one for ``owner_scope``."""
  default_title = settings.project_board_title if owner_scope else settings.shared_board_title
  return Board(
    id=placeholder_board_id(owner_scope),
    owner_scope=owner_scope,
    title=title or default_title,
    columns=tuple(
      Column(
        id=default_column_id(idx),
        title=col_title,
        stage=stage_slug(col_title),
        order=idx,
        color=color,
        is_default=True,
      )
      for idx, (col_title, color) in enumerate(DEFAULT_COLUMNS)
    ),
  )


def _restored(current: Iterable[Any], before: Mapping[str, Any]) -> tuple:
  # Put back the pre-mutation version of each touched entity (None means it did not exist).
  out: list[Any] = []
  seen: set[str] = set()
  for item in current:
    if item.id in before:
      seen.add(item.id)
      if before[item.id] is not None:
        out.append(before[item.id])
    else:
      out.append(item)
  out.extend(v for k, v in before.items() if k not in seen and v is not None)
  return tuple(out)


class BoardStore:
  def __init__(
    self,
    client: StoreClient,
    *,
    actor_id: str | None = None,
    materializer: BoardMaterializer | None = None,
  ) -> None:
    self.client = client
    self.actor_id = actor_id or client.actor_id
    self.materializer = materializer or BoardMaterializer(client)
    self._boards: list[Board] = []
    self._current: str | None = None
    self._filters: TaskFilters = EMPTY_FILTERS

  # read side

  @property
  def boards(self) -> tuple[Board, ...]:
    return tuple(self._boards)

  @property
  def current_board(self) -> Board | None:
    for b in self._boards:
      if b.id == self._current:
        return b
    return self._boards[0] if self._boards else None

  @property
  def filters(self) -> TaskFilters:
    return self._filters

  @property
  def has_active_filters(self) -> bool:
    return is_active(self._filters)

  def filtered_tasks(self, column_id: str, *, now=None) -> list[Task]:
    return filter_column_tasks(self.current_board, column_id, self._filters, now=now)

  def set_search(self, query: str) -> None:
    self._filters = self._filters.model_copy(update={"search": query or ""})

  def set_filters(self, **updates: Any) -> None:
    unknown = set(updates) - set(TaskFilters.model_fields)
    if unknown:
      raise InvariantViolation(f"Unknown filters: {', '.join(sorted(unknown))}")
    try:
      self._filters = TaskFilters.model_validate({**self._filters.model_dump(), **updates})
    except ValidationError as e:
      raise InvariantViolation(f"Invalid filter value: {e.errors()[0].get('msg')}") from e

  def clear_filters(self) -> None:
    self._filters = EMPTY_FILTERS

  # snapshot plumbing

  def _require_board(self) -> Board:
    board = self.current_board
    if board is None:
      raise BoardError("No board loaded")
    return board

  def _put(self, board: Board, *, replacing: str | None = None) -> None:
    """Replace the board record in its slot; appends only for a new scope."""
    for key in (replacing, board.id):
      if key is None:
        continue
      for idx, b in enumerate(self._boards):
        if b.id == key:
          self._boards[idx] = board
          if self._current == key:
            self._current = board.id
          return
    self._boards.append(board)

  def _board(self, board_id: str) -> Board | None:
    return next((b for b in self._boards if b.id == board_id), None)

  def _restore(self, board_id: str, *, tasks: Mapping[str, Task | None] | None = None, columns: Mapping[str, Column | None] | None = None) -> None:
    board = self._board(board_id)
    if board is None:
      return
    update: dict[str, tuple] = {}
    if tasks:
      update["tasks"] = _restored(board.tasks, tasks)
    if columns:
      update["columns"] = _restored(board.columns, columns)
    if update:
      self._put(board.model_copy(update=update))
      logger.info("rolled back %d task(s), %d column(s) on board %s", len(tasks or {}), len(columns or {}), board_id)

  def _merge_task(self, board_id: str, task: Task, *, replacing: str | None = None) -> Task:
    board = self._board(board_id)
    if board is None:
      return task
    key = replacing if replacing and board.task(replacing) is not None else task.id
    if board.task(key) is None:
      tasks = board.tasks + (task,)
    else:
      tasks = tuple(task if t.id == key else t for t in board.tasks)
    self._put(board.model_copy(update={"tasks": tasks}))
    return task

  def _merge_column(self, board_id: str, column: Column, *, replacing: str | None = None) -> Column:
    board = self._board(board_id)
    if board is None:
      return column
    key = replacing if replacing and board.column(replacing) is not None else column.id
    if board.column(key) is None:
      columns = board.columns + (column,)
    else:
      columns = tuple(column if c.id == key else c for c in board.columns)
    tasks = board.tasks
    if key != column.id:
      tasks = tuple(t.model_copy(update={"column_id": column.id}) if t.column_id == key else t for t in tasks)
    self._put(board.model_copy(update={"columns": columns, "tasks": tasks}))
    return column

  def _store_failed(self, e: StoreApiError, operation: str) -> StoreError:
    logger.warning("%s failed (%s): %s", operation, e.status_code, e.message)
    return StoreError.wrap(e, operation=operation)

  def _adopt(self, old: Board, fresh: Board) -> Board:
    # A concurrent write may have materialized this scope already; keep its local state.
    if fresh.id != old.id:
      existing = self._board(fresh.id)
      if existing is not None:
        return existing
    self._put(fresh, replacing=old.id)
    return fresh

  async def _canonical_board(self) -> Board:
    board = self._require_board()
    if is_canonical(board.id):
      return board
    fresh, _ = await self.materializer.materialize(board)
    return self._adopt(board, fresh)

  async def _canonical_column(self, column_id: str) -> tuple[Board, str]:
    board = self._require_board()
    if board.column(column_id) is None:
      raise InvariantViolation(f"Column {column_id} is not on board {board.id}")
    if is_canonical(board.id) and is_canonical(column_id):
      return board, column_id
    fresh, resolved = await self.materializer.materialize(board, column_id)
    return self._adopt(board, fresh), require_canonical(resolved, "column")

  @staticmethod
  def _saved_task(board: Board, task_id: str) -> Task:
    task = board.task(task_id)
    if task is None:
      raise InvariantViolation(f"Task {task_id} is not on board {board.id}")
    if is_placeholder(task.id):
      raise InvariantViolation(f"Task {task_id} has not been saved yet")
    return task

  # loading

  async def load(self, owner_scope: str | None = None) -> Board:
    """Fetch the board for ``owner_scope``; scaffold one locally when the store has none."""
    try:
      wire = await self.client.list_boards(owner_scope)
    except StoreApiError as e:
      raise self._store_failed(e, "listBoards") from e
    board = board_from_wire(wire[0]) if wire else scaffold_board(owner_scope)
    if not wire:
      logger.info("no stored board for scope %r, using scaffold %s", owner_scope, board.id)
    existing = next((b for b in self._boards if b.owner_scope == owner_scope), None)
    self._put(board, replacing=existing.id if existing else None)
    self._current = board.id
    return board

  # columns

  async def add_column(self, title: str, color: str | None = None) -> Column:
    title = (title or "").strip()
    if not title:
      raise InvariantViolation("Column title is required")
    board = await self._canonical_board()
    local = Column(
      id=local_column_id(),
      title=title,
      stage=stage_slug(title),
      order=reorder.next_column_order(board),
      color=color,
      created_at=utcnow(),
    )
    self._put(board.model_copy(update={"columns": board.columns + (local,)}))
    try:
      out = await self.client.create_column(board.id, column_create_payload(title=title, order=local.order, color=color))
    except StoreApiError as e:
      self._restore(board.id, columns={local.id: None})
      raise self._store_failed(e, "createColumn") from e
    return self._merge_column(board.id, column_from_wire(out), replacing=local.id)

  async def update_column(self, column_id: str, updates: Mapping[str, Any]) -> Column:
    unknown = set(updates) - COLUMN_EDITABLE_FIELDS
    if unknown:
      raise InvariantViolation(f"Column fields are not editable: {', '.join(sorted(unknown))}")
    if "title" in updates and not (updates["title"] or "").strip():
      raise InvariantViolation("Column title is required")
    board, cid = await self._canonical_column(column_id)
    before = board.column(cid)
    if before is None:
      raise InvariantViolation(f"Column {cid} is not on board {board.id}")
    changes = dict(updates)
    if "title" in changes:
      changes["title"] = changes["title"].strip()
      changes["stage"] = stage_slug(changes["title"])
    self._put(board.replace_column(before.model_copy(update=changes)))
    try:
      out = await self.client.update_column(cid, column_update_payload(changes))
    except StoreApiError as e:
      self._restore(board.id, columns={cid: before})
      raise self._store_failed(e, "updateColumn") from e
    return self._merge_column(board.id, column_from_wire(out))

  async def delete_column(self, column_id: str) -> list[Task]:
    """Delete a non-default column; its tasks move to the lowest-order remaining column.

    Returns the moved tasks as the store saved them.
    """
    board = self._require_board()
    column = board.column(column_id)
    if column is None:
      raise InvariantViolation(f"Column {column_id} is not on board {board.id}")
    if column.is_default:
      raise InvariantViolation(f"Default column {column.title!r} cannot be deleted")

    board, cid = await self._canonical_column(column_id)
    before_col = board.column(cid)
    moved_board, target_id, moved = reorder.reassign_column_tasks(board, cid)
    if target_id is not None:
      require_canonical(target_id, "column")
    before_tasks = {t.id: board.task(t.id) for t in moved}
    self._put(moved_board.model_copy(update={"columns": tuple(c for c in moved_board.columns if c.id != cid)}))

    try:
      out = await self.client.delete_column(cid, reassign_to=target_id)
    except StoreApiError as e:
      self._restore(board.id, tasks=before_tasks, columns={cid: before_col})
      raise self._store_failed(e, "deleteColumn") from e

    saved = [self._merge_task(board.id, task_from_wire(t)) for t in out.reassignedTasks]
    logger.info("deleted column %s, reassigned %d task(s) to %s", cid, len(saved), target_id)
    return saved

  async def reorder_columns(self, column_ids: list[str]) -> Board:
    board = self._require_board()
    reorder.reorder_columns(board, column_ids)
    if is_placeholder(board.id) or any(is_placeholder(cid) for cid in column_ids):
      old = board
      fresh, _ = await self.materializer.materialize(old, next((c for c in column_ids if is_placeholder(c)), None))
      board = self._adopt(old, fresh)
      mapping = column_mapping(old, board.columns)
      column_ids = [mapping[cid] for cid in column_ids]
    reordered = reorder.reorder_columns(board, column_ids)
    before = {c.id: c for c in board.columns}
    self._put(reordered)
    try:
      out = await self.client.reorder_columns(board.id, column_ids)
    except StoreApiError as e:
      self._restore(board.id, columns=before)
      raise self._store_failed(e, "reorderColumns") from e
    for c in out:
      self._merge_column(board.id, column_from_wire(c))
    return self._require_board()

  # tasks

  async def add_task(self, column_id: str, title: str, description: str | None = None, **fields: Any) -> Task:
    title = (title or "").strip()
    if not title:
      raise InvariantViolation("Task title is required")
    unknown = set(fields) - _TASK_CREATE_FIELDS
    if unknown:
      raise InvariantViolation(f"Unknown task fields: {', '.join(sorted(unknown))}")
    board = self._require_board()
    if not board.columns:
      raise InvariantViolation("Board has no columns")

    board, cid = await self._canonical_column(column_id)
    now = utcnow()
    try:
      draft = Task(
        id=draft_task_id(),
        column_id=cid,
        title=title,
        description=description,
        assignee_id=fields.get("assignee_id"),
        priority=fields.get("priority") or DEFAULT_PRIORITY,
        tags=tuple(fields.get("tags") or ()),
        due_date=fields.get("due_date"),
        position=reorder.next_position(board, cid),
        created_at=now,
        updated_at=now,
      )
    except ValidationError as e:
      raise InvariantViolation(f"Invalid task: {e.errors()[0].get('msg')}") from e
    self._put(board.model_copy(update={"tasks": board.tasks + (draft,)}))

    payload = task_create_payload(
      title=draft.title,
      description=draft.description,
      priority=draft.priority,
      position=draft.position,
      tags=draft.tags,
      assignee_id=draft.assignee_id,
      due_date=draft.due_date,
    )
    try:
      out = await self.client.create_task(cid, payload)
    except StoreApiError as e:
      self._restore(board.id, tasks={draft.id: None})
      raise self._store_failed(e, "createTask") from e
    return self._merge_task(board.id, task_from_wire(out), replacing=draft.id)

  async def update_task(self, task_id: str, updates: Mapping[str, Any]) -> Task:
    """Patch task fields. A ``checklist`` update is written with a second request."""
    unknown = set(updates) - TASK_EDITABLE_FIELDS
    if unknown:
      raise InvariantViolation(f"Task fields are not editable: {', '.join(sorted(unknown))}")
    board = self._require_board()
    before = self._saved_task(board, task_id)
    changes = dict(updates)
    if "column_id" in changes and changes["column_id"] != before.column_id:
      board, changes["column_id"] = await self._canonical_column(changes["column_id"])
    try:
      updated = Task.model_validate({**before.model_dump(), **changes, "updated_at": utcnow()})
    except ValidationError as e:
      raise InvariantViolation(f"Invalid task update: {e.errors()[0].get('msg')}") from e
    if not updated.title.strip():
      raise InvariantViolation("Task title is required")

    self._put(board.replace_task(updated))
    out = None
    fields = task_update_payload({k: getattr(updated, k) for k in changes})
    try:
      if fields:
        out = await self.client.update_task(task_id, fields)
    except StoreApiError as e:
      self._restore(board.id, tasks={task_id: before})
      raise self._store_failed(e, "updateTask") from e
    if "checklist" in changes:
      try:
        out = await self.client.replace_checklist(task_id, checklist_payload(updated.checklist))
      except StoreApiError as e:
        if out is None:
          self._restore(board.id, tasks={task_id: before})
        else:
          # the field patch is saved; only the checklist goes back
          self._merge_task(board.id, task_from_wire(out))
        raise self._store_failed(e, "replaceChecklist") from e
    if out is None:
      return updated
    return self._merge_task(board.id, task_from_wire(out))

  async def move_task(self, task_id: str, target_column_id: str, target_position: int | None = None) -> Task:
    board = self._require_board()
    before = self._saved_task(board, task_id)
    # validates the target before any materialization or store call
    reorder.move_task(board, task_id, target_column_id, target_position)

    board, cid = await self._canonical_column(target_column_id)
    moved_board = reorder.move_task(board, task_id, cid, target_position)
    moved = moved_board.task(task_id)
    self._put(moved_board)
    try:
      out = await self.client.update_task(task_id, task_update_payload({"column_id": moved.column_id, "position": moved.position}))
    except StoreApiError as e:
      self._restore(board.id, tasks={task_id: before})
      raise self._store_failed(e, "moveTask") from e
    return self._merge_task(board.id, task_from_wire(out))

  async def reorder_tasks(self, column_id: str, task_ids: list[str]) -> list[Task]:
    board = self._require_board()
    reordered = reorder.reorder_tasks(board, column_id, task_ids)
    for tid in task_ids:
      self._saved_task(board, tid)
    require_canonical(column_id, "column")
    before = {t.id: t for t in board.tasks_in(column_id)}
    self._put(reordered)
    try:
      out = await self.client.reorder_tasks(column_id, task_ids)
    except StoreApiError as e:
      self._restore(board.id, tasks=before)
      raise self._store_failed(e, "reorderTasks") from e
    return [self._merge_task(board.id, task_from_wire(t)) for t in out]

  async def delete_task(self, task_id: str) -> None:
    board = self._require_board()
    before = self._saved_task(board, task_id)
    self._put(board.without_task(task_id))
    try:
      await self.client.delete_task(task_id)
    except StoreApiError as e:
      self._restore(board.id, tasks={task_id: before})
      raise self._store_failed(e, "deleteTask") from e

  async def add_comment(self, task_id: str, text: str) -> Comment:
    text = (text or "").strip()
    if not text:
      raise InvariantViolation("Comment text is required")
    if not self.actor_id:
      raise InvariantViolation("Commenting requires a current user")
    board = self._require_board()
    before = self._saved_task(board, task_id)
    draft = Comment(id=draft_task_id(), text=text, author_id=self.actor_id, created_at=utcnow())
    self._put(board.replace_task(before.model_copy(update={"comments": before.comments + (draft,)})))
    try:
      out = await self.client.add_comment(task_id, content=text, author_id=self.actor_id)
    except StoreApiError as e:
      self._restore(board.id, tasks={task_id: before})
      raise self._store_failed(e, "addComment") from e

    saved = comment_from_wire(out)
    current = self._board(board.id)
    task = current.task(task_id) if current else None
    if task is not None:
      comments = tuple(saved if c.id == draft.id else c for c in task.comments)
      self._merge_task(board.id, task.model_copy(update={"comments": comments}))
    return saved
