"""Turns scaffold boards and placeholder columns into canonical store records.

A board that exists only client-side is created in the store on the first write that
needs it. The store creates the default columns itself, so the column the caller was
targeting has to be matched against the canonical set afterwards.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from stageboard.board.domain import Board, Column
from stageboard.board.errors import MaterializationError, StoreError
from stageboard.board.ids import is_canonical, placeholder_ordinal, require_canonical
from stageboard.board.reorder import sorted_columns
from stageboard.board.wire import board_from_wire, column_from_wire
from stageboard.config import settings
from stageboard.store.client import StoreApiError, StoreClient

logger = logging.getLogger(__name__)


def resolve_column(canonical: Sequence[Column], *, column_id: str | None, title: str | None) -> Column:
  """Pick the canonical column standing in for a placeholder.

  Exact title, then case-insensitive title, then the ordinal encoded in a
  ``COL-default-<n>`` id, then the first column.
  """
  cols = sorted_columns(canonical)
  if not cols:
    raise MaterializationError("Store returned a board without columns")
  if title:
    for c in cols:
      if c.title == title:
        return c
    folded = title.casefold()
    for c in cols:
      if c.title.casefold() == folded:
        return c
  ordinal = placeholder_ordinal(column_id)
  if ordinal is not None and ordinal < len(cols):
    return cols[ordinal]
  logger.warning("column %r (%r) has no canonical match; falling back to first column %s", column_id, title, cols[0].id)
  return cols[0]


def column_mapping(local: Board, canonical: Sequence[Column]) -> dict[str, str]:
  """Map every local column id to its canonical id."""
  out: dict[str, str] = {}
  for c in local.columns:
    if is_canonical(c.id) and any(cc.id == c.id for cc in canonical):
      out[c.id] = c.id
    else:
      out[c.id] = resolve_column(canonical, column_id=c.id, title=c.title).id
  return out


class BoardMaterializer:
  def __init__(self, client: StoreClient, *, shared_title: str | None = None, project_title: str | None = None) -> None:
    self.client = client
    self.shared_title = shared_title or settings.shared_board_title
    self.project_title = project_title or settings.project_board_title
    self._locks: dict[str | None, asyncio.Lock] = {}
    # scope -> canonical board id, once known
    self._known: dict[str | None, str] = {}

  def _lock(self, scope: str | None) -> asyncio.Lock:
    lock = self._locks.get(scope)
    if lock is None:
      lock = self._locks[scope] = asyncio.Lock()
    return lock

  def _default_title(self, scope: str | None) -> str:
    return self.project_title if scope else self.shared_title

  async def materialize(self, board: Board, column_id: str | None = None) -> tuple[Board, str | None]:
    """Return ``(board, column_id)`` with both ids canonical.

    ``column_id`` may be None when only the board is needed. The returned board
    replaces the caller's record in place.
    """
    target = board.column(column_id) if column_id else None
    title = target.title if target else None

    async with self._lock(board.owner_scope):
      if is_canonical(board.id):
        if column_id is None or is_canonical(column_id):
          return board, column_id
        fresh = await self._fetch_columns(board.id)
        merged = self._adopt_columns(board, fresh)
        resolved = resolve_column(fresh, column_id=column_id, title=title)
      else:
        merged = await self._ensure_board(board)
        if column_id is None:
          return merged, None
        resolved = resolve_column(merged.columns, column_id=column_id, title=title)

    return merged, require_canonical(resolved.id, "column")

  async def _ensure_board(self, board: Board) -> Board:
    scope = board.owner_scope
    title = board.title or self._default_title(scope)
    board_id = self._known.get(scope)
    cached = board_id is not None
    if board_id is None:
      board_id = self._known[scope] = await self._create_or_adopt(scope, title)
    try:
      wire = await self.client.get_board(board_id)
    except StoreApiError as e:
      if not (cached and e.is_not_found):
        logger.warning("fetching materialized board %s failed: %s", board_id, e.message)
        raise StoreError.wrap(e, operation="getBoard") from e
      # the remembered board was deleted in the store
      logger.info("board %s for scope %r is gone, creating it again", board_id, scope)
      self._known.pop(scope, None)
      board_id = self._known[scope] = await self._create_or_adopt(scope, title)
      try:
        wire = await self.client.get_board(board_id)
      except StoreApiError as e2:
        raise StoreError.wrap(e2, operation="getBoard") from e2
    fresh = board_from_wire(wire)
    require_canonical(fresh.id, "board")
    logger.info("materialized board %s -> %s (%d columns)", board.id, fresh.id, len(fresh.columns))
    return fresh

  async def _create_or_adopt(self, scope: str | None, title: str) -> str:
    try:
      created = await self.client.create_board(project_id=scope, title=title)
      return created.id
    except StoreApiError as e:
      if not e.is_conflict:
        logger.warning("creating board for scope %r failed: %s", scope, e.message)
        raise StoreError.wrap(e, operation="createBoard") from e
    # someone else created the board for this scope first
    try:
      existing = await self.client.list_boards(scope)
    except StoreApiError as e:
      raise StoreError.wrap(e, operation="listBoards") from e
    if not existing:
      raise MaterializationError(f"Store reported a conflict for scope {scope!r} but lists no board")
    logger.info("adopting existing board %s for scope %r", existing[0].id, scope)
    return existing[0].id

  async def _fetch_columns(self, board_id: str) -> list[Column]:
    try:
      return [column_from_wire(c) for c in await self.client.list_columns(board_id)]
    except StoreApiError as e:
      raise StoreError.wrap(e, operation="listColumns") from e

  @staticmethod
  def _adopt_columns(board: Board, fresh: list[Column]) -> Board:
    """Swap local columns for the store's set and repoint tasks at canonical ids."""
    mapping = column_mapping(board, fresh)
    tasks = tuple(
      t.model_copy(update={"column_id": mapping[t.column_id]}) if t.column_id in mapping else t for t in board.tasks
    )
    return board.model_copy(update={"columns": tuple(fresh), "tasks": tasks})
