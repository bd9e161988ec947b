"""Canonical vs placeholder identifiers.

The store assigns UUIDs (8-4-4-4-12 hex). Anything else the client holds is a
placeholder for a record that does not exist in the store yet: the scaffold board
(``default-board``, ``default-board:<project>``), its default columns
(``COL-default-<n>``) and draft tasks awaiting their first save.
"""

from __future__ import annotations

import re
import secrets

from stageboard.board.errors import MaterializationError

_CANONICAL_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_ORDINAL_RE = re.compile(r"^COL-default-(\d+)$")

SHARED_BOARD_ID = "default-board"
DEFAULT_COLUMN_PREFIX = "COL-default-"
DRAFT_TASK_PREFIX = "draft-"


def is_canonical(value: str | None) -> bool:
  return bool(value) and bool(_CANONICAL_RE.match(str(value)))


def is_placeholder(value: str | None) -> bool:
  return not is_canonical(value)


def require_canonical(value: str | None, what: str) -> str:
  if not is_canonical(value):
    raise MaterializationError(f"{what} id is not canonical after resolution: {value!r}")
  return str(value)


def placeholder_board_id(owner_scope: str | None) -> str:
  return SHARED_BOARD_ID if not owner_scope else f"{SHARED_BOARD_ID}:{owner_scope}"


def default_column_id(ordinal: int) -> str:
  return f"{DEFAULT_COLUMN_PREFIX}{ordinal}"


def placeholder_ordinal(value: str | None) -> int | None:
  m = _ORDINAL_RE.match(value or "")
  return int(m.group(1)) if m else None


def draft_task_id() -> str:
  return f"{DRAFT_TASK_PREFIX}{secrets.token_hex(6)}"


def local_column_id() -> str:
  return f"COL-{secrets.token_hex(6)}"
