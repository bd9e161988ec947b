from __future__ import annotations

from typing import Any

from stageboard.store.client import StoreApiError


class BoardError(RuntimeError):
  """Base for everything the board client surfaces to the UI."""

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message


class MaterializationError(BoardError):
  """A placeholder board/column could not be resolved to a canonical record."""


class InvariantViolation(BoardError):
  """Rejected locally; no store request was made."""


class StoreError(BoardError):
  """The store rejected a request or was unreachable. Safe to retry."""

  def __init__(self, message: str, *, operation: str, status_code: int = 0, details: dict[str, Any] | None = None) -> None:
    super().__init__(message)
    self.operation = operation
    self.status_code = status_code
    self.details = details or {}

  @classmethod
  def wrap(cls, exc: StoreApiError, *, operation: str) -> StoreError:
    return cls(f"{operation} failed: {exc.message}", operation=operation, status_code=exc.status_code, details=exc.details)
