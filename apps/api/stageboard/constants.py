from __future__ import annotations

# (title, color) in display order; the store creates these for every new board.
DEFAULT_COLUMNS: list[tuple[str, str]] = [
  ("К выполнению", "#6b7280"),
  ("В работе", "#3b82f6"),
  ("На проверке", "#f59e0b"),
  ("Завершено", "#10b981"),
]

PRIORITIES = ("low", "medium", "high", "urgent")
DEFAULT_PRIORITY = "medium"
