from __future__ import annotations

from dataclasses import dataclass
from time import monotonic
from typing import Any, Callable

import httpx
from pydantic import BaseModel, ValidationError

from stageboard.config import settings
from stageboard.metrics import CallMetrics, store_call_metrics
from stageboard.schemas import BoardOut, ColumnDeleteOut, ColumnOut, CommentOut, TaskOut


def normalize_base_url(base_url: str) -> str:
  b = (base_url or "").strip().rstrip("/")
  if not b:
    raise ValueError("store baseUrl is required")
  if not (b.startswith("http://") or b.startswith("https://")):
    b = "https://" + b
  return b


class StoreApiError(RuntimeError):
  def __init__(self, *, status_code: int, message: str, details: dict[str, Any] | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.message = message
    self.details = details or {}

  @property
  def is_conflict(self) -> bool:
    return self.status_code == 409

  @property
  def is_not_found(self) -> bool:
    return self.status_code == 404


def _extract_store_error(payload: Any) -> tuple[str, dict[str, Any]]:
  if isinstance(payload, dict):
    detail = payload.get("detail")
    if isinstance(detail, str) and detail.strip():
      return detail.strip(), {}
    if isinstance(detail, list) and detail:
      # FastAPI validation errors
      parts = []
      for d in detail:
        if isinstance(d, dict):
          loc = ".".join(str(x) for x in d.get("loc") or [])
          parts.append(f"{loc}: {d.get('msg')}" if loc else str(d.get("msg")))
      return "; ".join(parts) or "Store request failed", {"errors": detail}
    return "Store request failed", payload
  if isinstance(payload, str) and payload.strip():
    return payload.strip()[:500], {}
  return "Store request failed", {}


async def _request_json(client: httpx.AsyncClient, method: str, path: str, **kwargs: Any) -> Any:
  try:
    r = await client.request(method, path, **kwargs)
  except httpx.TransportError as e:
    raise StoreApiError(status_code=0, message=f"Store unreachable: {e}") from e
  if r.status_code >= 400:
    try:
      payload = r.json()
    except ValueError:
      payload = (r.text or "")[:800]
    msg, details = _extract_store_error(payload)
    raise StoreApiError(status_code=r.status_code, message=msg, details=details)
  if r.status_code == 204 or not r.content:
    return None
  try:
    return r.json()
  except ValueError as e:
    raise StoreApiError(status_code=0, message=f"Store returned invalid JSON ({r.status_code})") from e


def _many(model: type[BaseModel]) -> Callable[[Any], list[Any]]:
  def parse(data: Any) -> list[Any]:
    return [model.model_validate(x) for x in data or []]

  return parse


@dataclass
class StoreClient:
  """HTTP client for the canonical board store. Every method returns wire records."""

  base_url: str
  token: str | None = None
  actor_id: str | None = None
  user_agent: str = settings.store_user_agent
  timeout: float = settings.store_timeout_seconds
  transport: httpx.AsyncBaseTransport | None = None
  metrics: CallMetrics = store_call_metrics

  @classmethod
  def from_settings(cls, *, actor_id: str | None = None) -> StoreClient:
    return cls(base_url=normalize_base_url(settings.store_base_url), token=settings.store_api_token, actor_id=actor_id)

  def httpx_client(self) -> httpx.AsyncClient:
    headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
    if self.token:
      headers["Authorization"] = f"Bearer {self.token}"
    if self.actor_id:
      headers["X-Actor-Id"] = self.actor_id
    return httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=self.timeout, transport=self.transport)

  async def _call(self, operation: str, method: str, path: str, *, parse: Callable[[Any], Any] | None = None, **kwargs: Any) -> Any:
    start = monotonic()
    ok = False
    try:
      async with self.httpx_client() as client:
        data = await _request_json(client, method, path, **kwargs)
      if parse is not None:
        try:
          data = parse(data)
        except (ValidationError, TypeError) as e:
          raise StoreApiError(
            status_code=0, message=f"Malformed store response for {operation}", details={"error": str(e)}
          ) from e
      ok = True
      return data
    finally:
      self.metrics.observe(operation, ok=ok, latency_ms=(monotonic() - start) * 1000.0)

  # boards

  async def list_boards(self, project_id: str | None = None) -> list[BoardOut]:
    params: dict[str, str] = {"projectId": project_id} if project_id else {"shared": "true"}
    return await self._call("listBoards", "GET", "/boards", params=params, parse=_many(BoardOut))

  async def create_board(self, *, project_id: str | None, title: str, description: str | None = None) -> BoardOut:
    body = {"projectId": project_id, "title": title, "description": description}
    return await self._call("createBoard", "POST", "/boards", json=body, parse=BoardOut.model_validate)

  async def get_board(self, board_id: str) -> BoardOut:
    return await self._call("getBoard", "GET", f"/boards/{board_id}", parse=BoardOut.model_validate)

  # columns

  async def list_columns(self, board_id: str) -> list[ColumnOut]:
    return await self._call("listColumns", "GET", f"/boards/{board_id}/columns", parse=_many(ColumnOut))

  async def create_column(self, board_id: str, body: dict[str, Any]) -> ColumnOut:
    return await self._call("createColumn", "POST", f"/boards/{board_id}/columns", json=body, parse=ColumnOut.model_validate)

  async def update_column(self, column_id: str, body: dict[str, Any]) -> ColumnOut:
    return await self._call("updateColumn", "PATCH", f"/columns/{column_id}", json=body, parse=ColumnOut.model_validate)

  async def delete_column(self, column_id: str, *, reassign_to: str | None = None) -> ColumnDeleteOut:
    params = {"reassignTo": reassign_to} if reassign_to else None
    return await self._call(
      "deleteColumn", "DELETE", f"/columns/{column_id}", params=params, parse=ColumnDeleteOut.model_validate
    )

  async def reorder_columns(self, board_id: str, column_ids: list[str]) -> list[ColumnOut]:
    return await self._call(
      "reorderColumns",
      "POST",
      f"/boards/{board_id}/columns/reorder",
      json={"columnIds": column_ids},
      parse=_many(ColumnOut),
    )

  # tasks

  async def create_task(self, column_id: str, body: dict[str, Any]) -> TaskOut:
    return await self._call("createTask", "POST", f"/columns/{column_id}/tasks", json=body, parse=TaskOut.model_validate)

  async def get_task(self, task_id: str) -> TaskOut:
    return await self._call("getTask", "GET", f"/tasks/{task_id}", parse=TaskOut.model_validate)

  async def update_task(self, task_id: str, body: dict[str, Any]) -> TaskOut:
    return await self._call("updateTask", "PATCH", f"/tasks/{task_id}", json=body, parse=TaskOut.model_validate)

  async def delete_task(self, task_id: str) -> None:
    await self._call("deleteTask", "DELETE", f"/tasks/{task_id}")

  async def reorder_tasks(self, column_id: str, task_ids: list[str]) -> list[TaskOut]:
    return await self._call(
      "reorderTasks", "POST", f"/columns/{column_id}/tasks/reorder", json={"taskIds": task_ids}, parse=_many(TaskOut)
    )

  async def add_comment(self, task_id: str, *, content: str, author_id: str) -> CommentOut:
    body = {"content": content, "authorId": author_id}
    return await self._call("addComment", "POST", f"/tasks/{task_id}/comments", json=body, parse=CommentOut.model_validate)

  async def replace_checklist(self, task_id: str, items: list[dict[str, Any]]) -> TaskOut:
    return await self._call(
      "replaceChecklist", "PUT", f"/tasks/{task_id}/checklist", json={"items": items}, parse=TaskOut.model_validate
    )
