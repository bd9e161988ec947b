from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import board_row_count


@pytest.mark.anyio
async def test_create_board_scaffolds_default_columns(client: AsyncClient) -> None:
  res = await client.post("/boards", json={"title": "Цех 1"})
  assert res.status_code == 200, res.text
  b = res.json()
  assert b["projectId"] is None
  assert [c["title"] for c in b["columns"]] == ["К выполнению", "В работе", "На проверке", "Завершено"]
  assert [c["position"] for c in b["columns"]] == [0, 1, 2, 3]
  assert all(c["isDefault"] for c in b["columns"])
  assert b["columns"][1]["stage"] == "в_работе"
  assert all(c["boardId"] == b["id"] for c in b["columns"])


@pytest.mark.anyio
async def test_one_board_per_scope(client: AsyncClient) -> None:
  first = await client.post("/boards", json={"title": "Shared"})
  assert first.status_code == 200, first.text
  dup = await client.post("/boards", json={"title": "Shared again"})
  assert dup.status_code == 409
  assert "already exists" in dup.json()["detail"]

  p1 = await client.post("/boards", json={"projectId": "proj-1", "title": "P1"})
  assert p1.status_code == 200, p1.text
  p1_dup = await client.post("/boards", json={"projectId": "proj-1", "title": "P1 again"})
  assert p1_dup.status_code == 409

  assert await board_row_count(None) == 1
  assert await board_row_count("proj-1") == 1


@pytest.mark.anyio
async def test_list_boards_filters_by_scope(client: AsyncClient) -> None:
  shared = (await client.post("/boards", json={"title": "Shared"})).json()
  proj = (await client.post("/boards", json={"projectId": "proj-7", "title": "P7"})).json()

  only_shared = (await client.get("/boards", params={"shared": "true"})).json()
  assert [b["id"] for b in only_shared] == [shared["id"]]

  only_proj = (await client.get("/boards", params={"projectId": "proj-7"})).json()
  assert [b["id"] for b in only_proj] == [proj["id"]]
  assert len(only_proj[0]["columns"]) == 4

  nothing = (await client.get("/boards", params={"projectId": "missing"})).json()
  assert nothing == []


@pytest.mark.anyio
async def test_get_board_unknown_or_placeholder_id_is_404(client: AsyncClient) -> None:
  assert (await client.get("/boards/default-board")).status_code == 404
  assert (await client.get("/boards/00000000-0000-4000-8000-000000000000")).status_code == 404


@pytest.mark.anyio
async def test_get_board_nests_tasks_by_position(client: AsyncClient) -> None:
  b = (await client.post("/boards", json={"title": "Shared"})).json()
  col = b["columns"][0]["id"]
  for title, pos in [("second", 5), ("first", 1), ("third", 9)]:
    res = await client.post(f"/columns/{col}/tasks", json={"title": title, "position": pos})
    assert res.status_code == 200, res.text

  full = (await client.get(f"/boards/{b['id']}")).json()
  assert [t["title"] for t in full["columns"][0]["tasks"]] == ["first", "second", "third"]
  assert full["columns"][1]["tasks"] == []


@pytest.mark.anyio
async def test_update_and_delete_board(client: AsyncClient) -> None:
  b = (await client.post("/boards", json={"title": "Shared"})).json()
  col = b["columns"][0]["id"]
  t = (await client.post(f"/columns/{col}/tasks", json={"title": "Cut panel"})).json()
  await client.post(f"/tasks/{t['id']}/comments", json={"content": "hi", "authorId": "someone"})

  upd = await client.patch(f"/boards/{b['id']}", json={"title": "Renamed", "description": "d"})
  assert upd.status_code == 200, upd.text
  assert upd.json()["title"] == "Renamed"

  res = await client.delete(f"/boards/{b['id']}")
  assert res.status_code == 200, res.text
  assert (await client.get(f"/boards/{b['id']}")).status_code == 404
  assert (await client.get(f"/tasks/{t['id']}")).status_code == 404


@pytest.mark.anyio
async def test_board_audit_records_writes(client: AsyncClient) -> None:
  b = (await client.post("/boards", json={"title": "Shared"}, headers={"X-Actor-Id": "u-1"})).json()
  col = b["columns"][0]["id"]
  await client.post(f"/columns/{col}/tasks", json={"title": "T"}, headers={"X-Actor-Id": "u-1"})

  events = (await client.get(f"/boards/{b['id']}/audit")).json()
  types = [e["eventType"] for e in events]
  assert "board.created" in types
  assert "task.created" in types
  assert all(e["actorId"] == "u-1" for e in events)
