from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import FlakyTransport, board_row_count
from stageboard.board.domain import ChecklistItem
from stageboard.board.errors import BoardError, InvariantViolation, StoreError
from stageboard.board.ids import is_canonical
from stageboard.board.reorder import sorted_columns
from stageboard.board.store import BoardStore
from stageboard.config import settings
from stageboard.metrics import store_call_metrics
from stageboard.store.client import StoreClient


async def _materialized(board_store: BoardStore) -> None:
  await board_store.load()
  await board_store.add_task("COL-default-0", "seed task")


def _fail(method: str, path_part: str = ""):
  def check(request: httpx.Request) -> bool:
    return request.method == method and path_part in request.url.path

  return check


@pytest.mark.anyio
async def test_load_scaffolds_board_without_writing(board_store: BoardStore, store_transport: FlakyTransport) -> None:
  board = await board_store.load()
  assert board.id == "default-board"
  assert board.title == settings.shared_board_title
  assert [c.id for c in board.columns] == ["COL-default-0", "COL-default-1", "COL-default-2", "COL-default-3"]
  assert all(c.is_default for c in board.columns)
  assert board_store.current_board == board
  assert store_transport.writes() == []
  assert await board_row_count(None) == 0


@pytest.mark.anyio
async def test_first_task_materializes_board(board_store: BoardStore, store_transport: FlakyTransport) -> None:
  await board_store.load()
  task = await board_store.add_task("COL-default-1", "Cut panel")

  board = board_store.current_board
  assert is_canonical(board.id)
  assert len(board_store.boards) == 1
  assert len(board.columns) == 4
  assert all(is_canonical(c.id) for c in board.columns)
  assert is_canonical(task.id)
  column = board.column(task.column_id)
  assert column.title == "В работе"
  assert [t.title for t in board.tasks] == ["Cut panel"]
  assert await board_row_count(None) == 1

  writes = store_transport.writes()
  assert writes[0] == ("POST", "/boards")
  assert writes[1] == ("POST", f"/columns/{column.id}/tasks")
  assert not any("default" in path for _, path in store_transport.requests)
  assert store_call_metrics.snapshot()["operations"]["createTask"]["count"] == 1


@pytest.mark.anyio
async def test_concurrent_first_writes_create_one_board(board_store: BoardStore) -> None:
  await board_store.load()
  a, b = await asyncio.gather(
    board_store.add_task("COL-default-1", "first"),
    board_store.add_task("COL-default-1", "second"),
  )
  assert await board_row_count(None) == 1
  assert a.column_id == b.column_id
  assert sorted([a.position, b.position]) == [0, 1]
  board = board_store.current_board
  assert sorted(t.title for t in board.tasks) == ["first", "second"]
  assert all(is_canonical(t.id) for t in board.tasks)


@pytest.mark.anyio
async def test_stale_scaffold_adopts_board_created_elsewhere(store_client: StoreClient, store_transport: FlakyTransport) -> None:
  first = BoardStore(store_client)
  late = BoardStore(store_client)
  await first.load()
  # loaded before any board existed, so it still holds a scaffold
  await late.load()
  await first.add_task("COL-default-0", "from first")

  task = await late.add_task("COL-default-3", "from late")

  assert await board_row_count(None) == 1
  assert late.current_board.id == first.current_board.id
  assert late.current_board.column(task.column_id).title == "Завершено"
  assert sorted(t.title for t in late.current_board.tasks) == ["from first", "from late"]
  # the second create was answered with 409 and the existing board adopted
  assert store_transport.writes().count(("POST", "/boards")) == 2


@pytest.mark.anyio
async def test_project_scope_gets_its_own_board(board_store: BoardStore) -> None:
  scaffold = await board_store.load("proj-1")
  assert scaffold.id == "default-board:proj-1"
  assert scaffold.title == settings.project_board_title

  await board_store.add_task("COL-default-0", "P")
  assert board_store.current_board.owner_scope == "proj-1"
  assert await board_row_count("proj-1") == 1
  assert await board_row_count(None) == 0

  reloaded = await board_store.load("proj-1")
  assert reloaded.id == board_store.current_board.id
  assert len(board_store.boards) == 1


@pytest.mark.anyio
async def test_move_to_column_with_two_tasks_lands_at_position_two(board_store: BoardStore) -> None:
  await board_store.load()
  t1 = await board_store.add_task("COL-default-0", "t1")
  board = board_store.current_board
  col_b = sorted_columns(board.columns)[1].id
  await board_store.add_task(col_b, "x")
  await board_store.add_task(col_b, "y")
  others = {t.id: t for t in board_store.current_board.tasks_in(col_b)}

  moved = await board_store.move_task(t1.id, col_b)
  assert (moved.column_id, moved.position) == (col_b, 2)
  for tid, before in others.items():
    assert board_store.current_board.task(tid).position == before.position

  wire = await board_store.client.get_task(t1.id)
  assert (wire.columnId, wire.position) == (col_b, 2)


@pytest.mark.anyio
async def test_added_task_goes_after_highest_position(board_store: BoardStore) -> None:
  await board_store.load()
  t1 = await board_store.add_task("COL-default-0", "t1")
  await board_store.add_task("COL-default-0", "t2")
  t3 = await board_store.add_task("COL-default-0", "t3")
  col_a = t1.column_id
  col_b = sorted_columns(board_store.current_board.columns)[1].id
  await board_store.move_task(t1.id, col_b)

  t4 = await board_store.add_task(col_a, "t4")
  assert t4.position == t3.position + 1
  positions = [t.position for t in board_store.current_board.tasks_in(col_a)]
  assert len(set(positions)) == len(positions)


@pytest.mark.anyio
async def test_deleted_board_is_created_again_on_next_write(board_store: BoardStore, client: httpx.AsyncClient) -> None:
  await board_store.load()
  first = await board_store.add_task("COL-default-0", "before delete")
  old_id = board_store.current_board.id
  res = await client.delete(f"/boards/{old_id}")
  assert res.status_code == 200, res.text

  reloaded = await board_store.load()
  assert reloaded.id == "default-board"
  task = await board_store.add_task("COL-default-0", "after delete")
  board = board_store.current_board
  assert is_canonical(board.id) and board.id != old_id
  assert [t.title for t in board.tasks] == ["after delete"]
  assert task.id != first.id
  assert await board_row_count(None) == 1


@pytest.mark.anyio
async def test_move_and_back_restores_task(board_store: BoardStore) -> None:
  await board_store.load()
  t = await board_store.add_task("COL-default-0", "t")
  await board_store.add_task("COL-default-0", "u")
  origin = board_store.current_board.task(t.id)
  other_col = sorted_columns(board_store.current_board.columns)[2].id

  await board_store.move_task(t.id, other_col)
  back = await board_store.move_task(t.id, origin.column_id, origin.position)
  assert back.model_copy(update={"updated_at": origin.updated_at}) == origin


@pytest.mark.anyio
async def test_failed_move_is_rolled_back(board_store: BoardStore, store_transport: FlakyTransport) -> None:
  await board_store.load()
  t = await board_store.add_task("COL-default-0", "t")
  before = board_store.current_board
  target = sorted_columns(before.columns)[1].id

  store_transport.fail_when = _fail("PATCH")
  with pytest.raises(StoreError) as exc:
    await board_store.move_task(t.id, target)
  assert exc.value.status_code == 503
  assert exc.value.operation == "moveTask"
  assert board_store.current_board == before


@pytest.mark.anyio
async def test_concurrent_moves_roll_back_independently(board_store: BoardStore, store_transport: FlakyTransport) -> None:
  await board_store.load()
  ok = await board_store.add_task("COL-default-0", "ok")
  bad = await board_store.add_task("COL-default-0", "bad")
  target = sorted_columns(board_store.current_board.columns)[3].id
  bad_before = board_store.current_board.task(bad.id)

  store_transport.fail_when = _fail("PATCH", bad.id)
  results = await asyncio.gather(
    board_store.move_task(ok.id, target),
    board_store.move_task(bad.id, target),
    return_exceptions=True,
  )
  assert not isinstance(results[0], Exception)
  assert isinstance(results[1], StoreError)
  board = board_store.current_board
  assert board.task(ok.id).column_id == target
  assert board.task(bad.id) == bad_before


@pytest.mark.anyio
async def test_failed_create_removes_draft(board_store: BoardStore, store_transport: FlakyTransport) -> None:
  await _materialized(board_store)
  before = board_store.current_board
  store_transport.fail_when = _fail("POST", "/tasks")
  with pytest.raises(StoreError):
    await board_store.add_task(before.columns[0].id, "never")
  assert board_store.current_board == before


@pytest.mark.anyio
async def test_failed_delete_restores_task(board_store: BoardStore, store_transport: FlakyTransport) -> None:
  await _materialized(board_store)
  before = board_store.current_board
  store_transport.fail_when = _fail("DELETE")
  with pytest.raises(StoreError):
    await board_store.delete_task(before.tasks[0].id)
  assert board_store.current_board.task(before.tasks[0].id) == before.tasks[0]

  store_transport.fail_when = lambda request: False
  await board_store.delete_task(before.tasks[0].id)
  assert board_store.current_board.tasks == ()


@pytest.mark.anyio
async def test_unreachable_store_on_load_raises(store_transport: FlakyTransport) -> None:
  store_transport.fail_when = lambda request: True
  store = BoardStore(StoreClient(base_url="http://localhost", transport=store_transport))
  with pytest.raises(StoreError) as exc:
    await store.load()
  assert exc.value.operation == "listBoards"
  assert store.current_board is None


@pytest.mark.anyio
async def test_delete_column_reassigns_tasks_to_lowest_order_column(board_store: BoardStore) -> None:
  await _materialized(board_store)
  painting = await board_store.add_column("Покраска", color="#aa00aa")
  assert is_canonical(painting.id)
  assert painting.order == 4
  for title in ["p1", "p2", "p3"]:
    await board_store.add_task(painting.id, title)
  first = sorted_columns(board_store.current_board.columns)[0]

  moved = await board_store.delete_column(painting.id)
  assert [t.title for t in moved] == ["p1", "p2", "p3"]
  assert [t.position for t in moved] == [1, 2, 3]
  board = board_store.current_board
  assert board.column(painting.id) is None
  assert {t.column_id for t in board.tasks} == {first.id}
  assert len(board.tasks) == 4

  wire = await board_store.client.get_board(board.id)
  assert [t.title for t in wire.columns[0].tasks] == ["seed task", "p1", "p2", "p3"]


@pytest.mark.anyio
async def test_default_column_delete_is_rejected_locally(board_store: BoardStore, store_transport: FlakyTransport) -> None:
  await board_store.load()
  with pytest.raises(InvariantViolation):
    await board_store.delete_column("COL-default-0")
  assert store_transport.requests == [("GET", "/boards")]


@pytest.mark.anyio
async def test_column_edits_on_scaffold_materialize_first(board_store: BoardStore) -> None:
  await board_store.load()
  renamed = await board_store.update_column("COL-default-2", {"title": "ОТК"})
  assert is_canonical(renamed.id)
  assert renamed.title == "ОТК"
  assert renamed.stage == "отк"
  assert is_canonical(board_store.current_board.id)

  added = await board_store.add_column("Упаковка")
  assert [c.title for c in sorted_columns(board_store.current_board.columns)] == [
    "К выполнению",
    "В работе",
    "ОТК",
    "Завершено",
    "Упаковка",
  ]
  assert added.order == 4
  assert await board_row_count(None) == 1


@pytest.mark.anyio
async def test_reorder_columns_and_tasks(board_store: BoardStore) -> None:
  await board_store.load()
  ids = ["COL-default-3", "COL-default-2", "COL-default-1", "COL-default-0"]
  board = await board_store.reorder_columns(ids)
  titles = [c.title for c in sorted_columns(board.columns)]
  assert titles == ["Завершено", "На проверке", "В работе", "К выполнению"]
  assert all(is_canonical(c.id) for c in board.columns)

  col = sorted_columns(board.columns)[0].id
  a = await board_store.add_task(col, "a")
  b = await board_store.add_task(col, "b")
  out = await board_store.reorder_tasks(col, [b.id, a.id])
  assert [(t.id, t.position) for t in out] == [(b.id, 0), (a.id, 1)]
  assert [t.id for t in board_store.filtered_tasks(col)] == [b.id, a.id]


@pytest.mark.anyio
async def test_update_task_with_checklist_is_two_writes(board_store: BoardStore, store_transport: FlakyTransport) -> None:
  await _materialized(board_store)
  task = board_store.current_board.tasks[0]
  store_transport.requests.clear()

  updated = await board_store.update_task(
    task.id,
    {"title": "Раскрой 18 мм", "priority": "urgent", "checklist": [ChecklistItem(id="local-1", text="замер")]},
  )
  assert store_transport.writes() == [("PATCH", f"/tasks/{task.id}"), ("PUT", f"/tasks/{task.id}/checklist")]
  assert updated.title == "Раскрой 18 мм"
  assert updated.priority == "urgent"
  assert [i.text for i in updated.checklist] == ["замер"]
  assert is_canonical(updated.checklist[0].id)
  assert board_store.current_board.task(task.id) == updated


@pytest.mark.anyio
async def test_failed_checklist_write_restores_task(board_store: BoardStore, store_transport: FlakyTransport) -> None:
  await _materialized(board_store)
  before = board_store.current_board.tasks[0]
  store_transport.fail_when = _fail("PUT")
  with pytest.raises(StoreError):
    await board_store.update_task(before.id, {"checklist": [ChecklistItem(id="x", text="x")]})
  assert board_store.current_board.task(before.id) == before


@pytest.mark.anyio
async def test_failed_checklist_write_keeps_saved_fields(board_store: BoardStore, store_transport: FlakyTransport) -> None:
  await _materialized(board_store)
  before = board_store.current_board.tasks[0]
  store_transport.fail_when = _fail("PUT")
  with pytest.raises(StoreError) as exc:
    await board_store.update_task(before.id, {"title": "new", "checklist": [ChecklistItem(id="x", text="x")]})
  assert exc.value.operation == "replaceChecklist"

  local = board_store.current_board.task(before.id)
  wire = await board_store.client.get_task(before.id)
  assert wire.title == "new"
  assert local.title == "new"
  assert local.checklist == before.checklist == ()


@pytest.mark.anyio
async def test_invariant_violations_make_no_requests(board_store: BoardStore, store_transport: FlakyTransport) -> None:
  await _materialized(board_store)
  task = board_store.current_board.tasks[0]
  store_transport.requests.clear()

  with pytest.raises(InvariantViolation):
    await board_store.add_task("COL-default-9", "x")
  with pytest.raises(InvariantViolation):
    await board_store.add_task(task.column_id, "   ")
  with pytest.raises(InvariantViolation):
    await board_store.add_task(task.column_id, "x", colour="red")
  with pytest.raises(InvariantViolation):
    await board_store.update_task(task.id, {"id": "other"})
  with pytest.raises(InvariantViolation):
    await board_store.update_task(task.id, {"priority": "p0"})
  with pytest.raises(InvariantViolation):
    await board_store.move_task(task.id, "not-a-column")
  with pytest.raises(InvariantViolation):
    await board_store.reorder_tasks(task.column_id, [])
  with pytest.raises(InvariantViolation):
    await board_store.add_comment(task.id, "")
  with pytest.raises(InvariantViolation):
    await board_store.delete_task("missing")
  assert store_transport.requests == []


@pytest.mark.anyio
async def test_operations_need_a_loaded_board(board_store: BoardStore) -> None:
  with pytest.raises(BoardError):
    await board_store.add_task("COL-default-0", "x")


@pytest.mark.anyio
async def test_add_comment_appends_in_order(board_store: BoardStore, actor_id: str) -> None:
  await _materialized(board_store)
  task = board_store.current_board.tasks[0]
  c1 = await board_store.add_comment(task.id, "начали")
  c2 = await board_store.add_comment(task.id, "готово")
  assert c1.author_id == actor_id
  assert c1.author.name == "Мастер участка"
  comments = board_store.current_board.task(task.id).comments
  assert [c.text for c in comments] == ["начали", "готово"]
  assert [c.id for c in comments] == [c1.id, c2.id]


@pytest.mark.anyio
async def test_filters_then_clear_restore_view(board_store: BoardStore) -> None:
  await board_store.load()
  col = "COL-default-0"
  await board_store.add_task(col, "Раскрой", priority="high", tags=["мдф"])
  col = board_store.current_board.tasks[0].column_id
  await board_store.add_task(col, "Кромка")
  await board_store.add_task(col, "Сверловка", priority="high")
  full = board_store.filtered_tasks(col)
  assert [t.title for t in full] == ["Раскрой", "Кромка", "Сверловка"]

  board_store.set_search("кром")
  assert [t.title for t in board_store.filtered_tasks(col)] == ["Кромка"]
  board_store.set_search("")
  board_store.set_filters(priority="high", tags="МДФ")
  assert board_store.has_active_filters
  assert [t.title for t in board_store.filtered_tasks(col)] == ["Раскрой"]
  with pytest.raises(InvariantViolation):
    board_store.set_filters(deadline="someday")

  board_store.clear_filters()
  assert not board_store.has_active_filters
  assert board_store.filtered_tasks(col) == full


class _MalformedCreate(httpx.AsyncBaseTransport):
  def __init__(self, inner: httpx.AsyncBaseTransport) -> None:
    self.inner = inner

  async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
    if request.method == "POST" and request.url.path.endswith("/tasks"):
      return httpx.Response(201, json={"id": 5}, request=request)
    return await self.inner.handle_async_request(request)


@pytest.mark.anyio
async def test_malformed_store_response_rolls_back_draft(store_transport: FlakyTransport, actor_id: str) -> None:
  board_store = BoardStore(StoreClient(base_url="http://localhost", actor_id=actor_id, transport=_MalformedCreate(store_transport)))
  await board_store.load()
  await board_store.materializer.materialize(board_store.current_board)
  await board_store.load()
  before = board_store.current_board
  assert is_canonical(before.id)

  with pytest.raises(StoreError) as exc:
    await board_store.add_task(before.columns[0].id, "half")
  assert exc.value.operation == "createTask"
  assert board_store.current_board == before
