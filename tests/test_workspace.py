from __future__ import annotations

import pytest

from taskwatch.errors import NotInitializedError
from taskwatch.monday.workspace import WorkspaceManager, sort_by_due
from taskwatch.schemas import BoardConfig
from taskwatch.timeutil import CivilCalendar
from conftest import FakeMondayClient, board_with_columns, make_item, make_task, sydney, workspace

DATED = BoardConfig(id="b1", name="Marketing", dateColumnId="date4", assigneeColumnId="person")
UNDATED = BoardConfig(id="b2", name="Notes")
OTHER = BoardConfig(id="b3", name="Events", dateColumnId="date4")


async def _manager(calendar: CivilCalendar, fake: FakeMondayClient, *boards: BoardConfig) -> WorkspaceManager:
  manager = WorkspaceManager(calendar=calendar, client_factory=lambda cfg: fake, concurrency=2)
  await manager.initialize([workspace(boards=list(boards))])
  return manager


@pytest.mark.anyio
async def test_board_without_date_column_contributes_nothing(calendar: CivilCalendar) -> None:
  fake = FakeMondayClient(
    {
      "b1": [make_item("1", "Budget sign-off", date="2026-10-17", time="03:00:00", person_id=7)],
      "b2": [make_item("2", "Loose note", date="2026-10-17", date_column="date9")],
      "b3": [make_item("3", "Gala dinner", date="2026-10-17")],
    }
  )
  manager = await _manager(calendar, fake, DATED, UNDATED, OTHER)

  start, end = calendar.today_range()
  report = await manager.fetch_tasks_due_in_range(start, end)

  assert [t.id for t in report.tasks] == ["3", "1"]
  assert report.failedSources == []
  assert report.sourcesAttempted == 3
  assert ("filtered", "b2") not in fake.calls
  assert report.tasks[1].assigneeName == "Ava Lee"


@pytest.mark.anyio
async def test_results_are_trimmed_to_the_exact_range(calendar: CivilCalendar) -> None:
  fake = FakeMondayClient(
    {
      "b1": [
        make_item("1", "Yesterday", date="2026-10-16"),
        make_item("2", "Today late", date="2026-10-17", time="12:59:00"),
        make_item("3", "Tomorrow early", date="2026-10-17", time="13:00:00"),
      ]
    }
  )
  manager = await _manager(calendar, fake, DATED)
  tasks = await manager.get_tasks_due_in_range(*calendar.today_range())
  assert [t.name for t in tasks] == ["Today late"]


@pytest.mark.anyio
async def test_morning_deadline_stored_under_previous_utc_date_is_found(calendar: CivilCalendar) -> None:
  # 09:00 Sat 17 Oct in Sydney is 22:00 on the 16th in UTC.
  fake = FakeMondayClient(
    {
      "b1": [
        make_item("1", "Morning stand-up deck", date="2026-10-16", time="22:00:00"),
        make_item("2", "Late Friday wrap", date="2026-10-16", time="12:00:00"),
      ]
    }
  )
  manager = await _manager(calendar, fake, DATED)

  tasks = await manager.get_tasks_due_in_range(*calendar.today_range())

  assert [t.id for t in tasks] == ["1"]
  assert fake.bounds == [("2026-10-16", "2026-10-18")]
  assert fake.calls == [("filtered", "b1")]


@pytest.mark.anyio
async def test_rejected_filter_falls_back_to_full_fetch(calendar: CivilCalendar) -> None:
  fake = FakeMondayClient({"b1": [make_item("1", "Brief", date="2026-10-17")]}, failing_filter={"b1"})
  manager = await _manager(calendar, fake, DATED)

  tasks = await manager.get_tasks_due_in_range(*calendar.today_range())
  assert [t.id for t in tasks] == ["1"]
  assert fake.calls == [("filtered", "b1"), ("all", "b1")]


@pytest.mark.anyio
async def test_failing_board_is_reported_and_siblings_survive(calendar: CivilCalendar) -> None:
  fake = FakeMondayClient(
    {"b1": [make_item("1", "Brief", date="2026-10-17")], "b3": [make_item("3", "Gala", date="2026-10-17")]},
    failing_boards={"b3"},
  )
  manager = await _manager(calendar, fake, DATED, OTHER)

  report = await manager.fetch_tasks_due_in_range(*calendar.today_range())
  assert [t.id for t in report.tasks] == ["1"]
  assert report.failedSources == ["Workspace default/Events"]
  assert report.allSourcesFailed is False


@pytest.mark.anyio
async def test_total_failure_is_distinguishable_from_no_tasks(calendar: CivilCalendar) -> None:
  fake = FakeMondayClient({}, failing_boards={"b1", "b3"})
  manager = await _manager(calendar, fake, DATED, OTHER)

  report = await manager.fetch_tasks_due_in_range(*calendar.today_range())
  assert report.tasks == []
  assert report.allSourcesFailed is True

  quiet = await _manager(calendar, FakeMondayClient({}), DATED, OTHER)
  empty = await quiet.fetch_tasks_due_in_range(*calendar.today_range())
  assert empty.tasks == []
  assert empty.allSourcesFailed is False


@pytest.mark.anyio
async def test_item_on_two_boards_is_returned_once(calendar: CivilCalendar) -> None:
  shared = make_item("77", "Shared launch", date="2026-10-17")
  fake = FakeMondayClient({"b1": [shared], "b3": [shared]})
  manager = await _manager(calendar, fake, DATED, OTHER)
  tasks = await manager.get_tasks_due_in_range(*calendar.today_range())
  assert [t.id for t in tasks] == ["77"]


@pytest.mark.anyio
async def test_workspace_without_token_is_excluded(calendar: CivilCalendar) -> None:
  fake = FakeMondayClient({"b1": [make_item("1", "Brief", date="2026-10-17")]})
  manager = WorkspaceManager(calendar=calendar, client_factory=lambda cfg: fake)
  await manager.initialize([workspace("broken", token=" ", boards=[DATED]), workspace("good", boards=[DATED])])

  assert [w.id for w in manager.workspace_configs()] == ["good"]
  assert "broken" in manager.context.failures
  assert len(await manager.get_tasks_due_in_range(*calendar.today_range())) == 1


@pytest.mark.anyio
async def test_boards_are_discovered_when_not_configured(calendar: CivilCalendar) -> None:
  boards = [
    board_with_columns("b1", "Marketing", [("date4", "Deadline", "date"), ("person", "Owner", "people")]),
    board_with_columns("b2", "Notes", [("text", "Text", "text")]),
  ]
  fake = FakeMondayClient({"b1": [make_item("1", "Brief", date="2026-10-17", person_id=7)]}, boards=boards)
  manager = WorkspaceManager(calendar=calendar, client_factory=lambda cfg: fake)
  await manager.initialize([workspace()])

  configs = manager.board_configs("default")
  assert [(b.id, b.dateColumnId, b.assigneeColumnId) for b in configs] == [("b1", "date4", "person"), ("b2", None, None)]
  tasks = await manager.get_tasks_due_in_range(*calendar.today_range())
  assert [t.assigneeName for t in tasks] == ["Ava Lee"]
  assert manager.get_user("7").email == "ava@example.com"


@pytest.mark.anyio
async def test_queries_before_initialize_raise(calendar: CivilCalendar) -> None:
  manager = WorkspaceManager(calendar=calendar, client_factory=lambda cfg: FakeMondayClient())
  with pytest.raises(NotInitializedError):
    await manager.get_tasks_due_in_range(*calendar.today_range())
  with pytest.raises(NotInitializedError):
    await manager.get_task_by_id("1")


@pytest.mark.anyio
async def test_managers_do_not_share_caches(calendar: CivilCalendar) -> None:
  first = await _manager(calendar, FakeMondayClient(users=[{"id": 1, "name": "One"}]), DATED)
  second = await _manager(calendar, FakeMondayClient(users=[{"id": 2, "name": "Two"}]), OTHER)

  assert [u.name for u in first.users()] == ["One"]
  assert [u.name for u in second.users()] == ["Two"]
  assert [b.id for b in first.board_configs("default")] == ["b1"]


@pytest.mark.anyio
async def test_get_task_by_id_scans_boards(calendar: CivilCalendar) -> None:
  fake = FakeMondayClient({"b1": [make_item("1", "Brief")], "b3": [make_item("3", "Gala", date="2026-10-20")]})
  manager = await _manager(calendar, fake, DATED, OTHER)

  found = await manager.get_task_by_id("3")
  assert found is not None and found.boardName == "Events"
  assert await manager.get_task_by_id("404") is None


@pytest.mark.anyio
async def test_search_tasks_ranks_board_items(calendar: CivilCalendar) -> None:
  fake = FakeMondayClient(
    {
      "b1": [
        make_item("1", "HR Onboarding Checklist"),
        make_item("2", "SHRED Policy"),
        make_item("3", "Payroll", updates=[{"id": "u", "text_body": "Loop in hr before Friday", "assets": []}]),
      ]
    }
  )
  manager = await _manager(calendar, fake, DATED)
  ranked = await manager.search_tasks("hr")
  assert [(r.item.id, r.score) for r in ranked] == [("1", 103), ("3", 4)]
  assert ("updates", "b1") in fake.calls


def test_sort_by_due_puts_undated_last() -> None:
  a = make_task("A", sydney(2026, 10, 20, 9))
  b = make_task("B", None)
  c = make_task("C", sydney(2026, 10, 18, 9))
  assert [t.name for t in sort_by_due([a, b, c])] == ["C", "A", "B"]
