from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from taskwatch.config import settings
from taskwatch.errors import ConfigurationError, NotInitializedError, RemoteError
from taskwatch.monday.client import MondayAuth, MondayClient
from taskwatch.monday.discovery import discover_board_config
from taskwatch.monday.parsing import item_to_task
from taskwatch.schemas import BoardConfig, DirectoryUser, FetchReport, Task, WorkspaceConfig
from taskwatch.search import DEFAULT_MIN_SCORE, RankedItem, document_for_task, search
from taskwatch.timeutil import CivilCalendar

logger = logging.getLogger(__name__)

ClientFactory = Callable[[WorkspaceConfig], MondayClient]
BoardFetch = Callable[[WorkspaceConfig, MondayClient, BoardConfig], Awaitable[list[Task]]]

_COLUMNS_BATCH = 50


def default_client_factory(cfg: WorkspaceConfig) -> MondayClient:
  return MondayClient(MondayAuth.from_settings(cfg.apiToken))


@dataclass
class WorkspaceContext:
  """Caches filled by `initialize()` and read-only afterwards. One per manager."""

  workspaces: dict[str, WorkspaceConfig] = field(default_factory=dict)
  clients: dict[str, MondayClient] = field(default_factory=dict)
  boards: dict[str, list[BoardConfig]] = field(default_factory=dict)
  users: dict[str, DirectoryUser] = field(default_factory=dict)
  failures: dict[str, str] = field(default_factory=dict)
  initialized: bool = False


def _board_label(ws: WorkspaceConfig, board: BoardConfig) -> str:
  return f"{ws.name}/{board.name or board.id}"


def sort_by_due(tasks: Iterable[Task]) -> list[Task]:
  """Ascending by due date, undated tasks last."""
  tasks = list(tasks)
  dated = sorted((t for t in tasks if t.dueDate is not None), key=lambda t: t.dueDate)  # type: ignore[arg-type, return-value]
  return dated + [t for t in tasks if t.dueDate is None]


def _dedupe(tasks: Iterable[Task]) -> list[Task]:
  seen: set[str] = set()
  out: list[Task] = []
  for t in tasks:
    if t.id in seen:
      continue
    seen.add(t.id)
    out.append(t)
  return out


class WorkspaceManager:
  def __init__(
    self,
    *,
    calendar: CivilCalendar | None = None,
    client_factory: ClientFactory | None = None,
    concurrency: int | None = None,
  ) -> None:
    self.calendar = calendar or CivilCalendar(settings.timezone)
    self.context = WorkspaceContext()
    self._client_factory = client_factory or default_client_factory
    self._concurrency = max(1, concurrency or settings.board_concurrency)

  # -- initialization ---------------------------------------------------------

  async def initialize(self, configs: Iterable[WorkspaceConfig]) -> None:
    for cfg in configs:
      try:
        await self._initialize_workspace(cfg)
      except Exception as e:
        # One broken workspace must not block the others.
        self.context.failures[cfg.id] = str(e)
        self.context.workspaces.pop(cfg.id, None)
        self.context.clients.pop(cfg.id, None)
        self.context.boards.pop(cfg.id, None)
        logger.error("Workspace %s (%s) excluded: %s", cfg.name, cfg.id, e)
    self.context.initialized = True
    logger.info(
      "Initialized %d workspace(s), %d board(s), %d user(s)",
      len(self.context.workspaces),
      sum(len(b) for b in self.context.boards.values()),
      len(self.context.users),
    )

  async def _initialize_workspace(self, cfg: WorkspaceConfig) -> None:
    if not cfg.apiToken.strip():
      raise ConfigurationError(f"Workspace {cfg.id} has no API token")
    if not cfg.subdomain.strip():
      raise ConfigurationError(f"Workspace {cfg.id} has no subdomain")

    client = self._client_factory(cfg)
    boards = list(cfg.boards) or await self._discover_boards(client, cfg)
    users = await client.get_users()

    self.context.workspaces[cfg.id] = cfg
    self.context.clients[cfg.id] = client
    self.context.boards[cfg.id] = boards
    for u in users:
      if u and u.get("id") is not None:
        uid = str(u["id"])
        self.context.users[uid] = DirectoryUser(id=uid, name=str(u.get("name") or ""), email=u.get("email"))
    logger.info("Workspace %s ready with %d board(s)", cfg.name, len(boards))

  async def _discover_boards(self, client: MondayClient, cfg: WorkspaceConfig) -> list[BoardConfig]:
    remote_ids = list(cfg.remoteWorkspaceIds) or [str(w["id"]) for w in await client.get_workspaces() if w.get("id") is not None]
    board_ids: list[str] = []
    for wid in remote_ids:
      for b in await client.get_boards_in_workspace(wid):
        bid = str(b.get("id"))
        if bid not in board_ids:
          board_ids.append(bid)

    configs: list[BoardConfig] = []
    for i in range(0, len(board_ids), _COLUMNS_BATCH):
      for board in await client.get_boards_with_columns(board_ids[i : i + _COLUMNS_BATCH]):
        bc = discover_board_config(board)
        if bc.dateColumnId is None:
          logger.info("Board %s (%s) has no date column; it will contribute no due tasks", bc.name, bc.id)
        configs.append(bc)
    logger.info("Discovered %d board(s) in workspace %s", len(configs), cfg.name)
    return configs

  def _require_initialized(self) -> None:
    if not self.context.initialized:
      raise NotInitializedError("WorkspaceManager not initialized. Call initialize() first.")

  def _sources(self) -> list[tuple[WorkspaceConfig, MondayClient, BoardConfig]]:
    return [
      (ws, self.context.clients[wid], board)
      for wid, ws in self.context.workspaces.items()
      for board in self.context.boards.get(wid, [])
    ]

  # -- fetching ---------------------------------------------------------------

  def _to_tasks(self, items: list[dict], ws: WorkspaceConfig, board: BoardConfig) -> list[Task]:
    return [
      item_to_task(item, board=board, workspace=ws, users=self.context.users, calendar=self.calendar) for item in items if item
    ]

  async def _board_tasks_in_range(
    self, ws: WorkspaceConfig, client: MondayClient, board: BoardConfig, start: datetime, end: datetime
  ) -> list[Task]:
    if not board.dateColumnId:
      return []
    # Timed values are stored under their UTC date, which can sit a day either side of the civil one.
    low = self.calendar.date_for_api(start - timedelta(days=1))
    high = self.calendar.date_for_api(end + timedelta(days=1))
    try:
      items = await client.get_items_in_date_range(board.id, board.dateColumnId, low, high)
    except RemoteError as e:
      logger.warning("Date filter query failed for board %s, fetching all items: %s", _board_label(ws, board), e)
      items = await client.get_all_items_from_board(board.id)
    return [t for t in self._to_tasks(items, ws, board) if t.dueDate is not None and start <= t.dueDate <= end]

  async def _gather_boards(self, fetch: BoardFetch) -> tuple[list[Task], list[str], int]:
    sources = self._sources()
    sem = asyncio.Semaphore(self._concurrency)
    failed: list[str] = []

    async def run(ws: WorkspaceConfig, client: MondayClient, board: BoardConfig) -> list[Task]:
      async with sem:
        try:
          return await fetch(ws, client, board)
        except Exception as e:
          failed.append(_board_label(ws, board))
          logger.error("Fetching board %s failed: %s", _board_label(ws, board), e)
          return []

    results = await asyncio.gather(*(run(ws, c, b) for ws, c, b in sources))
    tasks = _dedupe(t for batch in results for t in batch)
    return tasks, failed, len(sources)

  async def fetch_tasks_due_in_range(self, start: datetime, end: datetime) -> FetchReport:
    self._require_initialized()

    async def fetch(ws: WorkspaceConfig, client: MondayClient, board: BoardConfig) -> list[Task]:
      return await self._board_tasks_in_range(ws, client, board, start, end)

    tasks, failed, attempted = await self._gather_boards(fetch)
    if attempted and len(failed) == attempted:
      logger.error("Every board failed while fetching tasks due %s..%s", start.isoformat(), end.isoformat())
    return FetchReport(tasks=sort_by_due(tasks), sourcesAttempted=attempted, failedSources=failed)

  async def get_tasks_due_in_range(self, start: datetime, end: datetime) -> list[Task]:
    return (await self.fetch_tasks_due_in_range(start, end)).tasks

  async def fetch_all_tasks(self, *, with_updates: bool = False) -> FetchReport:
    self._require_initialized()

    async def fetch(ws: WorkspaceConfig, client: MondayClient, board: BoardConfig) -> list[Task]:
      if with_updates:
        items = await client.get_all_items_with_updates(board.id)
      else:
        items = await client.get_all_items_from_board(board.id)
      return self._to_tasks(items, ws, board)

    tasks, failed, attempted = await self._gather_boards(fetch)
    return FetchReport(tasks=sort_by_due(tasks), sourcesAttempted=attempted, failedSources=failed)

  async def get_task_by_id(self, task_id: str) -> Task | None:
    self._require_initialized()
    for ws, client, board in self._sources():
      try:
        items = await client.get_all_items_from_board(board.id)
      except RemoteError as e:
        logger.warning("Skipping board %s while looking up task %s: %s", _board_label(ws, board), task_id, e)
        continue
      for item in items:
        if item and str(item.get("id")) == str(task_id):
          return item_to_task(item, board=board, workspace=ws, users=self.context.users, calendar=self.calendar)
    return None

  async def search_tasks(self, query: str, *, min_score: int = DEFAULT_MIN_SCORE) -> list[RankedItem[Task]]:
    report = await self.fetch_all_tasks(with_updates=True)
    return search(query, (document_for_task(t) for t in report.tasks), min_score=min_score)

  # -- directory ----------------------------------------------------------------

  def get_user(self, user_id: str) -> DirectoryUser | None:
    return self.context.users.get(str(user_id))

  def users(self) -> list[DirectoryUser]:
    return list(self.context.users.values())

  def workspace_configs(self) -> list[WorkspaceConfig]:
    return list(self.context.workspaces.values())

  def board_configs(self, workspace_id: str) -> list[BoardConfig]:
    return list(self.context.boards.get(workspace_id, []))
