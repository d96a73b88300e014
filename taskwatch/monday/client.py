from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from taskwatch.config import settings
from taskwatch.errors import FatalRemoteError, TransientRemoteError
from taskwatch.monday import queries
from taskwatch.monday.retry import RetryPolicy, is_retryable_status, is_transient_message, retry_with_backoff

logger = logging.getLogger(__name__)

USER_AGENT = "taskwatch"

PageFetcher = Callable[[str | None], Awaitable[tuple[list[dict[str, Any]], str | None]]]


def _extract_graphql_error(payload: Any) -> tuple[str, dict[str, Any]]:
  if isinstance(payload, dict):
    parts: list[str] = []
    errs = payload.get("errors")
    if isinstance(errs, list):
      for e in errs:
        if isinstance(e, dict):
          code = (e.get("extensions") or {}).get("code") if isinstance(e.get("extensions"), dict) else None
          msg = str(e.get("message") or "").strip()
          parts.append(f"{code}: {msg}" if code else msg)
        elif e:
          parts.append(str(e))
    if payload.get("error_message") or payload.get("error_code"):
      code = payload.get("error_code")
      msg = str(payload.get("error_message") or "").strip()
      parts.append(f"{code}: {msg}" if code else msg)
    msg = "; ".join(p for p in parts if p).strip() or "monday.com request failed"
    return msg, {"errors": errs or [], "errorCode": payload.get("error_code")}
  if isinstance(payload, str) and payload.strip():
    return payload.strip()[:500], {}
  return "monday.com request failed", {}


def _has_errors(payload: Any) -> bool:
  return isinstance(payload, dict) and bool(payload.get("errors") or payload.get("error_code") or payload.get("error_message"))


@dataclass
class MondayAuth:
  token: str
  api_url: str = "https://api.monday.com/v2"
  api_version: str = "2024-10"
  timeout: float = 30.0
  transport: httpx.AsyncBaseTransport | None = None

  def httpx_client(self) -> httpx.AsyncClient:
    headers = {
      "User-Agent": USER_AGENT,
      "Accept": "application/json",
      "Content-Type": "application/json",
      "Authorization": self.token,
      "API-Version": self.api_version,
    }
    return httpx.AsyncClient(headers=headers, timeout=self.timeout, transport=self.transport)

  @classmethod
  def from_settings(cls, token: str, *, transport: httpx.AsyncBaseTransport | None = None) -> MondayAuth:
    return cls(
      token=token,
      api_url=settings.monday_api_url,
      api_version=settings.monday_api_version,
      timeout=settings.request_timeout_seconds,
      transport=transport,
    )


def default_policy() -> RetryPolicy:
  return RetryPolicy(
    max_retries=settings.retry_max_retries,
    initial_delay=settings.retry_initial_delay_seconds,
    multiplier=settings.retry_multiplier,
    max_delay=settings.retry_max_delay_seconds,
  )


async def paginate(fetch_page: PageFetcher) -> list[dict[str, Any]]:
  """Feed each returned cursor back until the server returns none; accumulates every item."""
  items: list[dict[str, Any]] = []
  cursor: str | None = None
  seen: set[str] = set()
  while True:
    page, cursor = await fetch_page(cursor)
    items.extend(page)
    if not cursor:
      return items
    if cursor in seen:
      logger.warning("Cursor repeated during pagination, stopping after %d items", len(items))
      return items
    seen.add(cursor)


class MondayClient:
  def __init__(
    self,
    auth: MondayAuth,
    *,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    page_limit: int | None = None,
  ) -> None:
    self.auth = auth
    self.policy = policy or default_policy()
    self.page_limit = page_limit or settings.items_page_limit
    self._sleep = sleep

  async def _post(self, query: str, variables: dict[str, Any] | None) -> dict[str, Any]:
    async with self.auth.httpx_client() as client:
      r = await client.post(self.auth.api_url, json={"query": query, "variables": variables or {}})
    if r.status_code >= 400:
      try:
        payload = r.json()
      except Exception:
        payload = (r.text or "")[:800]
      msg, details = _extract_graphql_error(payload)
      if is_retryable_status(r.status_code):
        raise TransientRemoteError(msg, status_code=r.status_code, details=details)
      raise FatalRemoteError(msg, status_code=r.status_code, details=details)

    try:
      payload = r.json()
    except ValueError as e:
      raise TransientRemoteError(f"Invalid JSON from monday.com: {e}", status_code=r.status_code) from e

    if _has_errors(payload):
      msg, details = _extract_graphql_error(payload)
      if is_transient_message(msg):
        raise TransientRemoteError(msg, status_code=r.status_code, details=details)
      raise FatalRemoteError(msg, status_code=r.status_code, details=details)

    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
      raise FatalRemoteError("monday.com response has no data", status_code=r.status_code)
    return data

  async def query(self, query: str, variables: dict[str, Any] | None = None, *, label: str = "monday query") -> dict[str, Any]:
    return await retry_with_backoff(lambda: self._post(query, variables), self.policy, sleep=self._sleep, label=label)

  async def get_users(self) -> list[dict[str, Any]]:
    users: list[dict[str, Any]] = []
    page = 1
    while True:
      data = await self.query(queries.GET_USERS, {"limit": 200, "page": page}, label="users")
      batch = data.get("users") or []
      users.extend(batch)
      if len(batch) < 200:
        return users
      page += 1

  async def get_workspaces(self) -> list[dict[str, Any]]:
    data = await self.query(queries.GET_WORKSPACES, label="workspaces")
    return [w for w in data.get("workspaces") or [] if w]

  async def get_boards_in_workspace(self, workspace_id: str) -> list[dict[str, Any]]:
    boards: list[dict[str, Any]] = []
    page = 1
    while True:
      data = await self.query(
        queries.GET_BOARDS_IN_WORKSPACE,
        {"workspaceId": str(workspace_id), "limit": 100, "page": page},
        label=f"boards in workspace {workspace_id}",
      )
      batch = data.get("boards") or []
      boards.extend(batch)
      if len(batch) < 100:
        return boards
      page += 1

  async def get_boards_with_columns(self, board_ids: list[str]) -> list[dict[str, Any]]:
    if not board_ids:
      return []
    data = await self.query(queries.GET_BOARDS_WITH_COLUMNS, {"boardIds": [str(b) for b in board_ids]}, label="board columns")
    return [b for b in data.get("boards") or [] if b]

  async def _first_page(self, board_id: str, *, query_params: dict | None, with_updates: bool) -> tuple[list[dict[str, Any]], str | None]:
    variables: dict[str, Any] = {"boardId": str(board_id), "limit": self.page_limit}
    if query_params is not None:
      variables["queryParams"] = query_params
    data = await self.query(
      queries.items_page_query(filtered=query_params is not None, with_updates=with_updates),
      variables,
      label=f"items of board {board_id}",
    )
    boards = data.get("boards") or []
    if not boards:
      return [], None
    page = boards[0].get("items_page") or {}
    return list(page.get("items") or []), page.get("cursor")

  async def _next_page(self, cursor: str, *, with_updates: bool) -> tuple[list[dict[str, Any]], str | None]:
    data = await self.query(
      queries.next_items_page_query(with_updates=with_updates),
      {"cursor": cursor, "limit": self.page_limit},
      label="next items page",
    )
    page = data.get("next_items_page") or {}
    return list(page.get("items") or []), page.get("cursor")

  async def _all_items(self, board_id: str, *, query_params: dict | None = None, with_updates: bool = False) -> list[dict[str, Any]]:
    async def fetch_page(cursor: str | None) -> tuple[list[dict[str, Any]], str | None]:
      if cursor is None:
        return await self._first_page(board_id, query_params=query_params, with_updates=with_updates)
      return await self._next_page(cursor, with_updates=with_updates)

    return await paginate(fetch_page)

  async def get_items_in_date_range(self, board_id: str, date_column_id: str, start: str, end: str) -> list[dict[str, Any]]:
    """Server-side `between` filter; `start`/`end` are civil dates (YYYY-MM-DD)."""
    return await self._all_items(board_id, query_params=queries.between_filter(date_column_id, start, end))

  async def get_all_items_from_board(self, board_id: str) -> list[dict[str, Any]]:
    return await self._all_items(board_id)

  async def get_all_items_with_updates(self, board_id: str) -> list[dict[str, Any]]:
    return await self._all_items(board_id, with_updates=True)
