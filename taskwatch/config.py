from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping

from pydantic import TypeAdapter, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from taskwatch.schemas import BoardConfig, WorkspaceConfig

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  app_version: str = "v2026-10-17"
  log_level: str = "INFO"

  timezone: str = "Australia/Sydney"

  monday_api_url: str = "https://api.monday.com/v2"
  monday_api_version: str = "2024-10"
  request_timeout_seconds: float = 30.0
  retry_max_retries: int = 3
  retry_initial_delay_seconds: float = 1.5
  retry_multiplier: float = 2.0
  retry_max_delay_seconds: float = 30.0
  board_concurrency: int = 4
  items_page_limit: int = 100

  min_relevance_score: int = 4
  overdue_lookback_days: int = 30
  on_demand_overdue_lookback_days: int = 90
  upcoming_days: int = 14
  alert_retention_days: int = 30

  database_url: str = "postgresql+asyncpg://taskwatch:taskwatch@db:5432/taskwatch"

  sharepoint_tenant_id: str | None = None
  sharepoint_client_id: str | None = None
  sharepoint_client_secret: str | None = None
  sharepoint_region: str = "AUS"

  delivery_provider: str = "local"  # local | slack
  slack_bot_token: str | None = None
  slack_default_channel: str | None = None

  def sharepoint_enabled(self) -> bool:
    return bool(self.sharepoint_tenant_id and self.sharepoint_client_id and self.sharepoint_client_secret)


settings = Settings()

_boards_adapter = TypeAdapter(list[BoardConfig])


def _parse_boards(raw: str | None, *, source: str) -> list[BoardConfig]:
  if not raw:
    return []
  try:
    return _boards_adapter.validate_python(json.loads(raw))
  except (ValueError, ValidationError) as e:
    logger.warning("Failed to parse %s, boards will be auto-discovered: %s", source, e)
    return []


def load_workspace_configs(environ: Mapping[str, str] | None = None) -> list[WorkspaceConfig]:
  """
  Build workspace configurations from environment variables.

  - MONDAY_API_KEY / MONDAY_SUBDOMAIN / MONDAY_BOARD_CONFIGS describe the default workspace.
  - MONDAY_WORKSPACE_<n>_{API_KEY,NAME,SUBDOMAIN,ID,BOARDS} add more, numbered from 1 with no gaps.
  - Missing or unparsable board JSON yields an empty board list (auto-discovery kicks in).
  """
  env = os.environ if environ is None else environ
  configs: list[WorkspaceConfig] = []

  api_key = (env.get("MONDAY_API_KEY") or "").strip()
  if api_key:
    configs.append(
      WorkspaceConfig(
        id="default",
        name=env.get("MONDAY_WORKSPACE_NAME") or "Default Workspace",
        apiToken=api_key,
        subdomain=env.get("MONDAY_SUBDOMAIN") or "monday",
        boards=_parse_boards(env.get("MONDAY_BOARD_CONFIGS"), source="MONDAY_BOARD_CONFIGS"),
      )
    )

  n = 1
  while (env.get(f"MONDAY_WORKSPACE_{n}_API_KEY") or "").strip():
    prefix = f"MONDAY_WORKSPACE_{n}_"
    configs.append(
      WorkspaceConfig(
        id=env.get(prefix + "ID") or f"workspace_{n}",
        name=env.get(prefix + "NAME") or f"Workspace {n}",
        apiToken=env[prefix + "API_KEY"].strip(),
        subdomain=env.get(prefix + "SUBDOMAIN") or "monday",
        boards=_parse_boards(env.get(prefix + "BOARDS"), source=prefix + "BOARDS"),
      )
    )
    n += 1

  return configs
