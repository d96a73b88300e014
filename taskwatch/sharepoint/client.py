from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from taskwatch.config import settings
from taskwatch.errors import ConfigurationError, FatalRemoteError, TransientRemoteError
from taskwatch.monday.retry import is_retryable_status

logger = logging.getLogger(__name__)

GRAPH_URL = "https://graph.microsoft.com/v1.0"
LOGIN_URL = "https://login.microsoftonline.com"
TOKEN_SAFETY_SECONDS = 300
SEARCH_FIELDS = ["id", "name", "webUrl", "lastModifiedDateTime", "file"]


@dataclass
class _CachedToken:
  access_token: str
  expires_at: float


def _raise_for(r: httpx.Response, what: str) -> None:
  if r.status_code < 400:
    return
  msg = f"{what} failed: HTTP {r.status_code}"
  try:
    payload = r.json()
    err = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(err, dict) and err.get("message"):
      msg = f"{msg}: {err['message']}"
    elif isinstance(payload, dict) and payload.get("error_description"):
      msg = f"{msg}: {payload['error_description']}"
  except ValueError:
    pass
  if is_retryable_status(r.status_code):
    raise TransientRemoteError(msg, status_code=r.status_code)
  raise FatalRemoteError(msg, status_code=r.status_code)


class SharePointSearch:
  """Microsoft Graph driveItem search with an app-only (client credentials) token."""

  def __init__(
    self,
    *,
    tenant_id: str,
    client_id: str,
    client_secret: str,
    region: str = "AUS",
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Callable[[], float] = time.time,
  ) -> None:
    if not (tenant_id and client_id and client_secret):
      raise ConfigurationError("SharePoint credentials not configured")
    self.tenant_id = tenant_id
    self.client_id = client_id
    self.client_secret = client_secret
    self.region = region
    self.timeout = timeout
    self._transport = transport
    self._clock = clock
    self._token: _CachedToken | None = None

  @classmethod
  def from_settings(cls) -> SharePointSearch | None:
    if not settings.sharepoint_enabled():
      return None
    return cls(
      tenant_id=settings.sharepoint_tenant_id or "",
      client_id=settings.sharepoint_client_id or "",
      client_secret=settings.sharepoint_client_secret or "",
      region=settings.sharepoint_region,
      timeout=settings.request_timeout_seconds,
    )

  def httpx_client(self) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=self.timeout, transport=self._transport, headers={"Accept": "application/json"})

  async def access_token(self) -> str:
    if self._token and self._token.expires_at > self._clock():
      return self._token.access_token
    try:
      async with self.httpx_client() as client:
        r = await client.post(
          f"{LOGIN_URL}/{self.tenant_id}/oauth2/v2.0/token",
          data={
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": "https://graph.microsoft.com/.default",
            "grant_type": "client_credentials",
          },
        )
    except httpx.HTTPError as e:
      raise TransientRemoteError(f"SharePoint auth request failed: {e}") from e
    _raise_for(r, "SharePoint auth")
    data = r.json()
    expires_in = int(data.get("expires_in") or 3600)
    self._token = _CachedToken(
      access_token=str(data["access_token"]),
      expires_at=self._clock() + max(0, expires_in - TOKEN_SAFETY_SECONDS),
    )
    return self._token.access_token

  async def search(self, query: str, limit: int = 5) -> list[dict[str, Any]]:
    token = await self.access_token()
    body = {
      "requests": [
        {
          "entityTypes": ["driveItem"],
          "query": {"queryString": query},
          "from": 0,
          "size": max(1, min(limit, 25)),
          "fields": SEARCH_FIELDS,
          "region": self.region,
        }
      ]
    }
    try:
      async with self.httpx_client() as client:
        r = await client.post(f"{GRAPH_URL}/search/query", json=body, headers={"Authorization": f"Bearer {token}"})
    except httpx.HTTPError as e:
      raise TransientRemoteError(f"SharePoint search request failed: {e}") from e
    _raise_for(r, "SharePoint search")

    payload = r.json()
    containers = (payload.get("value") or [{}])[0].get("hitsContainers") or []
    hits = (containers[0].get("hits") or []) if containers else []
    out: list[dict[str, Any]] = []
    for hit in hits:
      res = hit.get("resource") or {}
      name = str(res.get("name") or "Unknown")
      out.append(
        {
          "id": str(res.get("id") or ""),
          "name": name,
          "url": str(res.get("webUrl") or ""),
          "fileType": name.rsplit(".", 1)[1].lower() if "." in name else "unknown",
        }
      )
    logger.info("SharePoint search %r returned %d hit(s)", query, len(out))
    return out
