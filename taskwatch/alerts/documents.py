from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Protocol

from taskwatch.errors import ParseError
from taskwatch.monday.parsing import FILE_COLUMN_TYPES, parse_file_column
from taskwatch.schemas import DocumentLink, Task
from taskwatch.search import SearchDocument, rank, task_keywords

logger = logging.getLogger(__name__)

EXTERNAL_RESULT_LIMIT = 5


class DocumentSearch(Protocol):
  async def search(self, query: str, limit: int) -> list[dict[str, Any]]: ...


def file_type(name: str) -> str:
  if not name or "." not in name:
    return "unknown"
  return name.rsplit(".", 1)[1].lower()


def dedupe_documents(documents: Iterable[DocumentLink]) -> list[DocumentLink]:
  seen: dict[str, DocumentLink] = {}
  for doc in documents:
    seen.setdefault(doc.dedupe_key(), doc)
  return list(seen.values())


def native_documents(task: Task) -> list[DocumentLink]:
  """Attachments already on the task; no network call."""
  docs = [
    DocumentLink(id=a.id, name=a.name, url=a.url, source="monday", fileType=a.fileExtension or file_type(a.name))
    for a in task.assets
  ]
  for col_id, cv in task.columnValues.items():
    if cv.type not in FILE_COLUMN_TYPES or not cv.value:
      continue
    try:
      files = parse_file_column(cv.value, column_id=col_id)
    except ParseError as e:
      logger.warning("Ignoring file column %s of task %s: %s", col_id, task.id, e)
      continue
    docs.extend(
      DocumentLink(id=f.id, name=f.name, url=f.url, source="monday", fileType=f.fileExtension or file_type(f.name)) for f in files
    )
  return docs


def _external_link(hit: dict[str, Any]) -> DocumentLink:
  name = str(hit.get("name") or "Unknown")
  return DocumentLink(
    id=str(hit.get("id") or ""),
    name=name,
    url=str(hit.get("url") or hit.get("webUrl") or ""),
    source="sharepoint",
    fileType=str(hit.get("fileType") or file_type(name)),
  )


class DocumentCorrelator:
  def __init__(self, external: DocumentSearch | None = None) -> None:
    self.external = external

  async def _external_documents(self, query: str, limit: int) -> list[DocumentLink]:
    if self.external is None or not query:
      return []
    try:
      hits = await self.external.search(query, limit)
    except Exception as e:
      logger.warning("External document search failed for %r: %s", query, e)
      return []
    links = [_external_link(h) for h in hits or [] if isinstance(h, dict)]
    # The remote engine matches on content too; put the best name matches first.
    return [r.item for r in rank(query, (SearchDocument(ref=link, title=link.name) for link in links))]

  async def related_documents(self, task: Task) -> list[DocumentLink]:
    docs = native_documents(task)
    query = " ".join(task_keywords(task.name, limit=5))
    docs.extend(await self._external_documents(query, EXTERNAL_RESULT_LIMIT))
    unique = dedupe_documents(docs)
    logger.debug("Task %s has %d related document(s)", task.id, len(unique))
    return unique

  async def search_documents_by_keywords(self, keywords: list[str], limit: int = 10) -> list[DocumentLink]:
    query = " ".join(k for k in keywords[:5] if k)
    return dedupe_documents(await self._external_documents(query, min(limit, 25)))
