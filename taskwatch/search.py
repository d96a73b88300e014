from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from taskwatch.schemas import Task

T = TypeVar("T")

DEFAULT_MIN_SCORE = 4

STOP_WORDS = frozenset(
  {
    "a", "an", "the", "and", "or", "but",
    "in", "on", "at", "to", "for", "of", "with",
    "is", "are", "was", "were", "be", "been",
    "have", "has", "had",
    "do", "does", "did",
    "can", "could", "will", "would", "should",
    "this", "that", "these", "those",
    "i", "you", "he", "she", "it", "we", "they",
    "my", "your", "his", "her", "its", "our", "their",
  }
)

# Task names carry workflow noise that says nothing about the subject.
TASK_NAME_STOP_WORDS = STOP_WORDS | frozenset(
  {
    "by", "from", "as", "may", "might", "must", "shall", "need",
    "task", "item", "update", "review", "complete", "done", "todo",
  }
)

_NON_WORD = re.compile(r"[^\w]")


def extract_keywords(query: str) -> list[str]:
  words = [_NON_WORD.sub("", w) for w in (query or "").lower().split()]
  keywords = [w for w in words if w and w not in STOP_WORDS]
  return keywords or [(query or "").lower()]


def task_keywords(name: str, *, limit: int = 5) -> list[str]:
  """Distinct subject words of a task name, in order, for use as a correlation query."""
  out: list[str] = []
  for w in re.sub(r"[^\w\s]", " ", (name or "").lower()).split():
    if len(w) > 2 and w not in TASK_NAME_STOP_WORDS and w not in out:
      out.append(w)
  return out[:limit]


def _bounded(term: str) -> re.Pattern[str]:
  return re.compile(r"(?<!\w)" + re.escape(term) + r"(?!\w)")


def matches_whole_word(text: str, keyword: str) -> bool:
  return bool(text) and bool(keyword) and _bounded(keyword).search(text.lower()) is not None


def matches_phrase(text: str, phrase: str) -> bool:
  """Verbatim, case-insensitive; the phrase must not start or end inside a longer word."""
  return bool(text) and bool(phrase) and _bounded(phrase.lower()).search(text.lower()) is not None


def _count_substrings(text: str, keywords: Sequence[str]) -> int:
  low = (text or "").lower()
  return sum(1 for k in keywords if k and k in low)


@dataclass(frozen=True)
class SearchDocument(Generic[T]):
  ref: T
  title: str
  attachments: list[str] = field(default_factory=list)
  updates: list[str] = field(default_factory=list)
  fields: list[tuple[str, str]] = field(default_factory=list)  # (label, text)

  def searchable_texts(self) -> list[str]:
    texts = [self.title, *self.attachments, *self.updates]
    for label, text in self.fields:
      texts.extend([label, text])
    return [t for t in texts if t]


@dataclass(frozen=True)
class RankedItem(Generic[T]):
  item: T
  score: int


def document_for_task(task: Task) -> SearchDocument[Task]:
  return SearchDocument(
    ref=task,
    title=task.name,
    attachments=[a.name for a in task.assets],
    updates=[u.textBody for u in task.updates],
    fields=[(cv.title, cv.text) for cv in task.columnValues.values()],
  )


def score(doc: SearchDocument[Any], query: str, keywords: Sequence[str] | None = None) -> int:
  kws = list(keywords) if keywords is not None else extract_keywords(query)
  phrase = (query or "").strip()
  total = 0

  if matches_phrase(doc.title, phrase):
    total += 100
  in_title = sum(1 for k in kws if matches_whole_word(doc.title, k))
  if in_title >= 2:
    total += in_title * 10
  elif in_title == 1:
    total += 3

  for name in doc.attachments:
    if matches_phrase(name, phrase):
      total += 5
    total += 2 * _count_substrings(name, kws)

  for body in doc.updates:
    if matches_phrase(body, phrase):
      total += 3
    total += _count_substrings(body, kws)

  for label, text in doc.fields:
    total += _count_substrings(text, kws)
    total += _count_substrings(label, kws)

  return total


def is_candidate(doc: SearchDocument[Any], query: str, keywords: Sequence[str] | None = None) -> bool:
  kws = list(keywords) if keywords is not None else extract_keywords(query)
  texts = doc.searchable_texts()
  if len(kws) >= 2:
    phrase = (query or "").strip()
    if any(matches_phrase(t, phrase) for t in texts):
      return True
    combined = " \n ".join(texts)
    return all(matches_whole_word(combined, k) for k in kws)
  return any(_count_substrings(t, kws) for t in texts)


def search(query: str, documents: Iterable[SearchDocument[T]], *, min_score: int = DEFAULT_MIN_SCORE) -> list[RankedItem[T]]:
  kws = extract_keywords(query)
  ranked: list[RankedItem[T]] = []
  for doc in documents:
    if not is_candidate(doc, query, kws):
      continue
    s = score(doc, query, kws)
    if s >= min_score:
      ranked.append(RankedItem(item=doc.ref, score=s))
  ranked.sort(key=lambda r: r.score, reverse=True)
  return ranked


def rank(query: str, documents: Iterable[SearchDocument[T]]) -> list[RankedItem[T]]:
  """Score every document without gating or threshold; ties keep their input order."""
  kws = extract_keywords(query)
  ranked = [RankedItem(item=doc.ref, score=score(doc, query, kws)) for doc in documents]
  ranked.sort(key=lambda r: r.score, reverse=True)
  return ranked
