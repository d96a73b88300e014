from __future__ import annotations

import re
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ReminderTemplate:
  name: str
  pattern: re.Pattern[str]
  messages: dict[int, str]  # days-before threshold -> message
  checklist: tuple[str, ...] = field(default_factory=tuple)

  def matches(self, task_name: str) -> bool:
    return self.pattern.search(task_name or "") is not None

  def message_for(self, days_until_due: int) -> str | None:
    """Message at the smallest threshold that still covers `days_until_due`."""
    if days_until_due < 0:
      return None
    covering = [d for d in self.messages if d >= days_until_due]
    if not covering:
      return None
    return self.messages[min(covering)]


def _t(name: str, pattern: str, messages: dict[int, str], checklist: tuple[str, ...] = ()) -> ReminderTemplate:
  return ReminderTemplate(name=name, pattern=re.compile(pattern, re.IGNORECASE), messages=messages, checklist=checklist)


# Evaluated in order; the first match wins.
TEMPLATES: tuple[ReminderTemplate, ...] = (
  _t(
    "round_table",
    r"round\s*table",
    {
      7: "Round table one week away. Have the name badges been done?",
      3: "Round table in 3 days. Time to finalize the agenda and confirm attendees.",
      1: "Round table is tomorrow. Final preparations needed.",
      0: "Round table is today. Arrive early for setup.",
    },
    (
      "Name badges prepared",
      "Agenda finalized",
      "Room booking confirmed",
      "Catering ordered",
      "AV equipment tested",
      "Attendee list confirmed",
    ),
  ),
  _t(
    "presentation",
    r"presentation|pitch|deck",
    {
      5: "Presentation in 5 days. Review the deck with stakeholders.",
      2: "Presentation in 2 days. Final review and practice.",
      1: "Presentation is tomorrow. Final preparations.",
      0: "Presentation is today.",
    },
    (
      "Deck reviewed by stakeholders",
      "Practice run completed",
      "Backup of presentation saved",
      "AV setup confirmed",
    ),
  ),
  _t(
    "campaign_launch",
    r"campaign\s*launch|go.?live",
    {
      7: "Campaign launch one week out. Check creative approval, landing page, tracking and team briefing.",
      3: "Campaign launches in 3 days. Final QA checks.",
      1: "Campaign launches tomorrow. Stakeholder sign-off needed.",
      0: "Launch day. Monitor closely for the first 2 hours.",
    },
    (
      "Creative assets approved",
      "Landing page tested",
      "Tracking pixels installed",
      "Team briefed",
      "Budget confirmed",
      "Stakeholder sign-off received",
    ),
  ),
  _t(
    "client_meeting",
    r"client\s*meeting|client\s*call",
    {
      3: "Client meeting in 3 days. Review account status.",
      1: "Client meeting tomorrow. Finalize the presentation.",
      0: "Client meeting today. Join 5 minutes early.",
    },
    (
      "Account status reviewed",
      "Meeting agenda prepared",
      "Key talking points noted",
      "Questions for client ready",
    ),
  ),
  _t(
    "deadline",
    r"deadline|due|submit|delivery",
    {
      3: "Deadline in 3 days. Check progress and blockers.",
      1: "Deadline is tomorrow. Final push needed.",
      0: "Deadline is today. Submit before end of day.",
    },
  ),
  _t(
    "review",
    r"review|approval|sign.?off",
    {
      2: "Review/approval needed in 2 days.",
      1: "Review/approval needed tomorrow.",
      0: "Review/approval needed today.",
    },
  ),
  _t(
    "event",
    r"event|conference|workshop",
    {
      7: "Event one week away. Confirm logistics and materials.",
      3: "Event in 3 days. Final preparations.",
      1: "Event is tomorrow. Last-minute checks.",
      0: "Event is today.",
    },
    (
      "Venue confirmed",
      "Materials prepared",
      "Attendee communications sent",
      "Logistics finalized",
    ),
  ),
  _t(
    "shoot",
    r"photoshoot|video\s*shoot|filming",
    {
      5: "Shoot in 5 days. Confirm talent and location.",
      2: "Shoot in 2 days. Final production meeting needed.",
      1: "Shoot is tomorrow. Are all preparations complete?",
      0: "Shoot is today. Has the call time reminder gone out?",
    },
    (
      "Talent confirmed",
      "Location secured",
      "Equipment ready",
      "Shot list finalized",
      "Wardrobe/props prepared",
    ),
  ),
)


def match_template(task_name: str, templates: tuple[ReminderTemplate, ...] = TEMPLATES) -> ReminderTemplate | None:
  return next((t for t in templates if t.matches(task_name)), None)


def match_checklist(task_name: str, templates: tuple[ReminderTemplate, ...] = TEMPLATES) -> list[str]:
  t = next((t for t in templates if t.checklist and t.matches(task_name)), None)
  return list(t.checklist) if t else []
