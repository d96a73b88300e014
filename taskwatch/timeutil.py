from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from typing import NamedTuple

from dateutil import tz

from taskwatch.errors import ConfigurationError

ONE_MS = timedelta(milliseconds=1)

_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def _utc(instant: datetime) -> datetime:
  if instant.tzinfo is None:
    return instant.replace(tzinfo=timezone.utc)
  return instant.astimezone(timezone.utc)


class WallClock(NamedTuple):
  year: int
  month: int
  day: int
  hour: int
  minute: int
  second: int
  weekday: int  # Monday == 0

  def date(self) -> date:
    return date(self.year, self.month, self.day)


class CivilCalendar:
  """
  Day and week boundaries in one named civil timezone.

  Boundaries are found by probing UTC instants and reading their wall-clock rendering in the
  zone, never by assuming a fixed UTC offset. This keeps them exact across DST transitions:
  a civil day is 23, 24 or 25 hours long.
  """

  def __init__(self, tz_name: str, *, clock: Callable[[], datetime] | None = None) -> None:
    zone = tz.gettz(tz_name)
    if zone is None:
      raise ConfigurationError(f"Unknown timezone: {tz_name}")
    self.tz_name = tz_name
    self._zone = zone
    self._clock = clock or utcnow

  def now(self) -> datetime:
    return _utc(self._clock())

  def wall_clock(self, instant: datetime) -> WallClock:
    local = _utc(instant).astimezone(self._zone)
    return WallClock(local.year, local.month, local.day, local.hour, local.minute, local.second, local.weekday())

  def local_date(self, instant: datetime) -> date:
    return self.wall_clock(instant).date()

  def midnight(self, day: date) -> datetime:
    """First instant of the civil date `day`, as a UTC datetime."""
    search_start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc) - timedelta(days=1)
    first_on_day: datetime | None = None
    for h in range(48):
      probe = search_start + timedelta(hours=h)
      wc = self.wall_clock(probe)
      if wc.date() != day:
        continue
      exact = probe - timedelta(minutes=wc.minute, seconds=wc.second)
      if wc.hour == 0:
        return exact
      if first_on_day is None:
        # Zone skips 00:00 on this date (DST at midnight); the day starts at the first valid hour.
        first_on_day = exact
    if first_on_day is None:
      raise ValueError(f"No instant maps to {day.isoformat()} in {self.tz_name}")
    return first_on_day

  def start_of_day(self, instant: datetime) -> datetime:
    return self.midnight(self.local_date(instant))

  def end_of_day(self, instant: datetime) -> datetime:
    return self.midnight(self.local_date(instant) + timedelta(days=1)) - ONE_MS

  def start_of_week(self, instant: datetime) -> datetime:
    d = self.local_date(instant)
    return self.midnight(d - timedelta(days=d.weekday()))

  def end_of_week(self, instant: datetime) -> datetime:
    d = self.local_date(instant)
    sunday = d + timedelta(days=6 - d.weekday())
    return self.midnight(sunday + timedelta(days=1)) - ONE_MS

  def today_range(self, now: datetime | None = None) -> tuple[datetime, datetime]:
    now = now or self.now()
    return self.start_of_day(now), self.end_of_day(now)

  def week_range(self, now: datetime | None = None) -> tuple[datetime, datetime]:
    now = now or self.now()
    return self.start_of_week(now), self.end_of_week(now)

  def days_until(self, due: datetime, now: datetime | None = None) -> int:
    now = now or self.now()
    return (self.local_date(due) - self.local_date(now)).days

  def is_overdue(self, due: datetime, now: datetime | None = None) -> bool:
    now = now or self.now()
    return now > self.end_of_day(due)

  def is_today(self, instant: datetime, now: datetime | None = None) -> bool:
    return self.days_until(instant, now) == 0

  def is_tomorrow(self, instant: datetime, now: datetime | None = None) -> bool:
    return self.days_until(instant, now) == 1

  def is_this_week(self, instant: datetime, now: datetime | None = None) -> bool:
    start, end = self.week_range(now)
    return start <= _utc(instant) <= end

  def is_next_week(self, instant: datetime, now: datetime | None = None) -> bool:
    _, this_week_end = self.week_range(now)
    next_start = this_week_end + ONE_MS
    return next_start <= _utc(instant) <= self.end_of_week(next_start)

  def date_for_api(self, instant: datetime) -> str:
    return self.local_date(instant).isoformat()

  def format_date_short(self, instant: datetime) -> str:
    d = self.local_date(instant)
    return f"{d.day} {_MONTHS[d.month - 1]}"

  def format_date_only(self, instant: datetime) -> str:
    d = self.local_date(instant)
    return f"{_WEEKDAYS[d.weekday()]} {d.day} {_MONTHS[d.month - 1]} {d.year}"

  def relative_due_description(self, due: datetime, now: datetime | None = None) -> str:
    now = now or self.now()
    days = self.days_until(due, now)
    if self.is_overdue(due, now):
      late = abs(days)
      if late == 0:
        return "Overdue"
      return "Overdue by 1 day" if late == 1 else f"Overdue by {late} days"
    if days == 0:
      return "Due today"
    if days == 1:
      return "Due tomorrow"
    if days <= 7:
      return f"Due in {days} days"
    return f"Due {self.format_date_short(due)}"
