"""
Reminder timing: when a reminder is due and which kind it is.

Both the repository's candidate queries and the reminder type classifier
read their boundaries from this module, so the two stay consistent.

The classifier ranges deliberately leave gaps (6-12h and 60h+ before start).
Nothing is classified into those gaps in practice because the candidate
queries only return assignments for tomorrow, the day after tomorrow, and
today; an assignment that reaches the classifier from a gap still gets
FOLLOW_UP.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from crewcall.services.types import ReminderType

logger = logging.getLogger(__name__)

# (lower bound hours inclusive, upper bound hours exclusive, type); first match wins
REMINDER_WINDOWS: tuple[tuple[float, float, ReminderType], ...] = (
    (36, 60, ReminderType.TWO_DAYS_BEFORE),
    (12, 36, ReminderType.DAY_BEFORE),
    (2, 6, ReminderType.MORNING_OF),
    (0.5, 2, ReminderType.HOUR_BEFORE),
)

# Candidate query windows
DAY_BEFORE_OFFSET_DAYS = 1
TWO_DAYS_BEFORE_OFFSET_DAYS = 2
MORNING_OF_HOURS_AHEAD = 2

# Minimum gap between two reminders for the same assignment
SAME_DAY_MIN_HOURS = 4
OTHER_DAY_MIN_HOURS = 24


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_start_time(value) -> Optional[time]:
    """Normalize a stored start time into a UTC time of day.

    Accepts a ``datetime.time`` (assumed UTC), a ``datetime`` (naive is
    treated as UTC), a bare "HH:MM" / "HH:MM:SS" string, or an ISO-8601
    timestamp string. Returns None when the value cannot be interpreted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.time().replace(tzinfo=None)
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw:
        return None

    if "T" in raw or " " in raw:
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parse_start_time(parsed)

    parts = raw.split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = int(float(parts[2])) if len(parts) == 3 else 0
        return time(hours, minutes, seconds)
    except ValueError:
        return None


def combine_work_datetime(work_date: date, start_time: time) -> datetime:
    """Work date calendar day + UTC time of day, as a UTC instant."""
    return datetime.combine(work_date, start_time, tzinfo=timezone.utc)


def hours_until(work_date: date, start_time: time, now: datetime) -> float:
    return (combine_work_datetime(work_date, start_time) - now).total_seconds() / 3600


def classify_reminder_type(work_date: date, start_time: time, now: datetime) -> ReminderType:
    """Pick the reminder bucket for an assignment at ``now``.

    Examples for a job Monday 09:00 UTC:
      - Saturday (36-60 hours before)  -> TWO_DAYS_BEFORE
      - Sunday (12-36 hours before)    -> DAY_BEFORE
      - Monday early (2-6 hours)       -> MORNING_OF
      - Monday ~08:00 (0.5-2 hours)    -> HOUR_BEFORE
      - anything else, including after the start -> FOLLOW_UP
    """
    hours = hours_until(work_date, start_time, now)
    for lower, upper, reminder_type in REMINDER_WINDOWS:
        if lower <= hours < upper:
            return reminder_type
    return ReminderType.FOLLOW_UP


def calendar_today(now: datetime, tz_name: str = "UTC") -> date:
    """Calendar date of ``now`` in the reminder calendar timezone."""
    try:
        tz = ZoneInfo(tz_name)
    except (KeyError, ValueError):
        logger.warning("Invalid reminder calendar timezone '%s', falling back to UTC", tz_name)
        tz = timezone.utc
    return now.astimezone(tz).date()


def day_before_target(today: date) -> date:
    return today + timedelta(days=DAY_BEFORE_OFFSET_DAYS)


def two_days_before_target(today: date) -> date:
    return today + timedelta(days=TWO_DAYS_BEFORE_OFFSET_DAYS)
