"""
Tests for crewcall.services.reminder_timing: the reminder type classifier,
start-time normalization and the reminder calendar "today".
"""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from crewcall.services.types import ReminderType

NOW = datetime(2025, 1, 9, 9, 0, tzinfo=timezone.utc)


def _classify_at(hours_ahead: float) -> ReminderType:
    from crewcall.services.reminder_timing import classify_reminder_type

    starts = NOW + timedelta(hours=hours_ahead)
    return classify_reminder_type(starts.date(), starts.time(), NOW)


class TestClassifyReminderType:

    def test_job_tomorrow_same_time_is_day_before(self):
        from crewcall.services.reminder_timing import classify_reminder_type

        assert classify_reminder_type(date(2025, 1, 10), time(9, 0), NOW) == ReminderType.DAY_BEFORE

    @pytest.mark.parametrize(
        "hours, expected",
        [
            (59.9, ReminderType.TWO_DAYS_BEFORE),
            (48, ReminderType.TWO_DAYS_BEFORE),
            (36, ReminderType.TWO_DAYS_BEFORE),
            (35.9, ReminderType.DAY_BEFORE),
            (12, ReminderType.DAY_BEFORE),
            (5.9, ReminderType.MORNING_OF),
            (2, ReminderType.MORNING_OF),
            (1.9, ReminderType.HOUR_BEFORE),
            (0.5, ReminderType.HOUR_BEFORE),
        ],
    )
    def test_window_boundaries(self, hours, expected):
        assert _classify_at(hours) == expected

    @pytest.mark.parametrize("hours", [60, 72, 11.9, 8, 6, 0.49, 0, -3])
    def test_gaps_and_past_starts_fall_back_to_follow_up(self, hours):
        assert _classify_at(hours) == ReminderType.FOLLOW_UP


class TestParseStartTime:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("09:00", time(9, 0)),
            ("09:00:30", time(9, 0, 30)),
            (" 17:45 ", time(17, 45)),
            ("2025-01-10T09:00:00Z", time(9, 0)),
            ("2025-01-10T09:00:00-07:00", time(16, 0)),
            ("2025-01-10 09:00:00", time(9, 0)),
            (time(8, 15), time(8, 15)),
            (datetime(2025, 1, 10, 22, 0, tzinfo=timezone(timedelta(hours=-2))), time(0, 0)),
        ],
    )
    def test_accepted_formats(self, raw, expected):
        from crewcall.services.reminder_timing import parse_start_time

        assert parse_start_time(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "nine", "25:00", "9", "2025-13-40T00:00:00", 900])
    def test_unparseable_returns_none(self, raw):
        from crewcall.services.reminder_timing import parse_start_time

        assert parse_start_time(raw) is None


class TestCalendarToday:

    def test_utc_by_default(self):
        from crewcall.services.reminder_timing import calendar_today

        now = datetime(2025, 1, 10, 3, 0, tzinfo=timezone.utc)
        assert calendar_today(now) == date(2025, 1, 10)

    def test_local_calendar_can_lag_utc(self):
        from crewcall.services.reminder_timing import calendar_today

        now = datetime(2025, 1, 10, 3, 0, tzinfo=timezone.utc)
        assert calendar_today(now, "America/Denver") == date(2025, 1, 9)

    def test_invalid_zone_falls_back_to_utc(self):
        from crewcall.services.reminder_timing import calendar_today

        now = datetime(2025, 1, 10, 3, 0, tzinfo=timezone.utc)
        assert calendar_today(now, "Mars/Olympus_Mons") == date(2025, 1, 10)

    def test_query_targets(self):
        from crewcall.services.reminder_timing import day_before_target, two_days_before_target

        assert day_before_target(date(2025, 1, 31)) == date(2025, 2, 1)
        assert two_days_before_target(date(2025, 1, 31)) == date(2025, 2, 2)
