"""
Tests for crewcall.services.scheduler_service.SchedulerService.

The reminder service is an AsyncMock; retry delays are configured as zero
minutes so cycles finish without real waiting.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from crewcall.services.types import ReminderResult, ReminderType, ScheduleConfig

NOW = datetime(2025, 1, 9, 9, 0, tzinfo=timezone.utc)


def _make_result(success=True):
    return ReminderResult(
        success=success,
        assignment_id="job-1-assoc-1",
        job_id="job-1",
        associate_id="assoc-1",
        phone_number="+15551234567",
        reminder_type=ReminderType.DAY_BEFORE,
        error=None if success else "Twilio error: undeliverable",
    )


def _reminder_service(side_effect=None, return_value=None):
    service = MagicMock()
    service.process_scheduled_reminders = AsyncMock(
        side_effect=side_effect,
        return_value=[_make_result()] if return_value is None else return_value,
    )
    return service


def _scheduler(reminder_service, **config):
    from crewcall.services.scheduler_service import SchedulerService

    defaults = dict(enabled=True, interval_minutes=15, max_retries=3, retry_delay_minutes=0)
    defaults.update(config)
    return SchedulerService(reminder_service, ScheduleConfig(**defaults), clock=lambda: NOW)


class TestLifecycle:

    async def test_start_is_idempotent_and_runs_a_cycle_immediately(self):
        service = _reminder_service()
        scheduler = _scheduler(service)

        scheduler.start()
        first_task = scheduler._tick_task
        scheduler.start()

        assert scheduler._tick_task is first_task
        assert scheduler.is_active()
        assert scheduler.get_stats().next_run_time == NOW + timedelta(minutes=15)

        for _ in range(5):
            await asyncio.sleep(0)
        await scheduler.shutdown(timeout=1)

        service.process_scheduled_reminders.assert_awaited_once()
        assert scheduler.get_stats().successful_runs == 1

    async def test_disabled_scheduler_does_not_start(self):
        scheduler = _scheduler(_reminder_service(), enabled=False)

        scheduler.start()

        assert not scheduler.is_active()

    async def test_stop_clears_next_run_time(self):
        scheduler = _scheduler(_reminder_service())
        scheduler.start()

        scheduler.stop()

        assert not scheduler.is_active()
        assert scheduler.get_stats().next_run_time is None
        await scheduler.shutdown(timeout=1)

    async def test_shutdown_cancels_cycles_that_outlive_the_timeout(self):
        release = asyncio.Event()

        async def slow_pass():
            await release.wait()
            return []

        scheduler = _scheduler(_reminder_service(side_effect=slow_pass))
        scheduler._spawn_cycle()
        await asyncio.sleep(0)
        assert scheduler.get_stats().is_running

        await scheduler.shutdown(timeout=0.01)

        assert not scheduler.get_stats().is_running
        assert scheduler._cycles == set()


class TestCycles:

    async def test_failed_attempt_is_retried(self):
        service = _reminder_service(side_effect=[RuntimeError("db down"), [_make_result()]])
        scheduler = _scheduler(service, max_retries=3)

        await scheduler._execute_reminder_check()

        stats = scheduler.get_stats()
        assert service.process_scheduled_reminders.await_count == 2
        assert stats.total_runs == 1
        assert stats.successful_runs == 1
        assert stats.failed_runs == 0
        assert stats.last_run_time == NOW
        assert stats.is_running is False

    async def test_exhausted_retries_count_one_failed_run(self):
        service = _reminder_service(side_effect=RuntimeError("db down"))
        scheduler = _scheduler(service, max_retries=2)

        await scheduler._execute_reminder_check()

        stats = scheduler.get_stats()
        assert service.process_scheduled_reminders.await_count == 2
        assert stats.total_runs == 1
        assert stats.failed_runs == 1
        assert stats.last_run_time is None

    async def test_at_least_one_attempt_when_retries_are_zero(self):
        service = _reminder_service()
        scheduler = _scheduler(service, max_retries=0)

        await scheduler._execute_reminder_check()

        service.process_scheduled_reminders.assert_awaited_once()

    async def test_tick_is_skipped_while_a_cycle_runs(self):
        release = asyncio.Event()

        async def slow_pass():
            await release.wait()
            return []

        service = _reminder_service(side_effect=slow_pass)
        scheduler = _scheduler(service)

        scheduler._spawn_cycle()
        await asyncio.sleep(0)
        scheduler._spawn_cycle()
        release.set()
        await asyncio.gather(*scheduler._cycles)

        service.process_scheduled_reminders.assert_awaited_once()
        assert scheduler.get_stats().total_runs == 1


class TestRunNow:

    async def test_run_now_returns_results_and_counts_the_run(self):
        results = [_make_result(), _make_result(success=False)]
        scheduler = _scheduler(_reminder_service(return_value=results))

        assert await scheduler.run_now() == results

        stats = scheduler.get_stats()
        assert stats.total_runs == 1
        assert stats.successful_runs == 1
        assert stats.last_run_time == NOW

    async def test_run_now_failure_is_counted_and_raised(self):
        scheduler = _scheduler(_reminder_service(side_effect=RuntimeError("db down")))

        with pytest.raises(RuntimeError):
            await scheduler.run_now()

        assert scheduler.get_stats().failed_runs == 1

    async def test_run_now_ignores_the_running_guard(self):
        service = _reminder_service()
        scheduler = _scheduler(service)
        scheduler._is_running = True

        await scheduler.run_now()

        service.process_scheduled_reminders.assert_awaited_once()


class TestConfigAndStats:

    async def test_update_config_restarts_an_active_scheduler(self):
        scheduler = _scheduler(_reminder_service())
        scheduler.start()
        old_task = scheduler._tick_task

        config = scheduler.update_config(interval_minutes=30)

        assert config.interval_minutes == 30
        assert scheduler.is_active()
        assert scheduler._tick_task is not old_task
        assert scheduler.get_stats().next_run_time == NOW + timedelta(minutes=30)
        await scheduler.shutdown(timeout=1)

    async def test_update_config_does_not_start_an_inactive_scheduler(self):
        scheduler = _scheduler(_reminder_service())

        scheduler.update_config(max_retries=5)

        assert not scheduler.is_active()
        assert scheduler.get_config().max_retries == 5

    async def test_disabling_stops_the_scheduler(self):
        scheduler = _scheduler(_reminder_service())
        scheduler.start()

        scheduler.update_config(enabled=False)

        assert not scheduler.is_active()
        await scheduler.shutdown(timeout=1)

    async def test_reset_stats_keeps_run_times(self):
        scheduler = _scheduler(_reminder_service())
        await scheduler.run_now()

        scheduler.reset_stats()

        stats = scheduler.get_stats()
        assert stats.total_runs == 0
        assert stats.successful_runs == 0
        assert stats.last_run_time == NOW

    def test_get_stats_returns_a_copy(self):
        scheduler = _scheduler(_reminder_service())

        scheduler.get_stats().total_runs = 99

        assert scheduler.get_stats().total_runs == 0

    def test_factory_defaults(self):
        from crewcall.services.scheduler_service import create_reminder_scheduler

        config = create_reminder_scheduler(_reminder_service()).get_config()

        assert config == ScheduleConfig(enabled=True, interval_minutes=15, max_retries=3, retry_delay_minutes=5)
