"""
Interval scheduler for the reminder engine.

A single tick task wakes every ``interval_minutes`` and starts a reminder
cycle unless the previous one is still running, in which case the tick is
skipped rather than queued. A cycle retries a failed pass up to
``max_retries`` times, sleeping ``retry_delay_minutes`` between attempts.

Lifecycle::

    stopped --start()--> scheduled --tick--> running --done--> scheduled
    scheduled --stop()--> stopped

``stop()`` only cancels future ticks; a cycle already in flight runs to
completion. ``shutdown()`` additionally waits for it (bounded by a timeout)
and is what the application lifespan calls.
"""

import asyncio
import dataclasses
import logging
from datetime import timedelta
from typing import Optional

from crewcall.services.reminder_timing import utcnow
from crewcall.services.types import ReminderResult, ScheduleConfig, SchedulerStats

logger = logging.getLogger(__name__)


class SchedulerService:

    def __init__(self, reminder_service, config: Optional[ScheduleConfig] = None, clock=utcnow):
        self._reminder_service = reminder_service
        self._config = config or ScheduleConfig()
        self._clock = clock
        self._stats = SchedulerStats()
        self._is_running = False
        self._tick_task: Optional[asyncio.Task] = None
        self._cycles: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin ticking. The first cycle starts immediately. Idempotent."""
        if not self._config.enabled:
            logger.info("scheduler: disabled, not starting")
            return
        if self._tick_task is not None:
            logger.info("scheduler: already active")
            return

        self._tick_task = asyncio.get_running_loop().create_task(self._tick_loop())
        self._update_next_run_time()
        logger.info(
            "scheduler: started, every %s minutes (max_retries=%d, retry_delay=%s minutes)",
            self._config.interval_minutes, self._config.max_retries, self._config.retry_delay_minutes,
        )

    def stop(self) -> None:
        """Cancel future ticks. An in-flight cycle keeps running."""
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None
            logger.info("scheduler: stopped")
        self._stats.next_run_time = None

    async def shutdown(self, timeout: float = 30) -> None:
        """Stop ticking and wait up to ``timeout`` seconds for in-flight cycles."""
        self.stop()
        if not self._cycles:
            return

        pending_cycles = set(self._cycles)
        logger.info("scheduler: waiting for %d in-flight cycle(s)", len(pending_cycles))
        _, pending = await asyncio.wait(pending_cycles, timeout=timeout)
        if pending:
            logger.warning("scheduler: cancelling %d cycle(s) still running after %ss", len(pending), timeout)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    def is_active(self) -> bool:
        return self._tick_task is not None

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def _tick_loop(self) -> None:
        while True:
            self._spawn_cycle()
            await asyncio.sleep(self._config.interval_minutes * 60)

    def _spawn_cycle(self) -> None:
        if self._is_running:
            logger.info("scheduler: previous cycle still running, skipping tick")
            return
        task = asyncio.get_running_loop().create_task(self._execute_reminder_check())
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)

    async def _execute_reminder_check(self) -> None:
        if self._is_running:
            return

        self._is_running = True
        self._stats.is_running = True
        self._stats.total_runs += 1
        attempts = max(1, self._config.max_retries)

        try:
            for attempt in range(1, attempts + 1):
                try:
                    logger.info("scheduler: reminder check attempt %d/%d", attempt, attempts)
                    results = await self._reminder_service.process_scheduled_reminders()
                except Exception:
                    logger.exception("scheduler: reminder check failed on attempt %d", attempt)
                    if attempt < attempts:
                        logger.info("scheduler: retrying in %s minutes", self._config.retry_delay_minutes)
                        await asyncio.sleep(self._config.retry_delay_minutes * 60)
                    else:
                        self._stats.failed_runs += 1
                        logger.error("scheduler: all %d attempts exhausted", attempts)
                    continue

                self._log_results(results)
                self._stats.successful_runs += 1
                self._stats.last_run_time = self._clock()
                break
        finally:
            self._is_running = False
            self._stats.is_running = False
            self._update_next_run_time()

    async def run_now(self) -> list[ReminderResult]:
        """Run one pass immediately, outside the interval and its guard.

        A pass started here can overlap a scheduled cycle. Failures are
        counted and re-raised without retry.
        """
        self._stats.total_runs += 1
        try:
            results = await self._reminder_service.process_scheduled_reminders()
        except Exception:
            self._stats.failed_runs += 1
            logger.exception("scheduler: manual reminder check failed")
            raise

        self._log_results(results)
        self._stats.successful_runs += 1
        self._stats.last_run_time = self._clock()
        return results

    # ------------------------------------------------------------------
    # Configuration and stats
    # ------------------------------------------------------------------

    def update_config(self, **changes) -> ScheduleConfig:
        """Apply config changes, restarting the ticker if it was active."""
        was_active = self.is_active()
        if was_active:
            self.stop()

        self._config = dataclasses.replace(self._config, **changes)
        logger.info("scheduler: config updated %s", self._config)

        if was_active and self._config.enabled:
            self.start()
        return self._config

    def get_config(self) -> ScheduleConfig:
        return self._config

    def get_stats(self) -> SchedulerStats:
        return dataclasses.replace(self._stats)

    def reset_stats(self) -> None:
        """Zero the counters, keeping last/next run time and the running flag."""
        self._stats = SchedulerStats(
            last_run_time=self._stats.last_run_time,
            next_run_time=self._stats.next_run_time,
            is_running=self._stats.is_running,
        )

    def _update_next_run_time(self) -> None:
        if self._tick_task is not None:
            self._stats.next_run_time = self._clock() + timedelta(minutes=self._config.interval_minutes)

    def _log_results(self, results: list[ReminderResult]) -> None:
        failed = [r for r in results if not r.success]
        logger.info(
            "scheduler: batch completed, %d successful, %d failed (%d total)",
            len(results) - len(failed), len(failed), len(results),
        )
        for result in failed:
            logger.warning(
                "scheduler: failed reminder associate=%s phone=%s error=%s",
                result.associate_id, result.phone_number, result.error,
            )


def create_reminder_scheduler(reminder_service, **overrides) -> SchedulerService:
    """Scheduler with the standard defaults (enabled, 15 min, 3 retries, 5 min delay)."""
    return SchedulerService(reminder_service, ScheduleConfig(**overrides))
