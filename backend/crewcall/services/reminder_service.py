"""
Reminder service for the outbound assignment reminder system.

One pass (``process_scheduled_reminders``) fetches every due assignment,
picks the reminder type for each, renders and sends the text, then spends
one unit of the assignment's reminder budget. Sends are sequential with a
fixed pause between them to stay under Twilio's rate limits.

Failure handling per pass:
  - candidate read errors propagate (the scheduler retries the pass);
  - a failed send becomes a failed ``ReminderResult`` and the pass continues;
  - bookkeeping and the opt-out disclosure are best effort, logged only.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Optional

from crewcall.services import message_templates
from crewcall.services.opt_out_notices import send_reminder_opt_out_if_needed
from crewcall.services.reminder_timing import SAME_DAY_MIN_HOURS, classify_reminder_type, utcnow
from crewcall.services.types import (
    ReminderAssignment,
    ReminderResult,
    ReminderStats,
    ReminderType,
)

logger = logging.getLogger(__name__)

# Results kept in memory for get_reminder_stats
RESULT_HISTORY_SIZE = 1000


class ReminderAssignmentNotFound(Exception):
    """No job assignment exists for the given job and associate."""

    def __init__(self, job_id: str, associate_id: str):
        super().__init__(f"No assignment for job {job_id}, associate {associate_id}")
        self.job_id = job_id
        self.associate_id = associate_id


class ReminderService:

    def __init__(
        self,
        reminders,
        associates,
        messages,
        send_delay_ms: int = 200,
        display_tz: str = message_templates.DEFAULT_DISPLAY_TIMEZONE,
        min_hours_same_day: float = SAME_DAY_MIN_HOURS,
        clock=utcnow,
    ):
        self._reminders = reminders
        self._associates = associates
        self._messages = messages
        self._send_delay = send_delay_ms / 1000
        self._display_tz = display_tz
        self._min_hours_same_day = min_hours_same_day
        self._clock = clock
        self._history: deque[tuple[datetime, ReminderResult]] = deque(maxlen=RESULT_HISTORY_SIZE)

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------

    async def process_scheduled_reminders(self) -> list[ReminderResult]:
        """Send every due reminder once. Returns one result per assignment."""
        now = self._clock()
        due = await self._reminders.get_due_reminders(now=now, min_hours=self._min_hours_same_day)

        if not due:
            logger.info("process_scheduled_reminders: nothing due")
            return []

        logger.info("process_scheduled_reminders: %d due reminders", len(due))
        results: list[ReminderResult] = []

        for index, assignment in enumerate(due):
            reminder_type = classify_reminder_type(assignment.work_date, assignment.start_time, now)
            result = await self.send_reminder_to_associate(assignment, reminder_type)
            results.append(result)

            if result.success:
                await self._record_sent(assignment)
                await send_reminder_opt_out_if_needed(
                    self._associates,
                    self._messages,
                    assignment.associate_id,
                    assignment.phone_number,
                    assignment.company_id,
                )

            if index < len(due) - 1 and self._send_delay > 0:
                await asyncio.sleep(self._send_delay)

        succeeded = sum(1 for r in results if r.success)
        logger.info(
            "process_scheduled_reminders: processed %d reminders, %d succeeded, %d failed",
            len(results), succeeded, len(results) - succeeded,
        )
        return results

    async def _record_sent(self, assignment: ReminderAssignment) -> None:
        # The message already left; a failed write must not fail the result
        try:
            remaining = await self._reminders.record_reminder_sent(
                assignment.job_id, assignment.associate_id, self._clock(),
            )
            if remaining is not None:
                logger.info(
                    "process_scheduled_reminders: %s has %d reminders left",
                    assignment.assignment_id, remaining,
                )
        except Exception:
            logger.exception(
                "process_scheduled_reminders: could not update reminder status for %s",
                assignment.assignment_id,
            )

    # ------------------------------------------------------------------
    # Single sends
    # ------------------------------------------------------------------

    async def send_reminder_to_associate(
        self,
        assignment: ReminderAssignment,
        reminder_type: ReminderType,
    ) -> ReminderResult:
        """Render and send one reminder. Never raises."""
        try:
            body = self.generate_reminder_message(assignment, reminder_type)
            send = await self._messages.send_reminder_sms(assignment.phone_number, body)
            if send.success:
                logger.info(
                    "send_reminder_to_associate: %s reminder sent for %s (SID: %s)",
                    reminder_type.value, assignment.assignment_id, send.message_id,
                )
            else:
                logger.error(
                    "send_reminder_to_associate: %s reminder failed for %s: %s",
                    reminder_type.value, assignment.assignment_id, send.error,
                )
            result = ReminderResult(
                success=send.success,
                assignment_id=assignment.assignment_id,
                job_id=assignment.job_id,
                associate_id=assignment.associate_id,
                phone_number=assignment.phone_number,
                reminder_type=reminder_type,
                message_id=send.message_id,
                error=None if send.success else (send.error or "Unknown error"),
            )
        except Exception as e:
            logger.exception(
                "send_reminder_to_associate: error sending to associate %s",
                assignment.associate_id,
            )
            result = ReminderResult(
                success=False,
                assignment_id=assignment.assignment_id,
                job_id=assignment.job_id,
                associate_id=assignment.associate_id,
                phone_number=assignment.phone_number,
                reminder_type=reminder_type,
                error=str(e) or e.__class__.__name__,
            )

        self._history.append((self._clock(), result))
        return result

    async def send_test_reminder(self, job_id: str, associate_id: str) -> ReminderResult:
        """Send a day-before reminder for one assignment without spending budget."""
        assignment = await self._reminders.get_reminder_assignment(job_id, associate_id)
        if assignment is None:
            raise ReminderAssignmentNotFound(job_id, associate_id)
        return await self.send_reminder_to_associate(assignment, ReminderType.DAY_BEFORE)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def determine_reminder_type(self, assignment: ReminderAssignment) -> ReminderType:
        return classify_reminder_type(assignment.work_date, assignment.start_time, self._clock())

    def generate_reminder_message(self, assignment: ReminderAssignment, reminder_type: ReminderType) -> str:
        return message_templates.render_reminder(assignment, reminder_type, self._display_tz)

    def get_reminder_stats(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ReminderStats:
        """Aggregate the send results this process has seen in ``[start, end]``.

        Only the most recent results are kept in memory, so this reflects
        the current process, not the full send history.
        """
        # Naive bounds are UTC
        if start is not None and start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        if end is not None and end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)

        stats = ReminderStats()
        for sent_at, result in self._history:
            if start is not None and sent_at < start:
                continue
            if end is not None and sent_at > end:
                continue
            stats.total_sent += 1
            if result.success:
                stats.successful += 1
            else:
                stats.failed += 1
            key = result.reminder_type.value
            stats.by_type[key] = stats.by_type.get(key, 0) + 1

        if stats.total_sent:
            stats.success_rate = round(stats.successful / stats.total_sent * 100, 2)
        return stats
