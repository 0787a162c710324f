"""
Reminder repository: candidate selection and bookkeeping for outbound
reminders.

Every query joins the assignment to its associate and job so the reminder
service gets a ready-to-render ``ReminderAssignment``. Start times are
normalized here (``parse_start_time``); rows whose start time cannot be
interpreted are skipped with a warning and never reach the classifier.

Associates who replied STOP (``sms_opt_out``) are never candidates.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import and_, select, update

from crewcall.models.associate import Associate
from crewcall.models.job import Job
from crewcall.models.job_assignment import JobAssignment
from crewcall.services import reminder_timing
from crewcall.services.reminder_timing import parse_start_time, utcnow
from crewcall.services.types import (
    CLOSED_STATUSES,
    ConfirmationStatus,
    ReminderAssignment,
    as_uuid,
)

logger = logging.getLogger(__name__)


def _candidate_query():
    return (
        select(JobAssignment, Associate, Job)
        .join(Associate, JobAssignment.associate_id == Associate.id)
        .join(Job, JobAssignment.job_id == Job.id)
    )


def _to_reminder_assignment(assignment, associate, job) -> Optional[ReminderAssignment]:
    start = parse_start_time(assignment.start_time)
    if start is None:
        logger.warning(
            "reminder_repository: skipping assignment %s-%s, unparseable start_time %r",
            assignment.job_id, assignment.associate_id, assignment.start_time,
        )
        return None

    return ReminderAssignment(
        job_id=str(assignment.job_id),
        associate_id=str(assignment.associate_id),
        work_date=assignment.work_date,
        start_time=start,
        associate_first_name=associate.first_name,
        associate_last_name=associate.last_name,
        phone_number=associate.phone_number or "",
        job_title=job.job_title,
        customer_name=job.customer_name,
        num_reminders=assignment.num_reminders or 0,
        company_id=str(associate.company_id) if associate.company_id else None,
        last_reminder_time=assignment.last_reminder_time,
        last_confirmation_time=assignment.last_confirmation_time,
        confirmation_status=ConfirmationStatus.parse(assignment.confirmation_status),
    )


def _transform(rows) -> list[ReminderAssignment]:
    out: list[ReminderAssignment] = []
    for assignment, associate, job in rows:
        item = _to_reminder_assignment(assignment, associate, job)
        if item is not None:
            out.append(item)
    return out


class ReminderRepository:
    """Reads and writes ``job_assignments`` on behalf of the reminder engine."""

    def __init__(self, session_factory, calendar_tz: str = "UTC", clock=utcnow):
        self._session_factory = session_factory
        self._calendar_tz = calendar_tz
        self._clock = clock

    def today(self, now: Optional[datetime] = None) -> date:
        return reminder_timing.calendar_today(now or self._clock(), self._calendar_tz)

    async def _fetch(self, stmt) -> list[ReminderAssignment]:
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return _transform(result.all())

    # ------------------------------------------------------------------
    # Window queries
    # ------------------------------------------------------------------

    async def get_day_before_reminders(self, target_date: date) -> list[ReminderAssignment]:
        """Assignments on ``target_date`` (normally tomorrow) with budget left."""
        stmt = (
            _candidate_query()
            .where(
                and_(
                    JobAssignment.work_date == target_date,
                    JobAssignment.num_reminders > 0,
                    Associate.sms_opt_out.is_(False),
                )
            )
            .order_by(JobAssignment.start_time)
        )
        return await self._fetch(stmt)

    async def get_two_days_before_reminders(self, target_date: date) -> list[ReminderAssignment]:
        """Assignments on ``target_date`` (normally the day after tomorrow) with budget left."""
        stmt = (
            _candidate_query()
            .where(
                and_(
                    JobAssignment.work_date == target_date,
                    JobAssignment.num_reminders > 0,
                    Associate.sms_opt_out.is_(False),
                )
            )
            .order_by(JobAssignment.start_time)
        )
        return await self._fetch(stmt)

    async def get_morning_of_reminders(
        self,
        hours_ahead: float = reminder_timing.MORNING_OF_HOURS_AHEAD,
        now: Optional[datetime] = None,
    ) -> list[ReminderAssignment]:
        """Today's assignments starting within ``[now, now + hours_ahead]``.

        The date filter runs in SQL; the start time window is applied after
        normalization since ``start_time`` is stored as text.
        """
        now = now or self._clock()
        stmt = (
            _candidate_query()
            .where(
                and_(
                    JobAssignment.work_date == self.today(now),
                    JobAssignment.num_reminders > 0,
                    Associate.sms_opt_out.is_(False),
                )
            )
            .order_by(JobAssignment.start_time)
        )
        candidates = await self._fetch(stmt)
        window_end = now + timedelta(hours=hours_ahead)
        return [a for a in candidates if now <= a.starts_at <= window_end]

    async def get_assignments_by_date(self, work_date: date) -> list[ReminderAssignment]:
        """Every assignment on ``work_date``, regardless of remaining budget."""
        stmt = (
            _candidate_query()
            .where(
                and_(
                    JobAssignment.work_date == work_date,
                    Associate.sms_opt_out.is_(False),
                )
            )
            .order_by(JobAssignment.start_time)
        )
        return await self._fetch(stmt)

    async def get_all_upcoming_reminders(self, now: Optional[datetime] = None) -> list[ReminderAssignment]:
        """Assignments from today onward, ordered by work date."""
        stmt = (
            _candidate_query()
            .where(JobAssignment.work_date >= self.today(now))
            .order_by(JobAssignment.work_date, JobAssignment.start_time)
        )
        return await self._fetch(stmt)

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    def get_assignments_not_recently_reminded(
        self,
        assignments: list[ReminderAssignment],
        min_hours: float = reminder_timing.SAME_DAY_MIN_HOURS,
        now: Optional[datetime] = None,
    ) -> list[ReminderAssignment]:
        """Drop closed assignments and those reminded too recently.

        On the day of work the minimum gap is ``min_hours``; on any other
        day it is 24 hours. Both comparisons are strictly greater-than.
        """
        now = now or self._clock()
        today = self.today(now)
        kept: list[ReminderAssignment] = []

        for assignment in assignments:
            if assignment.confirmation_status in CLOSED_STATUSES:
                continue
            if assignment.last_reminder_time is None:
                kept.append(assignment)
                continue

            hours_since = (now - assignment.last_reminder_time).total_seconds() / 3600
            if assignment.work_date == today:
                if hours_since > min_hours:
                    kept.append(assignment)
            elif hours_since > reminder_timing.OTHER_DAY_MIN_HOURS:
                kept.append(assignment)

        return kept

    async def get_due_reminders(
        self,
        now: Optional[datetime] = None,
        min_hours: float = reminder_timing.SAME_DAY_MIN_HOURS,
    ) -> list[ReminderAssignment]:
        """Union of every window, de-duplicated, minus recently reminded.

        Errors propagate: a failed candidate read aborts the whole batch.
        """
        now = now or self._clock()
        today = self.today(now)

        day_before = await self.get_day_before_reminders(reminder_timing.day_before_target(today))
        two_days = await self.get_two_days_before_reminders(reminder_timing.two_days_before_target(today))
        morning_of = await self.get_morning_of_reminders(now=now)
        today_jobs = [a for a in await self.get_assignments_by_date(today) if a.num_reminders > 0]

        logger.info(
            "get_due_reminders: candidates day_before=%d two_days_before=%d morning_of=%d today=%d",
            len(day_before), len(two_days), len(morning_of), len(today_jobs),
        )

        seen: set[tuple[str, str]] = set()
        unique: list[ReminderAssignment] = []
        for assignment in [*day_before, *two_days, *morning_of, *today_jobs]:
            if assignment.key in seen:
                continue
            seen.add(assignment.key)
            unique.append(assignment)

        due = self.get_assignments_not_recently_reminded(unique, min_hours=min_hours, now=now)
        logger.info("get_due_reminders: %d unique candidates, %d due", len(unique), len(due))
        return due

    # ------------------------------------------------------------------
    # Single record
    # ------------------------------------------------------------------

    async def get_reminder_assignment(self, job_id: str, associate_id: str) -> Optional[ReminderAssignment]:
        stmt = _candidate_query().where(
            and_(
                JobAssignment.job_id == as_uuid(job_id),
                JobAssignment.associate_id == as_uuid(associate_id),
            )
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            row = result.first()
        if row is None:
            return None
        return _to_reminder_assignment(*row)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def update_reminder_status(
        self,
        job_id: str,
        associate_id: str,
        num_reminders: Optional[int] = None,
        last_reminder_time: Optional[datetime] = None,
    ) -> None:
        values = {}
        if num_reminders is not None:
            if num_reminders < 0:
                raise ValueError("num_reminders cannot be negative")
            values["num_reminders"] = num_reminders
        if last_reminder_time is not None:
            values["last_reminder_time"] = last_reminder_time
        if not values:
            return

        stmt = (
            update(JobAssignment)
            .where(
                and_(
                    JobAssignment.job_id == as_uuid(job_id),
                    JobAssignment.associate_id == as_uuid(associate_id),
                )
            )
            .values(**values)
        )
        async with self._session_factory() as db:
            await db.execute(stmt)
            await db.commit()

    async def record_reminder_sent(
        self,
        job_id: str,
        associate_id: str,
        sent_at: Optional[datetime] = None,
    ) -> Optional[int]:
        """Atomically spend one reminder and stamp ``last_reminder_time``.

        Returns the remaining budget, or None when the row is gone or its
        budget was already zero (the guard rejected the decrement).
        """
        stmt = (
            update(JobAssignment)
            .where(
                and_(
                    JobAssignment.job_id == as_uuid(job_id),
                    JobAssignment.associate_id == as_uuid(associate_id),
                    JobAssignment.num_reminders > 0,
                )
            )
            .values(
                num_reminders=JobAssignment.num_reminders - 1,
                last_reminder_time=sent_at or self._clock(),
            )
            .returning(JobAssignment.num_reminders)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            remaining = result.scalar_one_or_none()
            await db.commit()

        if remaining is None:
            logger.warning(
                "record_reminder_sent: no budget left for job %s, associate %s",
                job_id, associate_id,
            )
        return remaining
