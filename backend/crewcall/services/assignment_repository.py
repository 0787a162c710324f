"""
Assignment repository: the associate-facing view of job assignments used
when an associate replies to confirm.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import and_, select, update

from crewcall.models.job_assignment import JobAssignment
from crewcall.services.reminder_timing import calendar_today, parse_start_time, utcnow
from crewcall.services.types import ActiveAssignment, ConfirmationStatus, as_uuid

logger = logging.getLogger(__name__)

# Confirmations cover assignments from today through this many days out
ACTIVE_WINDOW_DAYS = 7


class AssignmentRepository:

    def __init__(self, session_factory, calendar_tz: str = "UTC", clock=utcnow):
        self._session_factory = session_factory
        self._calendar_tz = calendar_tz
        self._clock = clock

    async def get_active_assignments(
        self,
        associate_id: str,
        now: Optional[datetime] = None,
    ) -> list[ActiveAssignment]:
        """Assignments from today to today + 7 days that were not declined."""
        today: date = calendar_today(now or self._clock(), self._calendar_tz)
        stmt = (
            select(JobAssignment)
            .where(
                and_(
                    JobAssignment.associate_id == as_uuid(associate_id),
                    JobAssignment.work_date >= today,
                    JobAssignment.work_date <= today + timedelta(days=ACTIVE_WINDOW_DAYS),
                    JobAssignment.confirmation_status != ConfirmationStatus.DECLINED.value,
                )
            )
            .order_by(JobAssignment.work_date, JobAssignment.start_time)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            rows = result.scalars().all()

        active: list[ActiveAssignment] = []
        for row in rows:
            start = parse_start_time(row.start_time)
            if start is None:
                logger.warning(
                    "get_active_assignments: skipping %s-%s, unparseable start_time %r",
                    row.job_id, row.associate_id, row.start_time,
                )
                continue
            active.append(
                ActiveAssignment(
                    job_id=str(row.job_id),
                    associate_id=str(row.associate_id),
                    work_date=row.work_date,
                    start_time=start,
                    confirmation_status=ConfirmationStatus.parse(row.confirmation_status),
                )
            )
        return active

    async def update_assignment_status(
        self,
        job_id: str,
        associate_id: str,
        status: ConfirmationStatus,
    ) -> None:
        """Set the confirmation status and stamp ``last_confirmation_time``."""
        stmt = (
            update(JobAssignment)
            .where(
                and_(
                    JobAssignment.job_id == as_uuid(job_id),
                    JobAssignment.associate_id == as_uuid(associate_id),
                )
            )
            .values(
                confirmation_status=status.value,
                last_confirmation_time=self._clock(),
            )
        )
        async with self._session_factory() as db:
            await db.execute(stmt)
            await db.commit()
