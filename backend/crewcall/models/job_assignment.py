"""
JobAssignment model: one associate booked on one job for one work date.

Holds the reminder budget (``num_reminders``) and the bookkeeping the
reminder engine uses to avoid double sends (``last_reminder_time``), plus the
associate's confirmation state.
"""

from sqlalchemy import (
    Column, Index, String, Integer, Date, DateTime, ForeignKey, CheckConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from crewcall.database import Base


class JobAssignment(Base):
    __tablename__ = "job_assignments"
    __table_args__ = (
        Index("ix_job_assignments_work_date", "work_date", "num_reminders"),
        Index("ix_job_assignments_associate_date", "associate_id", "work_date"),
        CheckConstraint("num_reminders >= 0", name="ck_job_assignments_num_reminders"),
    )

    job_id = Column(UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), primary_key=True)
    associate_id = Column(UUID(as_uuid=True), ForeignKey("associates.id", ondelete="CASCADE"), primary_key=True)
    work_date = Column(Date, nullable=False)

    # UTC start time. Older rows hold "HH:MM:SS", newer imports a full ISO
    # timestamp; see reminder_timing.parse_start_time.
    start_time = Column(String(64), nullable=True)

    # Remaining reminder budget
    num_reminders = Column(Integer, nullable=False, default=0)
    last_reminder_time = Column(DateTime(timezone=True), nullable=True)
    last_confirmation_time = Column(DateTime(timezone=True), nullable=True)

    # Unconfirmed, Soft Confirmed, Likely Confirmed, Confirmed, Declined
    confirmation_status = Column(String(32), nullable=False, default="Unconfirmed")

    job = relationship("Job", back_populates="assignments", lazy="select")
    associate = relationship("Associate", back_populates="assignments", lazy="select")

    def __repr__(self):
        return (
            f"<JobAssignment(job_id={self.job_id}, associate_id={self.associate_id}, "
            f"work_date={self.work_date}, num_reminders={self.num_reminders})>"
        )
