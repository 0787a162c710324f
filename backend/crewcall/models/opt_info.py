"""
OptInfo model: per-associate opt-out bookkeeping.

``first_reminder_opt_out`` / ``first_sms_opt_out`` record that the one-time
opt-out disclosure was already sent from the reminders number / the company
two-way number. The ``*_opt_out_time`` columns record on which channel a STOP
arrived.
"""

from sqlalchemy import Column, Boolean, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from crewcall.database import Base


class OptInfo(Base):
    __tablename__ = "opt_info"

    associate_id = Column(UUID(as_uuid=True), ForeignKey("associates.id", ondelete="CASCADE"), primary_key=True)
    first_reminder_opt_out = Column(Boolean, default=False, nullable=False)
    first_sms_opt_out = Column(Boolean, default=False, nullable=False)
    reminder_opt_out_time = Column(DateTime(timezone=True), nullable=True)
    sms_opt_out_time = Column(DateTime(timezone=True), nullable=True)

    associate = relationship("Associate", back_populates="opt_info", lazy="select")

    def __repr__(self):
        return (
            f"<OptInfo(associate_id={self.associate_id}, "
            f"first_reminder_opt_out={self.first_reminder_opt_out})>"
        )
