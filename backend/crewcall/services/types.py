"""
Value types shared by the reminder engine and the inbound SMS pipeline.

Repositories hand these out instead of ORM rows so the services never see a
session, and so tests can build them directly.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Optional, Union
from uuid import UUID

logger = logging.getLogger(__name__)


class ConfirmationStatus(str, Enum):
    UNCONFIRMED = "Unconfirmed"
    SOFT_CONFIRMED = "Soft Confirmed"
    LIKELY_CONFIRMED = "Likely Confirmed"
    CONFIRMED = "Confirmed"
    DECLINED = "Declined"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ConfirmationStatus":
        """Map a stored status string onto the enum.

        Accepts both the display form ("Soft Confirmed") and the constant
        form ("SOFT_CONFIRMED"), case-insensitively. Anything else is
        treated as unconfirmed.
        """
        if not value:
            return cls.UNCONFIRMED
        key = value.strip().lower().replace("_", " ")
        for status in cls:
            if status.value.lower() == key:
                return status
        logger.warning("Unknown confirmation status %r, defaulting to Unconfirmed", value)
        return cls.UNCONFIRMED


# Statuses that end the reminder sequence for an assignment
CLOSED_STATUSES = frozenset({ConfirmationStatus.CONFIRMED, ConfirmationStatus.DECLINED})


class ReminderType(str, Enum):
    THREE_DAYS_BEFORE = "three_days_before"
    TWO_DAYS_BEFORE = "two_days_before"
    DAY_BEFORE = "day_before"
    MORNING_OF = "morning_of"
    HOUR_BEFORE = "hour_before"
    FOLLOW_UP = "follow_up"


class MessageAction(str, Enum):
    CONFIRMATION = "confirmation"
    HELP_REQUEST = "help_request"
    OPT_OUT = "opt_out"
    OPT_IN = "opt_in"
    UNKNOWN = "unknown"


class OptOutChannel(str, Enum):
    REMINDER = "reminder"   # dedicated reminders number
    TWO_WAY = "two_way"     # company two-way number


@dataclass
class ReminderAssignment:
    job_id: str
    associate_id: str
    work_date: date
    start_time: time                      # UTC time of day
    associate_first_name: str
    associate_last_name: str
    phone_number: str
    job_title: str
    customer_name: str
    num_reminders: int
    company_id: Optional[str] = None
    last_reminder_time: Optional[datetime] = None
    last_confirmation_time: Optional[datetime] = None
    confirmation_status: ConfirmationStatus = ConfirmationStatus.UNCONFIRMED

    @property
    def key(self) -> tuple[str, str]:
        return (self.job_id, self.associate_id)

    @property
    def assignment_id(self) -> str:
        return f"{self.job_id}-{self.associate_id}"

    @property
    def starts_at(self) -> datetime:
        """Start of work as a UTC instant."""
        return datetime.combine(self.work_date, self.start_time, tzinfo=timezone.utc)


@dataclass
class ActiveAssignment:
    job_id: str
    associate_id: str
    work_date: date
    start_time: time
    confirmation_status: ConfirmationStatus = ConfirmationStatus.UNCONFIRMED

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.work_date, self.start_time, tzinfo=timezone.utc)


@dataclass
class Associate:
    id: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    company_id: Optional[str] = None
    sms_opt_out: bool = False


@dataclass(frozen=True)
class SendResult:
    """Outcome of one outbound SMS. Never raised, always returned."""
    success: bool
    to: str = ""
    message_id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None


@dataclass(frozen=True)
class ReminderResult:
    success: bool
    assignment_id: str
    job_id: str
    associate_id: str
    phone_number: str
    reminder_type: ReminderType
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class IncomingMessageResult:
    success: bool
    action: MessageAction
    phone_number: str
    message: str
    associate_id: Optional[str] = None
    response_sent: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ScheduleConfig:
    enabled: bool = True
    interval_minutes: float = 15
    max_retries: int = 3
    retry_delay_minutes: float = 5


@dataclass
class SchedulerStats:
    last_run_time: Optional[datetime] = None
    next_run_time: Optional[datetime] = None
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    is_running: bool = False


@dataclass
class ReminderStats:
    total_sent: int = 0
    successful: int = 0
    failed: int = 0
    success_rate: float = 0.0
    by_type: dict[str, int] = field(default_factory=dict)


def as_uuid(value: Union[str, UUID]) -> UUID:
    """Coerce an id from a URL or a dataclass into a ``UUID`` bind value."""
    return value if isinstance(value, UUID) else UUID(str(value))
