from datetime import datetime

from pydantic import BaseModel, Field


class ReminderResultResponse(BaseModel):
    """Outcome of one reminder send."""
    success: bool
    assignment_id: str
    job_id: str
    associate_id: str
    phone_number: str
    reminder_type: str
    message_id: str | None = None
    error: str | None = None

    model_config = {"from_attributes": True}


class ProcessRemindersResponse(BaseModel):
    processed: int
    successful: int
    failed: int
    scheduler_active: bool
    results: list[ReminderResultResponse]


class SchedulerStatsResponse(BaseModel):
    last_run_time: datetime | None = None
    next_run_time: datetime | None = None
    total_runs: int
    successful_runs: int
    failed_runs: int
    is_running: bool

    model_config = {"from_attributes": True}


class ScheduleConfigResponse(BaseModel):
    enabled: bool
    interval_minutes: float
    max_retries: int
    retry_delay_minutes: float

    model_config = {"from_attributes": True}


class SchedulerStatusResponse(BaseModel):
    active: bool
    stats: SchedulerStatsResponse
    config: ScheduleConfigResponse


class ScheduleConfigUpdate(BaseModel):
    """Partial scheduler config change. Omitted fields keep their value."""
    enabled: bool | None = None
    interval_minutes: float | None = Field(default=None, gt=0, le=1440)
    max_retries: int | None = Field(default=None, ge=1, le=10)
    retry_delay_minutes: float | None = Field(default=None, ge=0, le=120)


class ReminderStatsResponse(BaseModel):
    total_sent: int
    successful: int
    failed: int
    success_rate: float
    by_type: dict[str, int]

    model_config = {"from_attributes": True}


class UpcomingAssignmentResponse(BaseModel):
    """One assignment in the upcoming listing, opted-out associates included."""
    job_id: str
    associate_id: str
    associate_name: str
    phone_number: str
    job_title: str
    customer_name: str
    starts_at: datetime
    num_reminders: int
    last_reminder_time: datetime | None = None
    confirmation_status: str


class UpcomingRemindersResponse(BaseModel):
    total: int
    assignments: list[UpcomingAssignmentResponse]
