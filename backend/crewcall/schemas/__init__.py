from crewcall.schemas.reminder import (
    ReminderResultResponse, ProcessRemindersResponse, SchedulerStatsResponse,
    ScheduleConfigResponse, SchedulerStatusResponse, ScheduleConfigUpdate,
    ReminderStatsResponse, UpcomingAssignmentResponse, UpcomingRemindersResponse,
)

__all__ = [
    "ReminderResultResponse",
    "ProcessRemindersResponse",
    "SchedulerStatsResponse",
    "ScheduleConfigResponse",
    "SchedulerStatusResponse",
    "ScheduleConfigUpdate",
    "ReminderStatsResponse",
    "UpcomingAssignmentResponse",
    "UpcomingRemindersResponse",
]
