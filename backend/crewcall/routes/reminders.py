"""
Reminder engine API endpoints.

- POST  /reminders/process                     -- cron trigger: run a pass now, then keep the scheduler running
- GET   /reminders/scheduler                   -- scheduler stats and config
- PATCH /reminders/scheduler                   -- live scheduler reconfiguration
- POST  /reminders/test/{job_id}/{associate_id} -- send a day-before reminder for one assignment
- GET   /reminders/stats                       -- send results seen by this process
- GET   /reminders/upcoming                    -- every assignment from today onward

Everything except GET /scheduler requires ``Authorization: Bearer <CRON_SECRET>``.
"""

import hmac
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from crewcall.config import Settings, get_settings
from crewcall.schemas.reminder import (
    ProcessRemindersResponse,
    ReminderResultResponse,
    ReminderStatsResponse,
    ScheduleConfigResponse,
    ScheduleConfigUpdate,
    SchedulerStatsResponse,
    SchedulerStatusResponse,
    UpcomingAssignmentResponse,
    UpcomingRemindersResponse,
)
from crewcall.services.container import Services, get_services
from crewcall.services.reminder_service import ReminderAssignmentNotFound
from crewcall.services.types import ReminderAssignment, ReminderResult

logger = logging.getLogger(__name__)
router = APIRouter()

_bearer = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def require_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    settings: Settings = Depends(get_settings),
) -> None:
    secret = settings.CRON_SECRET
    if not secret:
        if settings.APP_ENV == "production":
            logger.error("require_cron_secret: CRON_SECRET not set, rejecting request")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
        logger.warning("require_cron_secret: CRON_SECRET not set, skipping check (dev mode)")
        return

    if credentials is None or not hmac.compare_digest(credentials.credentials, secret):
        logger.warning("require_cron_secret: missing or invalid bearer token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


def _result_response(result: ReminderResult) -> ReminderResultResponse:
    return ReminderResultResponse(
        success=result.success,
        assignment_id=result.assignment_id,
        job_id=result.job_id,
        associate_id=result.associate_id,
        phone_number=result.phone_number,
        reminder_type=result.reminder_type.value,
        message_id=result.message_id,
        error=result.error,
    )


def _upcoming_response(assignment: ReminderAssignment) -> UpcomingAssignmentResponse:
    return UpcomingAssignmentResponse(
        job_id=assignment.job_id,
        associate_id=assignment.associate_id,
        associate_name=f"{assignment.associate_first_name} {assignment.associate_last_name}".strip(),
        phone_number=assignment.phone_number,
        job_title=assignment.job_title,
        customer_name=assignment.customer_name,
        starts_at=assignment.starts_at,
        num_reminders=assignment.num_reminders,
        last_reminder_time=assignment.last_reminder_time,
        confirmation_status=assignment.confirmation_status.value,
    )


def _scheduler_status(services: Services) -> SchedulerStatusResponse:
    scheduler = services.scheduler
    return SchedulerStatusResponse(
        active=scheduler.is_active(),
        stats=SchedulerStatsResponse.model_validate(scheduler.get_stats()),
        config=ScheduleConfigResponse.model_validate(scheduler.get_config()),
    )


# ---------------------------------------------------------------------------
# POST /reminders/process
# ---------------------------------------------------------------------------

@router.post("/process", response_model=ProcessRemindersResponse, dependencies=[Depends(require_cron_secret)])
async def process_reminders(services: Services = Depends(get_services)):
    """Run one reminder pass immediately and make sure the scheduler is running."""
    scheduler = services.scheduler
    try:
        results = await scheduler.run_now()
    except Exception:
        logger.exception("process_reminders: reminder pass failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Reminder processing failed",
        )

    scheduler.start()
    successful = sum(1 for r in results if r.success)
    return ProcessRemindersResponse(
        processed=len(results),
        successful=successful,
        failed=len(results) - successful,
        scheduler_active=scheduler.is_active(),
        results=[_result_response(r) for r in results],
    )


# ---------------------------------------------------------------------------
# GET / PATCH /reminders/scheduler
# ---------------------------------------------------------------------------

@router.get("/scheduler", response_model=SchedulerStatusResponse)
async def scheduler_status(services: Services = Depends(get_services)):
    return _scheduler_status(services)


@router.patch("/scheduler", response_model=SchedulerStatusResponse, dependencies=[Depends(require_cron_secret)])
async def update_scheduler(
    payload: ScheduleConfigUpdate,
    services: Services = Depends(get_services),
):
    changes = payload.model_dump(exclude_none=True)
    if changes:
        services.scheduler.update_config(**changes)
    return _scheduler_status(services)


# ---------------------------------------------------------------------------
# POST /reminders/test/{job_id}/{associate_id}
# ---------------------------------------------------------------------------

@router.post(
    "/test/{job_id}/{associate_id}",
    response_model=ReminderResultResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def send_test_reminder(
    job_id: UUID,
    associate_id: UUID,
    services: Services = Depends(get_services),
):
    try:
        result = await services.reminder_service.send_test_reminder(str(job_id), str(associate_id))
    except ReminderAssignmentNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found")
    return _result_response(result)


# ---------------------------------------------------------------------------
# GET /reminders/stats
# ---------------------------------------------------------------------------

@router.get("/stats", response_model=ReminderStatsResponse, dependencies=[Depends(require_cron_secret)])
async def reminder_stats(
    start: Optional[datetime] = Query(None, description="Only count sends at or after this instant"),
    end: Optional[datetime] = Query(None, description="Only count sends at or before this instant"),
    services: Services = Depends(get_services),
):
    if start and end and start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must be before end")
    return ReminderStatsResponse.model_validate(services.reminder_service.get_reminder_stats(start, end))


# ---------------------------------------------------------------------------
# GET /reminders/upcoming
# ---------------------------------------------------------------------------

@router.get("/upcoming", response_model=UpcomingRemindersResponse, dependencies=[Depends(require_cron_secret)])
async def upcoming_reminders(services: Services = Depends(get_services)):
    """Admin listing of assignments from today onward, including opted-out associates."""
    assignments = await services.reminders.get_all_upcoming_reminders()
    return UpcomingRemindersResponse(
        total=len(assignments),
        assignments=[_upcoming_response(a) for a in assignments],
    )
