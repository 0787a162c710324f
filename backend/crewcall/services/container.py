"""
Builds the reminder engine's object graph.

The application lifespan calls ``build_services`` once and keeps the
result on ``app.state``; routes reach it through ``get_services``. Nothing
here is a module-level singleton, so tests build their own graph with
fakes in place of the database or Twilio.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from crewcall.services.assignment_repository import AssignmentRepository
from crewcall.services.associate_repository import AssociateRepository
from crewcall.services.incoming_message_service import IncomingMessageService
from crewcall.services.message_handlers import (
    ConfirmationHandler,
    HelpHandler,
    OptInHandler,
    OptOutHandler,
    ReplyRouter,
    UnknownMessageHandler,
)
from crewcall.services.reminder_repository import ReminderRepository
from crewcall.services.reminder_service import ReminderService
from crewcall.services.reminder_timing import utcnow
from crewcall.services.scheduler_service import SchedulerService
from crewcall.services.sms_service import TwilioMessageService
from crewcall.services.types import ScheduleConfig

logger = logging.getLogger(__name__)


@dataclass
class Services:
    reminders: ReminderRepository
    associates: AssociateRepository
    assignments: AssignmentRepository
    messages: TwilioMessageService
    reminder_service: ReminderService
    scheduler: SchedulerService
    incoming: IncomingMessageService


def schedule_config_from_settings(settings) -> ScheduleConfig:
    return ScheduleConfig(
        enabled=settings.REMINDER_SCHEDULER_ENABLED,
        interval_minutes=settings.REMINDER_INTERVAL_MINUTES,
        max_retries=settings.REMINDER_MAX_RETRIES,
        retry_delay_minutes=settings.REMINDER_RETRY_DELAY_MINUTES,
    )


def build_services(
    settings,
    session_factory,
    messages: Optional[TwilioMessageService] = None,
    clock=utcnow,
) -> Services:
    """Wire repositories, Twilio, the reminder engine and the inbound pipeline."""
    messages = messages or TwilioMessageService.from_settings(settings)
    calendar_tz = settings.REMINDER_CALENDAR_TIMEZONE

    reminders = ReminderRepository(session_factory, calendar_tz=calendar_tz, clock=clock)
    associates = AssociateRepository(session_factory, clock=clock)
    assignments = AssignmentRepository(session_factory, calendar_tz=calendar_tz, clock=clock)

    reminder_service = ReminderService(
        reminders,
        associates,
        messages,
        send_delay_ms=settings.REMINDER_SEND_DELAY_MS,
        display_tz=settings.DISPLAY_TIMEZONE,
        min_hours_same_day=settings.REMINDER_MIN_HOURS_SAME_DAY,
        clock=clock,
    )
    scheduler = SchedulerService(reminder_service, schedule_config_from_settings(settings), clock=clock)

    router = ReplyRouter(messages, associates)
    incoming = IncomingMessageService(
        associates,
        confirmation=ConfirmationHandler(router, assignments, clock=clock),
        help_request=HelpHandler(router, settings.SUPPORT_PHONE_NUMBER),
        opt_out=OptOutHandler(router, associates),
        opt_in=OptInHandler(router, associates),
        unknown=UnknownMessageHandler(router),
    )

    logger.info(
        "build_services: reminders from %s, calendar tz %s, display tz %s",
        messages.reminders_number or "<unset>", calendar_tz, settings.DISPLAY_TIMEZONE,
    )
    return Services(
        reminders=reminders,
        associates=associates,
        assignments=assignments,
        messages=messages,
        reminder_service=reminder_service,
        scheduler=scheduler,
        incoming=incoming,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the graph built at startup."""
    return request.app.state.services
