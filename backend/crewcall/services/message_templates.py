"""
Outbound SMS texts: reminder bodies per reminder type and the replies sent
to inbound keywords.

Dates render as M/D/YYYY (the work date's calendar day). Start times are
stored as UTC times of day and render in the display timezone as
"h:MM AM" so the associate sees the local wall-clock time.
"""

import logging
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from crewcall.services.types import ReminderAssignment, ReminderType

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_TIMEZONE = "America/Denver"

_CONFIRM_FOOTER = "Reply C to confirm or call us.\n\nReply HELP for help, STOP to opt out."

REMINDER_TEMPLATES: dict[ReminderType, str] = {
    ReminderType.TWO_DAYS_BEFORE: (
        "Hi {first_name}!\n\nReminder: You have {base_info} in 2 days.\n\n"
        "Please confirm you'll be there.\n\n" + _CONFIRM_FOOTER
    ),
    ReminderType.DAY_BEFORE: (
        "Hi {first_name}!\n\nReminder: You have {base_info} tomorrow.\n\n"
        "Please confirm you'll be there.\n\n" + _CONFIRM_FOOTER
    ),
    ReminderType.MORNING_OF: (
        "Good morning {first_name}!\n\nDon't forget your {base_info} today.\n\n"
        "Please confirm that you will be able to make it, if not please inform us ASAP!\n\n"
        + _CONFIRM_FOOTER
    ),
    ReminderType.HOUR_BEFORE: (
        "Hi {first_name}!\n\nYour {base_info} starts in about an hour.\n\nHope you're ready!"
    ),
    ReminderType.FOLLOW_UP: (
        "Hi {first_name}!\n\nJust checking - are you on your way to {base_info}?\n\n"
        "Let us know if you need anything!"
    ),
}

# THREE_DAYS_BEFORE and anything unlisted
GENERIC_REMINDER_TEMPLATE = "Hi {first_name}!\n\nReminder about your {base_info}."


def format_work_date(work_date: date) -> str:
    """10 Jan 2025 -> "1/10/2025"."""
    return f"{work_date.month}/{work_date.day}/{work_date.year}"


def format_clock_time(value: time) -> str:
    """09:05 -> "9:05 AM", 00:30 -> "12:30 AM", 13:00 -> "1:00 PM"."""
    period = "PM" if value.hour >= 12 else "AM"
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {period}"


def to_display_time(work_date: date, start_time: time, tz_name: str = DEFAULT_DISPLAY_TIMEZONE) -> time:
    """Convert a UTC time of day on ``work_date`` into the display timezone."""
    try:
        tz = ZoneInfo(tz_name)
    except (KeyError, ValueError):
        logger.warning("Invalid display timezone '%s', falling back to %s", tz_name, DEFAULT_DISPLAY_TIMEZONE)
        tz = ZoneInfo(DEFAULT_DISPLAY_TIMEZONE)
    utc_dt = datetime.combine(work_date, start_time, tzinfo=timezone.utc)
    return utc_dt.astimezone(tz).time()


def render_reminder(
    assignment: ReminderAssignment,
    reminder_type: ReminderType,
    tz_name: str = DEFAULT_DISPLAY_TIMEZONE,
) -> str:
    local_time = to_display_time(assignment.work_date, assignment.start_time, tz_name)
    base_info = (
        f"{assignment.job_title} for {assignment.customer_name} "
        f"on {format_work_date(assignment.work_date)} at {format_clock_time(local_time)}"
    )
    template = REMINDER_TEMPLATES.get(reminder_type, GENERIC_REMINDER_TEMPLATE)
    return template.format(first_name=assignment.associate_first_name, base_info=base_info)


# ---------------------------------------------------------------------------
# Replies to inbound messages
# ---------------------------------------------------------------------------

def nothing_to_confirm_reply(first_name: str) -> str:
    return (
        f"Hi {first_name}!\n\nWe don't have any upcoming assignments for you to confirm right now.\n\n"
        "If you think this is an error, please call us."
    )


def confirmed_reply(first_name: str, count: int) -> str:
    if count == 1:
        return f"Thanks {first_name}!\n\nYour assignment is confirmed.\n\nWe'll see you there!"
    return f"Thanks {first_name}!\n\nYour {count} assignments are confirmed.\n\nWe'll see you there!"


def help_reply(first_name: str, support_phone: str = "") -> str:
    contact = f"Questions? Call us at {support_phone}" if support_phone else "Questions? Please call us."
    return (
        f"Hi {first_name}!\n\nHere's how to use our text system:\n\n"
        '• Reply "C" or "Confirm" to confirm your assignment\n'
        '• Reply "HELP" for this message\n'
        '• Reply "STOP" to stop receiving texts\n'
        '• Reply "START" to receive texts again\n\n'
        f"{contact}"
    )


def opt_out_reply(first_name: str) -> str:
    return (
        f"{first_name}, you have been unsubscribed from our text reminders. "
        "You can still receive calls about your assignments. Reply START to re-subscribe."
    )


def opt_in_reply(first_name: str) -> str:
    return f"{first_name}, you've been re-subscribed to text reminders. Reply STOP to opt out anytime."


def unknown_reply(first_name: str) -> str:
    return (
        f"Hi {first_name}!\n\nI didn't understand that message.\n\n"
        'Reply "C" to confirm, "HELP" for help, or call us directly.'
    )


def reminder_disclosure(company_name: str) -> str:
    return (
        f"This is {company_name} reminder phone number. This number is purely for information "
        "and notification about your upcoming job. You have opted in to be contacted by phone "
        "number. You may opt out at anytime using STOP keyword."
    )


def two_way_disclosure(company_name: str) -> str:
    return (
        f"This is {company_name} you have opted in to be contacted by phone number. "
        "You may opt out at anytime using STOP keyword."
    )
