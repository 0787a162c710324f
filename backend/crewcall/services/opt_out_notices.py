"""
One-time opt-out disclosures.

The first text an associate receives on a given number (the reminders
number, or a company two-way number) is followed by a disclosure telling
them who is texting and that STOP opts out. ``opt_info`` remembers which
disclosures went out. Every failure is logged and reported as ``False``;
nothing here ever raises.
"""

import logging
from typing import Optional

from crewcall.services import message_templates
from crewcall.services.types import OptOutChannel

logger = logging.getLogger(__name__)

DEFAULT_COMPANY_NAME = "our company"


async def send_reminder_opt_out_if_needed(
    associates,
    messages,
    associate_id: str,
    phone_number: str,
    company_id: Optional[str],
) -> bool:
    """Send the reminders-number disclosure unless it was already sent.

    Returns True only when the disclosure was sent by this call.
    """
    try:
        if await associates.has_sent_opt_out_disclosure(associate_id, OptOutChannel.REMINDER):
            return False

        company_name = None
        if company_id:
            company_name = await associates.get_company_name(company_id)
        body = message_templates.reminder_disclosure(company_name or DEFAULT_COMPANY_NAME)

        result = await messages.send_reminder_sms(phone_number, body)
        if not result.success:
            logger.error(
                "send_reminder_opt_out_if_needed: send failed for associate %s: %s",
                associate_id, result.error,
            )
            return False

        try:
            await associates.mark_opt_out_disclosure_sent(associate_id, OptOutChannel.REMINDER)
        except Exception:
            logger.exception(
                "send_reminder_opt_out_if_needed: could not record disclosure for associate %s",
                associate_id,
            )
        return True
    except Exception:
        logger.exception("send_reminder_opt_out_if_needed: error for associate %s", associate_id)
        return False


async def send_sms_opt_out_if_needed(
    associates,
    messages,
    associate_id: str,
    phone_number: str,
    company_id: str,
    company_phone_number: Optional[str] = None,
) -> bool:
    """Send the company two-way number disclosure unless it was already sent."""
    try:
        if await associates.has_sent_opt_out_disclosure(associate_id, OptOutChannel.TWO_WAY):
            return False

        sender = company_phone_number or await associates.get_company_phone_number(company_id)
        if not sender:
            logger.error(
                "send_sms_opt_out_if_needed: company %s has no two-way number, skipping associate %s",
                company_id, associate_id,
            )
            return False

        company_name = await associates.get_company_name(company_id)
        body = message_templates.two_way_disclosure(company_name or DEFAULT_COMPANY_NAME)

        result = await messages.send_two_way_sms(phone_number, body, sender)
        if not result.success:
            logger.error(
                "send_sms_opt_out_if_needed: send failed for associate %s: %s",
                associate_id, result.error,
            )
            return False

        try:
            await associates.mark_opt_out_disclosure_sent(associate_id, OptOutChannel.TWO_WAY)
        except Exception:
            logger.exception(
                "send_sms_opt_out_if_needed: could not record disclosure for associate %s",
                associate_id,
            )
        return True
    except Exception:
        logger.exception("send_sms_opt_out_if_needed: error for associate %s", associate_id)
        return False
