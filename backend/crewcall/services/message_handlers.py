"""
Handlers for classified inbound SMS, one per ``MessageAction``, plus the
reply routing they share.

Every handler has the same entry point::

    await handler.handle(associate, raw_text, from_number, to_number, company_id)

and always tries to reply, even when its own database write failed. A
failed write or a failed reply is reported through ``success=False`` and
``error`` on the returned result.
"""

import logging
from datetime import datetime
from typing import Optional

from crewcall.services import message_templates
from crewcall.services.opt_out_notices import send_sms_opt_out_if_needed
from crewcall.services.reminder_timing import utcnow
from crewcall.services.types import (
    ActiveAssignment,
    Associate,
    ConfirmationStatus,
    IncomingMessageResult,
    MessageAction,
    OptOutChannel,
    SendResult,
)

logger = logging.getLogger(__name__)

# Hours before start at which a confirmation counts as firm
CONFIRMED_WITHIN_HOURS = 6
LIKELY_CONFIRMED_WITHIN_HOURS = 24


class ReplyRouter:
    """Chooses the number a reply goes out from.

    Inbound on the reminders number -> reply from the reminders number.
    Otherwise the company's two-way number when one is on file, else the
    reminders number. The first reply an associate gets from a two-way
    number is followed by that number's opt-out disclosure.
    """

    def __init__(self, messages, associates):
        self._messages = messages
        self._associates = associates

    def arrived_on_reminders_number(self, to_number: Optional[str]) -> bool:
        return self._messages.is_reminders_number(to_number)

    async def send_reply(
        self,
        to: str,
        body: str,
        to_number: Optional[str] = None,
        company_id: Optional[str] = None,
        associate_id: Optional[str] = None,
    ) -> SendResult:
        if self.arrived_on_reminders_number(to_number):
            return await self._messages.send_reminder_sms(to, body)

        if company_id:
            company_phone = None
            try:
                company_phone = await self._associates.get_company_phone_number(company_id)
            except Exception:
                logger.exception("send_reply: could not load two-way number for company %s", company_id)
            if company_phone:
                sent = await self._messages.send_two_way_sms(to, body, company_phone)
                if sent.success and associate_id:
                    await send_sms_opt_out_if_needed(
                        self._associates, self._messages, associate_id, to, company_id, company_phone,
                    )
                return sent

        return await self._messages.send_reminder_sms(to, body)


class MessageHandler:
    """Shared reply plumbing. Subclasses set ``action`` and implement ``handle``."""

    action: MessageAction = MessageAction.UNKNOWN
    # Follow a first two-way reply with the opt-out disclosure
    discloses_opt_out: bool = True

    def __init__(self, router: ReplyRouter):
        self._router = router

    async def _reply(
        self,
        associate: Associate,
        raw_text: str,
        from_number: str,
        body: str,
        to_number: Optional[str],
        company_id: Optional[str],
        error: Optional[str] = None,
    ) -> IncomingMessageResult:
        disclose_to = associate.id if self.discloses_opt_out else None
        sent = await self._router.send_reply(from_number, body, to_number, company_id, disclose_to)
        if not sent.success:
            logger.error(
                "%s: reply to %s failed: %s", self.__class__.__name__, from_number, sent.error,
            )
            send_error = f"Failed to send SMS response: {sent.error}"
            error = f"{error}; {send_error}" if error else send_error

        return IncomingMessageResult(
            success=error is None,
            action=self.action,
            phone_number=from_number,
            message=raw_text,
            associate_id=associate.id,
            response_sent=body if sent.success else None,
            error=error,
        )

    async def handle(
        self,
        associate: Associate,
        raw_text: str,
        from_number: str,
        to_number: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> IncomingMessageResult:
        raise NotImplementedError


def determine_confirmation_status(assignment: ActiveAssignment, now: datetime) -> ConfirmationStatus:
    """Confirmation strength by how close the start is.

    (0, 6h] -> CONFIRMED, up to 24h -> LIKELY_CONFIRMED, else SOFT_CONFIRMED.
    An assignment that already started falls in the "up to 24h" branch.
    """
    hours = (assignment.starts_at - now).total_seconds() / 3600
    if 0 < hours <= CONFIRMED_WITHIN_HOURS:
        return ConfirmationStatus.CONFIRMED
    if hours <= LIKELY_CONFIRMED_WITHIN_HOURS:
        return ConfirmationStatus.LIKELY_CONFIRMED
    return ConfirmationStatus.SOFT_CONFIRMED


class ConfirmationHandler(MessageHandler):
    action = MessageAction.CONFIRMATION

    def __init__(self, router: ReplyRouter, assignments, clock=utcnow):
        super().__init__(router)
        self._assignments = assignments
        self._clock = clock

    async def handle(self, associate, raw_text, from_number, to_number=None, company_id=None):
        active = await self._assignments.get_active_assignments(associate.id)

        if not active:
            body = message_templates.nothing_to_confirm_reply(associate.first_name)
            return await self._reply(associate, raw_text, from_number, body, to_number, company_id)

        now = self._clock()
        failed = 0
        for assignment in active:
            status = determine_confirmation_status(assignment, now)
            try:
                await self._assignments.update_assignment_status(
                    assignment.job_id, assignment.associate_id, status,
                )
            except Exception:
                failed += 1
                logger.exception(
                    "ConfirmationHandler: could not set %s on job %s, associate %s",
                    status.value, assignment.job_id, assignment.associate_id,
                )

        error = f"Failed to update {failed} of {len(active)} assignments" if failed else None
        body = message_templates.confirmed_reply(associate.first_name, len(active))
        return await self._reply(associate, raw_text, from_number, body, to_number, company_id, error)


class OptOutHandler(MessageHandler):
    action = MessageAction.OPT_OUT
    discloses_opt_out = False

    def __init__(self, router: ReplyRouter, associates):
        super().__init__(router)
        self._associates = associates

    async def handle(self, associate, raw_text, from_number, to_number=None, company_id=None):
        channel = (
            OptOutChannel.REMINDER
            if self._router.arrived_on_reminders_number(to_number)
            else OptOutChannel.TWO_WAY
        )
        error = None
        try:
            await self._associates.opt_out_associate(associate.id, channel)
        except Exception as e:
            logger.exception("OptOutHandler: could not opt out associate %s", associate.id)
            error = f"Failed to opt out associate: {e}"

        body = message_templates.opt_out_reply(associate.first_name)
        return await self._reply(associate, raw_text, from_number, body, to_number, company_id, error)


class OptInHandler(MessageHandler):
    action = MessageAction.OPT_IN

    def __init__(self, router: ReplyRouter, associates):
        super().__init__(router)
        self._associates = associates

    async def handle(self, associate, raw_text, from_number, to_number=None, company_id=None):
        error = None
        try:
            await self._associates.opt_in_associate(associate.id)
        except Exception as e:
            logger.exception("OptInHandler: could not opt in associate %s", associate.id)
            error = f"Failed to opt in associate: {e}"

        body = message_templates.opt_in_reply(associate.first_name)
        return await self._reply(associate, raw_text, from_number, body, to_number, company_id, error)


class HelpHandler(MessageHandler):
    action = MessageAction.HELP_REQUEST

    def __init__(self, router: ReplyRouter, support_phone: str = ""):
        super().__init__(router)
        self._support_phone = support_phone

    async def handle(self, associate, raw_text, from_number, to_number=None, company_id=None):
        body = message_templates.help_reply(associate.first_name, self._support_phone)
        return await self._reply(associate, raw_text, from_number, body, to_number, company_id)


class UnknownMessageHandler(MessageHandler):
    action = MessageAction.UNKNOWN

    async def handle(self, associate, raw_text, from_number, to_number=None, company_id=None):
        body = message_templates.unknown_reply(associate.first_name)
        return await self._reply(associate, raw_text, from_number, body, to_number, company_id)
