"""
Entry point for inbound SMS: find the sender, classify the text, run the
matching handler.

``process_incoming_message`` never raises. Unknown senders get no reply;
any unexpected error becomes a failed ``IncomingMessageResult`` so the
webhook can always answer Twilio with 200.
"""

import logging
from typing import Optional

from crewcall.services.message_classifier import parse_message_action
from crewcall.services.message_handlers import (
    ConfirmationHandler,
    HelpHandler,
    OptInHandler,
    OptOutHandler,
    UnknownMessageHandler,
)
from crewcall.services.sms_service import normalize_phone_for_lookup
from crewcall.services.types import IncomingMessageResult, MessageAction

logger = logging.getLogger(__name__)


class IncomingMessageService:

    def __init__(
        self,
        associates,
        confirmation: ConfirmationHandler,
        help_request: HelpHandler,
        opt_out: OptOutHandler,
        opt_in: OptInHandler,
        unknown: UnknownMessageHandler,
    ):
        self._associates = associates
        self._confirmation = confirmation
        self._help = help_request
        self._opt_out = opt_out
        self._opt_in = opt_in
        self._unknown = unknown

    def handler_for(self, action: MessageAction):
        if action == MessageAction.CONFIRMATION:
            return self._confirmation
        elif action == MessageAction.HELP_REQUEST:
            return self._help
        elif action == MessageAction.OPT_OUT:
            return self._opt_out
        elif action == MessageAction.OPT_IN:
            return self._opt_in
        elif action == MessageAction.UNKNOWN:
            return self._unknown
        raise ValueError(f"Unhandled message action: {action!r}")

    async def process_incoming_message(
        self,
        from_number: str,
        body: str,
        to_number: Optional[str] = None,
    ) -> IncomingMessageResult:
        body = body or ""
        try:
            phone = normalize_phone_for_lookup(from_number) or from_number or ""
            associate = await self._associates.get_associate_by_phone(from_number)
            if associate is None:
                logger.info("process_incoming_message: no associate for %s", from_number)
                return IncomingMessageResult(
                    success=False,
                    action=MessageAction.UNKNOWN,
                    phone_number=phone,
                    message=body,
                    error="Associate not found",
                )

            company_id = associate.company_id
            if company_id is None:
                company_id = await self._associates.get_associate_company_id(associate.id)

            action = parse_message_action(body)
            logger.info(
                "process_incoming_message: associate %s sent %s (%s)",
                associate.id, action.value, phone,
            )
            result = await self.handler_for(action).handle(
                associate, body, phone, to_number, company_id,
            )
            if not result.success:
                logger.warning(
                    "process_incoming_message: %s for associate %s finished with error: %s",
                    action.value, associate.id, result.error,
                )
            return result

        except Exception as e:
            logger.exception("process_incoming_message: error handling message from %s", from_number)
            return IncomingMessageResult(
                success=False,
                action=MessageAction.UNKNOWN,
                phone_number=from_number or "",
                message=body,
                error=str(e) or e.__class__.__name__,
            )
