"""
SMS service for CrewCall.

Sends outbound texts through Twilio: reminders go out from the dedicated
one-way reminders number, replies to associates go out from the company's
two-way number. Every send returns a ``SendResult``; Twilio and network
errors are never raised to the caller.
"""

import asyncio
import logging
import re
from functools import lru_cache
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from crewcall.services.types import SendResult

logger = logging.getLogger(__name__)

# Strict E.164 format: + followed by 1-15 digits, starting with non-zero
_E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
_NON_DIGITS = re.compile(r"\D")


# Cache Twilio Client instances keyed by (account_sid, auth_token).
# Bounded to 16 entries to prevent unbounded growth on credential rotation.
@lru_cache(maxsize=16)
def _get_twilio_client(account_sid: str, auth_token: str) -> Client:
    return Client(account_sid, auth_token)


# ---------------------------------------------------------------------------
# Phone number helpers
# ---------------------------------------------------------------------------

def format_phone_number(phone_number: str) -> str:
    """
    Best-effort US E.164 formatting.

    "(555) 123-4567" -> "+15551234567", "15551234567" -> "+15551234567".
    Numbers already starting with "+" and anything unrecognized are
    returned unchanged.

    Raises ValueError when no number is given.
    """
    if not phone_number:
        raise ValueError("Phone number is required but was not provided")

    digits = _NON_DIGITS.sub("", phone_number)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return phone_number


def normalize_phone_for_lookup(phone_number: str) -> str:
    """Format an inbound ``From`` number the way associate rows store it."""
    if not phone_number:
        return ""
    return format_phone_number(phone_number.strip())


# ---------------------------------------------------------------------------
# Low-level send
# ---------------------------------------------------------------------------

async def send_sms(
    to_number: str,
    from_number: str,
    body: str,
    account_sid: str,
    auth_token: str,
    max_retries: int = 3,
    backoff_base: float = 1.0,
) -> SendResult:
    """
    Twilio SMS send with retry logic.

    On transient failures (network errors, 429, 5xx from Twilio) retries up
    to ``max_retries`` times with exponential back-off (1s, 2s, 4s with the
    default base). Other 4xx responses are permanent and returned at once.
    """
    if not account_sid or not auth_token:
        logger.error("send_sms: Twilio credentials not configured")
        return SendResult(success=False, to=to_number, error="Twilio credentials not configured")

    # Validate phone numbers before hitting Twilio API
    if not to_number or not _E164_PATTERN.match(to_number):
        logger.error("send_sms: invalid to_number format: %s", (to_number or "")[:20])
        return SendResult(success=False, to=to_number, error=f"Invalid phone number format: {to_number}")
    if not from_number or not _E164_PATTERN.match(from_number):
        logger.error("send_sms: invalid from_number format: %s", (from_number or "")[:20])
        return SendResult(success=False, to=to_number, error=f"Invalid from_number format: {from_number}")

    client = _get_twilio_client(account_sid, auth_token)
    last_error = ""
    last_code: Optional[str] = None

    for attempt in range(1, max_retries + 1):
        try:
            # Twilio's SDK is synchronous; keep it off the event loop
            message = await asyncio.to_thread(
                client.messages.create,
                to=to_number,
                from_=from_number,
                body=body,
            )
            logger.info("send_sms: sent SID=%s to=%s (attempt %d)", message.sid, to_number, attempt)
            return SendResult(
                success=True,
                to=to_number,
                message_id=message.sid,
                status=getattr(message, "status", None),
            )
        except TwilioRestException as e:
            last_error = f"Twilio error: {e.msg}" if getattr(e, "msg", None) else str(e)
            last_code = str(e.code) if getattr(e, "code", None) is not None else None
            twilio_status = getattr(e, "status", None)
            # 429 = rate limited, retry with backoff
            if twilio_status == 429:
                logger.warning("send_sms: rate limited (429) sending to %s (attempt %d/%d)", to_number, attempt, max_retries)
            elif twilio_status and 400 <= twilio_status < 500:
                # Other 4xx client errors are permanent
                logger.error("send_sms: client error sending to %s (attempt %d/%d): %s", to_number, attempt, max_retries, e)
                return SendResult(success=False, to=to_number, error=last_error, code=last_code)
            else:
                logger.warning("send_sms: server error sending to %s (attempt %d/%d): %s", to_number, attempt, max_retries, e)
        except Exception as e:
            last_error = f"Network/runtime error: {e}"
            last_code = None
            logger.warning("send_sms: transient error sending to %s (attempt %d/%d): %s", to_number, attempt, max_retries, e)

        if attempt < max_retries:
            await asyncio.sleep(backoff_base * 2 ** (attempt - 1))

    logger.error("send_sms: to %s failed after %d attempts: %s", to_number, max_retries, last_error)
    return SendResult(success=False, to=to_number, error=last_error, code=last_code)


# ---------------------------------------------------------------------------
# Message service
# ---------------------------------------------------------------------------

class TwilioMessageService:
    """Sends reminders and two-way replies through one Twilio account."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        reminders_number: str,
        default_number: str = "",
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        self._account_sid = account_sid
        self._auth_token = auth_token
        # Reminders fall back to the default sender when no dedicated number exists
        self.reminders_number = reminders_number or default_number
        self.default_number = default_number or reminders_number
        self._max_retries = max_retries
        self._backoff_base = backoff_base

    @classmethod
    def from_settings(cls, settings) -> "TwilioMessageService":
        return cls(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            reminders_number=settings.TWILIO_PHONE_NUMBER_REMINDERS,
            default_number=settings.TWILIO_PHONE_NUMBER,
            max_retries=settings.SMS_MAX_RETRIES,
        )

    def format_phone_number(self, phone_number: str) -> str:
        return format_phone_number(phone_number)

    def is_reminders_number(self, phone_number: Optional[str]) -> bool:
        if not phone_number or not self.reminders_number:
            return False
        return normalize_phone_for_lookup(phone_number) == normalize_phone_for_lookup(self.reminders_number)

    async def _send(self, to: str, body: str, from_number: str) -> SendResult:
        try:
            to_formatted = format_phone_number(to)
        except ValueError as e:
            logger.error("send: %s", e)
            return SendResult(success=False, to=to or "", error=str(e))

        return await send_sms(
            to_number=to_formatted,
            from_number=from_number,
            body=body,
            account_sid=self._account_sid,
            auth_token=self._auth_token,
            max_retries=self._max_retries,
            backoff_base=self._backoff_base,
        )

    async def send_reminder_sms(self, to: str, body: str) -> SendResult:
        """Send from the dedicated reminders number."""
        if not self.reminders_number:
            logger.error("send_reminder_sms: no reminders number configured")
            return SendResult(success=False, to=to or "", error="Reminders phone number not configured")
        return await self._send(to, body, self.reminders_number)

    async def send_two_way_sms(self, to: str, body: str, from_number: Optional[str] = None) -> SendResult:
        """Send from ``from_number`` (a company two-way number) or the default sender."""
        sender = from_number or self.default_number
        if not sender:
            logger.error("send_two_way_sms: no sender number available")
            return SendResult(success=False, to=to or "", error="No sender phone number configured")
        return await self._send(to, body, format_phone_number(sender))
