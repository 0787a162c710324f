"""
Twilio inbound SMS webhook.

Public endpoint: Twilio cannot send a bearer token, so requests are
authenticated with the ``X-Twilio-Signature`` header when
TWILIO_VALIDATE_WEBHOOKS is on. Replies go out through the REST API, so
the TwiML body is always empty and Twilio always gets a 200 once the
signature checks out.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from twilio.request_validator import RequestValidator

from crewcall.config import Settings, get_settings
from crewcall.services.container import Services, get_services

logger = logging.getLogger(__name__)
router = APIRouter()

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


def _twiml(status_code: int = 200) -> PlainTextResponse:
    return PlainTextResponse(content=EMPTY_TWIML, media_type="application/xml", status_code=status_code)


def _signature_is_valid(request: Request, params: dict, auth_token: str) -> bool:
    validator = RequestValidator(auth_token)
    signature = request.headers.get("X-Twilio-Signature", "")
    return validator.validate(str(request.url), params, signature)


@router.post("/incoming", summary="Twilio inbound SMS webhook")
async def twilio_incoming_sms(
    request: Request,
    services: Services = Depends(get_services),
    settings: Settings = Depends(get_settings),
):
    form_data = await request.form()
    params = {k: v for k, v in form_data.items()}

    if settings.TWILIO_VALIDATE_WEBHOOKS:
        if not settings.TWILIO_AUTH_TOKEN:
            logger.error("twilio_incoming_sms: TWILIO_AUTH_TOKEN not configured")
            return _twiml(status_code=403)
        if not _signature_is_valid(request, params, settings.TWILIO_AUTH_TOKEN):
            logger.warning(
                "twilio_incoming_sms: invalid signature from %s",
                request.client.host if request.client else "unknown",
            )
            return _twiml(status_code=403)

    from_number = params.get("From", "")
    to_number = params.get("To") or None
    body = params.get("Body", "")

    try:
        result = await services.incoming.process_incoming_message(from_number, body, to_number)
        logger.info(
            "twilio_incoming_sms: sid=%s action=%s success=%s",
            params.get("MessageSid", ""), result.action.value, result.success,
        )
    except Exception:
        logger.exception("twilio_incoming_sms: unhandled error for message from %s", from_number)

    return _twiml()
