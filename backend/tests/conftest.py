"""
Shared fixtures for the crewcall test suite.

Nothing here touches a real database or Twilio: repositories get a mocked
``AsyncSession`` through a session factory, and services get in-memory
fakes for the message service and the associate repository.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from crewcall.services.sms_service import normalize_phone_for_lookup
from crewcall.services.types import OptOutChannel, SendResult

REMINDERS_NUMBER = "+15550000000"
COMPANY_NUMBER = "+15559990000"


@pytest.fixture()
def mock_db():
    """Mock AsyncSession with execute and commit."""
    db = MagicMock()
    db.execute = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


@pytest.fixture()
def session_factory(mock_db):
    """Stand-in for ``async_sessionmaker``: every session is ``mock_db``."""
    @asynccontextmanager
    async def factory():
        yield mock_db

    return factory


# ===================================================================
# Message service fake
# ===================================================================


@dataclass
class SentMessage:
    channel: str
    to: str
    body: str
    from_number: Optional[str]


class FakeMessageService:
    """Records every send. Numbers in ``fail_for`` get a failed SendResult."""

    def __init__(self, reminders_number: str = REMINDERS_NUMBER):
        self.reminders_number = reminders_number
        self.fail_for: set[str] = set()
        self.sent: list[SentMessage] = []

    def is_reminders_number(self, phone_number):
        return bool(phone_number) and phone_number == self.reminders_number

    async def send_reminder_sms(self, to, body):
        return self._record("reminder", to, body, self.reminders_number)

    async def send_two_way_sms(self, to, body, from_number=None):
        return self._record("two_way", to, body, from_number)

    def _record(self, channel, to, body, from_number):
        if to in self.fail_for:
            return SendResult(success=False, to=to, error="Twilio error: undeliverable", code="30003")
        self.sent.append(SentMessage(channel, to, body, from_number))
        return SendResult(success=True, to=to, message_id=f"SM{len(self.sent):04d}", status="queued")


@pytest.fixture()
def fake_messages():
    return FakeMessageService()


# ===================================================================
# Associate repository fake
# ===================================================================


class FakeAssociateRepository:
    """In-memory AssociateRepository keyed by E.164 phone number."""

    def __init__(self):
        self.by_phone = {}
        self.companies = {}          # company_id -> (name, two-way phone)
        self.opt_outs = []           # (associate_id, channel)
        self.opt_ins = []
        self.disclosures = set()     # (associate_id, channel)

    def add(self, associate):
        self.by_phone[associate.phone_number] = associate
        return associate

    async def get_associate_by_phone(self, phone_number):
        return self.by_phone.get(normalize_phone_for_lookup(phone_number))

    async def get_associate_company_id(self, associate_id):
        for associate in self.by_phone.values():
            if associate.id == associate_id:
                return associate.company_id
        return None

    async def opt_out_associate(self, associate_id, channel=OptOutChannel.TWO_WAY):
        self.opt_outs.append((associate_id, channel))
        self._set_opt_out(associate_id, True)

    async def opt_in_associate(self, associate_id):
        self.opt_ins.append(associate_id)
        self._set_opt_out(associate_id, False)

    def _set_opt_out(self, associate_id, value):
        for associate in self.by_phone.values():
            if associate.id == associate_id:
                associate.sms_opt_out = value

    async def has_sent_opt_out_disclosure(self, associate_id, channel):
        return (associate_id, channel) in self.disclosures

    async def mark_opt_out_disclosure_sent(self, associate_id, channel):
        self.disclosures.add((associate_id, channel))

    async def get_company_phone_number(self, company_id):
        return self.companies.get(company_id, (None, None))[1]

    async def get_company_name(self, company_id):
        return self.companies.get(company_id, (None, None))[0]


@pytest.fixture()
def fake_associates():
    return FakeAssociateRepository()
