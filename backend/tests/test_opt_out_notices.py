from unittest.mock import AsyncMock

from crewcall.services.types import OptOutChannel

PHONE = "+15551234567"
COMPANY_NUMBER = "+15559990000"


class TestReminderDisclosure:

    async def test_sent_once_with_company_name(self, fake_associates, fake_messages):
        from crewcall.services.opt_out_notices import send_reminder_opt_out_if_needed

        fake_associates.companies["company-1"] = ("Acme Staffing", None)

        first = await send_reminder_opt_out_if_needed(fake_associates, fake_messages, "assoc-1", PHONE, "company-1")
        second = await send_reminder_opt_out_if_needed(fake_associates, fake_messages, "assoc-1", PHONE, "company-1")

        assert first is True
        assert second is False
        [sent] = fake_messages.sent
        assert sent.channel == "reminder"
        assert "This is Acme Staffing reminder phone number" in sent.body
        assert ("assoc-1", OptOutChannel.REMINDER) in fake_associates.disclosures

    async def test_unknown_company_uses_a_generic_name(self, fake_associates, fake_messages):
        from crewcall.services.opt_out_notices import send_reminder_opt_out_if_needed

        await send_reminder_opt_out_if_needed(fake_associates, fake_messages, "assoc-1", PHONE, None)

        assert fake_messages.sent[0].body.startswith("This is our company reminder phone number")

    async def test_failed_send_is_not_recorded(self, fake_associates, fake_messages):
        from crewcall.services.opt_out_notices import send_reminder_opt_out_if_needed

        fake_messages.fail_for.add(PHONE)

        sent = await send_reminder_opt_out_if_needed(fake_associates, fake_messages, "assoc-1", PHONE, None)

        assert sent is False
        assert fake_associates.disclosures == set()

    async def test_flag_write_failure_still_counts_as_sent(self, fake_associates, fake_messages):
        from crewcall.services.opt_out_notices import send_reminder_opt_out_if_needed

        fake_associates.mark_opt_out_disclosure_sent = AsyncMock(side_effect=RuntimeError("db down"))

        assert await send_reminder_opt_out_if_needed(fake_associates, fake_messages, "assoc-1", PHONE, None)

    async def test_lookup_failure_returns_false(self, fake_associates, fake_messages):
        from crewcall.services.opt_out_notices import send_reminder_opt_out_if_needed

        fake_associates.has_sent_opt_out_disclosure = AsyncMock(side_effect=RuntimeError("db down"))

        assert await send_reminder_opt_out_if_needed(fake_associates, fake_messages, "assoc-1", PHONE, None) is False
        assert fake_messages.sent == []


class TestTwoWayDisclosure:

    async def test_sent_from_the_company_number(self, fake_associates, fake_messages):
        from crewcall.services.opt_out_notices import send_sms_opt_out_if_needed

        fake_associates.companies["company-1"] = ("Acme Staffing", COMPANY_NUMBER)

        sent = await send_sms_opt_out_if_needed(fake_associates, fake_messages, "assoc-1", PHONE, "company-1")

        assert sent is True
        [message] = fake_messages.sent
        assert message.from_number == COMPANY_NUMBER
        assert message.body.startswith("This is Acme Staffing you have opted in")
        assert ("assoc-1", OptOutChannel.TWO_WAY) in fake_associates.disclosures

    async def test_channels_are_tracked_separately(self, fake_associates, fake_messages):
        from crewcall.services.opt_out_notices import send_sms_opt_out_if_needed

        fake_associates.companies["company-1"] = ("Acme Staffing", COMPANY_NUMBER)
        fake_associates.disclosures.add(("assoc-1", OptOutChannel.REMINDER))

        assert await send_sms_opt_out_if_needed(fake_associates, fake_messages, "assoc-1", PHONE, "company-1")

    async def test_company_without_two_way_number_is_skipped(self, fake_associates, fake_messages):
        from crewcall.services.opt_out_notices import send_sms_opt_out_if_needed

        fake_associates.companies["company-1"] = ("Acme Staffing", None)

        sent = await send_sms_opt_out_if_needed(fake_associates, fake_messages, "assoc-1", PHONE, "company-1")

        assert sent is False
        assert fake_messages.sent == []
