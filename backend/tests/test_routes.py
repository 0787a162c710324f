"""
HTTP-level tests for the reminder API and the Twilio webhook.

The app is driven through TestClient without entering its lifespan, so no
scheduler starts and no database is touched; ``get_services`` and
``get_settings`` are overridden per test.
"""

from datetime import date, time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from twilio.request_validator import RequestValidator

from crewcall.config import Settings, get_settings
from crewcall.services.container import get_services
from crewcall.services.types import (
    ConfirmationStatus,
    IncomingMessageResult,
    MessageAction,
    ReminderAssignment,
    ReminderResult,
    ReminderStats,
    ReminderType,
    ScheduleConfig,
    SchedulerStats,
)

SECRET = "s3cret"
AUTH = {"Authorization": f"Bearer {SECRET}"}
JOB_ID = "6f1c2b1e-1d2a-4c3b-9e8f-0a1b2c3d4e5f"
ASSOCIATE_ID = "0b9e8d7c-6a5b-4c3d-8e2f-1a2b3c4d5e6f"
WEBHOOK_URL = "http://testserver/api/twilio/incoming"


def _make_result(success=True):
    return ReminderResult(
        success=success,
        assignment_id=f"{JOB_ID}-{ASSOCIATE_ID}",
        job_id=JOB_ID,
        associate_id=ASSOCIATE_ID,
        phone_number="+15551234567",
        reminder_type=ReminderType.DAY_BEFORE,
        message_id="SM1" if success else None,
        error=None if success else "Twilio error: undeliverable",
    )


def _make_upcoming():
    return ReminderAssignment(
        job_id=JOB_ID,
        associate_id=ASSOCIATE_ID,
        work_date=date(2025, 1, 10),
        start_time=time(15, 0),
        associate_first_name="Ana",
        associate_last_name="Ruiz",
        phone_number="+15551234567",
        job_title="Forklift Operator",
        customer_name="Acme Logistics",
        num_reminders=1,
        confirmation_status=ConfirmationStatus.SOFT_CONFIRMED,
    )


def _make_services():
    services = MagicMock()
    scheduler = services.scheduler
    scheduler.run_now = AsyncMock(return_value=[_make_result(), _make_result(success=False)])
    scheduler.is_active.return_value = True
    scheduler.get_stats.return_value = SchedulerStats(total_runs=4, successful_runs=3, failed_runs=1)
    scheduler.get_config.return_value = ScheduleConfig()
    services.reminder_service.send_test_reminder = AsyncMock(return_value=_make_result())
    services.reminder_service.get_reminder_stats.return_value = ReminderStats(
        total_sent=2, successful=1, failed=1, success_rate=50.0, by_type={"day_before": 2},
    )
    services.reminders.get_all_upcoming_reminders = AsyncMock(return_value=[_make_upcoming()])
    services.incoming.process_incoming_message = AsyncMock(
        return_value=IncomingMessageResult(
            success=True, action=MessageAction.CONFIRMATION, phone_number="+15551234567", message="C",
        )
    )
    return services


@pytest.fixture()
def services():
    return _make_services()


@pytest.fixture()
def client_factory(services):
    from crewcall.main import app

    def _factory(**settings_overrides):
        values = dict(CRON_SECRET=SECRET, TWILIO_AUTH_TOKEN="tw-token", TWILIO_VALIDATE_WEBHOOKS=False)
        values.update(settings_overrides)
        settings = Settings(**values)
        app.dependency_overrides[get_services] = lambda: services
        app.dependency_overrides[get_settings] = lambda: settings
        return TestClient(app)

    yield _factory
    app.dependency_overrides.clear()


# ===================================================================
# Cron secret
# ===================================================================


class TestCronSecret:

    def test_missing_token_is_rejected(self, client_factory, services):
        response = client_factory().post("/api/reminders/process")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        services.scheduler.run_now.assert_not_awaited()

    def test_wrong_token_is_rejected(self, client_factory):
        response = client_factory().post("/api/reminders/process", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    def test_unset_secret_is_allowed_outside_production(self, client_factory):
        response = client_factory(CRON_SECRET="").post("/api/reminders/process")

        assert response.status_code == 200

    def test_unset_secret_is_rejected_in_production(self, client_factory):
        response = client_factory(CRON_SECRET="", APP_ENV="production").post("/api/reminders/process")

        assert response.status_code == 401


# ===================================================================
# /api/reminders
# ===================================================================


class TestProcessReminders:

    def test_runs_a_pass_and_starts_the_scheduler(self, client_factory, services):
        response = client_factory().post("/api/reminders/process", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 2
        assert data["successful"] == 1
        assert data["failed"] == 1
        assert data["scheduler_active"] is True
        assert data["results"][0]["reminder_type"] == "day_before"
        services.scheduler.run_now.assert_awaited_once()
        services.scheduler.start.assert_called_once()

    def test_failed_pass_returns_500(self, client_factory, services):
        services.scheduler.run_now.side_effect = RuntimeError("db down")

        response = client_factory().post("/api/reminders/process", headers=AUTH)

        assert response.status_code == 500
        assert response.json()["detail"] == "Reminder processing failed"
        services.scheduler.start.assert_not_called()


class TestScheduler:

    def test_status_needs_no_token(self, client_factory):
        response = client_factory().get("/api/reminders/scheduler")

        assert response.status_code == 200
        data = response.json()
        assert data["active"] is True
        assert data["stats"]["total_runs"] == 4
        assert data["config"]["interval_minutes"] == 15

    def test_patch_applies_only_given_fields(self, client_factory, services):
        response = client_factory().patch(
            "/api/reminders/scheduler", json={"interval_minutes": 30}, headers=AUTH,
        )

        assert response.status_code == 200
        services.scheduler.update_config.assert_called_once_with(interval_minutes=30.0)

    @pytest.mark.parametrize(
        "payload",
        [{"interval_minutes": 0}, {"max_retries": 0}, {"retry_delay_minutes": -1}],
    )
    def test_patch_rejects_out_of_range_values(self, client_factory, services, payload):
        response = client_factory().patch("/api/reminders/scheduler", json=payload, headers=AUTH)

        assert response.status_code == 422
        services.scheduler.update_config.assert_not_called()

    def test_patch_requires_the_token(self, client_factory):
        response = client_factory().patch("/api/reminders/scheduler", json={"enabled": False})

        assert response.status_code == 401


class TestTestReminder:

    def test_sends_for_one_assignment(self, client_factory, services):
        response = client_factory().post(f"/api/reminders/test/{JOB_ID}/{ASSOCIATE_ID}", headers=AUTH)

        assert response.status_code == 200
        assert response.json()["message_id"] == "SM1"
        services.reminder_service.send_test_reminder.assert_awaited_once_with(JOB_ID, ASSOCIATE_ID)

    def test_unknown_assignment_is_404(self, client_factory, services):
        from crewcall.services.reminder_service import ReminderAssignmentNotFound

        services.reminder_service.send_test_reminder.side_effect = ReminderAssignmentNotFound(JOB_ID, ASSOCIATE_ID)

        response = client_factory().post(f"/api/reminders/test/{JOB_ID}/{ASSOCIATE_ID}", headers=AUTH)

        assert response.status_code == 404
        assert response.json()["detail"] == "Assignment not found"

    def test_malformed_ids_are_422(self, client_factory, services):
        response = client_factory().post("/api/reminders/test/not-a-uuid/also-not", headers=AUTH)

        assert response.status_code == 422
        services.reminder_service.send_test_reminder.assert_not_awaited()


class TestReminderStats:

    def test_returns_stats(self, client_factory):
        response = client_factory().get("/api/reminders/stats", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {
            "total_sent": 2,
            "successful": 1,
            "failed": 1,
            "success_rate": 50.0,
            "by_type": {"day_before": 2},
        }

    def test_inverted_window_is_400(self, client_factory, services):
        response = client_factory().get(
            "/api/reminders/stats",
            params={"start": "2025-01-10T00:00:00Z", "end": "2025-01-09T00:00:00Z"},
            headers=AUTH,
        )

        assert response.status_code == 400
        services.reminder_service.get_reminder_stats.assert_not_called()


class TestUpcomingReminders:

    def test_lists_assignments_from_today_onward(self, client_factory, services):
        response = client_factory().get("/api/reminders/upcoming", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        [item] = data["assignments"]
        assert item["associate_name"] == "Ana Ruiz"
        assert item["starts_at"] == "2025-01-10T15:00:00Z"
        assert item["confirmation_status"] == "Soft Confirmed"
        services.reminders.get_all_upcoming_reminders.assert_awaited_once_with()

    def test_requires_the_token(self, client_factory, services):
        response = client_factory().get("/api/reminders/upcoming")

        assert response.status_code == 401
        services.reminders.get_all_upcoming_reminders.assert_not_awaited()


# ===================================================================
# /api/twilio/incoming
# ===================================================================


class TestTwilioWebhook:

    FORM = {"From": "+15551234567", "To": "+15550000000", "Body": "C", "MessageSid": "SM9"}

    def test_returns_empty_twiml_and_processes_the_message(self, client_factory, services):
        response = client_factory().post("/api/twilio/incoming", data=self.FORM)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "<Response></Response>" in response.text
        services.incoming.process_incoming_message.assert_awaited_once_with("+15551234567", "C", "+15550000000")

    def test_missing_to_is_passed_as_none(self, client_factory, services):
        client_factory().post("/api/twilio/incoming", data={"From": "+15551234567", "Body": "help"})

        services.incoming.process_incoming_message.assert_awaited_once_with("+15551234567", "help", None)

    def test_processing_errors_still_return_200(self, client_factory, services):
        services.incoming.process_incoming_message.side_effect = RuntimeError("boom")

        response = client_factory().post("/api/twilio/incoming", data=self.FORM)

        assert response.status_code == 200
        assert "<Response></Response>" in response.text

    def test_bad_signature_is_403(self, client_factory, services):
        client = client_factory(TWILIO_VALIDATE_WEBHOOKS=True)

        response = client.post(
            "/api/twilio/incoming", data=self.FORM, headers={"X-Twilio-Signature": "forged"},
        )

        assert response.status_code == 403
        services.incoming.process_incoming_message.assert_not_awaited()

    def test_valid_signature_is_accepted(self, client_factory, services):
        client = client_factory(TWILIO_VALIDATE_WEBHOOKS=True)
        signature = RequestValidator("tw-token").compute_signature(WEBHOOK_URL, self.FORM)

        response = client.post(
            "/api/twilio/incoming", data=self.FORM, headers={"X-Twilio-Signature": signature},
        )

        assert response.status_code == 200
        services.incoming.process_incoming_message.assert_awaited_once()

    def test_validation_without_auth_token_is_403(self, client_factory, services):
        client = client_factory(TWILIO_VALIDATE_WEBHOOKS=True, TWILIO_AUTH_TOKEN="")

        response = client.post("/api/twilio/incoming", data=self.FORM)

        assert response.status_code == 403
        services.incoming.process_incoming_message.assert_not_awaited()


# ===================================================================
# Health
# ===================================================================


class TestHealth:

    def test_database_outage_is_503(self, services):
        from crewcall.main import app

        app.state.services = services
        broken_session = MagicMock(side_effect=ConnectionRefusedError("db down"))

        with patch("crewcall.main.AsyncSessionLocal", broken_session):
            response = TestClient(app).get("/api/health")

        assert response.status_code == 503
        data = response.json()
        assert data["database"] == "unavailable"
        assert data["scheduler"]["total_runs"] == 4
        assert response.headers["X-Request-ID"]

    def test_healthy_database(self, services):
        from crewcall.main import app

        session = MagicMock()
        session.__aenter__ = AsyncMock(return_value=session)
        session.__aexit__ = AsyncMock(return_value=False)
        session.execute = AsyncMock()
        app.state.services = services

        with patch("crewcall.main.AsyncSessionLocal", MagicMock(return_value=session)):
            response = TestClient(app).get("/api/health", headers={"X-Request-ID": "req-42"})

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.headers["X-Request-ID"] == "req-42"
