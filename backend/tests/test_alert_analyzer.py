"""
Tests for the scheduled reminder pass.
"""
import pytest
from datetime import date, datetime

from deadline_alerts.exceptions import ConfigurationError
from deadline_alerts.jobs.alert_analyzer import run_alert_analysis
from deadline_alerts.models import AlertType, DraftedReminder, NotificationPreference, ReminderSchedule


def _run(db_session, day, hour=9):
    return run_alert_analysis(db_session, today=day, now=datetime(day.year, day.month, day.day, hour, 0))


class TestWorkedExample:
    def test_fires_once_per_window(self, db_session, make_client, make_alert, outbox):
        practice_client = make_client(next_accounts_due=date(2024, 12, 31))
        alert = make_alert(practice_client, days_before_due=30)

        early = _run(db_session, date(2024, 11, 30))
        assert early.processed == 0
        assert early.not_due == 1
        assert alert.last_triggered_at is None

        first = _run(db_session, date(2024, 12, 1))
        assert first.processed == 1
        assert first.errors == 0
        assert alert.last_triggered_at == datetime(2024, 12, 1, 9, 0)
        assert len(outbox) == 1
        assert outbox[0]["subject"] == "Important: Annual Accounts Filing Deadline - Acme Ltd"
        assert "31 December 2024" in outbox[0]["html"]
        assert "confidential" in outbox[0]["html"]

        same_day = _run(db_session, date(2024, 12, 1), hour=15)
        assert same_day.processed == 0
        assert len(outbox) == 1
        assert alert.last_triggered_at == datetime(2024, 12, 1, 9, 0)

        next_day = _run(db_session, date(2024, 12, 2))
        assert next_day.processed == 0
        assert next_day.not_due == 1
        assert len(outbox) == 1


class TestDispatchModes:
    def test_draft_mode_writes_pending_draft(self, db_session, make_client, make_alert, outbox):
        practice_client = make_client()
        alert = make_alert(practice_client, notification_preference=NotificationPreference.DRAFT_FOR_TEAM)

        result = _run(db_session, date(2024, 12, 1))

        assert result.processed == 1
        assert outbox == []
        draft = db_session.query(DraftedReminder).one()
        assert draft.cc_email == "admin@practice.test"
        assert draft.email_subject.startswith("Important: Annual Accounts")
        assert alert.last_triggered_at is not None

    def test_custom_message_is_used(self, db_session, make_client, make_alert, outbox):
        practice_client = make_client()
        make_alert(practice_client, alert_message="<p>Hi {{client_name}}, accounts due {{due_date}}.</p>")

        _run(db_session, date(2024, 12, 1))

        assert outbox[0]["subject"] == "Reminder: Next Accounts Due Due Soon"
        assert outbox[0]["html"].startswith("<p>Hi Jane Smith, accounts due 31 December 2024.</p>")

    def test_linked_task_alert(self, db_session, make_client, make_alert, make_task, outbox):
        practice_client = make_client()
        task = make_task(practice_client, due_date=date(2024, 12, 20))
        make_alert(practice_client, alert_type=AlertType.CLIENT_TASK, source_task_id=task.id, days_before_due=5)

        result = _run(db_session, date(2024, 12, 15))

        assert result.processed == 1
        assert outbox[0]["subject"] == "Important Reminder: Send year-end bank statements - Action Required"


class TestSkipsAndFailures:
    def test_opt_out_is_skipped_not_served(self, db_session, make_client, make_alert, outbox):
        practice_client = make_client(automated_emails=False)
        alert = make_alert(practice_client)

        result = _run(db_session, date(2024, 12, 1))

        assert result.skipped == 1
        assert result.errors == 0
        assert outbox == []
        assert db_session.query(DraftedReminder).count() == 0
        assert alert.last_triggered_at is None

    def test_missing_due_date_is_skipped(self, db_session, make_client, make_alert, outbox):
        practice_client = make_client(next_accounts_due=None)
        make_alert(practice_client)

        result = _run(db_session, date(2024, 12, 1))

        assert result.skipped == 1
        assert result.errors == 0
        assert outbox == []

    def test_inactive_alerts_are_ignored(self, db_session, make_client, make_alert, outbox):
        practice_client = make_client()
        make_alert(practice_client, is_active=False)

        result = _run(db_session, date(2024, 12, 1))

        assert (result.processed, result.errors, result.skipped, result.not_due) == (0, 0, 0, 0)

    def test_one_failure_does_not_stop_the_pass(self, db_session, make_client, make_alert, outbox):
        no_email = make_client(client_name="No Email", client_email=None)
        healthy = make_client(client_name="Healthy", client_email="ok@client.test")
        failing_alert = make_alert(no_email)
        healthy_alert = make_alert(healthy)

        result = _run(db_session, date(2024, 12, 1))

        assert result.processed == 1
        assert result.errors == 1
        assert failing_alert.last_triggered_at is None
        assert healthy_alert.last_triggered_at is not None
        assert [params["to"] for params in outbox] == [["ok@client.test"]]

    def test_transport_failure_leaves_alert_unserved_for_retry(self, db_session, make_client, make_alert, monkeypatch):
        import resend

        practice_client = make_client()
        alert = make_alert(practice_client)

        def failing_send(params, *args, **kwargs):
            raise RuntimeError("provider unavailable")

        monkeypatch.setattr(resend.Emails, "send", failing_send)
        failed = _run(db_session, date(2024, 12, 1))
        assert failed.errors == 1
        assert alert.last_triggered_at is None

        sent = []
        monkeypatch.setattr(resend.Emails, "send", lambda params, *args, **kwargs: sent.append(params))
        retried = _run(db_session, date(2024, 12, 2))
        assert retried.processed == 1
        assert len(sent) == 1
        assert alert.last_triggered_at == datetime(2024, 12, 2, 9, 0)

    def test_missing_email_configuration_aborts_before_work(self, db_session, make_client, make_alert, outbox, test_settings, monkeypatch):
        monkeypatch.setattr(test_settings, "RESEND_API_KEY", None)
        practice_client = make_client()
        alert = make_alert(practice_client, notification_preference=NotificationPreference.DRAFT_FOR_TEAM)

        with pytest.raises(ConfigurationError):
            _run(db_session, date(2024, 12, 1))

        assert db_session.query(DraftedReminder).count() == 0
        assert alert.last_triggered_at is None


class TestFollowUpSchedules:
    def test_each_window_is_served_once(self, db_session, make_client, make_alert, outbox):
        practice_client = make_client(next_accounts_due=date(2024, 12, 31))
        alert = make_alert(practice_client, days_before_due=30, follow_ups=(14, 7))

        assert _run(db_session, date(2024, 12, 1)).processed == 1
        assert _run(db_session, date(2024, 12, 10)).processed == 0
        assert _run(db_session, date(2024, 12, 17)).processed == 1
        assert _run(db_session, date(2024, 12, 18)).processed == 0
        assert _run(db_session, date(2024, 12, 24)).processed == 1
        assert _run(db_session, date(2024, 12, 31)).processed == 0

        assert len(outbox) == 3
        assert alert.last_triggered_at == datetime(2024, 12, 24, 9, 0)

    def test_overdue_alert_fires_every_open_window(self, db_session, make_client, make_alert, outbox):
        practice_client = make_client(next_accounts_due=date(2024, 12, 31))
        alert = make_alert(practice_client, days_before_due=30, follow_ups=(14, 7))

        result = _run(db_session, date(2025, 1, 5))

        assert result.processed == 3
        assert len(outbox) == 3
        assert all(params["to"] == ["jane@acme.test"] for params in outbox)
        assert alert.last_triggered_at == datetime(2025, 1, 5, 9, 0)
        assert _run(db_session, date(2025, 1, 6)).processed == 0
        assert len(outbox) == 3

    def test_follow_up_and_main_window_fire_in_the_same_pass(self, db_session, make_client, make_alert, outbox):
        practice_client = make_client(next_accounts_due=date(2024, 12, 31))
        make_alert(practice_client, days_before_due=30, follow_ups=(14,))

        result = _run(db_session, date(2024, 12, 20))

        assert result.processed == 2
        assert len(outbox) == 2

    def test_failed_window_leaves_every_window_open(self, db_session, make_client, make_alert, monkeypatch):
        import resend

        practice_client = make_client(next_accounts_due=date(2024, 12, 31))
        alert = make_alert(practice_client, days_before_due=30, follow_ups=(14,))
        sent = []

        def second_send_fails(params, *args, **kwargs):
            if sent:
                raise RuntimeError("provider unavailable")
            sent.append(params)
            return {"id": "email_1"}

        monkeypatch.setattr(resend.Emails, "send", second_send_fails)
        failed = _run(db_session, date(2024, 12, 20))

        assert (failed.processed, failed.errors) == (0, 1)
        assert len(sent) == 1
        assert alert.last_triggered_at is None

        retried_sends = []
        monkeypatch.setattr(resend.Emails, "send", lambda params, *args, **kwargs: retried_sends.append(params))
        retried = _run(db_session, date(2024, 12, 21))

        assert retried.processed == 2
        assert len(retried_sends) == 2
        assert alert.last_triggered_at == datetime(2024, 12, 21, 9, 0)

    def test_custom_follow_up_message(self, db_session, make_client, make_alert, outbox):
        practice_client = make_client()
        alert = make_alert(practice_client, days_before_due=30)
        alert.schedules.append(ReminderSchedule(
            days_before_due=7,
            alert_message="<p>Last call, {{client_name}}.</p>",
            use_custom_message=True,
        ))
        db_session.commit()

        _run(db_session, date(2024, 12, 24))

        assert outbox[0]["subject"] == "Follow-up Reminder: Next Accounts Due"
        assert outbox[0]["html"].startswith("<p>Last call, Jane Smith.</p>")

    def test_inactive_follow_up_is_not_a_window(self, db_session, make_client, make_alert, outbox):
        practice_client = make_client()
        alert = make_alert(practice_client, days_before_due=30, follow_ups=(7,))
        _run(db_session, date(2024, 12, 1))
        alert.schedules[0].is_active = False
        db_session.commit()

        assert _run(db_session, date(2024, 12, 24)).processed == 0
        assert len(outbox) == 1
