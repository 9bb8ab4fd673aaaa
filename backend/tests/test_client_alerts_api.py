"""
Tests for the alert management, template and draft review endpoints.
"""
import uuid

from fastapi import status

from deadline_alerts.models import ClientAlert, NotificationPreference


def _alert_payload(practice_client, **overrides):
    payload = {
        "client_id": str(practice_client.id),
        "alert_type": "NEXT_ACCOUNTS_DUE",
        "days_before_due": 45,
        "notification_preference": "SEND_DIRECT_TO_CLIENT",
        "reminder_schedules": [{"days_before_due": 38}, {"days_before_due": 28}],
    }
    payload.update(overrides)
    return payload


class TestClientAlertRoutes:
    def test_create_and_fetch(self, client, make_client):
        practice_client = make_client()

        created = client.post("/client-alerts", json=_alert_payload(practice_client))

        assert created.status_code == status.HTTP_201_CREATED
        body = created.json()
        assert [s["days_before_due"] for s in body["schedules"]] == [38, 28]
        fetched = client.get(f"/client-alerts/{body['id']}")
        assert fetched.json()["id"] == body["id"]
        listed = client.get("/client-alerts", params={"client_id": str(practice_client.id)})
        assert len(listed.json()) == 1

    def test_duplicate_offsets_rejected_with_400(self, client, db_session, make_client):
        practice_client = make_client()
        payload = _alert_payload(
            practice_client,
            reminder_schedules=[{"days_before_due": 38}, {"days_before_due": 45}],
        )

        response = client.post("/client-alerts", json=payload)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert db_session.query(ClientAlert).count() == 0

    def test_duplicate_schedule_added_later_rejected(self, client, make_client, make_alert):
        practice_client = make_client()
        alert = make_alert(practice_client, days_before_due=45, follow_ups=(38, 28))

        response = client.post(f"/client-alerts/{alert.id}/schedules", json={"days_before_due": 28})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_toggle_and_delete(self, client, make_client, make_alert):
        practice_client = make_client()
        alert = make_alert(practice_client)

        toggled = client.patch(f"/client-alerts/{alert.id}/toggle-active")
        assert toggled.json()["is_active"] is False

        assert client.delete(f"/client-alerts/{alert.id}").status_code == status.HTTP_204_NO_CONTENT
        assert client.get(f"/client-alerts/{alert.id}").status_code == status.HTTP_404_NOT_FOUND

    def test_provision_defaults(self, client, make_client):
        practice_client = make_client()

        response = client.post(f"/clients/{practice_client.id}/alerts/provision")

        assert response.status_code == status.HTTP_201_CREATED
        assert [a["alert_type"] for a in response.json()] == ["NEXT_ACCOUNTS_DUE"]


class TestCreateAlertFromTaskRoute:
    def _payload(self, practice_client):
        return {
            "client_id": str(practice_client.id),
            "alert_type": "NEXT_CONFIRMATION_STATEMENT_DUE",
            "due_date": "2025-01-14",
            "client_name": "Acme Ltd",
        }

    def test_created(self, client, make_client):
        practice_client = make_client()

        response = client.post("/create-alert-from-task", json=self._payload(practice_client))

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["message"] == "Alert 'Next Confirmation Statement Due' created successfully for Acme Ltd."
        assert body["alert"]["notification_preference"] == NotificationPreference.DRAFT_FOR_TEAM.value
        assert body["alert"]["alert_message"].endswith("is due on 14 January 2025.")

    def test_conflict_on_second_active_alert(self, client, make_client):
        practice_client = make_client()
        client.post("/create-alert-from-task", json=self._payload(practice_client))

        response = client.post("/create-alert-from-task", json=self._payload(practice_client))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error_code"] == "CONFLICT"

    def test_unknown_client(self, client):
        payload = {
            "client_id": str(uuid.uuid4()),
            "alert_type": "NEXT_VAT_DUE",
            "due_date": "2025-01-14",
            "client_name": "Nobody",
        }
        assert client.post("/create-alert-from-task", json=payload).status_code == status.HTTP_404_NOT_FOUND

    def test_missing_fields_rejected(self, client):
        response = client.post("/create-alert-from-task", json={"alert_type": "NEXT_VAT_DUE"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestTemplateAndDraftRoutes:
    def test_upsert_and_list_templates(self, client):
        response = client.put(
            "/settings/alert-templates/NEXT_VAT_DUE",
            json={"subject": "VAT due", "body": "<p>{{client_name}}</p>", "default_days_before_due": 21},
        )
        assert response.status_code == status.HTTP_200_OK
        listed = client.get("/settings/alert-templates").json()
        assert [t["alert_type"] for t in listed] == ["NEXT_VAT_DUE"]

    def test_unknown_template_key_rejected(self, client):
        response = client.put("/settings/alert-templates/PAYROLL", json={"subject": "S", "body": "B"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_review_draft(self, client, cron_headers, make_client, make_alert):
        from datetime import timedelta
        from deadline_alerts.services.trigger_evaluator import today_for_zone

        practice_client = make_client(next_accounts_due=today_for_zone() + timedelta(days=10))
        make_alert(practice_client, notification_preference=NotificationPreference.DRAFT_FOR_TEAM)
        client.post("/scheduler/run-alert-analyzer", headers=cron_headers)

        drafts = client.get("/drafted-reminders", params={"status": "PENDING_REVIEW"}).json()
        assert len(drafts) == 1

        response = client.patch(f"/drafted-reminders/{drafts[0]['id']}", json={"status": "DISCARDED"})
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "DISCARDED"
        assert response.json()["reviewed_at"] is not None
