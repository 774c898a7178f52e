"""Tests for the mail_sync API endpoints."""

from unittest import mock

import pytest
from django.urls import reverse

from mail_sync.enums import AccountStatus, Decision, ScreeningStatus, View
from mail_sync.exceptions import ConfigurationError
from mail_sync.models import ScreeningDecision
from mail_sync.services.orchestrator import BatchReport

from .factories import EmailFactory, MailAccountFactory, UserFactory

RUN_BATCH = "mail_sync.views.services.run_batch"


@pytest.mark.django_db
class TestSyncTrigger:
    url = reverse("mail_sync:sync-trigger")

    def test_requires_bearer_secret(self, api_client):
        with mock.patch(RUN_BATCH) as run_batch:
            response = api_client.post(self.url)

        assert response.status_code == 401
        run_batch.assert_not_called()

    def test_wrong_secret_is_rejected(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer nope")

        with mock.patch(RUN_BATCH) as run_batch:
            response = api_client.post(self.url)

        assert response.status_code == 401
        run_batch.assert_not_called()

    def test_jwt_user_cannot_trigger(self, authenticated_client):
        response = authenticated_client.post(self.url)

        assert response.status_code == 403

    def test_returns_batch_report(self, trigger_client):
        report = BatchReport(
            accounts_synced=2,
            successful_syncs=1,
            failed_syncs=1,
            emails_fetched=5,
            emails_processed=4,
            emails_skipped=1,
            duration_ms=120,
        )

        with mock.patch(RUN_BATCH, return_value=report) as run_batch:
            response = trigger_client.post(self.url, {"accountIds": [3, 4]}, format="json")

        assert response.status_code == 200
        assert response.json() == report.as_dict()
        assert run_batch.call_args.kwargs["account_ids"] == [3, 4]

    def test_missing_secret_configuration_is_500(self, trigger_client, settings):
        settings.MAIL_SYNC_SYNC_TRIGGER_SECRET = None

        response = trigger_client.post(self.url)

        assert response.status_code == 500
        assert "not configured" in response.json()["detail"]

    def test_configuration_error_is_surfaced_without_report(self, trigger_client):
        with mock.patch(RUN_BATCH, side_effect=ConfigurationError("no encryption key")):
            response = trigger_client.post(self.url)

        assert response.status_code == 500
        assert response.json() == {"error": "no encryption key"}


@pytest.mark.django_db
class TestSyncStatus:
    url = reverse("mail_sync:sync-status")

    def test_requires_authentication(self, api_client):
        assert api_client.get(self.url).status_code == 401

    def test_idle_account_gets_default_payload(self, authenticated_client, mail_account):
        response = authenticated_client.get(self.url)

        assert response.status_code == 200
        [entry] = response.json()["accounts"]
        assert entry["accountId"] == mail_account.id
        assert entry["status"]["isComplete"] is False
        assert entry["status"]["fetched"] == 0

    def test_running_sync_is_reported(self, authenticated_client, mail_account, status_store):
        status_store.start(mail_account.id, "run-a")
        status_store.increment(mail_account.id, "run-a", fetched=4, synced=3)

        response = authenticated_client.get(self.url, {"account": mail_account.id})

        status = response.json()["accounts"][0]["status"]
        assert (status["fetched"], status["synced"]) == (4, 3)
        assert status["runId"] == "run-a"

    def test_other_users_account_is_not_found(self, authenticated_client):
        other = MailAccountFactory(user=UserFactory())

        response = authenticated_client.get(self.url, {"account": other.id})

        assert response.status_code == 404


@pytest.mark.django_db
class TestSyncReset:
    url = reverse("mail_sync:sync-reset")

    def test_resets_current_users_accounts(self, authenticated_client, user):
        MailAccountFactory(user=user, status=AccountStatus.SYNCING)
        MailAccountFactory(user=user, status=AccountStatus.SYNCING)

        response = authenticated_client.post(self.url, {}, format="json")

        assert response.json() == {"success": True, "resetCount": 2}

    def test_resets_single_account(self, authenticated_client, user):
        account = MailAccountFactory(user=user, status=AccountStatus.SYNCING)
        MailAccountFactory(user=user, status=AccountStatus.SYNCING)

        response = authenticated_client.post(
            self.url, {"accountId": account.id}, format="json",
        )

        assert response.json()["resetCount"] == 1


@pytest.mark.django_db
class TestScreeningEndpoints:
    def test_record_decision(self, authenticated_client, user):
        response = authenticated_client.post(
            reverse("mail_sync:screening-decisions"),
            {"sender": "Boss <boss@example.com>", "decision": Decision.ALLOW},
            format="json",
        )

        assert response.status_code == 201
        assert response.json()["decision"]["sender_email"] == "boss@example.com"
        assert ScreeningDecision.objects.filter(user=user).count() == 1

    def test_record_decision_validates_input(self, authenticated_client):
        response = authenticated_client.post(
            reverse("mail_sync:screening-decisions"),
            {"sender": "boss@example.com", "decision": "maybe"},
            format="json",
        )

        assert response.status_code == 400

    def test_pending_queue(self, authenticated_client, mail_account):
        EmailFactory(account=mail_account, sender_email="new@example.com")

        response = authenticated_client.get(reverse("mail_sync:screening-pending"))

        [sender] = response.json()["senders"]
        assert sender["email_address"] == "new@example.com"
        assert sender["suggestion"]["view"] == View.IMBOX

    def test_undo(self, authenticated_client, mail_account):
        EmailFactory(
            account=mail_account,
            sender_email="boss@example.com",
            view=View.IMBOX,
            screening_status=ScreeningStatus.SCREENED,
        )
        url = reverse("mail_sync:screening-undo")

        first = authenticated_client.post(url, {"sender": "boss@example.com"}, format="json")
        second = authenticated_client.post(url, {"sender": "boss@example.com"}, format="json")

        assert first.json() == {"success": True, "affectedCount": 1}
        assert second.json() == {"success": True, "affectedCount": 0}

    def test_undo_rejects_invalid_sender(self, authenticated_client):
        response = authenticated_client.post(
            reverse("mail_sync:screening-undo"), {"sender": "nobody"}, format="json",
        )

        assert response.status_code == 400
        assert response.json()["success"] is False


@pytest.mark.django_db
class TestAccountSync:
    def test_unknown_account_is_404(self, authenticated_client):
        response = authenticated_client.post(
            reverse("mail_sync:account-sync", args=[999]),
        )

        assert response.status_code == 404

    def test_syncing_account_is_409(self, authenticated_client, user):
        account = MailAccountFactory(user=user, status=AccountStatus.SYNCING)

        response = authenticated_client.post(
            reverse("mail_sync:account-sync", args=[account.id]),
        )

        assert response.status_code == 409


@pytest.mark.django_db
def test_jwt_access_token_reaches_status_endpoint(api_client):
    user = UserFactory()
    user.set_password("pass-1234")
    user.save()

    tokens = api_client.post(
        reverse("token-obtain"),
        {"username": user.username, "password": "pass-1234"},
        format="json",
    ).json()
    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")

    assert api_client.get(reverse("mail_sync:sync-status")).status_code == 200
