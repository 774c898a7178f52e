"""Tests for single-account sync runs."""

from datetime import timedelta
from unittest import mock

import pytest
from django.db import DatabaseError
from django.utils import timezone

from mail_sync.enums import (
    AccountStatus,
    ScreeningStatus,
    SyncErrorKind,
    SyncRunStatus,
    SyncTrigger,
    View,
)
from mail_sync.exceptions import AuthenticationError, ConnectionError, PersistenceError
from mail_sync.models import Email, SyncLog
from mail_sync.services.sync_service import (
    FAILED,
    NOT_CLAIMED,
    SUCCESS,
    AccountSyncService,
    claim_account,
    select_due_accounts,
)

from .factories import EmailFactory, MailAccountFactory, RawMessageFactory
from .fakes import adapter_factory

GET_ADAPTER = "mail_sync.services.sync_service.get_adapter"


def run_sync(account, **kwargs):
    return AccountSyncService().sync(account.id, trigger=SyncTrigger.MANUAL, **kwargs)


@pytest.mark.django_db
class TestAccountSync:
    def test_successful_sync_stores_and_classifies(self, mail_account, status_store):
        messages = [
            RawMessageFactory(external_id="m1", subject="Your receipt"),
            RawMessageFactory(external_id="m2", subject="Lunch?"),
            RawMessageFactory(external_id="m3", body_text="click to unsubscribe"),
        ]
        get_adapter = adapter_factory(messages=messages)

        with mock.patch(GET_ADAPTER, get_adapter):
            result = run_sync(mail_account)

        assert result.status == SUCCESS
        assert (result.fetched, result.processed, result.created) == (3, 3, 3)
        assert result.failed == 0

        views = dict(Email.objects.values_list("external_message_id", "view"))
        assert views == {"m1": View.PAPER_TRAIL, "m2": View.IMBOX, "m3": View.FEED}

        mail_account.refresh_from_db()
        assert mail_account.status == AccountStatus.ACTIVE
        assert mail_account.total_emails_synced == 3
        assert mail_account.last_sync_error is None
        assert mail_account.last_sync_at is not None

        log = SyncLog.objects.get(run_id=result.run_id)
        assert log.status == SyncRunStatus.COMPLETED
        assert log.trigger == SyncTrigger.MANUAL
        assert log.emails_processed == 3

        snapshot = status_store.get(mail_account.id)
        assert snapshot.is_complete is True
        assert (snapshot.fetched, snapshot.synced) == (3, 3)
        assert snapshot.estimated_total == 3

        adapter = get_adapter.created[0]
        assert adapter.credentials == (mail_account.imap_username, "app-password")
        assert adapter.disconnected is True

    def test_second_sync_skips_unchanged_messages(self, mail_account):
        get_adapter = adapter_factory(
            messages=[RawMessageFactory(external_id=f"m{i}") for i in range(3)],
        )

        with mock.patch(GET_ADAPTER, get_adapter):
            run_sync(mail_account)
            result = run_sync(mail_account)

        assert (result.processed, result.skipped) == (0, 3)
        assert Email.objects.count() == 3
        mail_account.refresh_from_db()
        assert mail_account.total_emails_synced == 3

    def test_unparseable_messages_are_counted_not_fatal(self, mail_account):
        get_adapter = adapter_factory(
            messages=[RawMessageFactory(external_id="ok")], broken=["bad"],
        )

        with mock.patch(GET_ADAPTER, get_adapter):
            result = run_sync(mail_account)

        assert result.status == SUCCESS
        assert (result.processed, result.failed) == (1, 1)

    def test_persistence_failure_counts_message_and_continues(self, mail_account):
        messages = [RawMessageFactory(external_id="m1"), RawMessageFactory(external_id="m2")]
        service = AccountSyncService()
        real_upsert = service.persister.upsert_message

        def flaky(account, raw):
            if raw.external_id == "m1":
                raise PersistenceError("disk full")
            return real_upsert(account, raw)

        with mock.patch(GET_ADAPTER, adapter_factory(messages=messages)), mock.patch.object(
            service.persister, "upsert_message", side_effect=flaky,
        ):
            result = service.sync(mail_account.id)

        assert result.status == SUCCESS
        assert (result.processed, result.failed) == (1, 1)

    def test_auth_failure_marks_account_error(self, mail_account, status_store):
        get_adapter = adapter_factory(
            fail_on="connect", error=AuthenticationError("Invalid credentials"),
        )

        with mock.patch(GET_ADAPTER, get_adapter):
            result = run_sync(mail_account)

        assert result.status == FAILED
        assert result.error_kind == SyncErrorKind.AUTH

        mail_account.refresh_from_db()
        assert mail_account.status == AccountStatus.ERROR
        assert mail_account.last_sync_error == "Invalid credentials"
        assert mail_account.last_sync_error_kind == SyncErrorKind.AUTH
        assert mail_account.needs_reauth

        assert SyncLog.objects.get(run_id=result.run_id).status == SyncRunStatus.FAILED
        assert status_store.payload(mail_account.id)["error"] == "Invalid credentials"
        assert get_adapter.created[0].disconnected is True

    def test_network_failure_records_kind(self, mail_account):
        get_adapter = adapter_factory(fail_on="list", error=ConnectionError("unreachable"))

        with mock.patch(GET_ADAPTER, get_adapter):
            result = run_sync(mail_account)

        mail_account.refresh_from_db()
        assert result.error_kind == SyncErrorKind.NETWORK
        assert mail_account.last_sync_error_kind == SyncErrorKind.NETWORK

    def test_unexpected_error_is_recorded_as_unknown(self, mail_account):
        get_adapter = adapter_factory(
            messages=[RawMessageFactory()], fail_on="fetch", error=KeyError("boom"),
        )

        with mock.patch(GET_ADAPTER, get_adapter):
            result = run_sync(mail_account)

        mail_account.refresh_from_db()
        assert result.status == FAILED
        assert result.error_kind == SyncErrorKind.UNKNOWN
        assert mail_account.status == AccountStatus.ERROR
        assert mail_account.last_sync_error_kind == SyncErrorKind.UNKNOWN

    def test_deadline_aborts_the_run(self, mail_account):
        get_adapter = adapter_factory(messages=[RawMessageFactory()])

        with mock.patch(GET_ADAPTER, get_adapter):
            result = run_sync(mail_account, timeout=-1)

        mail_account.refresh_from_db()
        assert result.error_kind == SyncErrorKind.TIMEOUT
        assert mail_account.status == AccountStatus.ERROR
        assert not Email.objects.exists()

    def test_status_store_failure_still_releases_account(self, mail_account, status_store):
        with mock.patch.object(
            status_store, "start", side_effect=RuntimeError("cache down"),
        ), mock.patch(GET_ADAPTER, adapter_factory()):
            result = run_sync(mail_account)

        mail_account.refresh_from_db()
        assert result.status == FAILED
        assert mail_account.status == AccountStatus.ERROR
        assert mail_account.last_sync_error == "cache down"
        log = SyncLog.objects.get(run_id=result.run_id)
        assert log.status == SyncRunStatus.FAILED

    def test_sync_log_failure_still_releases_account(self, mail_account):
        with mock.patch(
            "mail_sync.services.sync_service.SyncLog.objects.create",
            side_effect=DatabaseError("disk full"),
        ), mock.patch(GET_ADAPTER, adapter_factory()):
            result = run_sync(mail_account)

        mail_account.refresh_from_db()
        assert result.status == FAILED
        assert mail_account.status == AccountStatus.ERROR
        assert not SyncLog.objects.exists()

    def test_account_already_syncing_is_not_claimed(self, mail_account):
        mail_account.status = AccountStatus.SYNCING
        mail_account.save()

        with mock.patch(GET_ADAPTER) as get_adapter:
            result = run_sync(mail_account)

        assert result.status == NOT_CLAIMED
        get_adapter.assert_not_called()
        assert not SyncLog.objects.exists()

    def test_disabled_account_is_not_claimed(self, mail_account):
        mail_account.sync_enabled = False
        mail_account.save()

        assert run_sync(mail_account).status == NOT_CLAIMED

    def test_unclassified_row_is_reclassified_when_seen_again(self, mail_account):
        stored = EmailFactory(
            account=mail_account,
            external_message_id="m1",
            subject="Invoice 7",
            view=None,
            screening_status=ScreeningStatus.PENDING,
        )
        raw = RawMessageFactory(external_id="m1", seen=stored.is_read)

        with mock.patch(GET_ADAPTER, adapter_factory(messages=[raw])):
            run_sync(mail_account)

        stored.refresh_from_db()
        assert stored.view == View.PAPER_TRAIL

    def test_mark_seen_is_opt_in(self, mail_account, settings):
        messages = [RawMessageFactory(external_id="m1")]

        get_adapter = adapter_factory(messages=messages)
        with mock.patch(GET_ADAPTER, get_adapter):
            run_sync(mail_account)
        assert get_adapter.created[0].seen == []

        settings.MAIL_SYNC_MARK_SEEN_ON_SYNC = True
        get_adapter = adapter_factory(messages=messages)
        with mock.patch(GET_ADAPTER, get_adapter):
            run_sync(mail_account)
        assert get_adapter.created[0].seen == ["m1"]

    def test_max_emails_per_sync_limits_listing(self, mail_account):
        mail_account.max_emails_per_sync = 2
        mail_account.save()
        get_adapter = adapter_factory(
            messages=[RawMessageFactory(external_id=f"m{i}") for i in range(5)],
        )

        with mock.patch(GET_ADAPTER, get_adapter):
            result = run_sync(mail_account)

        assert result.fetched == 2


@pytest.mark.django_db
def test_claim_is_exclusive(mail_account):
    assert claim_account(mail_account.id) is True
    assert claim_account(mail_account.id) is False


@pytest.mark.django_db
class TestSelectDueAccounts:
    def test_selection_rules(self, user):
        now = timezone.now()
        never = MailAccountFactory(user=user, last_sync_at=None)
        stale = MailAccountFactory(user=user, last_sync_at=now - timedelta(minutes=10))
        MailAccountFactory(user=user, last_sync_at=now - timedelta(minutes=1))
        MailAccountFactory(user=user, status=AccountStatus.SYNCING)
        MailAccountFactory(user=user, sync_enabled=False)
        MailAccountFactory(
            user=user,
            status=AccountStatus.ERROR,
            last_sync_error_kind=SyncErrorKind.AUTH,
        )
        network_error = MailAccountFactory(
            user=user,
            status=AccountStatus.ERROR,
            last_sync_error_kind=SyncErrorKind.NETWORK,
            last_sync_at=now - timedelta(minutes=10),
        )

        due = select_due_accounts(now=now)

        assert [a.id for a in due] == [never.id, stale.id, network_error.id]

    def test_limit(self, user):
        for _ in range(3):
            MailAccountFactory(user=user)

        assert len(select_due_accounts(limit=2)) == 2
