"""Tests for batch orchestration."""

import threading
import time
from unittest import mock

import pytest
from django.test import override_settings

from mail_sync.enums import AccountStatus, SyncErrorKind, SyncTrigger
from mail_sync.exceptions import AuthenticationError, ConfigurationError
from mail_sync.models import Email, MailAccount
from mail_sync.services.credential_vault import vault
from mail_sync.services.orchestrator import BatchReport, SyncOrchestrator, run_batch
from mail_sync.services.sync_service import FAILED, NOT_CLAIMED, AccountSyncResult

from .factories import MailAccountFactory, RawMessageFactory, UserFactory
from .fakes import FakeAdapter


def fake_sync(outcomes):
    """Build a sync function returning canned results per account id."""

    def sync(account_id, trigger):
        outcome = outcomes[account_id]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return sync


def ok(account_id, processed=2):
    return AccountSyncResult(
        account_id=account_id, fetched=processed, processed=processed, created=processed,
    )


def test_report_aggregates_results():
    sync = fake_sync({1: ok(1, 3), 2: ok(2, 4)})

    report = SyncOrchestrator(max_workers=2, sync_fn=sync).run(account_ids=[1, 2])

    assert report.as_dict() == {
        "accountsSynced": 2,
        "successfulSyncs": 2,
        "failedSyncs": 0,
        "emailsFetched": 7,
        "emailsProcessed": 7,
        "emailsSkipped": 0,
        "emailsFailed": 0,
        "durationMs": report.duration_ms,
    }


def test_one_failing_account_does_not_affect_the_others():
    auth_failure = AccountSyncResult(
        account_id=2,
        status=FAILED,
        error="Invalid credentials",
        error_kind=SyncErrorKind.AUTH,
    )
    sync = fake_sync({1: ok(1, 5), 2: auth_failure, 3: ok(3, 4)})

    report = SyncOrchestrator(max_workers=3, sync_fn=sync).run(account_ids=[1, 2, 3])

    assert report.failed_syncs == 1
    assert report.successful_syncs == 2
    assert report.emails_processed == 9


def test_worker_exception_becomes_failed_result():
    sync = fake_sync({1: AuthenticationError("token revoked"), 2: ok(2)})

    report = SyncOrchestrator(max_workers=2, sync_fn=sync).run(account_ids=[1, 2])

    assert report.failed_syncs == 1
    assert report.successful_syncs == 1
    failed = next(r for r in report.results if r.account_id == 1)
    assert failed.error_kind == SyncErrorKind.AUTH


def test_not_claimed_accounts_are_not_counted_as_synced():
    sync = fake_sync({1: AccountSyncResult(account_id=1, status=NOT_CLAIMED), 2: ok(2)})

    report = SyncOrchestrator(sync_fn=sync).run(account_ids=[1, 2])

    assert report.accounts_synced == 1
    assert report.not_claimed == 1


def test_concurrency_is_bounded():
    active = 0
    peak = 0
    lock = threading.Lock()

    def sync(account_id, trigger):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1
        return ok(account_id)

    report = SyncOrchestrator(max_workers=2, sync_fn=sync).run(account_ids=range(1, 7))

    assert report.successful_syncs == 6
    assert peak <= 2


def test_cancelled_batch_starts_no_accounts():
    sync = mock.Mock()
    orchestrator = SyncOrchestrator(sync_fn=sync)
    orchestrator.cancel()

    report = orchestrator.run(account_ids=[1, 2, 3])

    sync.assert_not_called()
    assert report.accounts_synced == 0
    assert report.not_started == 3


def test_deadline_stops_scheduling_queued_accounts():
    release = threading.Event()
    started = []

    def sync(account_id, trigger):
        started.append(account_id)
        release.wait(timeout=2)
        return ok(account_id)

    orchestrator = SyncOrchestrator(max_workers=1, batch_deadline=0.05, sync_fn=sync)
    try:
        report = orchestrator.run(account_ids=[1, 2, 3])
    finally:
        release.set()

    assert started == [1]
    assert report.accounts_synced == 0
    assert report.not_started == 2
    assert orchestrator.cancel_event.is_set()


def test_trigger_is_passed_to_workers():
    seen = []

    def sync(account_id, trigger):
        seen.append(trigger)
        return ok(account_id)

    SyncOrchestrator(sync_fn=sync, trigger=SyncTrigger.API).run(account_ids=[1])

    assert seen == [SyncTrigger.API]


def test_batch_size_caps_explicit_accounts():
    sync = mock.Mock(side_effect=lambda account_id, trigger: ok(account_id))

    report = SyncOrchestrator(batch_size=2, sync_fn=sync).run(account_ids=[1, 2, 3])

    assert report.accounts_synced == 2


@pytest.mark.django_db
def test_run_batch_selects_due_accounts():
    with mock.patch(
        "mail_sync.services.orchestrator.select_due_accounts", return_value=[],
    ) as select, mock.patch(
        "mail_sync.services.orchestrator._default_sync",
    ) as sync:
        report = run_batch()

    select.assert_called_once()
    sync.assert_not_called()
    assert report.as_dict()["accountsSynced"] == 0


@override_settings(MAIL_SYNC_ENCRYPTION_KEY=None, FIELD_ENCRYPTION_KEY=None)
def test_run_batch_without_encryption_key_is_fatal():
    with pytest.raises(ConfigurationError):
        run_batch(account_ids=[1])


def test_empty_report_shape():
    assert set(BatchReport().as_dict()) == {
        "accountsSynced",
        "successfulSyncs",
        "failedSyncs",
        "emailsFetched",
        "emailsProcessed",
        "emailsSkipped",
        "emailsFailed",
        "durationMs",
    }


@pytest.mark.django_db(transaction=True)
def test_failing_account_does_not_disturb_real_syncs_of_others():
    user = UserFactory()
    accounts = [MailAccountFactory(user=user) for _ in range(3)]
    for account in accounts:
        vault.seal_password(account, "app-password")
    broken = accounts[1]

    def get_adapter(account, on_token_refresh=None):
        if account.id == broken.id:
            return FakeAdapter(
                account, fail_on="connect", error=AuthenticationError("Invalid credentials"),
            )
        return FakeAdapter(account, messages=RawMessageFactory.build_batch(2))

    with mock.patch("mail_sync.services.sync_service.get_adapter", get_adapter):
        report = SyncOrchestrator(max_workers=1, batch_deadline=30).run(
            account_ids=[a.id for a in accounts],
        )

    assert report.as_dict()["failedSyncs"] == 1
    assert report.successful_syncs == 2
    assert report.as_dict()["emailsProcessed"] == 4
    assert Email.objects.exclude(account=broken).count() == 4
    statuses = dict(MailAccount.objects.values_list("id", "status"))
    assert statuses[broken.id] == AccountStatus.ERROR
    assert [statuses[a.id] for a in (accounts[0], accounts[2])] == [AccountStatus.ACTIVE] * 2
