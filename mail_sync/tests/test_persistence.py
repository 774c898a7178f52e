"""Tests for idempotent message storage."""

from unittest import mock

import pytest
from django.db import DatabaseError

from mail_sync.enums import UpsertOutcome
from mail_sync.exceptions import PersistenceError
from mail_sync.models import Email
from mail_sync.services.persistence_service import (
    SKIP_MISSING_EXTERNAL_ID,
    PersistenceService,
    upsert_message,
)

from .factories import EmailFactory, MailAccountFactory, RawMessageFactory


@pytest.mark.django_db
def test_new_message_is_created_unclassified(mail_account):
    raw = RawMessageFactory(external_id="m1", to_addresses=["me@example.com"])

    email, outcome, reason = upsert_message(mail_account, raw)

    assert outcome == UpsertOutcome.CREATED
    assert reason == ""
    assert email.view is None
    assert email.external_message_id == "m1"
    assert email.sender_email == raw.sender_email
    assert email.to_addresses == ["me@example.com"]


@pytest.mark.django_db
def test_upsert_is_idempotent(mail_account):
    raws = [RawMessageFactory(external_id=f"m{i}") for i in range(3)]

    for raw in raws:
        upsert_message(mail_account, raw)
    snapshot = list(Email.objects.order_by("id").values())

    outcomes = [upsert_message(mail_account, raw).outcome for raw in raws]

    assert outcomes == [UpsertOutcome.UNCHANGED] * 3
    assert list(Email.objects.order_by("id").values()) == snapshot


@pytest.mark.django_db
def test_same_external_id_on_two_accounts_is_two_rows(mail_account):
    other = MailAccountFactory(user=mail_account.user)

    upsert_message(mail_account, RawMessageFactory(external_id="shared"))
    upsert_message(other, RawMessageFactory(external_id="shared"))

    assert Email.objects.filter(external_message_id="shared").count() == 2


@pytest.mark.django_db
def test_missing_external_id_is_skipped(mail_account):
    result = upsert_message(mail_account, RawMessageFactory(external_id="  "))

    assert result.email is None
    assert result.outcome == UpsertOutcome.SKIPPED
    assert result.reason == SKIP_MISSING_EXTERNAL_ID
    assert not Email.objects.exists()


@pytest.mark.django_db
def test_existing_row_only_picks_up_server_state(mail_account):
    stored = EmailFactory(
        account=mail_account,
        external_message_id="m2",
        subject="Original",
        is_read=False,
    )
    raw = RawMessageFactory(external_id="m2", subject="Rewritten", seen=True, flagged=True)

    email, outcome, _ = upsert_message(mail_account, raw)

    stored.refresh_from_db()
    assert outcome == UpsertOutcome.UPDATED
    assert stored.is_read is True
    assert stored.is_starred is True
    assert stored.subject == "Original"


@pytest.mark.django_db
def test_sync_scenario_m1_to_m4(mail_account):
    m1 = EmailFactory(account=mail_account, external_message_id="m1", is_read=False)
    m2 = EmailFactory(account=mail_account, external_message_id="m2", is_read=False)
    m3 = EmailFactory(account=mail_account, external_message_id="m3", is_read=True)
    m1_before = Email.objects.filter(id=m1.id).values().get()

    outcomes = {
        raw.external_id: upsert_message(mail_account, raw).outcome
        for raw in [
            RawMessageFactory(external_id="m2", seen=True),
            RawMessageFactory(external_id="m3", seen=True),
            RawMessageFactory(external_id="m4"),
        ]
    }

    assert Email.objects.filter(account=mail_account).count() == 4
    assert Email.objects.filter(id=m1.id).values().get() == m1_before
    assert outcomes == {
        "m2": UpsertOutcome.UPDATED,
        "m3": UpsertOutcome.UNCHANGED,
        "m4": UpsertOutcome.CREATED,
    }
    m2.refresh_from_db()
    m3.refresh_from_db()
    assert m2.is_read is True
    assert m3.is_read is True


@pytest.mark.django_db
def test_database_failure_raises_persistence_error(mail_account):
    with mock.patch.object(Email.objects, "create", side_effect=DatabaseError("disk full")):
        with pytest.raises(PersistenceError):
            PersistenceService().upsert_message(mail_account, RawMessageFactory())
