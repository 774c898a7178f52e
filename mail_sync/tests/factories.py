"""Test factories for mail_sync models using factory_boy.
This module provides reusable factories for creating test data.
"""

import factory
from django.contrib.auth import get_user_model
from django.utils import timezone
from factory.django import DjangoModelFactory

from mail_sync.channels.adapters.base import RawMessage
from mail_sync.enums import AccountStatus, Decision, ProviderKind, ScreeningStatus
from mail_sync.models import Email, MailAccount, ScreeningDecision, SyncLog


class UserFactory(DjangoModelFactory):
    """Factory for the Django user model."""

    class Meta:
        model = get_user_model()
        django_get_or_create = ("username",)

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")


class MailAccountFactory(DjangoModelFactory):
    """Factory for MailAccount model."""

    class Meta:
        model = MailAccount

    user = factory.SubFactory(UserFactory)
    email_address = factory.Sequence(lambda n: f"inbox{n}@example.com")
    provider = ProviderKind.IMAP
    imap_host = factory.LazyAttribute(lambda o: f"imap.{o.email_address.split('@')[1]}")
    imap_username = factory.LazyAttribute(lambda o: o.email_address)
    status = AccountStatus.ACTIVE
    sync_enabled = True
    sync_frequency = 300  # 5 minutes
    max_emails_per_sync = 50
    last_sync_at = None


class EmailFactory(DjangoModelFactory):
    """Factory for Email model."""

    class Meta:
        model = Email

    account = factory.SubFactory(MailAccountFactory)
    external_message_id = factory.Sequence(lambda n: f"<message-{n}@example.com>")
    sender_email = factory.Sequence(lambda n: f"sender{n}@example.com")
    from_address = factory.LazyAttribute(lambda o: f"Sender <{o.sender_email}>")
    from_name = "Sender"
    subject = factory.Sequence(lambda n: f"Test Subject {n}")
    body_text = "Hello there"
    received_at = factory.LazyFunction(timezone.now)
    screening_status = ScreeningStatus.PENDING
    view = None


class ScreeningDecisionFactory(DjangoModelFactory):
    """Factory for ScreeningDecision model."""

    class Meta:
        model = ScreeningDecision

    user = factory.SubFactory(UserFactory)
    sender_email = factory.Sequence(lambda n: f"sender{n}@example.com")
    decision = Decision.ALLOW


class SyncLogFactory(DjangoModelFactory):
    """Factory for SyncLog model."""

    class Meta:
        model = SyncLog

    account = factory.SubFactory(MailAccountFactory)
    run_id = factory.Sequence(lambda n: f"run-{n}")
    started_at = factory.LazyFunction(timezone.now)


class RawMessageFactory(factory.Factory):
    """Factory for the transient RawMessage produced by adapters."""

    class Meta:
        model = RawMessage

    external_id = factory.Sequence(lambda n: f"<raw-{n}@example.com>")
    received_at = factory.LazyFunction(timezone.now)
    sender_email = factory.Sequence(lambda n: f"friend{n}@example.com")
    from_address = factory.LazyAttribute(lambda o: f"Friend <{o.sender_email}>")
    from_name = "Friend"
    subject = "Lunch tomorrow?"
    body_text = "Are you free at noon?"
