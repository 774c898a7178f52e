"""
Global pytest configuration and fixtures.
"""

import pytest
from rest_framework.test import APIClient

from mail_sync.services.credential_vault import vault
from mail_sync.services.sync_status import get_status_store, reset_status_store
from mail_sync.tests.factories import EmailFactory, MailAccountFactory, UserFactory


@pytest.fixture(autouse=True)
def fresh_status_store():
    """Every test starts with an empty, freshly configured status store."""
    reset_status_store()
    yield
    reset_status_store()


@pytest.fixture
def status_store():
    return get_status_store()


@pytest.fixture
def api_client():
    """Return an API client for testing API endpoints."""
    return APIClient()


@pytest.fixture
def user(db):
    return UserFactory()


@pytest.fixture
def authenticated_client(user):
    """Return an API client authenticated as ``user``."""
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def trigger_client():
    """Return an API client carrying the sync trigger secret."""
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION="Bearer test-trigger-secret")
    return client


@pytest.fixture
def mail_account(user):
    """Create and return an IMAP account with a sealed password."""
    account = MailAccountFactory(user=user)
    vault.seal_password(account, "app-password")
    return account


@pytest.fixture
def email(mail_account):
    """Create and return a stored, unclassified email."""
    return EmailFactory(account=mail_account)
