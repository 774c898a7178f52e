"""Tests for the sync_mail and store_credentials management commands."""

from unittest import mock

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from mail_sync.enums import AccountStatus, ProviderKind
from mail_sync.services.credential_vault import vault
from mail_sync.services.orchestrator import BatchReport
from mail_sync.services.sync_service import NOT_CLAIMED, AccountSyncResult

from .factories import MailAccountFactory


@pytest.mark.django_db
class TestSyncMailCommand:
    def test_requires_a_target(self):
        with pytest.raises(CommandError, match="--account-id or --all-accounts"):
            call_command("sync_mail")

    def test_unknown_account(self):
        with pytest.raises(CommandError, match="not found"):
            call_command("sync_mail", account_id=999)

    def test_single_account_prints_results(self, mail_account, capsys):
        result = AccountSyncResult(account_id=mail_account.id, fetched=3, processed=2, skipped=1)

        with mock.patch("mail_sync.services.sync_account", return_value=result) as sync:
            call_command("sync_mail", account_id=mail_account.id)

        sync.assert_called_once()
        out = capsys.readouterr().out
        assert "Fetched: 3" in out
        assert "Sync completed successfully" in out

    def test_single_account_already_syncing(self, mail_account, capsys):
        result = AccountSyncResult(account_id=mail_account.id, status=NOT_CLAIMED)

        with mock.patch("mail_sync.services.sync_account", return_value=result):
            call_command("sync_mail", account_id=mail_account.id)

        assert "already syncing" in capsys.readouterr().out

    def test_disabled_account_is_skipped(self, capsys):
        account = MailAccountFactory(sync_enabled=False)

        with mock.patch("mail_sync.services.sync_account") as sync:
            call_command("sync_mail", account_id=account.id)

        sync.assert_not_called()
        assert "Sync disabled" in capsys.readouterr().out

    def test_force_syncs_every_enabled_idle_account(self, capsys):
        idle = MailAccountFactory()
        MailAccountFactory(status=AccountStatus.SYNCING)
        MailAccountFactory(sync_enabled=False)

        with mock.patch(
            "mail_sync.services.run_batch", return_value=BatchReport(accounts_synced=1),
        ) as run_batch:
            call_command("sync_mail", all_accounts=True, force=True)

        assert run_batch.call_args.kwargs["account_ids"] == [idle.id]
        assert "All accounts synced successfully" in capsys.readouterr().out

    def test_all_accounts_uses_due_selection(self):
        with mock.patch(
            "mail_sync.services.run_batch", return_value=BatchReport(),
        ) as run_batch:
            call_command("sync_mail", all_accounts=True)

        assert run_batch.call_args.kwargs["account_ids"] is None


@pytest.mark.django_db
class TestStoreCredentialsCommand:
    def test_seals_password(self, capsys):
        account = MailAccountFactory()

        call_command("store_credentials", account.id, password="s3cret")

        account.refresh_from_db()
        assert account.encrypted_password
        assert "s3cret" not in account.encrypted_password
        with vault.unsealed(account) as credentials:
            assert credentials.password == "s3cret"
        assert "Stored credentials" in capsys.readouterr().out

    def test_prompts_for_missing_password(self):
        account = MailAccountFactory()

        with mock.patch(
            "mail_sync.management.commands.store_credentials.getpass", return_value="typed",
        ):
            call_command("store_credentials", account.id)

        account.refresh_from_db()
        with vault.unsealed(account) as credentials:
            assert credentials.password == "typed"

    def test_seals_oauth_tokens(self):
        account = MailAccountFactory(provider=ProviderKind.GMAIL, imap_host="")

        call_command(
            "store_credentials",
            account.id,
            access_token="access",
            refresh_token="refresh",
            expires_at="2030-01-01T00:00:00+00:00",
        )

        account.refresh_from_db()
        with vault.unsealed(account) as credentials:
            assert credentials.access_token == "access"
            assert credentials.refresh_token == "refresh"
        assert account.token_expires_at.year == 2030

    def test_oauth_account_needs_a_token(self):
        account = MailAccountFactory(provider=ProviderKind.MICROSOFT, imap_host="")

        with pytest.raises(CommandError, match="--access-token or --refresh-token"):
            call_command("store_credentials", account.id)

    def test_rejects_bad_expiry(self):
        account = MailAccountFactory(provider=ProviderKind.GMAIL, imap_host="")

        with pytest.raises(CommandError, match="not a valid timestamp"):
            call_command(
                "store_credentials", account.id, access_token="a", expires_at="tomorrow",
            )
