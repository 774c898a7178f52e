"""
Management command to seal credentials onto a mail account.

Passwords are prompted for when not passed on the command line so they do not
end up in shell history.
"""

from getpass import getpass

from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_datetime

from mail_sync.exceptions import ConfigurationError
from mail_sync.models import MailAccount
from mail_sync.services.credential_vault import vault


class Command(BaseCommand):
    help = "Encrypt and store the password or OAuth tokens of a mail account"

    def add_arguments(self, parser):
        parser.add_argument("account_id", type=int, help="Mail account ID")
        parser.add_argument("--password", help="IMAP password (prompted when omitted)")
        parser.add_argument("--access-token", help="OAuth access token")
        parser.add_argument("--refresh-token", help="OAuth refresh token")
        parser.add_argument(
            "--expires-at", help="Access token expiry as an ISO 8601 timestamp",
        )

    def handle(self, *args, **options):
        try:
            account = MailAccount.objects.get(id=options["account_id"])
        except MailAccount.DoesNotExist:
            raise CommandError("Mail account not found")

        try:
            if account.is_oauth:
                self._store_tokens(account, options)
            else:
                password = options["password"] or getpass("Password: ")
                if not password:
                    raise CommandError("A password is required")
                vault.seal_password(account, password)
        except ConfigurationError as e:
            raise CommandError(str(e))

        self.stdout.write(
            self.style.SUCCESS(f"✓ Stored credentials for {account.email_address}"),
        )

    def _store_tokens(self, account, options):
        if not options["access_token"] and not options["refresh_token"]:
            raise CommandError("--access-token or --refresh-token is required")

        expires_at = None
        if options["expires_at"]:
            expires_at = parse_datetime(options["expires_at"])
            if expires_at is None:
                raise CommandError("--expires-at is not a valid timestamp")

        vault.seal_tokens(
            account,
            options["access_token"] or "",
            refresh_token=options["refresh_token"],
            expires_at=expires_at,
        )
