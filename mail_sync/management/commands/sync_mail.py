from django.core.management.base import BaseCommand, CommandError

from mail_sync import services
from mail_sync.enums import AccountStatus, SyncTrigger
from mail_sync.exceptions import ConfigurationError
from mail_sync.models import MailAccount
from mail_sync.services.sync_service import NOT_CLAIMED


class Command(BaseCommand):
    help = "Manually sync mail accounts"

    def add_arguments(self, parser):
        parser.add_argument(
            "--account-id", type=int, help="Specific mail account ID to sync",
        )

        parser.add_argument(
            "--all-accounts",
            action="store_true",
            help="Sync every account that is due",
        )

        parser.add_argument(
            "--force",
            action="store_true",
            help="With --all-accounts, include enabled accounts that are not due yet",
        )

    def handle(self, *args, **options):
        if not options["all_accounts"] and not options["account_id"]:
            raise CommandError("Either --account-id or --all-accounts is required")

        try:
            if options["all_accounts"]:
                self._sync_all_accounts(options)
            else:
                self._sync_single_account(options["account_id"])
        except ConfigurationError as e:
            raise CommandError(f"Sync failed: {e!s}")

    def _sync_single_account(self, account_id):
        try:
            account = MailAccount.objects.get(id=account_id)
        except MailAccount.DoesNotExist:
            raise CommandError("Mail account not found")

        if not account.sync_enabled:
            self.stdout.write(
                self.style.WARNING(f"Sync disabled for {account.email_address}"),
            )
            return

        self.stdout.write(self.style.SUCCESS(f"Syncing account: {account.email_address}"))
        result = services.sync_account(account.id, trigger=SyncTrigger.MANUAL)

        if result.status == NOT_CLAIMED:
            self.stdout.write(
                self.style.WARNING(
                    f"Account {account.email_address} is already syncing",
                ),
            )
            return

        self.stdout.write("\n--- Sync Results ---")
        self.stdout.write(f"Fetched: {result.fetched}")
        self.stdout.write(f"Processed: {result.processed}")
        self.stdout.write(f"Skipped: {result.skipped}")
        self.stdout.write(f"Failed: {result.failed}")
        self.stdout.write(f"Duration: {result.duration_ms / 1000:.2f} seconds")

        if result.succeeded:
            self.stdout.write(self.style.SUCCESS("✓ Sync completed successfully"))
        else:
            self.stdout.write(
                self.style.ERROR(f"✗ Sync failed ({result.error_kind}): {result.error}"),
            )

    def _sync_all_accounts(self, options):
        account_ids = None
        if options["force"]:
            account_ids = list(
                MailAccount.objects.filter(sync_enabled=True)
                .exclude(status=AccountStatus.SYNCING)
                .values_list("id", flat=True),
            )
            if not account_ids:
                self.stdout.write(self.style.WARNING("No accounts found for syncing"))
                return

        report = services.run_batch(trigger=SyncTrigger.MANUAL, account_ids=account_ids)

        self.stdout.write("\n--- Summary ---")
        for key, value in report.as_dict().items():
            self.stdout.write(f"{key}: {value}")

        if report.failed_syncs == 0:
            self.stdout.write(self.style.SUCCESS("✓ All accounts synced successfully"))
        else:
            self.stdout.write(
                self.style.WARNING(f"⚠ {report.failed_syncs} accounts had errors"),
            )
