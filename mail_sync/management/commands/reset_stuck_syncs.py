from django.core.management.base import BaseCommand

from mail_sync import services
from mail_sync.config import get_config


class Command(BaseCommand):
    help = "Reset accounts stuck in the syncing state"

    def add_arguments(self, parser):
        parser.add_argument(
            "--threshold",
            type=int,
            default=None,
            help="Seconds an account may stay in syncing before it is reset "
            f"(default: {get_config('STUCK_SYNC_THRESHOLD')})",
        )

    def handle(self, *args, **options):
        count = services.reset_stuck_accounts(threshold=options["threshold"])
        if count:
            self.stdout.write(self.style.WARNING(f"Reset {count} stuck accounts"))
        else:
            self.stdout.write(self.style.SUCCESS("No stuck accounts found"))
