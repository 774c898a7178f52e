from django.db import models

from ..enums import SyncErrorKind, SyncRunStatus, SyncTrigger
from .accounts import MailAccount

__all__ = ["SyncLog"]


class SyncLog(models.Model):
    account = models.ForeignKey(
        MailAccount, on_delete=models.CASCADE, related_name="sync_logs",
    )
    run_id = models.CharField(max_length=64, db_index=True)
    trigger = models.CharField(
        max_length=20, choices=SyncTrigger.choices, default=SyncTrigger.SCHEDULED,
    )
    status = models.CharField(
        max_length=20,
        choices=SyncRunStatus.choices,
        default=SyncRunStatus.IN_PROGRESS,
    )
    emails_fetched = models.IntegerField(default=0)
    emails_processed = models.IntegerField(default=0)
    emails_skipped = models.IntegerField(default=0)
    emails_failed = models.IntegerField(default=0)
    error_message = models.TextField(blank=True)
    error_kind = models.CharField(
        max_length=20, choices=SyncErrorKind.choices, blank=True,
    )
    duration_ms = models.IntegerField(null=True, blank=True)
    started_at = models.DateTimeField()
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "mail_sync_logs"
        ordering = ["-started_at"]

    def __str__(self):
        return f"Sync {self.account.email_address} - {self.get_status_display()}"
