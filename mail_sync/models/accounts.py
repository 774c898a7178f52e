from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone

from ..config import get_config
from ..enums import AccountStatus, ProviderKind, SyncErrorKind

__all__ = ["MailAccount"]


class MailAccount(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="mail_accounts",
    )
    email_address = models.EmailField()
    display_name = models.CharField(max_length=200, blank=True)
    provider = models.CharField(
        max_length=20, choices=ProviderKind.choices, default=ProviderKind.IMAP,
    )

    # IMAP connection parameters
    imap_host = models.CharField(max_length=200, blank=True)
    imap_port = models.IntegerField(default=993)
    imap_use_ssl = models.BooleanField(default=True)
    imap_username = models.CharField(max_length=200, blank=True)

    # Auth material, sealed by the credential vault
    encrypted_password = models.TextField(blank=True)
    encrypted_access_token = models.TextField(blank=True)
    encrypted_refresh_token = models.TextField(blank=True)
    token_expires_at = models.DateTimeField(null=True, blank=True)

    # Sync state
    status = models.CharField(
        max_length=20, choices=AccountStatus.choices, default=AccountStatus.ACTIVE,
    )
    sync_enabled = models.BooleanField(
        default=True, help_text="Soft-disable instead of deleting accounts with mail",
    )
    sync_frequency = models.IntegerField(
        default=get_config("SYNC_INTERVAL", 300),
        help_text="Sync frequency in seconds",
    )
    max_emails_per_sync = models.IntegerField(
        default=get_config("MAX_MESSAGES_PER_SYNC", 50),
    )
    last_sync_at = models.DateTimeField(null=True, blank=True)
    last_sync_error = models.TextField(null=True, blank=True)
    last_sync_error_kind = models.CharField(
        max_length=20, choices=SyncErrorKind.choices, blank=True,
    )
    total_emails_synced = models.IntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "mail_accounts"
        ordering = ["email_address"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "email_address"], name="uniq_mail_account_per_user",
            ),
        ]
        indexes = [
            models.Index(
                fields=["status", "last_sync_at"], name="mail_accoun_status_6f1d2e_idx",
            ),
        ]

    def __str__(self):
        return f"{self.email_address} ({self.get_provider_display()})"

    @property
    def is_oauth(self):
        return self.provider in (ProviderKind.GMAIL, ProviderKind.MICROSOFT)

    @property
    def needs_reauth(self):
        return (
            self.status == AccountStatus.ERROR
            and self.last_sync_error_kind == SyncErrorKind.AUTH
        )

    def is_due(self, now=None):
        """Whether the account's sync interval has elapsed."""
        if self.last_sync_at is None:
            return True
        now = now or timezone.now()
        return self.last_sync_at <= now - timedelta(seconds=self.sync_frequency)
