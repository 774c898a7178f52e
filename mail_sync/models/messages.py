from django.db import models

from ..enums import Category, ScreeningStatus, View
from .accounts import MailAccount

__all__ = ["Email"]


class Email(models.Model):
    account = models.ForeignKey(
        MailAccount, on_delete=models.PROTECT, related_name="emails",
    )
    external_message_id = models.CharField(max_length=500)
    thread_id = models.CharField(max_length=500, blank=True)

    # Envelope
    from_address = models.CharField(max_length=500, blank=True)
    sender_email = models.CharField(max_length=320, blank=True, db_index=True)
    from_name = models.CharField(max_length=200, blank=True)
    to_addresses = models.JSONField(default=list, blank=True)
    cc_addresses = models.JSONField(default=list, blank=True)

    # Content, immutable once stored
    subject = models.CharField(max_length=1000, blank=True)
    body_text = models.TextField(blank=True)
    body_html = models.TextField(blank=True)
    received_at = models.DateTimeField()
    size = models.IntegerField(default=0)
    has_attachments = models.BooleanField(default=False)

    # Server-side state
    folder = models.CharField(max_length=200, default="INBOX")
    is_read = models.BooleanField(default=False)
    is_starred = models.BooleanField(default=False)
    is_archived = models.BooleanField(default=False)

    # Triage
    view = models.CharField(max_length=20, choices=View.choices, null=True, blank=True)
    category = models.CharField(max_length=20, choices=Category.choices, blank=True)
    confidence = models.FloatField(null=True, blank=True)
    screening_status = models.CharField(
        max_length=20,
        choices=ScreeningStatus.choices,
        default=ScreeningStatus.PENDING,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "mail_emails"
        ordering = ["-received_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["account", "external_message_id"],
                name="uniq_email_external_id_per_account",
            ),
        ]
        indexes = [
            models.Index(
                fields=["account", "-received_at"], name="mail_emails_account_9b2c41_idx",
            ),
            models.Index(
                fields=["account", "view"], name="mail_emails_account_4e7a10_idx",
            ),
            models.Index(
                fields=["screening_status"], name="mail_emails_screeni_2d8f35_idx",
            ),
        ]

    def __str__(self):
        return f"{self.subject[:50]} from {self.from_address}"
