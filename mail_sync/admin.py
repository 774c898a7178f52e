from django.contrib import admin
from django.utils.html import format_html

from .models import Email, MailAccount, ScreeningDecision, SyncLog


@admin.register(MailAccount)
class MailAccountAdmin(admin.ModelAdmin):
    list_display = [
        "email_address",
        "user",
        "provider",
        "status",
        "sync_health",
        "sync_enabled",
        "last_sync_at",
    ]
    list_filter = ["provider", "status", "sync_enabled", "last_sync_error_kind"]
    search_fields = ["email_address", "display_name", "user__username"]
    readonly_fields = [
        "last_sync_at",
        "last_sync_error",
        "last_sync_error_kind",
        "total_emails_synced",
        "created_at",
        "updated_at",
    ]

    fieldsets = (
        (
            "Basic Information",
            {"fields": ("user", "email_address", "display_name", "provider", "status")},
        ),
        (
            "IMAP Configuration",
            {
                "fields": ("imap_host", "imap_port", "imap_use_ssl", "imap_username"),
                "classes": ("collapse",),
            },
        ),
        (
            "Sync Settings",
            {"fields": ("sync_enabled", "sync_frequency", "max_emails_per_sync")},
        ),
        (
            "Statistics",
            {
                "fields": (
                    "token_expires_at",
                    "total_emails_synced",
                    "last_sync_at",
                    "last_sync_error",
                    "last_sync_error_kind",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {"fields": ("created_at", "updated_at"), "classes": ("collapse",)},
        ),
    )

    def sync_health(self, obj):
        if obj.last_sync_error:
            return format_html(
                '<span style="color: red;">✗ {}</span>', obj.last_sync_error_kind or "error",
            )
        return format_html('<span style="color: green;">✓ OK</span>')

    sync_health.short_description = "Health"


@admin.register(Email)
class EmailAdmin(admin.ModelAdmin):
    list_display = [
        "subject_preview",
        "sender_email",
        "account",
        "view",
        "category",
        "screening_status",
        "received_at",
    ]
    list_filter = ["view", "category", "screening_status", "is_read", "account"]
    search_fields = ["subject", "sender_email", "from_address", "external_message_id"]
    readonly_fields = [
        "external_message_id",
        "thread_id",
        "size",
        "has_attachments",
        "created_at",
        "updated_at",
    ]

    def subject_preview(self, obj):
        return obj.subject[:50] + "..." if len(obj.subject) > 50 else obj.subject

    subject_preview.short_description = "Subject"


@admin.register(ScreeningDecision)
class ScreeningDecisionAdmin(admin.ModelAdmin):
    list_display = ["sender_email", "user", "decision", "decided_at"]
    list_filter = ["decision"]
    search_fields = ["sender_email", "user__username", "notes"]
    readonly_fields = ["decided_at"]


@admin.register(SyncLog)
class SyncLogAdmin(admin.ModelAdmin):
    list_display = [
        "account",
        "trigger",
        "status",
        "emails_fetched",
        "emails_processed",
        "emails_failed",
        "duration_ms",
        "started_at",
    ]
    list_filter = ["status", "trigger", "error_kind", "started_at"]
    search_fields = ["account__email_address", "run_id", "error_message"]
    readonly_fields = [
        "run_id",
        "emails_fetched",
        "emails_processed",
        "emails_skipped",
        "emails_failed",
        "duration_ms",
        "started_at",
        "completed_at",
    ]
