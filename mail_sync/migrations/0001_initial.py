import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="MailAccount",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("email_address", models.EmailField(max_length=254)),
                ("display_name", models.CharField(blank=True, max_length=200)),
                ("provider", models.CharField(choices=[("imap", "IMAP"), ("oauth-gmail", "Gmail (OAuth)"), ("oauth-microsoft", "Microsoft (OAuth)")], default="imap", max_length=20)),
                ("imap_host", models.CharField(blank=True, max_length=200)),
                ("imap_port", models.IntegerField(default=993)),
                ("imap_use_ssl", models.BooleanField(default=True)),
                ("imap_username", models.CharField(blank=True, max_length=200)),
                ("encrypted_password", models.TextField(blank=True)),
                ("encrypted_access_token", models.TextField(blank=True)),
                ("encrypted_refresh_token", models.TextField(blank=True)),
                ("token_expires_at", models.DateTimeField(blank=True, null=True)),
                ("status", models.CharField(choices=[("active", "Active"), ("syncing", "Syncing"), ("error", "Error")], default="active", max_length=20)),
                ("sync_enabled", models.BooleanField(default=True, help_text="Soft-disable instead of deleting accounts with mail")),
                ("sync_frequency", models.IntegerField(default=300, help_text="Sync frequency in seconds")),
                ("max_emails_per_sync", models.IntegerField(default=50)),
                ("last_sync_at", models.DateTimeField(blank=True, null=True)),
                ("last_sync_error", models.TextField(blank=True, null=True)),
                ("last_sync_error_kind", models.CharField(blank=True, choices=[("auth", "Authentication"), ("network", "Network"), ("timeout", "Timeout"), ("configuration", "Configuration"), ("unknown", "Unknown")], max_length=20)),
                ("total_emails_synced", models.IntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="mail_accounts", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "mail_accounts",
                "ordering": ["email_address"],
                "indexes": [models.Index(fields=["status", "last_sync_at"], name="mail_accoun_status_6f1d2e_idx")],
                "constraints": [models.UniqueConstraint(fields=("user", "email_address"), name="uniq_mail_account_per_user")],
            },
        ),
        migrations.CreateModel(
            name="Email",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("external_message_id", models.CharField(max_length=500)),
                ("thread_id", models.CharField(blank=True, max_length=500)),
                ("from_address", models.CharField(blank=True, max_length=500)),
                ("sender_email", models.CharField(blank=True, db_index=True, max_length=320)),
                ("from_name", models.CharField(blank=True, max_length=200)),
                ("to_addresses", models.JSONField(blank=True, default=list)),
                ("cc_addresses", models.JSONField(blank=True, default=list)),
                ("subject", models.CharField(blank=True, max_length=1000)),
                ("body_text", models.TextField(blank=True)),
                ("body_html", models.TextField(blank=True)),
                ("received_at", models.DateTimeField()),
                ("size", models.IntegerField(default=0)),
                ("has_attachments", models.BooleanField(default=False)),
                ("folder", models.CharField(default="INBOX", max_length=200)),
                ("is_read", models.BooleanField(default=False)),
                ("is_starred", models.BooleanField(default=False)),
                ("is_archived", models.BooleanField(default=False)),
                ("view", models.CharField(blank=True, choices=[("imbox", "Imbox"), ("feed", "The Feed"), ("paper_trail", "Paper Trail"), ("screener", "Screener")], max_length=20, null=True)),
                ("category", models.CharField(blank=True, choices=[("important", "Important"), ("newsletter", "Newsletter"), ("receipt", "Receipt"), ("confirmation", "Confirmation"), ("blocked", "Blocked")], max_length=20)),
                ("confidence", models.FloatField(blank=True, null=True)),
                ("screening_status", models.CharField(choices=[("pending", "Pending"), ("auto_classified", "Auto Classified"), ("screened", "Screened")], default="pending", max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="emails", to="mail_sync.mailaccount")),
            ],
            options={
                "db_table": "mail_emails",
                "ordering": ["-received_at"],
                "indexes": [
                    models.Index(fields=["account", "-received_at"], name="mail_emails_account_9b2c41_idx"),
                    models.Index(fields=["account", "view"], name="mail_emails_account_4e7a10_idx"),
                    models.Index(fields=["screening_status"], name="mail_emails_screeni_2d8f35_idx"),
                ],
                "constraints": [models.UniqueConstraint(fields=("account", "external_message_id"), name="uniq_email_external_id_per_account")],
            },
        ),
        migrations.CreateModel(
            name="ScreeningDecision",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sender_email", models.CharField(max_length=320)),
                ("decision", models.CharField(choices=[("allow", "Allow"), ("deny", "Deny")], max_length=10)),
                ("notes", models.TextField(blank=True)),
                ("decided_at", models.DateTimeField(auto_now=True)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="screening_decisions", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "mail_screening_decisions",
                "ordering": ["-decided_at"],
                "constraints": [models.UniqueConstraint(fields=("user", "sender_email"), name="uniq_decision_per_sender")],
            },
        ),
        migrations.CreateModel(
            name="SyncLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("run_id", models.CharField(db_index=True, max_length=64)),
                ("trigger", models.CharField(choices=[("scheduled", "Scheduled"), ("manual", "Manual"), ("api", "API")], default="scheduled", max_length=20)),
                ("status", models.CharField(choices=[("in_progress", "In Progress"), ("completed", "Completed"), ("failed", "Failed")], default="in_progress", max_length=20)),
                ("emails_fetched", models.IntegerField(default=0)),
                ("emails_processed", models.IntegerField(default=0)),
                ("emails_skipped", models.IntegerField(default=0)),
                ("emails_failed", models.IntegerField(default=0)),
                ("error_message", models.TextField(blank=True)),
                ("error_kind", models.CharField(blank=True, choices=[("auth", "Authentication"), ("network", "Network"), ("timeout", "Timeout"), ("configuration", "Configuration"), ("unknown", "Unknown")], max_length=20)),
                ("duration_ms", models.IntegerField(blank=True, null=True)),
                ("started_at", models.DateTimeField()),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="sync_logs", to="mail_sync.mailaccount")),
            ],
            options={
                "db_table": "mail_sync_logs",
                "ordering": ["-started_at"],
            },
        ),
    ]
