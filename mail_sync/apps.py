from django.apps import AppConfig


class MailSyncConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "mail_sync"
    verbose_name = "Mail Sync"
