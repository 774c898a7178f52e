from datetime import timedelta

# Picked up by triage_core.celery once the app is finalized.

CELERY_BEAT_SCHEDULE = {
    "sync-due-mail-accounts": {
        "task": "mail_sync.tasks.polling.sync_due_accounts",
        "schedule": timedelta(minutes=5),
    },
    "reset-stuck-mail-syncs": {
        "task": "mail_sync.tasks.maintenance.reset_stuck_syncs",
        "schedule": timedelta(minutes=10),
    },
    "cleanup-old-sync-logs": {
        "task": "mail_sync.tasks.maintenance.cleanup_old_sync_logs",
        "schedule": timedelta(days=1),
    },
}
