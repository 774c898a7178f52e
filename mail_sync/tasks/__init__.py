"""mail_sync.tasks

This package contains all Celery tasks for the mail sync app,
organized by domain.
"""

from .maintenance import cleanup_old_sync_logs, reset_stuck_syncs
from .polling import sync_account, sync_due_accounts

__all__ = [
    "sync_account",
    "sync_due_accounts",
    "reset_stuck_syncs",
    "cleanup_old_sync_logs",
]
