"""Mail sync services package.

This package contains service modules for syncing, storing, classifying and
screening mail, separated by domain responsibility.
"""

from .credential_vault import CredentialVault, Credentials, vault
from .maintenance_service import (
    cleanup_old_sync_logs,
    reset_stuck_accounts,
    reset_user_syncs,
)
from .orchestrator import BatchReport, SyncOrchestrator, run_batch
from .persistence_service import UpsertResult, upsert_message
from .screening_service import classify_email, record_decision, undo_decision
from .sync_service import (
    AccountSyncResult,
    AccountSyncService,
    select_due_accounts,
    sync_account,
)
from .sync_status import get_status_store

__all__ = [
    "CredentialVault",
    "Credentials",
    "vault",
    "cleanup_old_sync_logs",
    "reset_stuck_accounts",
    "reset_user_syncs",
    "BatchReport",
    "SyncOrchestrator",
    "run_batch",
    "UpsertResult",
    "upsert_message",
    "classify_email",
    "record_decision",
    "undo_decision",
    "AccountSyncResult",
    "AccountSyncService",
    "select_due_accounts",
    "sync_account",
    "get_status_store",
]
