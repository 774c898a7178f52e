"""
Corrective passes over sync state.

A worker that dies mid-run leaves its account in ``syncing`` forever, which
keeps the account out of every later batch. ``reset_stuck_accounts`` is the
periodic reconciliation that repairs this; ``reset_user_syncs`` is the manual
escape hatch exposed to end users.
"""

from datetime import timedelta

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from triage_core.utils.logging import ContextLogger

from ..config import get_config
from ..enums import AccountStatus, SyncErrorKind, SyncRunStatus
from ..models import MailAccount, SyncLog
from .base_service import BaseService
from .sync_status import get_status_store

logger = ContextLogger(__name__)

STUCK_MESSAGE = "Sync did not finish within {minutes} minutes and was reset"


class MaintenanceService(BaseService):
    def reset_stuck_accounts(self, threshold=None, now=None) -> int:
        """
        Move accounts stuck in ``syncing`` to ``error``.

        An account counts as stuck when it has been syncing for longer than
        ``threshold`` seconds, measured from ``last_sync_at`` (stamped when the
        run claimed the account). Accounts within the threshold are left alone.

        Returns:
            Number of accounts reset
        """
        now = now or timezone.now()
        if threshold is None:
            threshold = get_config("STUCK_SYNC_THRESHOLD", 30 * 60)
        cutoff = now - timedelta(seconds=threshold)
        message = STUCK_MESSAGE.format(minutes=int(threshold // 60))

        stuck = MailAccount.objects.filter(status=AccountStatus.SYNCING).filter(
            Q(last_sync_at__lt=cutoff) | Q(last_sync_at__isnull=True),
        )

        with transaction.atomic():
            account_ids = list(stuck.values_list("id", flat=True))
            if not account_ids:
                return 0

            # Re-check the status so a run finishing right now is not clobbered
            count = MailAccount.objects.filter(
                id__in=account_ids, status=AccountStatus.SYNCING,
            ).update(
                status=AccountStatus.ERROR,
                last_sync_error=message,
                last_sync_error_kind=SyncErrorKind.TIMEOUT,
                updated_at=now,
            )
            SyncLog.objects.filter(
                account_id__in=account_ids, status=SyncRunStatus.IN_PROGRESS,
            ).update(
                status=SyncRunStatus.FAILED,
                error_message=message,
                error_kind=SyncErrorKind.TIMEOUT,
                completed_at=now,
            )

        store = get_status_store()
        for reset_id in account_ids:
            snapshot = store.get(reset_id)
            if snapshot is not None and not snapshot.is_complete:
                store.fail(reset_id, snapshot.run_id, message)

        logger.warning(
            "Reset stuck account syncs",
            extra_context={"count": count, "account_ids": account_ids},
        )
        return count

    def reset_user_syncs(self, user, account_id=None) -> int:
        """
        Manually release a user's syncing accounts back to ``active``.

        Args:
            user: Owner of the accounts
            account_id: Limit the reset to one account

        Returns:
            Number of accounts reset
        """
        accounts = MailAccount.objects.filter(user=user, status=AccountStatus.SYNCING)
        if account_id is not None:
            accounts = accounts.filter(id=account_id)

        now = timezone.now()
        with transaction.atomic():
            account_ids = list(accounts.values_list("id", flat=True))
            count = accounts.update(status=AccountStatus.ACTIVE, updated_at=now)
            SyncLog.objects.filter(
                account_id__in=account_ids, status=SyncRunStatus.IN_PROGRESS,
            ).update(
                status=SyncRunStatus.FAILED,
                error_message="Reset by user",
                completed_at=now,
            )

        store = get_status_store()
        for reset_id in account_ids:
            store.clear(reset_id)

        logger.info(
            "User reset account syncs",
            extra_context={"user_id": user.id, "count": count},
        )
        return count

    def cleanup_old_sync_logs(self, days=None) -> int:
        """Delete sync logs older than the retention period."""
        if days is None:
            days = get_config("SYNC_LOG_RETENTION_DAYS", 30)
        cutoff = timezone.now() - timedelta(days=days)
        deleted, _ = SyncLog.objects.filter(started_at__lt=cutoff).delete()
        logger.info(
            "Cleaned up old sync logs",
            extra_context={"deleted": deleted, "retention_days": days},
        )
        return deleted


# Convenience functions that use the service
def reset_stuck_accounts(threshold=None, now=None):
    return MaintenanceService().reset_stuck_accounts(threshold=threshold, now=now)


def reset_user_syncs(user, account_id=None):
    return MaintenanceService().reset_user_syncs(user, account_id=account_id)


def cleanup_old_sync_logs(days=None):
    return MaintenanceService().cleanup_old_sync_logs(days=days)
