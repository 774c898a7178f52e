from celery import shared_task

from triage_core.utils.logging import ContextLogger

from .. import services

logger = ContextLogger(__name__)


@shared_task
def reset_stuck_syncs(threshold=None):
    """Reconcile accounts left in ``syncing`` by a crashed worker."""
    count = services.reset_stuck_accounts(threshold=threshold)
    if count:
        logger.info(f"Reset {count} stuck account syncs")
    return count


@shared_task
def cleanup_old_sync_logs(days=None):
    """Delete sync logs past the retention period."""
    return services.cleanup_old_sync_logs(days=days)
