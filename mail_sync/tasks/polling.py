from celery import shared_task

from triage_core.utils.logging import ContextLogger, with_request_id

from .. import services
from ..enums import SyncTrigger
from ..exceptions import ConfigurationError

logger = ContextLogger(__name__)


@shared_task(bind=True)
@with_request_id
def sync_account(self, account_id: int, trigger=SyncTrigger.MANUAL, _request_id=None):
    """Celery task to sync one mail account.

    A thin wrapper around the account sync service. Failures are recorded on
    the account by the service, so nothing is retried here; a transient error
    is picked up again by the next scheduled batch.
    """
    logger.set_context(
        request_id=_request_id,
        task_id=self.request.id,
        account_id=account_id,
        task_name="sync_account",
    )
    try:
        result = services.sync_account(account_id, trigger=trigger)
        return result.as_dict()
    finally:
        logger.clear_context()


@shared_task
@with_request_id
def sync_due_accounts(_request_id=None):
    """Run one batch over every account that is due for a sync."""
    logger.set_context(request_id=_request_id, task_name="sync_due_accounts")
    try:
        report = services.run_batch(trigger=SyncTrigger.SCHEDULED)
    except ConfigurationError as e:
        logger.error("Sync batch not started", extra_context={"error": str(e)})
        raise
    finally:
        logger.clear_context()

    return report.as_dict()
