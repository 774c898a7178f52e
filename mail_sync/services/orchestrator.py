"""
Batch orchestration of account syncs.

A batch selects due accounts and runs them on a bounded thread pool. Each
account is isolated: whatever one worker raises is turned into a failed
``AccountSyncResult`` and never reaches its siblings. The batch as a whole is
bounded by a deadline; once it passes (or the caller sets the cancel event)
queued accounts are not started, while running workers finish on their own
per-account timeout.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field

from django.db import close_old_connections, connection
from django.utils import timezone

from triage_core.utils.logging import ContextLogger, with_request_id

from ..config import get_config
from ..enums import SyncTrigger
from ..exceptions import ConfigurationError
from .sync_service import (
    NOT_CLAIMED,
    AccountSyncResult,
    AccountSyncService,
    select_due_accounts,
)

logger = ContextLogger(__name__)


@dataclass
class BatchReport:
    accounts_synced: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    not_claimed: int = 0
    not_started: int = 0
    emails_fetched: int = 0
    emails_processed: int = 0
    emails_skipped: int = 0
    emails_failed: int = 0
    duration_ms: int = 0
    results: list[AccountSyncResult] = field(default_factory=list)

    def add(self, result: AccountSyncResult) -> None:
        self.results.append(result)
        if result.status == NOT_CLAIMED:
            self.not_claimed += 1
            return

        self.accounts_synced += 1
        if result.succeeded:
            self.successful_syncs += 1
        else:
            self.failed_syncs += 1
        self.emails_fetched += result.fetched
        self.emails_processed += result.processed
        self.emails_skipped += result.skipped
        self.emails_failed += result.failed

    def as_dict(self) -> dict:
        return {
            "accountsSynced": self.accounts_synced,
            "successfulSyncs": self.successful_syncs,
            "failedSyncs": self.failed_syncs,
            "emailsFetched": self.emails_fetched,
            "emailsProcessed": self.emails_processed,
            "emailsSkipped": self.emails_skipped,
            "emailsFailed": self.emails_failed,
            "durationMs": self.duration_ms,
        }


def _default_sync(account_id, trigger):
    return AccountSyncService().sync(account_id, trigger=trigger)


class SyncOrchestrator:
    """Run a batch of account syncs with bounded concurrency."""

    def __init__(
        self,
        max_workers=None,
        batch_size=None,
        batch_deadline=None,
        sync_fn=None,
        trigger=SyncTrigger.SCHEDULED,
        cancel_event=None,
    ):
        self.max_workers = max(1, max_workers or get_config("SYNC_MAX_CONCURRENT_ACCOUNTS", 5))
        self.batch_size = batch_size or get_config("SYNC_BATCH_SIZE", 50)
        self.batch_deadline = (
            batch_deadline
            if batch_deadline is not None
            else get_config("SYNC_BATCH_DEADLINE", 55)
        )
        self.sync_fn = sync_fn or _default_sync
        self.trigger = trigger
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        """Stop scheduling accounts that have not started yet."""
        self.cancel_event.set()

    @with_request_id
    def run(self, account_ids=None, now=None, _request_id=None) -> BatchReport:
        """
        Run one batch.

        Args:
            account_ids: Explicit accounts to sync; due accounts are selected
                when omitted
            now: Reference time for due-account selection

        Returns:
            BatchReport
        """
        started = time.monotonic()
        deadline = started + self.batch_deadline
        report = BatchReport()

        with logger.context(request_id=_request_id, trigger=self.trigger):
            if account_ids is None:
                account_ids = [
                    a.id for a in select_due_accounts(now=now, limit=self.batch_size)
                ]
            else:
                account_ids = list(account_ids)[: self.batch_size]

            logger.info(
                "Starting sync batch",
                extra_context={
                    "accounts": len(account_ids),
                    "max_workers": self.max_workers,
                },
            )

            if account_ids:
                self._execute(account_ids, deadline, report)

            report.duration_ms = int((time.monotonic() - started) * 1000)
            logger.info("Sync batch finished", extra_context=report.as_dict())
        return report

    def _execute(self, account_ids, deadline, report: BatchReport) -> None:
        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(account_ids)),
            thread_name_prefix="mail-sync",
        )
        futures = {
            executor.submit(self._run_one, account_id): account_id
            for account_id in account_ids
        }
        try:
            for future in as_completed(futures, timeout=max(0.0, deadline - time.monotonic())):
                result = future.result()
                if result is None:
                    report.not_started += 1
                else:
                    report.add(result)
        except FuturesTimeout:
            self.cancel_event.set()
            pending = [f for f in futures if not f.done()]
            cancelled = sum(1 for f in pending if f.cancel())
            report.not_started += cancelled
            logger.warning(
                "Sync batch deadline reached",
                extra_context={
                    "not_started": cancelled,
                    "still_running": len(pending) - cancelled,
                },
            )
        finally:
            # In-flight workers run to their own timeout in the background
            executor.shutdown(wait=False, cancel_futures=True)

    def _run_one(self, account_id):
        if self.cancel_event.is_set():
            return None

        close_old_connections()
        try:
            return self.sync_fn(account_id, self.trigger)
        except Exception as exc:
            logger.exception(
                "Account worker raised", extra_context={"account_id": account_id},
            )
            return AccountSyncResult.failure(account_id, exc)
        finally:
            connection.close()


def preflight() -> None:
    """Fail the whole batch before any account work if a secret is missing."""
    if not get_config("ENCRYPTION_KEY"):
        raise ConfigurationError("Encryption key is not configured")


def run_batch(trigger=SyncTrigger.SCHEDULED, account_ids=None, now=None) -> BatchReport:
    """
    Sync due (or the given) accounts and return the aggregate report.

    Raises:
        ConfigurationError: If the encryption key is missing
    """
    preflight()
    return SyncOrchestrator(trigger=trigger).run(account_ids=account_ids, now=now or timezone.now())
