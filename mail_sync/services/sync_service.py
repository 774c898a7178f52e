"""
Account sync service.

Runs one account end to end: claim the account, decrypt its credentials, pull
the newest inbox messages, upsert and classify them, and record the outcome on
the account, its sync log and the live status store.

Failures never escape ``AccountSyncService.sync``; they are recorded on the
account (``status=error`` plus message and kind) and returned in the result.
"""

import time
from dataclasses import dataclass

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from triage_core.utils.logging import ContextLogger, with_request_id

from ..channels.adapters.factory import get_adapter
from ..channels.utils import generate_id
from ..config import get_config
from ..enums import (
    AccountStatus,
    ProviderKind,
    SyncErrorKind,
    SyncRunStatus,
    SyncTrigger,
    UpsertOutcome,
)
from ..exceptions import PersistenceError, SyncTimeoutError, error_kind_for
from ..models import MailAccount, SyncLog
from .base_service import BaseService
from .credential_vault import vault
from .persistence_service import PersistenceService
from .screening_service import ScreeningService
from .sync_status import get_status_store

logger = ContextLogger(__name__)

SUCCESS = "success"
FAILED = "failed"
NOT_CLAIMED = "not_claimed"


@dataclass
class AccountSyncResult:
    account_id: int
    run_id: str | None = None
    status: str = SUCCESS
    fetched: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    created: int = 0
    updated: int = 0
    error: str | None = None
    error_kind: str = ""
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCESS

    @classmethod
    def failure(cls, account_id, exc, run_id=None):
        return cls(
            account_id=account_id,
            run_id=run_id,
            status=FAILED,
            error=str(exc) or type(exc).__name__,
            error_kind=error_kind_for(exc),
        )

    def as_dict(self) -> dict:
        return {
            "accountId": self.account_id,
            "runId": self.run_id,
            "status": self.status,
            "emailsFetched": self.fetched,
            "emailsProcessed": self.processed,
            "emailsSkipped": self.skipped,
            "emailsFailed": self.failed,
            "error": self.error,
            "errorKind": self.error_kind,
            "durationMs": self.duration_ms,
        }


def _chunks(items, size):
    for start in range(0, len(items), size):
        yield items[start : start + size]


def claim_account(account_id, now=None) -> bool:
    """Atomically move an enabled, idle account to ``syncing``.

    The conditional update is the only guard against two runs processing the
    same account; it also stamps ``last_sync_at`` so a run that dies here is
    later recognised as stuck.
    """
    now = now or timezone.now()
    claimed = (
        MailAccount.objects.filter(id=account_id, sync_enabled=True)
        .exclude(status=AccountStatus.SYNCING)
        .update(status=AccountStatus.SYNCING, last_sync_at=now, updated_at=now)
    )
    return claimed == 1


def select_due_accounts(now=None, limit=None) -> list[MailAccount]:
    """
    Accounts eligible for the next batch, least recently synced first.

    Excludes disabled accounts, accounts already syncing and accounts whose
    last run failed authentication (they wait for the user to re-connect).
    """
    now = now or timezone.now()
    limit = limit or get_config("SYNC_BATCH_SIZE", 50)

    candidates = (
        MailAccount.objects.filter(sync_enabled=True)
        .exclude(status=AccountStatus.SYNCING)
        .exclude(status=AccountStatus.ERROR, last_sync_error_kind=SyncErrorKind.AUTH)
        .order_by(F("last_sync_at").asc(nulls_first=True), "id")
    )

    due = []
    for account in candidates.iterator():
        if account.is_due(now):
            due.append(account)
            if len(due) >= limit:
                break
    return due


class AccountSyncService(BaseService):
    """Sync a single account."""

    def __init__(self, request=None, status_store=None):
        super().__init__(request)
        self.status_store = status_store or get_status_store()
        self.persister = PersistenceService(request)
        self.screening = ScreeningService(request)

    @with_request_id
    def sync(self, account_id, trigger=SyncTrigger.SCHEDULED, timeout=None, _request_id=None):
        """
        Run one sync of an account.

        Args:
            account_id: ID of the account to sync
            trigger: What started the run (scheduled, manual or api)
            timeout: Per-account deadline in seconds, ``SYNC_ACCOUNT_TIMEOUT``
                by default

        Returns:
            AccountSyncResult; ``status`` is ``not_claimed`` when the account is
            disabled, missing or already being synced
        """
        started = time.monotonic()
        timeout = timeout if timeout is not None else get_config("SYNC_ACCOUNT_TIMEOUT", 120)
        deadline = started + timeout
        run_id = generate_id()

        if not claim_account(account_id):
            logger.info(
                "Account not claimed for sync",
                extra_context={"account_id": account_id, "request_id": _request_id},
            )
            return AccountSyncResult(account_id=account_id, status=NOT_CLAIMED)

        result = AccountSyncResult(account_id=account_id, run_id=run_id)
        sync_log = None

        with logger.context(account_id=account_id, run_id=run_id, request_id=_request_id):
            logger.info("Starting account sync", extra_context={"trigger": trigger})
            # Claimed: every exit below must release the account via _finalize
            try:
                account = MailAccount.objects.select_related("user").get(id=account_id)
                sync_log = SyncLog.objects.create(
                    account=account,
                    run_id=run_id,
                    trigger=trigger,
                    status=SyncRunStatus.IN_PROGRESS,
                    started_at=timezone.now(),
                )
                self.status_store.start(account_id, run_id)
                self._run(account, result, deadline)
            except Exception as exc:
                result.status = FAILED
                result.error = str(exc) or type(exc).__name__
                result.error_kind = error_kind_for(exc)
                if result.error_kind == SyncErrorKind.UNKNOWN:
                    logger.exception("Unexpected error syncing account")
                else:
                    logger.warning(
                        "Account sync failed",
                        extra_context={"error": result.error, "kind": result.error_kind},
                    )

            result.duration_ms = int((time.monotonic() - started) * 1000)
            self._finalize(account_id, sync_log, result)
            logger.info("Account sync finished", extra_context=result.as_dict())
        return result

    def _run(self, account, result: AccountSyncResult, deadline: float) -> None:
        limit = account.max_emails_per_sync or get_config("MAX_MESSAGES_PER_SYNC", 50)
        chunk_size = max(1, get_config("FETCH_BATCH_SIZE", 10))
        mark_seen = get_config("MARK_SEEN_ON_SYNC", False)
        on_refresh = (
            vault.token_saver(account) if account.provider != ProviderKind.IMAP else None
        )

        with vault.unsealed(account) as credentials, get_adapter(
            account, on_token_refresh=on_refresh,
        ) as adapter:
            adapter.connect(credentials)
            self._check_deadline(deadline)

            refs = adapter.list_recent(limit)
            self.status_store.update(account.id, result.run_id, estimated_total=len(refs))

            for page, chunk in enumerate(_chunks(refs, chunk_size), start=1):
                self._check_deadline(deadline)
                self.status_store.update(account.id, result.run_id, current_page=page)

                fetched = adapter.fetch(chunk)
                result.fetched += len(fetched.messages)
                result.failed += len(fetched.failures)
                self.status_store.increment(
                    account.id,
                    result.run_id,
                    fetched=len(fetched.messages),
                    errored=len(fetched.failures),
                )

                for raw in fetched:
                    self._process(account, raw, result)

                if mark_seen and fetched.messages:
                    adapter.mark_seen(chunk)

    def _process(self, account, raw, result: AccountSyncResult) -> None:
        """Upsert one message and classify it if it has no view yet."""
        try:
            email, outcome, reason = self.persister.upsert_message(account, raw)
            if email is not None and email.view is None:
                self.screening.classify_email(email)
        except PersistenceError as e:
            result.failed += 1
            self.status_store.increment(account.id, result.run_id, errored=1)
            logger.warning(
                "Message could not be stored",
                extra_context={"external_id": raw.external_id, "error": str(e)},
            )
            return

        if outcome in (UpsertOutcome.CREATED, UpsertOutcome.UPDATED):
            result.processed += 1
            if outcome == UpsertOutcome.CREATED:
                result.created += 1
            else:
                result.updated += 1
            self.status_store.increment(account.id, result.run_id, synced=1)
        else:
            result.skipped += 1
            self.status_store.increment(account.id, result.run_id, skipped=1)
            if reason:
                logger.debug(
                    "Skipped message", extra_context={"reason": reason},
                )

    def _check_deadline(self, deadline: float) -> None:
        if time.monotonic() > deadline:
            raise SyncTimeoutError("Account sync exceeded its time limit")

    def _finalize(self, account_id, sync_log, result: AccountSyncResult) -> None:
        now = timezone.now()
        with transaction.atomic():
            if result.succeeded:
                MailAccount.objects.filter(id=account_id).update(
                    status=AccountStatus.ACTIVE,
                    last_sync_at=now,
                    last_sync_error=None,
                    last_sync_error_kind="",
                    total_emails_synced=F("total_emails_synced") + result.created,
                    updated_at=now,
                )
            else:
                MailAccount.objects.filter(id=account_id).update(
                    status=AccountStatus.ERROR,
                    last_sync_at=now,
                    last_sync_error=result.error,
                    last_sync_error_kind=result.error_kind,
                    total_emails_synced=F("total_emails_synced") + result.created,
                    updated_at=now,
                )

            if sync_log is not None:
                sync_log.status = (
                    SyncRunStatus.COMPLETED if result.succeeded else SyncRunStatus.FAILED
                )
                sync_log.emails_fetched = result.fetched
                sync_log.emails_processed = result.processed
                sync_log.emails_skipped = result.skipped
                sync_log.emails_failed = result.failed
                sync_log.error_message = result.error or ""
                sync_log.error_kind = result.error_kind
                sync_log.duration_ms = result.duration_ms
                sync_log.completed_at = now
                sync_log.save()

        if result.succeeded:
            self.status_store.complete(account_id, result.run_id)
        else:
            self.status_store.fail(account_id, result.run_id, result.error)


def sync_account(account_id, trigger=SyncTrigger.SCHEDULED, request=None):
    """
    Sync one account.

    Args:
        account_id: ID of the account to sync
        trigger: What started the run
        request: Optional request object

    Returns:
        AccountSyncResult
    """
    return AccountSyncService(request).sync(account_id, trigger=trigger)
