"""
Live progress of sync runs, keyed by account.

Each account moves through ``no status -> syncing -> complete`` (or
``-> error``). Starting a new run overwrites whatever the previous run left
behind. Every mutation carries the ``run_id`` it belongs to and is ignored when
that run has been superseded, so a slow worker of an old run cannot corrupt the
counters of a new one.

Status is volatile by design. Two stores implement the same contract:

* ``InMemorySyncStatusStore`` for a single process
* ``CacheSyncStatusStore`` on the Django cache (Redis in production) so that
  web and worker processes share it

The active store is chosen with the ``SYNC_STATUS_BACKEND`` setting and obtained
through :func:`get_status_store`.
"""

import abc
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from django.core.cache import cache
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from django.utils.module_loading import import_string

from triage_core.utils.logging import ContextLogger

from ..config import get_config

logger = ContextLogger(__name__)

COUNTERS = ("fetched", "synced", "skipped", "errored")
UPDATABLE = ("current_page", "current_folder", "estimated_total")


@dataclass
class SyncStatusSnapshot:
    account_id: int
    run_id: str | None = None
    current_page: int = 0
    current_folder: str = "INBOX"
    fetched: int = 0
    synced: int = 0
    skipped: int = 0
    errored: int = 0
    estimated_total: int | None = None
    is_complete: bool = False
    error: str | None = None
    started_at: datetime | None = None
    last_updated: datetime | None = None

    def is_idle(self, now=None, stale_after=None) -> bool:
        """A finished run that has not been touched for a while counts as idle."""
        if self.run_id is None:
            return True
        if not self.is_complete or self.last_updated is None:
            return False
        now = now or timezone.now()
        if stale_after is None:
            stale_after = get_config("SYNC_STATUS_STALE_AFTER", 300)
        return now - self.last_updated > timedelta(seconds=stale_after)

    def to_payload(self, now=None, stale_after=None) -> dict:
        return {
            "accountId": self.account_id,
            "runId": self.run_id,
            "currentPage": self.current_page,
            "currentFolder": self.current_folder,
            "fetched": self.fetched,
            "synced": self.synced,
            "skipped": self.skipped,
            "errored": self.errored,
            "estimatedTotal": self.estimated_total,
            "isComplete": self.is_complete,
            "isIdle": self.is_idle(now, stale_after),
            "error": self.error,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
        }


def default_payload(account_id) -> dict:
    """Payload returned when no run has been recorded for an account."""
    return SyncStatusSnapshot(account_id=account_id).to_payload()


class SyncStatusStore(abc.ABC):
    """Contract shared by every status store. Mutators return False when ignored."""

    @abc.abstractmethod
    def start(self, account_id, run_id, folder="INBOX", estimated_total=None) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def increment(self, account_id, run_id, **counters) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def update(self, account_id, run_id, **fields) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def complete(self, account_id, run_id) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def fail(self, account_id, run_id, error) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def get(self, account_id) -> SyncStatusSnapshot | None:
        raise NotImplementedError

    @abc.abstractmethod
    def clear(self, account_id) -> None:
        raise NotImplementedError

    def payload(self, account_id, now=None) -> dict:
        snapshot = self.get(account_id)
        if snapshot is None:
            return default_payload(account_id)
        return snapshot.to_payload(now)

    @staticmethod
    def _check_counters(counters):
        unknown = set(counters) - set(COUNTERS)
        if unknown:
            raise ValueError(f"Unknown status counters: {sorted(unknown)}")

    @staticmethod
    def _check_fields(fields):
        unknown = set(fields) - set(UPDATABLE)
        if unknown:
            raise ValueError(f"Unknown status fields: {sorted(unknown)}")


class InMemorySyncStatusStore(SyncStatusStore):
    """Process-local store guarded by a lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict = {}

    def _current(self, account_id, run_id):
        entry = self._entries.get(account_id)
        if entry is None or entry.run_id != run_id:
            logger.debug(
                "Ignoring status update from superseded run",
                extra_context={"account_id": account_id, "run_id": run_id},
            )
            return None
        return entry

    def start(self, account_id, run_id, folder="INBOX", estimated_total=None) -> bool:
        now = timezone.now()
        with self._lock:
            self._entries[account_id] = SyncStatusSnapshot(
                account_id=account_id,
                run_id=run_id,
                current_folder=folder,
                estimated_total=estimated_total,
                started_at=now,
                last_updated=now,
            )
        return True

    def increment(self, account_id, run_id, **counters) -> bool:
        self._check_counters(counters)
        with self._lock:
            entry = self._current(account_id, run_id)
            if entry is None:
                return False
            for name, amount in counters.items():
                setattr(entry, name, getattr(entry, name) + amount)
            entry.last_updated = timezone.now()
        return True

    def update(self, account_id, run_id, **fields) -> bool:
        self._check_fields(fields)
        with self._lock:
            entry = self._current(account_id, run_id)
            if entry is None:
                return False
            for name, value in fields.items():
                setattr(entry, name, value)
            entry.last_updated = timezone.now()
        return True

    def complete(self, account_id, run_id) -> bool:
        with self._lock:
            entry = self._current(account_id, run_id)
            if entry is None:
                return False
            entry.is_complete = True
            entry.last_updated = timezone.now()
        return True

    def fail(self, account_id, run_id, error) -> bool:
        with self._lock:
            entry = self._current(account_id, run_id)
            if entry is None:
                return False
            entry.is_complete = True
            entry.error = str(error)
            entry.last_updated = timezone.now()
        return True

    def get(self, account_id) -> SyncStatusSnapshot | None:
        with self._lock:
            entry = self._entries.get(account_id)
            return replace(entry) if entry is not None else None

    def clear(self, account_id) -> None:
        with self._lock:
            self._entries.pop(account_id, None)


class CacheSyncStatusStore(SyncStatusStore):
    """Store on the Django cache.

    The account key holds only the id of the current run and is written by
    ``start`` alone. Everything else lives under keys that include the run id:
    counters are bumped with the cache's atomic ``incr`` and run metadata is
    only ever written by that run's worker, so a superseded run can neither
    lose a newer run's updates nor point the account back at itself.
    """

    prefix = "mail_sync:status"

    def __init__(self, backend=None):
        self.cache = backend or cache

    @property
    def ttl(self) -> int:
        return get_config("SYNC_STATUS_TTL", 24 * 60 * 60)

    def _run_key(self, account_id) -> str:
        return f"{self.prefix}:{account_id}"

    def _key(self, account_id, run_id, name) -> str:
        return f"{self.prefix}:{account_id}:{run_id}:{name}"

    def _is_current(self, account_id, run_id) -> bool:
        if self.cache.get(self._run_key(account_id)) == run_id:
            return True
        logger.debug(
            "Ignoring status update from superseded run",
            extra_context={"account_id": account_id, "run_id": run_id},
        )
        return False

    def _touch(self, account_id, run_id) -> None:
        self.cache.set(
            self._key(account_id, run_id, "last_updated"),
            timezone.now().isoformat(),
            timeout=self.ttl,
        )

    def _change_meta(self, account_id, run_id, **changes) -> bool:
        if not self._is_current(account_id, run_id):
            return False
        meta_key = self._key(account_id, run_id, "meta")
        meta = self.cache.get(meta_key) or {}
        meta.update(changes)
        self.cache.set(meta_key, meta, timeout=self.ttl)
        self._touch(account_id, run_id)
        return True

    def start(self, account_id, run_id, folder="INBOX", estimated_total=None) -> bool:
        now = timezone.now().isoformat()
        values = {self._key(account_id, run_id, name): 0 for name in COUNTERS}
        values[self._key(account_id, run_id, "meta")] = {
            "current_page": 0,
            "current_folder": folder,
            "estimated_total": estimated_total,
            "is_complete": False,
            "error": None,
            "started_at": now,
        }
        values[self._key(account_id, run_id, "last_updated")] = now
        self.cache.set_many(values, timeout=self.ttl)
        # Published last so readers never see a run without its keys
        self.cache.set(self._run_key(account_id), run_id, timeout=self.ttl)
        return True

    def increment(self, account_id, run_id, **counters) -> bool:
        self._check_counters(counters)
        if not self._is_current(account_id, run_id):
            return False
        for name, amount in counters.items():
            if amount:
                key = self._key(account_id, run_id, name)
                try:
                    self.cache.incr(key, amount)
                except ValueError:
                    # Counter expired; restart it from this increment
                    self.cache.set(key, amount, timeout=self.ttl)
        self._touch(account_id, run_id)
        return True

    def update(self, account_id, run_id, **fields) -> bool:
        self._check_fields(fields)
        return self._change_meta(account_id, run_id, **fields)

    def complete(self, account_id, run_id) -> bool:
        return self._change_meta(account_id, run_id, is_complete=True)

    def fail(self, account_id, run_id, error) -> bool:
        return self._change_meta(account_id, run_id, is_complete=True, error=str(error))

    def get(self, account_id) -> SyncStatusSnapshot | None:
        run_id = self.cache.get(self._run_key(account_id))
        if not run_id:
            return None

        keys = {name: self._key(account_id, run_id, name) for name in COUNTERS}
        meta_key = self._key(account_id, run_id, "meta")
        updated_key = self._key(account_id, run_id, "last_updated")
        values = self.cache.get_many([*keys.values(), meta_key, updated_key])
        meta = values.get(meta_key) or {}
        last_updated = values.get(updated_key)

        return SyncStatusSnapshot(
            account_id=account_id,
            run_id=run_id,
            current_page=meta.get("current_page", 0),
            current_folder=meta.get("current_folder", "INBOX"),
            estimated_total=meta.get("estimated_total"),
            is_complete=meta.get("is_complete", False),
            error=meta.get("error"),
            started_at=parse_datetime(meta["started_at"]) if meta.get("started_at") else None,
            last_updated=parse_datetime(last_updated) if last_updated else None,
            **{name: int(values.get(key) or 0) for name, key in keys.items()},
        )

    def clear(self, account_id) -> None:
        self.cache.delete(self._run_key(account_id))


_store = None
_store_lock = threading.Lock()


def get_status_store() -> SyncStatusStore:
    """Return the process-wide store configured by ``SYNC_STATUS_BACKEND``."""
    global _store
    with _store_lock:
        if _store is None:
            backend_path = get_config("SYNC_STATUS_BACKEND")
            _store = import_string(backend_path)()
            logger.debug(
                "Initialised sync status store", extra_context={"backend": backend_path},
            )
        return _store


def reset_status_store() -> None:
    """Drop the process-wide store so the next call re-reads the setting."""
    global _store
    with _store_lock:
        _store = None


__all__ = [
    "SyncStatusSnapshot",
    "SyncStatusStore",
    "InMemorySyncStatusStore",
    "CacheSyncStatusStore",
    "default_payload",
    "get_status_store",
    "reset_status_store",
]
