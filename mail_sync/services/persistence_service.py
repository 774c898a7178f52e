"""
Persistence service.

Idempotent upsert of provider messages keyed by ``(account, external id)``.
New rows are inserted unclassified (``view=None``); existing rows only pick up
server-side state (read/starred flags, folder). Subject and body are never
rewritten once stored.
"""

from typing import NamedTuple

from django.db import DatabaseError, IntegrityError, transaction

from triage_core.utils.logging import ContextLogger

from ..enums import UpsertOutcome
from ..exceptions import PersistenceError
from ..models import Email
from .base_service import BaseService

logger = ContextLogger(__name__)

MUTABLE_FIELDS = ("is_read", "is_starred", "folder")
SKIP_MISSING_EXTERNAL_ID = "missing_external_id"


class UpsertResult(NamedTuple):
    email: Email | None
    outcome: str
    reason: str = ""


class PersistenceService(BaseService):
    """Store ``RawMessage`` objects as ``Email`` rows."""

    def upsert_message(self, account, raw) -> UpsertResult:
        """
        Insert or refresh one message.

        Args:
            account: MailAccount that owns the message
            raw: RawMessage produced by an adapter

        Returns:
            UpsertResult(email, outcome, reason)

        Raises:
            PersistenceError: If the database rejects the write
        """
        external_id = (raw.external_id or "").strip()[:500]
        if not external_id:
            return UpsertResult(None, UpsertOutcome.SKIPPED, SKIP_MISSING_EXTERNAL_ID)

        try:
            existing = Email.objects.filter(
                account=account, external_message_id=external_id,
            ).first()
            if existing is not None:
                return self._refresh(existing, raw)

            try:
                with transaction.atomic():
                    email = Email.objects.create(
                        account=account,
                        external_message_id=external_id,
                        **self._insert_fields(raw),
                    )
            except IntegrityError:
                # Another worker stored the same message first
                existing = Email.objects.get(
                    account=account, external_message_id=external_id,
                )
                return self._refresh(existing, raw)

            return UpsertResult(email, UpsertOutcome.CREATED)

        except (DatabaseError, Email.DoesNotExist) as e:
            logger.error(
                "Failed to persist message",
                extra_context={"external_id": external_id, "error": str(e)},
            )
            raise PersistenceError(f"Failed to persist message {external_id}: {e!s}") from e

    def _insert_fields(self, raw) -> dict:
        return {
            "thread_id": (raw.thread_id or "")[:500],
            "from_address": (raw.from_address or "")[:500],
            "sender_email": (raw.sender_email or "")[:320],
            "from_name": (raw.from_name or "")[:200],
            "to_addresses": list(raw.to_addresses or []),
            "cc_addresses": list(raw.cc_addresses or []),
            "subject": (raw.subject or "")[:1000],
            "body_text": raw.body_text or "",
            "body_html": raw.body_html or "",
            "received_at": raw.received_at,
            "size": raw.size or 0,
            "has_attachments": bool(raw.has_attachments),
            "folder": raw.folder or "INBOX",
            "is_read": bool(raw.seen),
            "is_starred": bool(raw.flagged),
            "view": None,
        }

    def _refresh(self, email: Email, raw) -> UpsertResult:
        incoming = {
            "is_read": bool(raw.seen),
            "is_starred": bool(raw.flagged),
            "folder": raw.folder or email.folder,
        }
        changed = [name for name in MUTABLE_FIELDS if getattr(email, name) != incoming[name]]
        if not changed:
            return UpsertResult(email, UpsertOutcome.UNCHANGED)

        for name in changed:
            setattr(email, name, incoming[name])
        email.save(update_fields=[*changed, "updated_at"])
        return UpsertResult(email, UpsertOutcome.UPDATED)


def upsert_message(account, raw) -> UpsertResult:
    """Convenience wrapper around :meth:`PersistenceService.upsert_message`."""
    return PersistenceService().upsert_message(account, raw)
