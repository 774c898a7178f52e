"""
Screening service.

Screening is sender-scoped: one allow/deny decision per (user, sender address)
overrides keyword classification for every message from that sender. Senders
are matched on the normalised ``Email.sender_email`` column; rows stored before
that column was populated fall back to a substring match on ``from_address``.
"""

from dataclasses import dataclass, field

from django.db import DatabaseError, transaction
from django.db.models import Q

from triage_core.utils.logging import ContextLogger, with_request_id

from ..channels.utils import normalize_email_address
from ..classifier import Classification, classify
from ..enums import Decision, ScreeningStatus
from ..exceptions import PersistenceError, ValidationError
from ..models import Email, ScreeningDecision
from .base_service import BaseService

logger = ContextLogger(__name__)

KNOWN_SENDER_STATUSES = (ScreeningStatus.SCREENED, ScreeningStatus.AUTO_CLASSIFIED)


def normalize_sender(sender: str) -> str:
    """Return the bare lower-case address, accepting full envelope strings."""
    address = normalize_email_address(sender or "")
    if not address:
        raise ValidationError(f"'{sender}' is not a valid sender address")
    return address


def sender_filter(sender: str) -> Q:
    """Match emails from ``sender``, exact on the normalised column."""
    return Q(sender_email=sender) | Q(sender_email="", from_address__icontains=sender)


@dataclass
class PendingSender:
    email_address: str
    name: str
    count: int
    first_email_id: int
    latest_subject: str
    suggestion: Classification
    email_ids: list[int] = field(default_factory=list)


class ScreeningService(BaseService):
    """Record, apply and undo per-sender screening decisions."""

    def get_decision(self, user, sender: str) -> ScreeningDecision | None:
        return ScreeningDecision.objects.filter(
            user=user, sender_email=normalize_sender(sender),
        ).first()

    def decision_map(self, user, senders) -> dict[str, str]:
        """Map each normalised sender to its decision value."""
        normalized = {normalize_email_address(s) for s in senders}
        normalized.discard("")
        if not normalized:
            return {}
        rows = ScreeningDecision.objects.filter(
            user=user, sender_email__in=normalized,
        ).values_list("sender_email", "decision")
        return dict(rows)

    def is_sender_known(self, user, sender: str) -> bool:
        if not sender:
            return False
        return (
            Email.objects.filter(
                account__user=user, screening_status__in=KNOWN_SENDER_STATUSES,
            )
            .filter(sender_filter(sender))
            .exists()
        )

    @with_request_id
    def record_decision(
        self,
        user,
        sender: str,
        decision: str,
        apply_to_existing: bool = False,
        notes: str = "",
        _request_id=None,
    ) -> tuple[ScreeningDecision, int]:
        """
        Create or replace the decision for a sender.

        Args:
            user: Owner of the decision
            sender: Sender address, bare or as an envelope string
            decision: ``allow`` or ``deny``
            apply_to_existing: Also reclassify the sender's pending or
                unclassified mail right away
            notes: Free-form note

        Returns:
            (ScreeningDecision, number of reclassified emails)
        """
        if decision not in Decision.values:
            raise ValidationError(f"Unknown screening decision '{decision}'")
        address = normalize_sender(sender)

        with logger.context(request_id=_request_id, user_id=user.id, sender=address):
            with transaction.atomic():
                row, created = ScreeningDecision.objects.update_or_create(
                    user=user,
                    sender_email=address,
                    defaults={"decision": decision, "notes": notes or ""},
                )

                affected = 0
                if apply_to_existing:
                    result = classify(None, decision=decision)
                    affected = (
                        Email.objects.filter(account__user=user)
                        .filter(sender_filter(address))
                        .filter(
                            Q(screening_status=ScreeningStatus.PENDING)
                            | Q(view__isnull=True),
                        )
                        .update(
                            view=result.view,
                            category=result.category,
                            confidence=result.confidence,
                            screening_status=result.screening_status,
                        )
                    )

            logger.info(
                "Recorded screening decision",
                extra_context={
                    "decision": decision,
                    "created": created,
                    "reclassified": affected,
                },
            )
        return row, affected

    @with_request_id
    def undo_decision(self, user, sender: str, _request_id=None) -> int:
        """
        Remove a sender's decision and send all of their mail back to screening.

        All-or-nothing: the decision row is deleted and every matching email is
        reset to ``pending`` with no view in one transaction. Running it again
        returns 0.

        Returns:
            Number of emails reset
        """
        address = normalize_sender(sender)

        with logger.context(request_id=_request_id, user_id=user.id, sender=address):
            try:
                with transaction.atomic():
                    ScreeningDecision.objects.filter(
                        user=user, sender_email=address,
                    ).delete()
                    affected = (
                        Email.objects.filter(account__user=user)
                        .filter(sender_filter(address))
                        .exclude(screening_status=ScreeningStatus.PENDING, view__isnull=True)
                        .update(
                            screening_status=ScreeningStatus.PENDING,
                            view=None,
                            category="",
                            confidence=None,
                        )
                    )
            except DatabaseError as e:
                logger.error("Undo screening failed", extra_context={"error": str(e)})
                raise PersistenceError(f"Failed to undo screening: {e!s}") from e

            logger.info("Undid screening decision", extra_context={"affected": affected})
        return affected

    def classify_email(self, email: Email, decision=None) -> Classification:
        """Classify a stored email and save the result on the row."""
        user = email.account.user
        sender = email.sender_email or normalize_email_address(email.from_address)

        if decision is None and sender:
            decision = ScreeningDecision.objects.filter(
                user=user, sender_email=sender,
            ).values_list("decision", flat=True).first()

        known = False
        if decision is None:
            known = self.is_sender_known(user, sender)

        result = classify(email, decision=decision, sender_known=known)
        email.view = result.view
        email.category = result.category
        email.confidence = result.confidence
        email.screening_status = result.screening_status
        try:
            email.save(
                update_fields=[
                    "view",
                    "category",
                    "confidence",
                    "screening_status",
                    "updated_at",
                ],
            )
        except DatabaseError as e:
            raise PersistenceError(f"Failed to save classification: {e!s}") from e
        return result

    def pending_senders(self, user, limit: int = 50) -> list[PendingSender]:
        """Screener queue: the newest pending emails grouped by sender."""
        emails = (
            Email.objects.filter(
                account__user=user, screening_status=ScreeningStatus.PENDING,
            )
            .order_by("-received_at")
            .only(
                "id",
                "sender_email",
                "from_address",
                "from_name",
                "subject",
                "body_text",
                "body_html",
            )[:limit]
        )

        grouped: dict[str, PendingSender] = {}
        for email in emails:
            sender = email.sender_email or normalize_email_address(email.from_address)
            if not sender:
                continue
            entry = grouped.get(sender)
            if entry is None:
                grouped[sender] = PendingSender(
                    email_address=sender,
                    name=email.from_name or sender.split("@")[0],
                    count=1,
                    first_email_id=email.id,
                    latest_subject=email.subject,
                    suggestion=classify(email),
                    email_ids=[email.id],
                )
            else:
                entry.count += 1
                entry.email_ids.append(email.id)
        return list(grouped.values())


# Convenience functions that use the service
def record_decision(user, sender, decision, apply_to_existing=False, notes=""):
    return ScreeningService().record_decision(
        user, sender, decision, apply_to_existing=apply_to_existing, notes=notes,
    )


def undo_decision(user, sender):
    return ScreeningService().undo_decision(user, sender)


def classify_email(email, decision=None):
    return ScreeningService().classify_email(email, decision=decision)
