"""
Rule-based triage of messages into views.

``classify`` is a pure function: no I/O, no clock, no randomness. Rules are
evaluated in order and the first match wins:

1. an explicit screening decision for the sender
2. paper-trail keywords in the subject or the start of the body
3. newsletter signals (unsubscribe text, bulk keywords, bulk sender addresses)
4. the default, personal mail in the Imbox

Paper-trail runs before newsletter detection, so a receipt that carries an
unsubscribe footer still lands in the Paper Trail.
"""

from dataclasses import dataclass

from .config import get_config
from .enums import Category, Decision, ScreeningStatus, View

RECEIPT_KEYWORDS = ("receipt", "invoice", "payment", "transaction", "statement")
CONFIRMATION_KEYWORDS = ("confirmation", "booking", "order", "shipped", "ticket")
NEWSLETTER_KEYWORDS = ("newsletter", "digest", "weekly", "daily", "update", "news")
BULK_SENDER_FRAGMENTS = ("newsletter", "no-reply", "noreply", "updates", "marketing")
UNSUBSCRIBE_TOKEN = "unsubscribe"


@dataclass(frozen=True)
class Classification:
    view: str
    category: str
    confidence: float
    screening_status: str
    reasoning: str


def _text(value) -> str:
    return (value or "").lower()


def _body(message) -> str:
    return _text(getattr(message, "body_text", "") or getattr(message, "body_html", ""))


def _first_match(haystack: str, keywords) -> str | None:
    for keyword in keywords:
        if keyword in haystack:
            return keyword
    return None


def _decision_value(decision):
    if decision is None:
        return None
    return getattr(decision, "decision", decision)


def classify(message, decision=None, sender_known: bool = False) -> Classification:
    """
    Classify one message.

    Args:
        message: any object with ``subject``, ``body_text``, ``body_html``,
            ``from_address`` and ``sender_email`` (a ``RawMessage`` or an ``Email``)
        decision: the sender's screening decision (a ``Decision`` value or a
            ``ScreeningDecision`` row), or None
        sender_known: whether the user already has screened or auto-classified
            mail from this sender

    Returns:
        Classification
    """
    decision = _decision_value(decision)
    if decision == Decision.ALLOW:
        return Classification(
            View.IMBOX,
            Category.IMPORTANT,
            1.0,
            ScreeningStatus.SCREENED,
            "Sender approved in the Screener",
        )
    if decision == Decision.DENY:
        return Classification(
            View.SCREENER,
            Category.BLOCKED,
            1.0,
            ScreeningStatus.SCREENED,
            "Sender screened out",
        )

    subject = _text(getattr(message, "subject", ""))
    body = _body(message)
    scan_chars = get_config("CLASSIFIER_BODY_SCAN_CHARS", 500)
    head = f"{subject} {body[:scan_chars]}"

    keyword = _first_match(head, RECEIPT_KEYWORDS)
    if keyword:
        return Classification(
            View.PAPER_TRAIL,
            Category.RECEIPT,
            0.9,
            ScreeningStatus.AUTO_CLASSIFIED,
            f"Receipt keyword '{keyword}'",
        )
    keyword = _first_match(head, CONFIRMATION_KEYWORDS)
    if keyword:
        return Classification(
            View.PAPER_TRAIL,
            Category.CONFIRMATION,
            0.9,
            ScreeningStatus.AUTO_CLASSIFIED,
            f"Confirmation keyword '{keyword}'",
        )

    reason = _newsletter_reason(message, subject, body)
    if reason:
        return Classification(
            View.FEED,
            Category.NEWSLETTER,
            0.85,
            ScreeningStatus.AUTO_CLASSIFIED,
            reason,
        )

    return Classification(
        View.IMBOX,
        Category.IMPORTANT,
        0.7,
        ScreeningStatus.AUTO_CLASSIFIED if sender_known else ScreeningStatus.PENDING,
        "Personal or important email",
    )


def _newsletter_reason(message, subject: str, body: str) -> str | None:
    if UNSUBSCRIBE_TOKEN in body:
        return "Unsubscribe link in body"

    from_text = _text(getattr(message, "from_address", ""))
    keyword = _first_match(subject, NEWSLETTER_KEYWORDS) or _first_match(
        from_text, NEWSLETTER_KEYWORDS,
    )
    if keyword:
        return f"Bulk keyword '{keyword}'"

    address = _text(getattr(message, "sender_email", "")) or from_text
    fragment = _first_match(address, BULK_SENDER_FRAGMENTS)
    if fragment:
        return f"Bulk sender address '{fragment}'"

    return None
