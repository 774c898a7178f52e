"""Tests for the rule-based classifier."""

from types import SimpleNamespace

import pytest

from mail_sync.classifier import classify
from mail_sync.enums import Category, Decision, ScreeningStatus, View


def message(subject="", body_text="", body_html="", from_address="", sender_email=""):
    return SimpleNamespace(
        subject=subject,
        body_text=body_text,
        body_html=body_html,
        from_address=from_address,
        sender_email=sender_email,
    )


def test_receipt_keyword_goes_to_paper_trail():
    result = classify(message(subject="Your receipt from Acme"))

    assert result.view == View.PAPER_TRAIL
    assert result.category == Category.RECEIPT
    assert result.confidence == 0.9
    assert result.screening_status == ScreeningStatus.AUTO_CLASSIFIED


def test_confirmation_keyword_goes_to_paper_trail():
    result = classify(message(subject="Booking for Friday", sender_email="hotel@example.com"))

    assert result.view == View.PAPER_TRAIL
    assert result.category == Category.CONFIRMATION


def test_receipt_with_unsubscribe_footer_stays_in_paper_trail():
    result = classify(
        message(
            subject="Invoice #42",
            body_text="Thanks for paying. Click here to unsubscribe.",
        ),
    )

    assert result.view == View.PAPER_TRAIL


def test_unsubscribe_link_goes_to_feed():
    result = classify(message(subject="Hello", body_text="... unsubscribe here"))

    assert result.view == View.FEED
    assert result.category == Category.NEWSLETTER
    assert result.confidence == 0.85


def test_bulk_sender_address_goes_to_feed():
    result = classify(message(subject="Hi", sender_email="noreply@shop.example"))

    assert result.view == View.FEED


def test_keyword_beyond_scanned_body_prefix_is_ignored(settings):
    settings.MAIL_SYNC_CLASSIFIER_BODY_SCAN_CHARS = 20
    result = classify(message(subject="Hi", body_text="x" * 50 + " receipt"))

    assert result.view == View.IMBOX


def test_html_body_used_when_text_missing():
    result = classify(message(subject="Hi", body_html="<p>Your payment</p>"))

    assert result.category == Category.RECEIPT


def test_default_is_pending_imbox():
    result = classify(message(subject="Lunch?", sender_email="friend@example.com"))

    assert result.view == View.IMBOX
    assert result.category == Category.IMPORTANT
    assert result.confidence == 0.7
    assert result.screening_status == ScreeningStatus.PENDING


def test_known_sender_is_auto_classified():
    result = classify(message(subject="Lunch?"), sender_known=True)

    assert result.screening_status == ScreeningStatus.AUTO_CLASSIFIED


@pytest.mark.parametrize(
    "decision, view, category",
    [
        (Decision.ALLOW, View.IMBOX, Category.IMPORTANT),
        (Decision.DENY, View.SCREENER, Category.BLOCKED),
    ],
)
def test_screening_decision_overrides_keywords(decision, view, category):
    m = message(subject="Weekly newsletter receipt", body_text="unsubscribe")

    result = classify(m, decision=decision)

    assert (result.view, result.category, result.confidence) == (view, category, 1.0)
    assert result.screening_status == ScreeningStatus.SCREENED


def test_decision_row_is_accepted():
    row = SimpleNamespace(decision=Decision.DENY)

    assert classify(message(subject="Hi"), decision=row).view == View.SCREENER


def test_classification_is_deterministic():
    m = message(subject="Daily digest", sender_email="news@example.com")

    assert classify(m) == classify(m)
