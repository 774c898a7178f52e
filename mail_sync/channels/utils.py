"""Utility functions shared by the mail provider channels.

This module provides small, reusable helpers for address normalisation,
identifier generation and string clean-up.
"""

import re
import uuid
from email.utils import getaddresses, parseaddr


def generate_id() -> str:
    """Generate a unique ID string.

    Returns
    -------
        Unique ID string

    """
    return uuid.uuid4().hex


def normalize_email_address(full_address: str) -> str:
    """Extract the bare, lower-cased address from an envelope string.

    Args:
    ----
        full_address: Full address string (e.g. "Name <Email@Example.com>")

    Returns:
    -------
        ``email@example.com``, or an empty string when none is present

    """
    if not full_address:
        return ""

    _, address = parseaddr(full_address)
    if not address:
        match = re.search(r"<([^>]+)>", full_address)
        address = match.group(1) if match else full_address
    address = address.strip().lower()
    return address if "@" in address else ""


def parse_address_list(values) -> list[str]:
    """Parse one or more address headers into a list of bare addresses."""
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    return [addr for _, addr in getaddresses(list(values)) if addr]


def format_address(name: str, email: str) -> str:
    """Format a name and email into an envelope string.

    Args:
    ----
        name: Display name
        email: Email address

    Returns:
    -------
        Formatted address string

    """
    if not email:
        return name or ""

    if name:
        if re.search(r'[,.<>@:;"\[\]\\]', name):
            return f'"{name}" <{email}>'
        return f"{name} <{email}>"
    return email


def sanitize_subject(subject: str, limit: int = 1000) -> str:
    """Strip control characters and cap the length of a subject line."""
    if not subject:
        return ""

    subject = re.sub(r"[\x00-\x1F\x7F]", "", subject)

    if len(subject) > limit:
        subject = subject[: limit - 3] + "..."

    return subject


def clean_message_id(message_id: str) -> str:
    """Trim whitespace and angle brackets from a Message-ID header."""
    return (message_id or "").strip().strip("<>").strip()
