"""Domain-focused models for the ``mail_sync`` app.

Each concept (accounts, messages, screening, sync logs) lives in its own module;
the concrete model classes are re-exported here so ``from mail_sync.models
import Email`` works everywhere.
"""

from __future__ import annotations

from .accounts import MailAccount
from .logs import SyncLog
from .messages import Email
from .screening import ScreeningDecision

__all__ = [
    "MailAccount",
    "Email",
    "ScreeningDecision",
    "SyncLog",
]
