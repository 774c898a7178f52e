"""mail_sync.channels.adapters.base

Uniform capability interface for every mail provider.  A sync run only talks
to providers through :class:`BaseInboundAdapter`, so adding a provider means
adding a subclass, not branching existing code.

Lifecycle of one run::

    with get_adapter(account) as adapter:
        adapter.connect(credentials)
        refs = adapter.list_recent(50)
        for raw in adapter.fetch(refs):
            ...

Adapters produce :class:`RawMessage` objects, which are transient and never
stored as-is.
"""

from __future__ import annotations

import abc
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from triage_core.utils.logging import ContextLogger

logger = ContextLogger(__name__)


@dataclass(frozen=True)
class MessageRef:
    """Provider-side handle of a listed message."""

    provider_id: str
    thread_id: str = ""


@dataclass
class RawMessage:
    """Provider-neutral message as produced by an adapter."""

    external_id: str
    received_at: datetime
    thread_id: str = ""
    from_address: str = ""
    sender_email: str = ""
    from_name: str = ""
    to_addresses: list[str] = field(default_factory=list)
    cc_addresses: list[str] = field(default_factory=list)
    subject: str = ""
    body_text: str = ""
    body_html: str = ""
    seen: bool = False
    flagged: bool = False
    size: int = 0
    has_attachments: bool = False
    folder: str = "INBOX"


@dataclass
class FetchFailure:
    ref: MessageRef
    error: str


@dataclass
class FetchResult:
    """Messages fetched for a batch of refs plus the ones that failed to parse."""

    messages: list[RawMessage] = field(default_factory=list)
    failures: list[FetchFailure] = field(default_factory=list)

    def __iter__(self) -> Iterator[RawMessage]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)


TokenRefreshCallback = Callable[[str, str | None, datetime | None], None]


class BaseInboundAdapter(abc.ABC):
    """Abstract base class for receiving messages from one account."""

    def __init__(self, account, on_token_refresh: TokenRefreshCallback | None = None):
        if not account:
            raise ValueError("MailAccount must be provided")
        self.account = account
        self.on_token_refresh = on_token_refresh

    @abc.abstractmethod
    def connect(self, credentials) -> None:
        """Open a session using decrypted credentials.

        Raises ``AuthenticationError`` or ``ConnectionError``.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def list_recent(self, limit: int) -> list[MessageRef]:
        """Return refs for the newest ``limit`` inbox messages, newest first."""
        raise NotImplementedError

    @abc.abstractmethod
    def fetch(self, refs: list[MessageRef]) -> FetchResult:
        """Fetch and parse the given refs.

        A message that cannot be parsed is reported in ``failures`` rather
        than raised.
        """
        raise NotImplementedError

    def mark_seen(self, refs: list[MessageRef]) -> None:
        """Mark messages as read on the server. Optional capability."""
        logger.debug(
            "mark_seen not supported", extra_context={"adapter": type(self).__name__},
        )

    @abc.abstractmethod
    def disconnect(self) -> None:
        """Close the session. Must be safe to call more than once."""
        raise NotImplementedError

    def _token_refreshed(
        self,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
    ) -> None:
        if self.on_token_refresh:
            self.on_token_refresh(access_token, refresh_token, expires_at)

    def __enter__(self) -> BaseInboundAdapter:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.disconnect()

    def __repr__(self) -> str:  # pragma: no cover - cosmetic
        return f"<{self.__class__.__name__} account={self.account_id}>"

    @property
    def account_id(self) -> Any:  # noqa: ANN401
        return getattr(self.account, "id", None)
