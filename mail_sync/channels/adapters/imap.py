"""
IMAP adapter implementation.

Connects with password credentials, lists the newest messages of the inbox by
UID and fetches them without touching the ``\\Seen`` flag.
"""

import imaplib
import re
import socket
import ssl

from triage_core.utils.logging import ContextLogger

from ...config import get_config
from ...exceptions import AuthenticationError, ConnectionError, ParseError
from ...utils.email_parser import parse_raw_message
from .base import BaseInboundAdapter, FetchFailure, FetchResult, MessageRef

logger = ContextLogger(__name__)

INBOX = "INBOX"

_FLAGS_RE = re.compile(rb"FLAGS \(([^)]*)\)")
_SIZE_RE = re.compile(rb"RFC822\.SIZE (\d+)")
_UID_RE = re.compile(rb"UID (\d+)")


class IMAPAdapter(BaseInboundAdapter):
    """
    IMAP protocol adapter.

    One adapter instance holds one stateful connection; it is not shared
    between threads.
    """

    def __init__(self, account, on_token_refresh=None):
        super().__init__(account, on_token_refresh)
        self.server = None
        self.server_host = account.imap_host
        self.server_port = account.imap_port or (993 if account.imap_use_ssl else 143)
        self.use_ssl = account.imap_use_ssl
        self.timeout = get_config("DEFAULT_TIMEOUT", 30)

    def connect(self, credentials) -> None:
        """
        Establish connection and authenticate with the IMAP server.

        Raises:
            ConnectionError: If connection to server fails
            AuthenticationError: If authentication fails
        """
        if not self.server_host:
            raise ConnectionError("IMAP host is not configured")

        logger.info(
            "Connecting to IMAP server",
            extra_context={"server": self.server_host, "port": self.server_port},
        )

        try:
            if self.use_ssl:
                self.server = imaplib.IMAP4_SSL(
                    self.server_host,
                    self.server_port,
                    timeout=self.timeout,
                    ssl_context=ssl.create_default_context(),
                )
            else:
                self.server = imaplib.IMAP4(
                    self.server_host, self.server_port, timeout=self.timeout,
                )
        except (socket.timeout, ssl.SSLError, OSError) as e:
            logger.error("IMAP connection failed", extra_context={"error": str(e)})
            raise ConnectionError(f"IMAP connection failed: {e!s}") from e

        username = credentials.username or self.account.email_address
        try:
            self.server.login(username, credentials.password or "")
        except imaplib.IMAP4.error as e:
            logger.error("IMAP authentication failed", extra_context={"error": str(e)})
            self._drop()
            raise AuthenticationError(f"IMAP authentication failed: {e!s}") from e
        except OSError as e:
            self._drop()
            raise ConnectionError(f"IMAP connection lost during login: {e!s}") from e

        self._select_inbox()
        logger.info("IMAP authentication successful")

    def _select_inbox(self) -> None:
        try:
            status, _ = self.server.select(INBOX)
        except (imaplib.IMAP4.error, OSError) as e:
            raise ConnectionError(f"Failed to select {INBOX}: {e!s}") from e
        if status != "OK":
            raise ConnectionError(f"Failed to select {INBOX}: {status}")

    def _require_session(self):
        if not self.server:
            raise ConnectionError("IMAP session is not connected")
        return self.server

    def list_recent(self, limit: int) -> list[MessageRef]:
        """Return refs for the newest ``limit`` UIDs in the inbox."""
        server = self._require_session()
        try:
            status, data = server.uid("SEARCH", None, "ALL")
        except (imaplib.IMAP4.error, OSError) as e:
            raise ConnectionError(f"IMAP search failed: {e!s}") from e

        if status != "OK" or not data or not data[0]:
            return []

        uids = sorted((int(uid) for uid in data[0].split()), reverse=True)[:limit]
        logger.debug(f"Found {len(uids)} recent messages")
        return [MessageRef(provider_id=str(uid)) for uid in uids]

    def fetch(self, refs: list[MessageRef]) -> FetchResult:
        """Fetch full messages for the given UIDs."""
        server = self._require_session()
        result = FetchResult()
        if not refs:
            return result

        uid_set = ",".join(ref.provider_id for ref in refs)
        try:
            status, data = server.uid(
                "FETCH", uid_set, "(UID FLAGS RFC822.SIZE BODY.PEEK[])",
            )
        except (imaplib.IMAP4.error, OSError) as e:
            raise ConnectionError(f"IMAP fetch failed: {e!s}") from e

        if status != "OK":
            raise ConnectionError(f"IMAP fetch failed: {status}")

        by_uid = self._group_by_uid(data or [])

        for ref in refs:
            entry = by_uid.get(ref.provider_id)
            if entry is None:
                result.failures.append(
                    FetchFailure(ref, "message missing from response"),
                )
                continue

            meta, body = entry
            flags = self._parse_flags(meta)
            size_match = _SIZE_RE.search(meta)
            try:
                raw = parse_raw_message(
                    body,
                    fallback_id=f"imap-uid-{ref.provider_id}",
                    folder=INBOX,
                    seen="\\Seen" in flags,
                    flagged="\\Flagged" in flags,
                    size=int(size_match.group(1)) if size_match else None,
                )
            except ParseError as e:
                logger.warning(
                    "Failed to parse IMAP message",
                    extra_context={"uid": ref.provider_id, "error": str(e)},
                )
                result.failures.append(FetchFailure(ref, str(e)))
                continue
            result.messages.append(raw)

        return result

    def _group_by_uid(self, data) -> dict[str, tuple[bytes, bytes]]:
        """Map UID to (metadata, body).

        Servers may send FLAGS after the literal, in which case it arrives as a
        trailing bytes item and is folded into the preceding metadata.
        """
        by_uid = {}
        current = None
        for item in data:
            if isinstance(item, tuple) and len(item) >= 2:
                current = [item[0], item[1]]
                uid_match = _UID_RE.search(item[0])
                if uid_match:
                    by_uid[uid_match.group(1).decode()] = current
            elif isinstance(item, bytes) and current is not None:
                current[0] = current[0] + b" " + item
        return {uid: (meta, body) for uid, (meta, body) in by_uid.items()}

    def _parse_flags(self, meta: bytes) -> set[str]:
        match = _FLAGS_RE.search(meta)
        if not match:
            return set()
        return {flag.decode() for flag in match.group(1).split()}

    def mark_seen(self, refs: list[MessageRef]) -> None:
        server = self._require_session()
        if not refs:
            return
        uid_set = ",".join(ref.provider_id for ref in refs)
        try:
            server.uid("STORE", uid_set, "+FLAGS", "(\\Seen)")
        except (imaplib.IMAP4.error, OSError) as e:
            raise ConnectionError(f"IMAP store failed: {e!s}") from e

    def disconnect(self) -> None:
        """Close the IMAP connection."""
        if not self.server:
            return
        try:
            self.server.close()
            self.server.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.warning(
                "Error disconnecting from IMAP server", extra_context={"error": str(e)},
            )
        finally:
            self.server = None

    def _drop(self) -> None:
        try:
            self.server.shutdown()
        except (OSError, AttributeError):
            pass
        self.server = None
