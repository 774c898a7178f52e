"""Gmail API adapter implementation.

Polls the inbox through the Gmail REST API with an OAuth2 bearer token,
refreshing the token transparently when it has expired or is about to.
"""

import base64
from datetime import timedelta
from datetime import timezone as dt_timezone
from typing import Any

from django.utils import timezone
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from triage_core.utils.logging import ContextLogger

from ...config import get_config
from ...exceptions import (
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    ParseError,
)
from ...utils.email_parser import parse_raw_message
from .base import BaseInboundAdapter, FetchFailure, FetchResult, MessageRef

logger = ContextLogger(__name__)

GMAIL_TOKEN_URI = "https://oauth2.googleapis.com/token"  # nosec B105
GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.modify"]
MAX_PAGE_SIZE = 100


def _http_status(error: HttpError) -> int:
    return getattr(error.resp, "status", 0) or 0


class GmailAdapter(BaseInboundAdapter):
    """Gmail API adapter.

    Uses OAuth2 credentials to list and fetch inbox messages. Refreshed tokens
    are reported through ``on_token_refresh`` so they can be re-sealed.
    """

    def __init__(self, account, on_token_refresh=None):
        super().__init__(account, on_token_refresh)
        self.service = None
        self.credentials = None
        self.refresh_margin = timedelta(seconds=get_config("TOKEN_REFRESH_MARGIN", 300))

    def _build_credentials(self, credentials) -> Credentials:
        expiry = credentials.expires_at
        if expiry is not None and timezone.is_aware(expiry):
            # google-auth compares against naive UTC timestamps
            expiry = expiry.astimezone(dt_timezone.utc).replace(tzinfo=None)

        return Credentials(
            token=credentials.access_token or None,
            refresh_token=credentials.refresh_token or None,
            token_uri=GMAIL_TOKEN_URI,
            client_id=get_config("GMAIL_CLIENT_ID"),
            client_secret=get_config("GMAIL_CLIENT_SECRET"),
            scopes=GMAIL_SCOPES,
            expiry=expiry,
        )

    def _needs_refresh(self, credentials) -> bool:
        if not credentials.access_token:
            return True
        if credentials.expires_at is None:
            return False
        return credentials.expires_at <= timezone.now() + self.refresh_margin

    def _refresh(self) -> None:
        if not self.credentials.refresh_token:
            raise AuthenticationError("Gmail token expired and no refresh token stored")
        if not self.credentials.client_id or not self.credentials.client_secret:
            raise ConfigurationError("Missing Gmail OAuth client configuration")

        try:
            self.credentials.refresh(Request())
        except RefreshError as e:
            logger.error("Gmail token refresh failed", extra_context={"error": str(e)})
            raise AuthenticationError(f"Gmail token refresh failed: {e!s}") from e
        except TransportError as e:
            raise ConnectionError(f"Gmail token endpoint unreachable: {e!s}") from e

        expiry = self.credentials.expiry
        if expiry is not None:
            expiry = expiry.replace(tzinfo=dt_timezone.utc)
        logger.info("Refreshed Gmail access token")
        self._token_refreshed(
            self.credentials.token, self.credentials.refresh_token, expiry,
        )

    def connect(self, credentials) -> None:
        """Build an authenticated Gmail service.

        Raises
        ------
            AuthenticationError: If the token is unusable and cannot be refreshed
            ConnectionError: If the API cannot be reached

        """
        logger.info("Connecting to Gmail API")
        self.credentials = self._build_credentials(credentials)

        if self._needs_refresh(credentials):
            self._refresh()

        try:
            self.service = build(
                "gmail", "v1", credentials=self.credentials, cache_discovery=False,
            )
        except HttpError as e:
            raise self._translate(e) from e
        except Exception as e:
            raise ConnectionError(f"Failed to connect to Gmail API: {e!s}") from e

    def _translate(self, error: HttpError):
        status = _http_status(error)
        if status in (401, 403):
            return AuthenticationError(f"Gmail API rejected credentials: {error!s}")
        return ConnectionError(f"Gmail API error ({status}): {error!s}")

    def _messages(self):
        if not self.service:
            raise ConnectionError("Gmail session is not connected")
        return self.service.users().messages()

    def list_recent(self, limit: int) -> list[MessageRef]:
        """Page through the inbox listing until ``limit`` refs are collected."""
        refs: list[MessageRef] = []
        page_token = None

        while len(refs) < limit:
            try:
                response = (
                    self._messages()
                    .list(
                        userId="me",
                        labelIds=["INBOX"],
                        maxResults=min(limit - len(refs), MAX_PAGE_SIZE),
                        pageToken=page_token,
                    )
                    .execute()
                )
            except HttpError as e:
                raise self._translate(e) from e

            for item in response.get("messages", []):
                refs.append(
                    MessageRef(provider_id=item["id"], thread_id=item.get("threadId", "")),
                )

            page_token = response.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Found {len(refs)} recent Gmail messages")
        return refs[:limit]

    def fetch(self, refs: list[MessageRef]) -> FetchResult:
        result = FetchResult()
        for ref in refs:
            try:
                message = (
                    self._messages()
                    .get(userId="me", id=ref.provider_id, format="raw")
                    .execute()
                )
            except HttpError as e:
                if _http_status(e) == 404:
                    result.failures.append(FetchFailure(ref, "message no longer exists"))
                    continue
                raise self._translate(e) from e

            try:
                result.messages.append(self._parse_gmail_message(ref, message))
            except ParseError as e:
                logger.warning(
                    "Failed to parse Gmail message",
                    extra_context={"gmail_id": ref.provider_id, "error": str(e)},
                )
                result.failures.append(FetchFailure(ref, str(e)))
        return result

    def _parse_gmail_message(self, ref: MessageRef, message: dict[str, Any]):
        raw = message.get("raw")
        if not raw:
            raise ParseError("Gmail message has no raw payload")

        try:
            raw_bytes = base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4))
        except (ValueError, TypeError) as e:
            raise ParseError(f"Invalid base64 payload: {e!s}") from e

        labels = set(message.get("labelIds", []))
        return parse_raw_message(
            raw_bytes,
            external_id=message.get("id") or ref.provider_id,
            thread_id=message.get("threadId") or ref.thread_id,
            folder="INBOX",
            seen="UNREAD" not in labels,
            flagged="STARRED" in labels,
            size=message.get("sizeEstimate"),
        )

    def mark_seen(self, refs: list[MessageRef]) -> None:
        if not refs:
            return
        try:
            self._messages().batchModify(
                userId="me",
                body={
                    "ids": [ref.provider_id for ref in refs],
                    "removeLabelIds": ["UNREAD"],
                },
            ).execute()
        except HttpError as e:
            raise self._translate(e) from e

    def disconnect(self) -> None:
        """For API-based connections, we simply drop the service."""
        self.service = None
        self.credentials = None
