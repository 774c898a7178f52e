"""
Outlook adapter implementation.

Polls the inbox of an Outlook/Office 365 mailbox through the Microsoft Graph
REST API. Access tokens are renewed with the stored refresh token via MSAL.
"""

from datetime import datetime, timedelta
from typing import Any

import msal
import requests
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from triage_core.utils.logging import ContextLogger

from ...config import get_config
from ...exceptions import (
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    ParseError,
)
from ..utils import format_address, normalize_email_address, sanitize_subject
from .base import BaseInboundAdapter, FetchFailure, FetchResult, MessageRef, RawMessage

logger = ContextLogger(__name__)

GRAPH_ENDPOINT = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPES = ["https://graph.microsoft.com/Mail.ReadWrite"]
MAX_PAGE_SIZE = 50
MESSAGE_FIELDS = ",".join(
    [
        "id",
        "internetMessageId",
        "conversationId",
        "subject",
        "from",
        "toRecipients",
        "ccRecipients",
        "body",
        "receivedDateTime",
        "isRead",
        "flag",
        "hasAttachments",
    ],
)


class GraphNotFoundError(ConnectionError):
    """A Graph resource that no longer exists."""


class OutlookAdapter(BaseInboundAdapter):
    """
    Microsoft Graph adapter.

    A 401 from Graph triggers exactly one token refresh and retry; a second
    401 is reported as an ``AuthenticationError``.
    """

    def __init__(self, account, on_token_refresh=None):
        super().__init__(account, on_token_refresh)
        self.access_token = None
        self.refresh_token = None
        self.session = None
        self.connection_timeout = get_config("DEFAULT_TIMEOUT", 30)
        self.refresh_margin = timedelta(seconds=get_config("TOKEN_REFRESH_MARGIN", 300))

    def _msal_app(self):
        client_id = get_config("MICROSOFT_CLIENT_ID")
        client_secret = get_config("MICROSOFT_CLIENT_SECRET")
        if not client_id or not client_secret:
            raise ConfigurationError("Missing Microsoft OAuth client configuration")

        tenant = get_config("MICROSOFT_TENANT_ID", "common")
        return msal.ConfidentialClientApplication(
            client_id=client_id,
            client_credential=client_secret,
            authority=f"https://login.microsoftonline.com/{tenant}",
        )

    def _refresh(self) -> None:
        """Exchange the refresh token for a new access token."""
        if not self.refresh_token:
            raise AuthenticationError("Outlook token expired and no refresh token stored")

        try:
            result = self._msal_app().acquire_token_by_refresh_token(
                self.refresh_token, scopes=GRAPH_SCOPES,
            )
        except requests.RequestException as e:
            raise ConnectionError(f"Microsoft token endpoint unreachable: {e!s}") from e

        if not result or "error" in result or "access_token" not in result:
            description = (result or {}).get("error_description", "unknown error")
            logger.error(
                "Outlook token refresh failed", extra_context={"error": description},
            )
            raise AuthenticationError(f"Error refreshing token: {description}")

        self.access_token = result["access_token"]
        self.refresh_token = result.get("refresh_token") or self.refresh_token
        expires_at = timezone.now() + timedelta(seconds=int(result.get("expires_in", 3600)))
        logger.info("Refreshed Outlook access token")
        self._token_refreshed(self.access_token, self.refresh_token, expires_at)

    def connect(self, credentials) -> None:
        """Prepare an authenticated Graph session.

        Raises:
            AuthenticationError: If no usable token can be obtained
        """
        logger.info("Connecting to Microsoft Graph API")
        self.access_token = credentials.access_token or None
        self.refresh_token = credentials.refresh_token or None
        self.session = requests.Session()

        expires_at = credentials.expires_at
        if not self.access_token or (
            expires_at is not None and expires_at <= timezone.now() + self.refresh_margin
        ):
            self._refresh()

    def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        if not self.session:
            raise ConnectionError("Outlook session is not connected")

        for attempt in range(2):
            headers = {
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
            }
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=headers,
                    timeout=self.connection_timeout,
                    **kwargs,
                )
            except requests.RequestException as e:
                raise ConnectionError(f"HTTP error calling Microsoft Graph: {e!s}") from e

            if response.status_code == 401 and attempt == 0:
                logger.info("Graph returned 401, refreshing token and retrying")
                self._refresh()
                continue
            if response.status_code in (401, 403):
                raise AuthenticationError(f"Authentication failed: {response.text}")
            if response.status_code == 404:
                raise GraphNotFoundError(f"Microsoft Graph resource not found: {url}")
            if response.status_code >= 400:
                raise ConnectionError(
                    f"Microsoft Graph error ({response.status_code}): {response.text}",
                )
            if response.status_code == 204 or not response.content:
                return {}
            return response.json()

        raise AuthenticationError("Authentication failed after token refresh")

    def list_recent(self, limit: int) -> list[MessageRef]:
        """Walk ``@odata.nextLink`` pages until ``limit`` refs are collected."""
        refs: list[MessageRef] = []
        url = f"{GRAPH_ENDPOINT}/me/mailFolders/inbox/messages"
        params = {
            "$top": min(limit, MAX_PAGE_SIZE),
            "$select": "id,conversationId",
            "$orderby": "receivedDateTime desc",
        }

        while url and len(refs) < limit:
            data = self._request("GET", url, params=params)
            for item in data.get("value", []):
                refs.append(
                    MessageRef(
                        provider_id=item["id"], thread_id=item.get("conversationId", ""),
                    ),
                )
            url = data.get("@odata.nextLink")
            # nextLink already carries the query string
            params = None

        logger.debug(f"Found {len(refs)} recent Outlook messages")
        return refs[:limit]

    def fetch(self, refs: list[MessageRef]) -> FetchResult:
        result = FetchResult()
        for ref in refs:
            try:
                data = self._request(
                    "GET",
                    f"{GRAPH_ENDPOINT}/me/messages/{ref.provider_id}",
                    params={"$select": MESSAGE_FIELDS},
                )
                result.messages.append(self._parse_graph_message(ref, data))
            except GraphNotFoundError:
                result.failures.append(FetchFailure(ref, "message no longer exists"))
            except ParseError as e:
                logger.warning(
                    "Failed to parse Outlook message",
                    extra_context={"graph_id": ref.provider_id, "error": str(e)},
                )
                result.failures.append(FetchFailure(ref, str(e)))
        return result

    def _parse_graph_message(self, ref: MessageRef, data: dict[str, Any]) -> RawMessage:
        if not data:
            raise ParseError("Empty Graph message")

        sender = (data.get("from") or {}).get("emailAddress") or {}
        sender_address = sender.get("address", "")
        sender_name = sender.get("name", "")

        body = data.get("body") or {}
        content = body.get("content") or ""
        is_html = (body.get("contentType") or "").lower() == "html"

        received_at = self._parse_received(data.get("receivedDateTime"))

        return RawMessage(
            external_id=data.get("internetMessageId") or data.get("id") or ref.provider_id,
            thread_id=data.get("conversationId") or ref.thread_id,
            from_address=format_address(sender_name, sender_address),
            sender_email=normalize_email_address(sender_address),
            from_name=sender_name,
            to_addresses=self._addresses(data.get("toRecipients")),
            cc_addresses=self._addresses(data.get("ccRecipients")),
            subject=sanitize_subject(data.get("subject") or ""),
            body_text="" if is_html else content,
            body_html=content if is_html else "",
            received_at=received_at,
            seen=bool(data.get("isRead")),
            flagged=(data.get("flag") or {}).get("flagStatus") == "flagged",
            size=len(content.encode("utf-8")),
            has_attachments=bool(data.get("hasAttachments")),
            folder="INBOX",
        )

    def _addresses(self, recipients) -> list[str]:
        return [
            r["emailAddress"]["address"]
            for r in recipients or []
            if (r.get("emailAddress") or {}).get("address")
        ]

    def _parse_received(self, value) -> datetime:
        if not value:
            return timezone.now()
        parsed = parse_datetime(value)
        if parsed is None:
            raise ParseError(f"Invalid receivedDateTime: {value}")
        if timezone.is_naive(parsed):
            parsed = timezone.make_aware(parsed, timezone.get_fixed_timezone(0))
        return parsed

    def mark_seen(self, refs: list[MessageRef]) -> None:
        for ref in refs:
            self._request(
                "PATCH",
                f"{GRAPH_ENDPOINT}/me/messages/{ref.provider_id}",
                json={"isRead": True},
            )

    def disconnect(self) -> None:
        if self.session:
            self.session.close()
        self.session = None
        self.access_token = None
        self.refresh_token = None
