"""
Parsing of RFC 822 messages into provider-neutral ``RawMessage`` objects.

Only what triage needs is extracted: envelope, subject, the first text/plain
and text/html bodies, and whether any attachment is present.
"""

import email
import email.message
import re
from datetime import datetime
from datetime import timezone as dt_timezone
from email.header import decode_header
from email.utils import parseaddr, parsedate_to_datetime

from django.utils import timezone

from triage_core.utils.logging import ContextLogger

from ..channels import utils
from ..channels.adapters.base import RawMessage
from ..exceptions import ParseError

logger = ContextLogger(__name__)


class EmailParser:
    """
    Utility class for turning raw MIME bytes into a ``RawMessage``.
    Handles encoded headers, unknown charsets and single or multipart bodies.
    """

    def parse(
        self,
        raw_bytes: bytes,
        *,
        external_id: str | None = None,
        fallback_id: str | None = None,
        thread_id: str = "",
        folder: str = "INBOX",
        seen: bool = False,
        flagged: bool = False,
        size: int | None = None,
    ):
        """
        Parse a message.

        Args:
            raw_bytes: Full RFC 822 message
            external_id: Provider id to use as the dedup key, if the provider has one
            fallback_id: Dedup key used when neither external_id nor Message-ID exist
            thread_id: Provider thread id, if any
            folder: Mailbox the message was listed from
            seen: Server-side read flag
            flagged: Server-side starred flag
            size: Size reported by the server; defaults to len(raw_bytes)

        Returns:
            RawMessage

        Raises:
            ParseError: If the bytes are not a parseable message
        """
        if not raw_bytes:
            raise ParseError("Empty message body")

        try:
            message = email.message_from_bytes(raw_bytes)
        except Exception as e:
            raise ParseError(f"Unparseable message: {e!s}") from e

        if not message.keys():
            raise ParseError("Message has no headers")

        from_header = self._decode_header(message.get("From", ""))
        from_name, from_email = parseaddr(from_header)
        message_id = utils.clean_message_id(message.get("Message-ID", ""))
        body_text, body_html, has_attachments = self._extract_content(message)

        return RawMessage(
            external_id=external_id or message_id or fallback_id or "",
            thread_id=thread_id or self._thread_hint(message),
            from_address=from_header,
            sender_email=utils.normalize_email_address(from_email or from_header),
            from_name=from_name.strip("\"'"),
            to_addresses=utils.parse_address_list(message.get_all("To", [])),
            cc_addresses=utils.parse_address_list(message.get_all("Cc", [])),
            subject=utils.sanitize_subject(
                self._decode_header(message.get("Subject", "")),
            ),
            body_text=body_text,
            body_html=body_html,
            received_at=self._parse_date(message.get("Date")),
            seen=seen,
            flagged=flagged,
            size=size if size is not None else len(raw_bytes),
            has_attachments=has_attachments,
            folder=folder,
        )

    def _thread_hint(self, message: email.message.Message) -> str:
        """Use the root of the References chain as a thread id."""
        references = str(message.get("References") or message.get("In-Reply-To") or "")
        ids = re.findall(r"<([^>]+)>", references)
        return ids[0] if ids else ""

    def _decode_header(self, header_value) -> str:
        """Decode an email header that might be encoded."""
        if not header_value:
            return ""

        decoded_parts = []
        try:
            for part, encoding in decode_header(str(header_value)):
                if isinstance(part, bytes):
                    try:
                        decoded_parts.append(
                            part.decode(encoding or "utf-8", errors="replace"),
                        )
                    except LookupError:
                        decoded_parts.append(part.decode("utf-8", errors="replace"))
                else:
                    decoded_parts.append(part)
        except Exception as e:
            logger.warning(f"Error decoding header '{header_value}': {e}")
            return str(header_value)

        return "".join(decoded_parts).strip()

    def _parse_date(self, date_string) -> datetime:
        """Parse an email date header, falling back to now."""
        if not date_string:
            return timezone.now()

        try:
            parsed_date = parsedate_to_datetime(str(date_string))
        except (TypeError, ValueError) as e:
            logger.warning(f"Error parsing date '{date_string}': {e}")
            return timezone.now()

        if parsed_date.tzinfo is None:
            parsed_date = timezone.make_aware(parsed_date, dt_timezone.utc)
        return parsed_date

    def _extract_content(self, message: email.message.Message):
        """Return (text, html, has_attachments)."""
        body_text = ""
        body_html = ""
        has_attachments = False

        parts = message.walk() if message.is_multipart() else [message]
        for part in parts:
            if part.is_multipart():
                continue

            disposition = (part.get("Content-Disposition") or "").lower()
            content_type = part.get_content_type()

            if "attachment" in disposition or (
                part.get_filename() and not content_type.startswith("text/")
            ):
                has_attachments = True
                continue

            if content_type == "text/plain" and not body_text:
                body_text = self._decode_part(part)
            elif content_type == "text/html" and not body_html:
                body_html = self._decode_part(part)

        return body_text, body_html, has_attachments

    def _decode_part(self, part: email.message.Message) -> str:
        """Decode the content of an email part."""
        content = part.get_payload(decode=True)
        if content is None:
            return ""

        charset = part.get_content_charset() or "utf-8"
        try:
            return content.decode(charset, errors="replace").strip()
        except LookupError:
            return content.decode("utf-8", errors="replace").strip()


_parser = EmailParser()


def parse_raw_message(raw_bytes: bytes, **kwargs):
    """Convenience wrapper around :meth:`EmailParser.parse`."""
    return _parser.parse(raw_bytes, **kwargs)
