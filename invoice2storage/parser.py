"""MIME parsing adapter — raw RFC 822 bytes → :class:`ParsedEmail`.

Only the top-level subparts are exposed; attachments nested inside
further multipart containers are not looked at.
"""

from __future__ import annotations

import email
import email.errors
import email.message
import email.policy
from dataclasses import dataclass, field

# Defects that mean the transfer encoding could not be reversed.
_UNDECODABLE_DEFECTS = (email.errors.InvalidBase64LengthDefect,)


class MailParseError(Exception):
    """Raw bytes could not be parsed into an email message."""


class AttachmentDecodeError(Exception):
    """A MIME part's body could not be transfer-decoded."""


@dataclass
class MimePart:
    """One direct subpart of a parsed message."""

    mimetype: str
    disposition: str | None
    disposition_params: dict[str, str]
    _message: email.message.Message = field(repr=False)

    @property
    def is_attachment(self) -> bool:
        return self.disposition == "attachment"

    def body(self) -> bytes:
        """Return the transfer-decoded body bytes.

        Raises :class:`AttachmentDecodeError` when the encoded body is
        damaged beyond repair.
        """
        seen = len(self._message.defects)
        try:
            payload = self._message.get_payload(decode=True)
        except (ValueError, LookupError) as exc:
            raise AttachmentDecodeError(str(exc)) from exc
        new_defects = self._message.defects[seen:]
        for defect in new_defects:
            if isinstance(defect, _UNDECODABLE_DEFECTS):
                raise AttachmentDecodeError(type(defect).__name__)
        if not isinstance(payload, bytes):
            raise AttachmentDecodeError("part has no decodable payload")
        return payload


@dataclass
class ParsedEmail:
    """Headers and direct subparts of a message."""

    headers: list[tuple[str, str]]
    parts: list[MimePart] = field(default_factory=list)

    def header(self, name: str) -> str | None:
        """First value of header *name* (case-insensitive)."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None


class MimeParser:
    """Stateless parser: raw RFC 822 bytes → ParsedEmail."""

    def parse(self, raw_bytes: bytes) -> ParsedEmail:
        if not raw_bytes.strip():
            raise MailParseError("empty message")
        try:
            msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)
            headers = [(k, str(v)) for k, v in msg.items()]
            parts = [self._make_part(p) for p in self._subparts(msg)]
        except (email.errors.MessageError, ValueError, LookupError) as exc:
            raise MailParseError(str(exc)) from exc

        if not headers:
            raise MailParseError("message has no headers")

        return ParsedEmail(headers=headers, parts=parts)

    def _subparts(self, msg: email.message.Message) -> list[email.message.Message]:
        if not msg.is_multipart():
            return []
        payload = msg.get_payload()
        return list(payload) if isinstance(payload, list) else []

    def _make_part(self, part: email.message.Message) -> MimePart:
        header = part.get("Content-Disposition")
        params: dict[str, str] = {}
        if header is not None:
            params = {k: str(v) for k, v in getattr(header, "params", {}).items()}
        return MimePart(
            mimetype=part.get_content_type(),
            disposition=part.get_content_disposition(),
            disposition_params=params,
            _message=part,
        )
