from __future__ import annotations

from email.message import EmailMessage
from email.utils import formataddr, getaddresses, parseaddr
from pathlib import Path
from typing import Iterable, Self

from graph_mail.message.models import Attachment

AddressInput = str | Iterable[str]

_RESERVED_HEADERS = {"from", "to", "cc", "bcc", "reply-to", "subject"}


class EmailMessageBuilder:
    """
    Structured builder for the EmailMessage instances handed to a transport.

    Addresses are normalized and de-duplicated per header, text and HTML
    bodies become a multipart/alternative when both are set, and attachments
    get a MIME type guessed from their filename unless one is given.
    """

    def __init__(self) -> None:
        self._from: str | None = None
        self._recipients: dict[str, list[str]] = {"To": [], "Cc": [], "Bcc": [], "Reply-To": []}
        self._seen: dict[str, set[str]] = {header: set() for header in self._recipients}
        self._subject: str | None = None
        self._text_body: str | None = None
        self._html_body: str | None = None
        self._attachments: list[Attachment] = []
        self._headers: list[tuple[str, str]] = []

    # ---------------
    # Address setters
    # ---------------
    def set_from(self, address: str) -> Self:
        self._from = self._normalize_single_address(address)
        return self

    def add_to(self, addresses: AddressInput) -> Self:
        return self._add_recipients("To", addresses)

    def add_cc(self, addresses: AddressInput) -> Self:
        return self._add_recipients("Cc", addresses)

    def add_bcc(self, addresses: AddressInput) -> Self:
        return self._add_recipients("Bcc", addresses)

    def add_reply_to(self, addresses: AddressInput) -> Self:
        return self._add_recipients("Reply-To", addresses)

    # -------------
    # Content
    # -------------
    def set_subject(self, subject: str | None) -> Self:
        self._subject = subject.strip() if subject is not None else None
        return self

    def set_text_body(self, body: str) -> Self:
        self._text_body = body
        return self

    def set_html_body(self, body: str) -> Self:
        self._html_body = body
        return self

    # -------------
    # Attachments
    # -------------
    def add_attachment(
        self,
        path: str | Path,
        *,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> Self:
        self._attachments.append(Attachment.from_path(path, filename=filename, content_type=content_type))
        return self

    def add_attachment_bytes(
        self,
        content: bytes,
        *,
        filename: str,
        content_type: str | None = None,
    ) -> Self:
        self._attachments.append(Attachment.from_bytes(content, filename=filename, content_type=content_type))
        return self

    # -------------
    # Headers
    # -------------
    def add_header(self, name: str, value: str) -> Self:
        if not name:
            raise ValueError("Header name must be provided.")
        if name.lower() in _RESERVED_HEADERS:
            raise ValueError(f"Header '{name}' is managed by the builder and cannot be set manually.")
        self._headers.append((name, value))
        return self

    # -------------
    # Build
    # -------------
    def build(self) -> EmailMessage:
        self._validate_required_fields()

        msg = EmailMessage()
        msg["From"] = self._from
        for header, addresses in self._recipients.items():
            if addresses:
                msg[header] = ", ".join(addresses)
        if self._subject:
            msg["Subject"] = self._subject

        for name, value in self._headers:
            msg[name] = value

        if self._text_body is not None:
            msg.set_content(self._text_body)

        if self._html_body is not None:
            if self._text_body is None:
                msg.set_content(self._html_body, subtype="html")
            else:
                msg.add_alternative(self._html_body, subtype="html")

        for attachment in self._attachments:
            msg.add_attachment(
                attachment.content,
                maintype=attachment.maintype,
                subtype=attachment.subtype,
                filename=attachment.filename,
            )

        return msg

    # -------------
    # helpers
    # -------------
    def _add_recipients(self, header: str, addresses: AddressInput) -> Self:
        target = self._recipients[header]
        seen = self._seen[header]
        for formatted in self._normalize_addresses(addresses):
            addr_only = parseaddr(formatted)[1].lower()
            if addr_only in seen:
                continue
            target.append(formatted)
            seen.add(addr_only)
        return self

    def _normalize_single_address(self, address: str) -> str:
        normalized = self._normalize_addresses(address)
        if len(normalized) != 1:
            raise ValueError("Exactly one From address must be provided.")
        return normalized[0]

    def _normalize_addresses(self, addresses: AddressInput) -> list[str]:
        raw = [addresses] if isinstance(addresses, str) else list(addresses)

        normalized: list[str] = []
        seen: set[str] = set()
        for name, addr in getaddresses(raw):
            addr = addr.strip()
            if not addr:
                continue
            if "@" not in addr:
                raise ValueError(f"Invalid email address: {addr}")
            addr_key = addr.lower()
            if addr_key in seen:
                continue
            seen.add(addr_key)
            normalized.append(formataddr((name, addr)) if name else addr)

        if not normalized:
            raise ValueError("At least one email address is required.")
        return normalized

    def _validate_required_fields(self) -> None:
        if not self._from:
            raise ValueError("From address must be set before building a message.")

        if not (self._recipients["To"] or self._recipients["Cc"] or self._recipients["Bcc"]):
            raise ValueError("At least one recipient (To, Cc, or Bcc) is required.")

        if self._text_body is None and self._html_body is None and not self._attachments:
            raise ValueError("Message content is empty. Provide a text or HTML body, or at least one attachment.")
