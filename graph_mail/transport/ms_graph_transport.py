from __future__ import annotations

import base64
from email.message import EmailMessage
from email.utils import getaddresses
from typing import Any, Dict, Mapping
from urllib.parse import quote

import requests

from graph_mail.auth.token_manager import TokenManager
from graph_mail.credentials.models import GraphMailConfig
from graph_mail.errors import (
    AuthenticationError,
    ConfigurationError,
    DeliveryError,
    GraphMailError,
    InvalidRequestError,
    PermissionDeniedError,
    TransportError,
    UnexpectedResponseError,
)
from graph_mail.logging import get_logger

logger = get_logger(__name__)

MAX_ERROR_DETAIL = 500


class MSGraphTransport:
    """
    Delivers EmailMessage objects through the Graph ``sendMail`` endpoint of
    the configured sender mailbox, authenticating with an app-only token.

    Usage:

        transport = MSGraphTransport(config, token_manager)
        transport.deliver(msg)
    """

    GRAPH_SENDMAIL_URL = "https://graph.microsoft.com/v1.0/users/{sender}/sendMail"
    FILE_ATTACHMENT_TYPE = "#microsoft.graph.fileAttachment"
    CONNECT_TIMEOUT = 10
    READ_TIMEOUT = 60

    def __init__(self, config: GraphMailConfig, token_manager: TokenManager | None = None) -> None:
        self.config = config
        self.token_manager = token_manager or TokenManager()

    def deliver(self, msg: EmailMessage, settings: Mapping[str, Any] | None = None) -> None:
        """Send ``msg``; ``settings`` override the base config for this call only.

        Every failure is raised as a DeliveryError (or subclass) whose ``kind``
        names the cause.
        """
        config = self.config.merged(settings)
        try:
            missing = config.missing_fields()
            if missing:
                raise ConfigurationError(missing, f"MS Graph Mail not configured: missing {', '.join(missing)}")

            access_token = self.token_manager.access_token(config)
            payload = self.build_payload(msg, config)
            self._send_via_graph(config, access_token, payload)
        except DeliveryError as exc:
            logger.error("MS Graph Mail: Delivery failed: %s", exc)
            raise
        except GraphMailError as exc:
            logger.error("MS Graph Mail: Delivery failed: %s", exc)
            raise DeliveryError(f"MS Graph delivery failed: {exc}", kind=exc.kind) from exc
        except Exception as exc:
            logger.error("MS Graph Mail: Delivery failed: %s", exc)
            raise DeliveryError(f"MS Graph delivery failed: {exc}") from exc

        logger.info("MS Graph Mail: Successfully sent email to %s", ", ".join(_addresses(msg, "To")))

    def __call__(self, msg: EmailMessage, settings: Mapping[str, Any] | None = None) -> None:
        self.deliver(msg, settings)

    # -------------------------
    # payload
    # -------------------------

    def build_payload(self, msg: EmailMessage, config: GraphMailConfig | None = None) -> Dict[str, Any]:
        config = config or self.config
        message = {
            "subject": _header(msg, "Subject"),
            "body": _body(msg),
            "from": _email_address(config.sender_email, config.sender_name),
            "toRecipients": _recipients(msg, "To"),
            "ccRecipients": _recipients(msg, "Cc"),
            "bccRecipients": _recipients(msg, "Bcc"),
            "replyTo": _recipients(msg, "Reply-To"),
            "attachments": self._attachments(msg),
        }
        return {
            "message": {key: value for key, value in message.items() if value is not None},
            "saveToSentItems": bool(config.save_to_sent_items),
        }

    def _attachments(self, msg: EmailMessage) -> list[dict[str, Any]]:
        attachments = []
        for part in msg.iter_attachments():
            content = part.get_payload(decode=True) or b""
            attachments.append({
                "@odata.type": self.FILE_ATTACHMENT_TYPE,
                "name": part.get_filename(),
                "contentType": part.get_content_type(),
                "contentBytes": base64.b64encode(content).decode("ascii"),
            })
        return attachments

    # -------------------------
    # HTTP
    # -------------------------

    def _send_via_graph(self, config: GraphMailConfig, access_token: str, payload: Dict[str, Any]) -> None:
        url = self.GRAPH_SENDMAIL_URL.format(sender=quote(config.sender_email or "", safe=""))
        try:
            resp = requests.post(
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=(self.CONNECT_TIMEOUT, self.READ_TIMEOUT),
            )
        except requests.RequestException as exc:
            raise TransportError(f"MS Graph request failed: {exc}") from exc

        self._handle_response(resp, config)

    def _handle_response(self, resp: requests.Response, config: GraphMailConfig) -> None:
        status = resp.status_code
        if 200 <= status < 300:
            return

        detail = parse_error(resp)
        if status == 401:
            # Next attempt must fetch a fresh token.
            self.token_manager.invalidate(config)
            raise AuthenticationError(f"Authentication failed: {detail}", status_code=status, detail=detail)
        if status == 403:
            raise PermissionDeniedError(
                f"Permission denied. Ensure Mail.Send permission is granted: {detail}",
                status_code=status,
                detail=detail,
            )
        if status == 400:
            raise InvalidRequestError(f"Invalid request: {detail}", status_code=status, detail=detail)
        raise UnexpectedResponseError(f"Unexpected response {status}: {detail}", status_code=status, detail=detail)


def parse_error(resp: requests.Response) -> str:
    """Extract the provider's error message from a Graph or token response."""
    text = resp.text or ""
    try:
        body = resp.json()
    except ValueError:
        body = None

    error: Any = None
    if isinstance(body, dict):
        nested = body.get("error")
        if isinstance(nested, dict):
            error = nested.get("message")
        error = error or body.get("error_description")
    return truncate(str(error or text), MAX_ERROR_DETAIL)


def truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 3] + "..."


def _header(msg: EmailMessage, name: str) -> str | None:
    value = msg.get(name)
    return str(value) if value is not None else None


def _email_address(address: str | None, name: str | None = None) -> dict[str, Any]:
    entry: dict[str, Any] = {"address": address}
    if name:
        entry["name"] = name
    return {"emailAddress": entry}


def _addresses(msg: EmailMessage, header: str) -> list[str]:
    return [addr for _, addr in getaddresses(msg.get_all(header) or []) if addr]


def _recipients(msg: EmailMessage, header: str) -> list[dict[str, Any]]:
    return [
        _email_address(addr, name)
        for name, addr in getaddresses(msg.get_all(header) or [])
        if addr
    ]


def _body(msg: EmailMessage) -> dict[str, str] | None:
    """
    Returns the Graph body for ``msg``: the HTML part if there is one, else the
    plain part, else a single-part body typed from its Content-Type. None when
    the message has no body.
    """
    if msg.is_multipart():
        html_part = msg.get_body(preferencelist=("html",))
        if html_part is not None:
            return {"contentType": "HTML", "content": _part_text(html_part)}
        text_part = msg.get_body(preferencelist=("plain",))
        if text_part is not None:
            return {"contentType": "Text", "content": _part_text(text_part)}
        return None

    content = _part_text(msg)
    if not content.strip():
        return None
    content_type = "HTML" if "html" in msg.get_content_type() else "Text"
    return {"contentType": content_type, "content": content}


def _part_text(part: EmailMessage) -> str:
    if part.get_payload() is None:
        return ""
    if part.get_content_maintype() == "text":
        return part.get_content()
    payload = part.get_payload(decode=True)
    if not payload:
        return ""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")
