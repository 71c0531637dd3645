from __future__ import annotations

from email.message import EmailMessage
from pathlib import Path
from typing import Any, Mapping

from graph_mail.auth.token_manager import TokenManager
from graph_mail.common.config import GRAPH_DELIVERY_METHOD
from graph_mail.credentials.env import delivery_method_from_env, load_config_from_env
from graph_mail.credentials.models import GraphMailConfig
from graph_mail.logging import get_logger
from graph_mail.message.builder import EmailMessageBuilder
from graph_mail.probe import ConnectionProbe, ProbeResult
from graph_mail.transport.ms_graph_transport import MSGraphTransport
from graph_mail.transport.registry import DeliveryMethodRegistry

logger = get_logger(__name__)

TEST_EMAIL_SUBJECT = "Test email via Microsoft Graph"
TEST_EMAIL_BODY = "This is a test email sent through the Microsoft Graph delivery method."


class GraphMailClient:
    """Entry point for a host application: configuration, sending, connection tests.

    The client owns one TokenManager, so every transport it creates shares the
    same token cache.
    """

    def __init__(
        self,
        config: GraphMailConfig | Mapping[str, Any] | None = None,
        *,
        token_manager: TokenManager | None = None,
    ) -> None:
        self.token_manager = token_manager or TokenManager()
        self.config = GraphMailConfig()
        if isinstance(config, GraphMailConfig):
            self.config = config
        elif config:
            self.update_config(config)
        self.transport = MSGraphTransport(self.config, self.token_manager)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **kwargs: Any) -> "GraphMailClient":
        return cls(load_config_from_env(environ), **kwargs)

    def update_config(self, config: Mapping[str, Any] | None = None, **kwargs: Any) -> GraphMailConfig:
        data: dict[str, Any] = {}
        if config:
            data.update(config)
        data.update(kwargs)

        unknown = set(data) - set(GraphMailConfig.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown Graph mail config field(s): {', '.join(sorted(unknown))}")

        self.config = self.config.merged(data)
        if hasattr(self, "transport"):
            self.transport.config = self.config
        return self.config

    def valid(self) -> bool:
        return self.config.valid()

    def message(
        self,
        *,
        to: Any,
        cc: Any | None = None,
        bcc: Any | None = None,
        reply_to: Any | None = None,
        subject: str | None = None,
        body_text: str | None = None,
        body_html: str | None = None,
        attachments: list[str | Path] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> EmailMessage:
        """Build an EmailMessage from the configured sender."""
        if not self.config.sender_email:
            raise ValueError("sender_email must be configured before building a message.")

        builder = EmailMessageBuilder().set_from(self.config.sender_email).add_to(to)
        if cc:
            builder.add_cc(cc)
        if bcc:
            builder.add_bcc(bcc)
        if reply_to:
            builder.add_reply_to(reply_to)
        if subject is not None:
            builder.set_subject(subject)
        if body_text is not None:
            builder.set_text_body(body_text)
        if body_html is not None:
            builder.set_html_body(body_html)

        for attachment in attachments or []:
            builder.add_attachment(attachment)

        for name, value in (headers or {}).items():
            builder.add_header(name, value)

        return builder.build()

    def deliver(self, msg: EmailMessage, settings: Mapping[str, Any] | None = None) -> None:
        self.transport.deliver(msg, settings)

    def send(
        self,
        to: Any,
        subject: str | None = None,
        body_html: str | None = None,
        body_text: str | None = None,
        attachments: list[str | Path] | None = None,
        *,
        cc: Any | None = None,
        bcc: Any | None = None,
        reply_to: Any | None = None,
        headers: Mapping[str, str] | None = None,
        settings: Mapping[str, Any] | None = None,
    ) -> EmailMessage:
        """Build and send an EmailMessage through Graph."""
        message = self.message(
            to=to,
            cc=cc,
            bcc=bcc,
            reply_to=reply_to,
            subject=subject,
            body_text=body_text,
            body_html=body_html,
            attachments=attachments,
            headers=headers,
        )
        self.deliver(message, settings)
        return message

    def test_connection(self) -> ProbeResult:
        return ConnectionProbe().probe(self.config)

    def send_test_email(self, to: str) -> EmailMessage:
        return self.send(to, subject=TEST_EMAIL_SUBJECT, body_text=TEST_EMAIL_BODY)

    def clear_token_cache(self) -> None:
        self.token_manager.clear_cache()

    def register(
        self,
        registry: DeliveryMethodRegistry,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Add the Graph delivery method to a host registry.

        Graph becomes active when the host reloads with "msgraph" selected, or
        right away when EMAIL_DELIVERY_METHOD=msgraph and the config is valid.
        """
        registry.register(GRAPH_DELIVERY_METHOD, self.transport)
        registry.add_reload_hook(self._on_reload)

        if delivery_method_from_env(environ) == GRAPH_DELIVERY_METHOD and self.valid():
            registry.activate(GRAPH_DELIVERY_METHOD, self.config.to_dict())
            logger.info("MS Graph Mail: Auto-configured as delivery method via EMAIL_DELIVERY_METHOD env")

    def _on_reload(self, registry: DeliveryMethodRegistry, name: str) -> None:
        if name != GRAPH_DELIVERY_METHOD:
            return
        logger.info("MS Graph Mail: Configuring msgraph delivery method")
        registry.activate(GRAPH_DELIVERY_METHOD, self.config.to_dict())
