import base64
from dataclasses import replace
from email.message import EmailMessage

import pytest
import requests

from conftest import DummyResponse
from graph_mail.auth.token_manager import TokenManager
from graph_mail.errors import (
    AuthenticationError,
    DeliveryError,
    InvalidRequestError,
    PermissionDeniedError,
    TransportError,
    UnexpectedResponseError,
)
from graph_mail.message.builder import EmailMessageBuilder
from graph_mail.transport.ms_graph_transport import MSGraphTransport, parse_error


def _html_message() -> EmailMessage:
    return (
        EmailMessageBuilder()
        .set_from("noreply@example.com")
        .add_to(["one@example.com", "Two Person <two@example.com>"])
        .set_subject("Report")
        .set_html_body("<p>Hello</p>")
        .add_attachment_bytes(b"hi", filename="a.txt", content_type="text/plain")
        .build()
    )


def test_payload_for_html_message_with_attachment(config):
    payload = MSGraphTransport(config).build_payload(_html_message())

    message = payload["message"]
    assert message["subject"] == "Report"
    assert message["body"]["contentType"] == "HTML"
    assert message["body"]["content"].strip() == "<p>Hello</p>"
    assert message["from"] == {"emailAddress": {"address": "noreply@example.com", "name": "Notifications"}}
    assert message["toRecipients"] == [
        {"emailAddress": {"address": "one@example.com"}},
        {"emailAddress": {"address": "two@example.com", "name": "Two Person"}},
    ]
    assert message["attachments"] == [
        {
            "@odata.type": "#microsoft.graph.fileAttachment",
            "name": "a.txt",
            "contentType": "text/plain",
            "contentBytes": "aGk=",
        }
    ]
    assert payload["saveToSentItems"] is True


def test_empty_recipient_lists_are_present(config):
    msg = EmailMessageBuilder().set_from("noreply@example.com").add_to("a@example.com").set_text_body("x").build()

    message = MSGraphTransport(config).build_payload(msg)["message"]

    assert message["ccRecipients"] == []
    assert message["bccRecipients"] == []
    assert message["replyTo"] == []
    assert message["attachments"] == []


def test_cc_bcc_and_reply_to_are_mapped(config):
    msg = (
        EmailMessageBuilder()
        .set_from("noreply@example.com")
        .add_to("a@example.com")
        .add_cc("c@example.com")
        .add_bcc("b@example.com")
        .add_reply_to("Help Desk <help@example.com>")
        .set_text_body("x")
        .build()
    )

    message = MSGraphTransport(config).build_payload(msg)["message"]

    assert message["ccRecipients"] == [{"emailAddress": {"address": "c@example.com"}}]
    assert message["bccRecipients"] == [{"emailAddress": {"address": "b@example.com"}}]
    assert message["replyTo"] == [{"emailAddress": {"address": "help@example.com", "name": "Help Desk"}}]


def test_html_preferred_over_text(config):
    msg = (
        EmailMessageBuilder()
        .set_from("noreply@example.com")
        .add_to("a@example.com")
        .set_text_body("plain")
        .set_html_body("<b>rich</b>")
        .build()
    )

    body = MSGraphTransport(config).build_payload(msg)["message"]["body"]

    assert body["contentType"] == "HTML"
    assert body["content"].strip() == "<b>rich</b>"


def test_text_body_when_no_html(config):
    msg = (
        EmailMessageBuilder()
        .set_from("noreply@example.com")
        .add_to("a@example.com")
        .set_text_body("plain only")
        .add_attachment_bytes(b"%PDF", filename="r.pdf")
        .build()
    )

    message = MSGraphTransport(config).build_payload(msg)["message"]

    assert message["body"]["contentType"] == "Text"
    assert message["body"]["content"].strip() == "plain only"
    assert message["attachments"][0]["contentType"] == "application/pdf"


def test_single_part_body_typed_from_content_type(config):
    msg = EmailMessage()
    msg["To"] = "a@example.com"
    msg["Content-Type"] = "application/xhtml+html"
    msg.set_payload("<p>raw</p>")

    body = MSGraphTransport(config).build_payload(msg)["message"]["body"]

    assert body == {"contentType": "HTML", "content": "<p>raw</p>"}


def test_message_without_body_omits_body(config):
    msg = EmailMessage()
    msg["To"] = "a@example.com"

    payload = MSGraphTransport(config).build_payload(msg)

    assert "body" not in payload["message"]
    assert "subject" not in payload["message"]
    assert payload["saveToSentItems"] is True


def test_save_to_sent_items_always_boolean(config):
    msg = EmailMessage()
    msg["To"] = "a@example.com"

    payload = MSGraphTransport(replace(config, save_to_sent_items=False)).build_payload(msg)

    assert payload["saveToSentItems"] is False


def test_sender_name_omitted_when_blank(config):
    msg = EmailMessage()
    payload = MSGraphTransport(replace(config, sender_name=None)).build_payload(msg)

    assert payload["message"]["from"] == {"emailAddress": {"address": "noreply@example.com"}}


def test_deliver_posts_to_sender_mailbox(fake_post, config):
    transport = MSGraphTransport(replace(config, sender_email="mail box@example.com"))

    transport.deliver(_html_message())

    assert len(fake_post.send_calls) == 1
    call = fake_post.send_calls[0]
    assert call["url"] == "https://graph.microsoft.com/v1.0/users/mail%20box%40example.com/sendMail"
    assert call["headers"]["Authorization"] == "Bearer token-1"
    assert call["headers"]["Content-Type"] == "application/json"
    assert call["timeout"] == (10, 60)
    assert call["json"]["message"]["subject"] == "Report"


def test_deliver_accepts_204(fake_post, config):
    fake_post.send_response = DummyResponse(204, None)

    MSGraphTransport(config).deliver(_html_message())


def test_settings_override_applies_to_one_call_only(fake_post, config):
    transport = MSGraphTransport(config)

    transport.deliver(_html_message(), {"sender_email": "other@example.com", "save_to_sent_items": "false"})

    call = fake_post.send_calls[0]
    assert "/users/other%40example.com/" in call["url"]
    assert call["json"]["saveToSentItems"] is False
    assert transport.config.sender_email == "noreply@example.com"
    assert transport.config.save_to_sent_items is True


def test_blank_overrides_are_ignored(fake_post, config):
    MSGraphTransport(config).deliver(_html_message(), {"sender_email": "", "tenant_id": None})

    assert "/users/noreply%40example.com/" in fake_post.send_calls[0]["url"]


def test_invalid_config_fails_before_network(fake_post, config):
    transport = MSGraphTransport(replace(config, sender_email=None))

    with pytest.raises(DeliveryError) as excinfo:
        transport.deliver(_html_message())

    assert excinfo.value.kind == "configuration"
    assert "sender_email" in str(excinfo.value)
    assert fake_post.calls == []


def test_token_error_wrapped_as_delivery_error(fake_post, config):
    fake_post.token_response = DummyResponse(401, {"error": "invalid_client", "error_description": "bad secret"})

    with pytest.raises(DeliveryError) as excinfo:
        MSGraphTransport(config).deliver(_html_message())

    assert excinfo.value.kind == "token"
    assert "bad secret" in str(excinfo.value)
    assert fake_post.send_calls == []


def test_401_invalidates_cached_token(fake_post, config):
    manager = TokenManager()
    transport = MSGraphTransport(config, manager)
    fake_post.send_response = DummyResponse(401, {"error": {"code": "InvalidAuthenticationToken", "message": "expired"}})

    with pytest.raises(AuthenticationError, match="Authentication failed: expired") as excinfo:
        transport.deliver(_html_message())
    assert excinfo.value.status_code == 401
    assert len(fake_post.token_calls) == 1

    fake_post.token_response = DummyResponse(200, {"access_token": "token-2", "expires_in": 3600})
    assert manager.access_token(config) == "token-2"
    assert len(fake_post.token_calls) == 2


@pytest.mark.parametrize(
    ("status", "error_cls", "prefix"),
    [
        (403, PermissionDeniedError, "Permission denied"),
        (400, InvalidRequestError, "Invalid request"),
        (500, UnexpectedResponseError, "Unexpected response 500"),
    ],
)
def test_error_statuses_are_classified(fake_post, config, status, error_cls, prefix):
    fake_post.send_response = DummyResponse(status, {"error": {"message": "provider says no"}})
    manager = TokenManager()

    with pytest.raises(error_cls) as excinfo:
        MSGraphTransport(config, manager).deliver(_html_message())

    assert str(excinfo.value).startswith(prefix)
    assert excinfo.value.detail == "provider says no"

    # Token stays cached for non-401 failures.
    manager.access_token(config)
    assert len(fake_post.token_calls) == 1


def test_network_failure_raises_transport_error(fake_post, config):
    fake_post.send_response = requests.Timeout("read timed out")

    with pytest.raises(TransportError) as excinfo:
        MSGraphTransport(config).deliver(_html_message())

    assert excinfo.value.kind == "transport"


def test_parse_error_prefers_nested_message():
    resp = DummyResponse(400, {"error": {"message": "nested"}, "error_description": "flat"})
    assert parse_error(resp) == "nested"


def test_parse_error_uses_error_description():
    resp = DummyResponse(400, {"error": "invalid_request", "error_description": "flat"})
    assert parse_error(resp) == "flat"


def test_parse_error_falls_back_to_raw_body_and_truncates():
    resp = DummyResponse(502, None, text="x" * 800)

    detail = parse_error(resp)

    assert len(detail) == 500
    assert detail.endswith("...")


def test_attachment_bytes_are_base64(config):
    data = bytes(range(256))
    msg = (
        EmailMessageBuilder()
        .set_from("noreply@example.com")
        .add_to("a@example.com")
        .add_attachment_bytes(data, filename="blob.bin")
        .build()
    )

    attachments = MSGraphTransport(config).build_payload(msg)["message"]["attachments"]

    assert base64.b64decode(attachments[0]["contentBytes"]) == data
    assert attachments[0]["contentType"] == "application/octet-stream"


def test_unexpected_token_failure_wrapped_as_delivery_error(fake_post, config):
    fake_post.token_response = DummyResponse(200, {"access_token": "t", "expires_in": 10**13})

    with pytest.raises(DeliveryError) as excinfo:
        MSGraphTransport(config).deliver(_html_message())

    assert excinfo.value.kind == "token"
    assert fake_post.send_calls == []


def test_non_library_errors_wrapped_as_delivery_error(fake_post, config, monkeypatch):
    def broken_payload(self, msg, config=None):
        raise LookupError("unknown charset")

    monkeypatch.setattr(MSGraphTransport, "build_payload", broken_payload)

    with pytest.raises(DeliveryError, match="MS Graph delivery failed: unknown charset") as excinfo:
        MSGraphTransport(config).deliver(_html_message())

    assert excinfo.value.kind == "delivery"
    assert isinstance(excinfo.value.__cause__, LookupError)
    assert fake_post.send_calls == []
