"""Exceptions raised by graph_mail.

Every error carries a ``kind`` so callers can tell failures apart without
matching on message text.
"""

from __future__ import annotations


class GraphMailError(Exception):
    """Base exception for graph_mail."""

    kind = "error"

    def __init__(self, message: str, *, kind: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class ConfigurationError(GraphMailError):
    """Required configuration fields are missing."""

    kind = "configuration"

    def __init__(self, missing: list[str] | tuple[str, ...], message: str | None = None) -> None:
        self.missing = tuple(missing)
        super().__init__(message or f"Missing configuration: {', '.join(self.missing)}")


class TokenError(GraphMailError):
    """The token endpoint was unreachable or refused the credentials."""

    kind = "token"


class DeliveryError(GraphMailError):
    """Sending a message through Graph failed."""

    kind = "delivery"

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message, kind=kind)
        self.status_code = status_code
        self.detail = detail


class AuthenticationError(DeliveryError):
    kind = "authentication"


class PermissionDeniedError(DeliveryError):
    kind = "permission"


class InvalidRequestError(DeliveryError):
    kind = "request"


class UnexpectedResponseError(DeliveryError):
    kind = "unexpected_response"


class TransportError(DeliveryError):
    """Network, DNS or TLS failure while talking to Graph."""

    kind = "transport"
