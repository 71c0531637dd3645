from graph_mail.auth import TokenManager
from graph_mail.client import GraphMailClient
from graph_mail.credentials import GraphMailConfig, load_config_from_env
from graph_mail.errors import (
    AuthenticationError,
    ConfigurationError,
    DeliveryError,
    GraphMailError,
    InvalidRequestError,
    PermissionDeniedError,
    TokenError,
    TransportError,
    UnexpectedResponseError,
)
from graph_mail.logging import configure_logging
from graph_mail.message import EmailMessageBuilder
from graph_mail.probe import ConnectionProbe, ProbeResult
from graph_mail.transport import DeliveryMethodRegistry, MSGraphTransport

__all__ = [
    "GraphMailClient",
    "GraphMailConfig",
    "load_config_from_env",
    "TokenManager",
    "MSGraphTransport",
    "DeliveryMethodRegistry",
    "ConnectionProbe",
    "ProbeResult",
    "EmailMessageBuilder",
    "configure_logging",
    "GraphMailError",
    "ConfigurationError",
    "TokenError",
    "DeliveryError",
    "AuthenticationError",
    "PermissionDeniedError",
    "InvalidRequestError",
    "UnexpectedResponseError",
    "TransportError",
]
