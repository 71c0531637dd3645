from __future__ import annotations

from dataclasses import dataclass

from graph_mail.auth.token_manager import TokenManager
from graph_mail.credentials.models import GraphMailConfig
from graph_mail.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ProbeResult:
    success: bool
    error: str | None = None


class ConnectionProbe:
    """Checks that Graph accepts the configured credentials without sending mail.

    Without an explicit ``token_manager`` every probe uses a fresh one, so a
    token cached by earlier sends cannot hide credentials that stopped working.
    """

    def __init__(self, token_manager: TokenManager | None = None) -> None:
        self._token_manager = token_manager

    def probe(self, config: GraphMailConfig) -> ProbeResult:
        missing = config.missing_fields()
        if missing:
            return ProbeResult(success=False, error=f"Missing configuration: {', '.join(missing)}")

        token_manager = self._token_manager or TokenManager()
        try:
            token = token_manager.access_token(config)
        except Exception as exc:
            logger.warning("MS Graph Mail: Connection test failed: %s", exc)
            return ProbeResult(success=False, error=str(exc))

        if not token:
            return ProbeResult(success=False, error="Failed to obtain access token")
        logger.info("MS Graph Mail: Connection test succeeded for tenant=%s", config.tenant_id)
        return ProbeResult(success=True)
