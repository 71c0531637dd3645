from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable

import requests

from graph_mail.credentials.models import TOKEN_FIELDS, GraphMailConfig, TokenRecord
from graph_mail.errors import ConfigurationError, TokenError
from graph_mail.logging import get_logger

logger = get_logger(__name__)

CacheKey = tuple[str, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    """
    OAuth2 client-credentials tokens for Microsoft Graph, cached per
    (tenant, client) pair.

    - Cached tokens are reused until EXPIRY_BUFFER_SECONDS before they expire.
    - Staleness is checked on read; nothing sweeps the cache in the background.
    - Concurrent callers for the same pair share a single token request.
    - Failed requests are never cached.
    """

    TOKEN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
    GRAPH_SCOPE = "https://graph.microsoft.com/.default"
    EXPIRY_BUFFER_SECONDS = 300
    CONNECT_TIMEOUT = 10
    READ_TIMEOUT = 30

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        expiry_buffer: int | float | None = None,
    ) -> None:
        self._clock = clock or _utcnow
        buffer_seconds = self.EXPIRY_BUFFER_SECONDS if expiry_buffer is None else expiry_buffer
        self._buffer = timedelta(seconds=buffer_seconds)

        # _lock guards _cache and _key_locks; a key lock is held across a fetch.
        self._lock = threading.Lock()
        self._cache: dict[CacheKey, TokenRecord] = {}
        self._key_locks: dict[CacheKey, threading.Lock] = {}

    @staticmethod
    def cache_key(config: GraphMailConfig) -> CacheKey:
        return (config.tenant_id or "", config.client_id or "")

    def access_token(self, config: GraphMailConfig) -> str:
        """Return a valid access token for ``config``, fetching one if needed.

        Raises ConfigurationError when tenant_id, client_id or client_secret is
        missing, and TokenError when the token endpoint fails.
        """
        key = self.cache_key(config)
        with self._lock_for(key):
            with self._lock:
                record = self._cache.get(key)
            if record is not None and record.is_fresh(self._clock(), self._buffer):
                logger.debug("Using cached Graph token for tenant=%s client=%s", *key)
                return record.access_token

            missing = config.missing_fields(TOKEN_FIELDS)
            if missing:
                raise ConfigurationError(missing)

            logger.info("Fetching new Graph access token for tenant=%s client=%s", *key)
            record = self._fetch_token(config)
            with self._lock:
                self._cache[key] = record
            return record.access_token

    def invalidate(self, config: GraphMailConfig) -> None:
        key = self.cache_key(config)
        with self._lock:
            removed = self._cache.pop(key, None)
        if removed is not None:
            logger.info("Invalidated cached Graph token for tenant=%s client=%s", *key)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
            # Keep locks an in-flight fetch is holding.
            self._key_locks = {key: lock for key, lock in self._key_locks.items() if lock.locked()}

    def _lock_for(self, key: CacheKey) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def _fetch_token(self, config: GraphMailConfig) -> TokenRecord:
        url = self.TOKEN_URL.format(tenant_id=config.tenant_id)
        try:
            resp = requests.post(
                url,
                data={
                    "client_id": config.client_id,
                    "client_secret": config.client_secret,
                    "scope": self.GRAPH_SCOPE,
                    "grant_type": "client_credentials",
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=(self.CONNECT_TIMEOUT, self.READ_TIMEOUT),
            )
        except requests.RequestException as exc:
            logger.error("Graph token request failed: %s", exc)
            raise TokenError(f"Failed to obtain access token: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not 200 <= resp.status_code < 300:
            error = body.get("error_description") or body.get("error") or "Unknown error"
            logger.error("Graph token request rejected (%s): %s", resp.status_code, error)
            raise TokenError(f"Token request failed: {error}")

        access_token = body.get("access_token")
        if not access_token:
            raise TokenError("Failed to obtain access token: response did not contain access_token")
        try:
            expires_in = int(float(body.get("expires_in", 0)))
            expires_at = self._clock() + timedelta(seconds=expires_in)
        except (TypeError, ValueError, OverflowError) as exc:
            raise TokenError(f"Failed to obtain access token: invalid expires_in {body.get('expires_in')!r}") from exc

        return TokenRecord(access_token=str(access_token), expires_at=expires_at)
