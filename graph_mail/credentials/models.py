from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta
from typing import Any, Mapping

REQUIRED_FIELDS = ("tenant_id", "client_id", "client_secret", "sender_email")
TOKEN_FIELDS = ("tenant_id", "client_id", "client_secret")


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def coerce_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "y", "on"):
            return True
        if lowered in ("0", "false", "no", "n", "off"):
            return False
        if not lowered:
            return None
    return bool(value)


@dataclass(frozen=True, slots=True)
class GraphMailConfig:
    # App registration
    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = field(default=None, repr=False)

    # Mailbox
    sender_email: str | None = None
    sender_name: str | None = None
    save_to_sent_items: bool = True

    def valid(self) -> bool:
        return not self.missing_fields()

    def missing_fields(self, required: tuple[str, ...] = REQUIRED_FIELDS) -> list[str]:
        return [name for name in required if _blank(getattr(self, name))]

    def merged(self, overrides: Mapping[str, Any] | None = None, **kwargs: Any) -> "GraphMailConfig":
        """Return a copy with the non-empty override values applied.

        Unknown keys are ignored so host-level settings can be passed through
        as-is. The receiver is never modified.
        """
        data: dict[str, Any] = {}
        if overrides:
            data.update(overrides)
        data.update(kwargs)

        known = {f.name for f in fields(self)}
        changes: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known or _blank(value):
                continue
            if key == "save_to_sent_items":
                changes[key] = coerce_bool(value)
            else:
                changes[key] = str(value)
        if not changes:
            return self
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True, slots=True)
class TokenRecord:
    access_token: str = field(repr=False)
    expires_at: datetime

    def is_fresh(self, now: datetime, buffer: timedelta) -> bool:
        return now < self.expires_at - buffer
