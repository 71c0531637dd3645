from __future__ import annotations

import threading
from email.message import EmailMessage
from typing import Any, Callable, Mapping

from graph_mail.logging import get_logger

logger = get_logger(__name__)

DeliveryMethod = Callable[[EmailMessage, Mapping[str, Any] | None], None]
ReloadHook = Callable[["DeliveryMethodRegistry", str], None]


class DeliveryMethodRegistry:
    """
    Named delivery methods for a host mailer, plus the one currently active.

    The host calls ``reload(name)`` after its mail settings change; each
    registered hook then decides whether to activate its own method.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._methods: dict[str, DeliveryMethod] = {}
        self._hooks: list[ReloadHook] = []
        self._active: str | None = None
        self._active_settings: dict[str, Any] | None = None

    def register(self, name: str, method: DeliveryMethod) -> None:
        if not name:
            raise ValueError("Delivery method name must be provided.")
        with self._lock:
            self._methods[name] = method
        logger.debug("Registered delivery method %s", name)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._methods)

    def get(self, name: str) -> DeliveryMethod:
        with self._lock:
            method = self._methods.get(name)
        if method is None:
            raise ValueError(f"Unknown delivery method: {name}")
        return method

    @property
    def active(self) -> str | None:
        return self._active

    @property
    def active_settings(self) -> dict[str, Any] | None:
        with self._lock:
            return dict(self._active_settings) if self._active_settings is not None else None

    def activate(self, name: str, settings: Mapping[str, Any] | None = None) -> None:
        with self._lock:
            if name not in self._methods:
                raise ValueError(f"Unknown delivery method: {name}")
            self._active = name
            self._active_settings = dict(settings) if settings is not None else None
        logger.info("Delivery method set to %s", name)

    def deactivate(self) -> None:
        with self._lock:
            previous = self._active
            self._active = None
            self._active_settings = None
        if previous:
            logger.info("Delivery method %s deactivated", previous)

    def add_reload_hook(self, hook: ReloadHook) -> None:
        with self._lock:
            self._hooks.append(hook)

    def reload(self, name: str) -> None:
        """Run reload hooks for the host's newly selected delivery method."""
        with self._lock:
            hooks = list(self._hooks)
        for hook in hooks:
            hook(self, name)

    def deliver(self, msg: EmailMessage) -> None:
        with self._lock:
            name = self._active
            settings = dict(self._active_settings) if self._active_settings is not None else None
        if name is None:
            raise RuntimeError("No delivery method is active.")
        self.get(name)(msg, settings)
