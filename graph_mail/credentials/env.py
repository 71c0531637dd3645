from __future__ import annotations

import os
from typing import Mapping

from graph_mail.common.config import (
    ENV_CLIENT_ID,
    ENV_CLIENT_SECRET,
    ENV_DELIVERY_METHOD,
    ENV_SAVE_TO_SENT_ITEMS,
    ENV_SENDER_EMAIL,
    ENV_SENDER_NAME,
    ENV_TENANT_ID,
)
from graph_mail.credentials.models import GraphMailConfig


def load_config_from_env(environ: Mapping[str, str] | None = None) -> GraphMailConfig:
    """Read a GraphMailConfig from MSGRAPH_* variables.

    Sent-items saving stays on unless MSGRAPH_SAVE_TO_SENT_ITEMS is set to
    something other than "true".
    """
    env = os.environ if environ is None else environ
    save_value = env.get(ENV_SAVE_TO_SENT_ITEMS, "true")

    return GraphMailConfig(
        tenant_id=env.get(ENV_TENANT_ID) or None,
        client_id=env.get(ENV_CLIENT_ID) or None,
        client_secret=env.get(ENV_CLIENT_SECRET) or None,
        sender_email=env.get(ENV_SENDER_EMAIL) or None,
        sender_name=env.get(ENV_SENDER_NAME) or None,
        save_to_sent_items=save_value.strip().lower() == "true",
    )


def delivery_method_from_env(environ: Mapping[str, str] | None = None) -> str | None:
    env = os.environ if environ is None else environ
    value = env.get(ENV_DELIVERY_METHOD)
    return value or None
