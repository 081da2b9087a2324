"""Read-only probe of the Seq /health endpoint."""

from __future__ import annotations

from typing import Optional

from .api_keys import NotConfiguredError
from .seq_client import SeqClient

HEALTH_PATH = "/health"


def read_health(client: Optional[SeqClient]) -> str:
    """Return the `status` message reported by Seq ("" when the body has none)."""
    if client is None:
        raise NotConfiguredError()
    body = client.execute("GET", HEALTH_PATH)
    if isinstance(body, dict):
        status = body.get("status")
        if isinstance(status, str):
            return status
    return ""
