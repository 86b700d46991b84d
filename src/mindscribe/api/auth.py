from __future__ import annotations

import secrets
from collections.abc import Callable

from fastapi import Header, HTTPException

from ..settings import MindScribeSettings


def api_key_guard(s: MindScribeSettings) -> Callable[..., None]:
    """Build the ``X-API-Key`` check for one app. Without a configured key every request passes."""

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        if not s.api_key:
            return
        if not secrets.compare_digest((x_api_key or "").encode(), s.api_key.encode()):
            raise HTTPException(status_code=401, detail="invalid API key")

    return require_api_key
