"""FastAPI auth dependency for producer/search endpoints.

Learn: Producers authenticate with two static headers, ``key`` and
``secret``, compared against NOTIFYRELAY_API_KEY / NOTIFYRELAY_API_SECRET.
Comparison is constant-time.
"""

import hmac
from typing import Optional

from fastapi import Header, HTTPException, Request

from notifyrelay.config import Settings


def _matches(given: Optional[str], expected: str) -> bool:
    if given is None:
        return False
    return hmac.compare_digest(given.encode(), expected.encode())


async def require_credentials(
    request: Request,
    key: Optional[str] = Header(None),
    secret: Optional[str] = Header(None),
) -> None:
    """401 unless the request carries the configured key and secret."""
    settings: Settings = request.app.state.settings
    if not (_matches(key, settings.api_key) and _matches(secret, settings.api_secret)):
        raise HTTPException(status_code=401, detail="Unauthorized")
