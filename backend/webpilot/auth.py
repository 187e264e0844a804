"""
Optional bearer-token authentication for the HTTP API.
When GATEWAY_TOKEN is unset every request is accepted (dev mode).
"""
import hmac
import os
from typing import Optional

from fastapi import Header, HTTPException


def is_authorized(authorization: Optional[str]) -> bool:
    expected = os.environ.get("GATEWAY_TOKEN", "")
    if not expected:
        return True

    provided = (authorization or "").strip()
    scheme, _, token = provided.partition(" ")
    if scheme.lower() == "bearer" and token:
        provided = token.strip()
    # Constant-time comparison
    return hmac.compare_digest(provided, expected)


async def require_token(authorization: Optional[str] = Header(default=None)):
    """FastAPI dependency rejecting requests without the configured token."""
    if not is_authorized(authorization):
        raise HTTPException(status_code=401, detail="Invalid or missing token")
