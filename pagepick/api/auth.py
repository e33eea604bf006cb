"""Authentication dependencies for the PagePick API.

When PAGEPICK_API_TOKEN is set every request needs ``Authorization: Bearer
<token>``; when it is not set authentication is disabled (local desktop use).
"""

from __future__ import annotations

import os
import secrets

from fastapi import Depends, Header, HTTPException


def get_api_token() -> str:
    """Read the API token at call time (supports test overrides)."""
    return os.getenv("PAGEPICK_API_TOKEN", "")


def _get_bearer_token(authorization: str = Header(default="")) -> str:
    if authorization.startswith("Bearer "):
        return authorization[7:]
    return ""


def token_is_valid(token: str) -> bool:
    api_token = get_api_token()
    if not api_token:
        return True
    return secrets.compare_digest(token, api_token)


async def require_api_auth(token: str = Depends(_get_bearer_token)) -> str:
    """Dependency that enforces API token authentication."""
    if not token_is_valid(token):
        raise HTTPException(status_code=401, detail="Invalid or missing API token")
    return token
