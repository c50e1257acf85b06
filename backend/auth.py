from __future__ import annotations

import secrets

from fastapi import Header, HTTPException

from backend.settings import get_settings


def _token_matches(candidate: str | None, expected: str) -> bool:
    if not candidate or not expected:
        return False
    return secrets.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


async def require_owner(
    x_user_email: str | None = Header(default=None, alias="X-User-Email"),
    x_backend_token: str | None = Header(default=None, alias="X-Backend-Token"),
) -> str:
    """Resolve the record owner for a request.

    Every habit and daily log is scoped to this address; the shared backend
    token only proves the caller is a trusted dashboard.
    """
    settings = get_settings()
    if not _token_matches(x_backend_token, settings.backend_session_secret):
        raise HTTPException(status_code=401, detail="Invalid backend token")
    owner = (x_user_email or "").strip().lower()
    if not owner:
        raise HTTPException(status_code=401, detail="Missing user email")
    if settings.allowed_emails and owner not in settings.allowed_emails:
        raise HTTPException(status_code=403, detail="User not allowed")
    return owner
