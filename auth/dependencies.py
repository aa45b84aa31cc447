"""
FastAPI dependencies for the current account.

The account is taken from an ``Authorization: Bearer`` header when present,
otherwise from the token bound to the browser session.  Provider callbacks
are plain browser redirects, so they only ever carry the session.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from auth.jwt import verify_token

SESSION_TOKEN_KEY = "auth_token"


async def get_current_user_id(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> str:
    """Return the authenticated ``user_id``."""
    if authorization:
        if not authorization.startswith("Bearer "):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Malformed Authorization header",
            )
        return verify_token(authorization[7:])

    token = request.session.get(SESSION_TOKEN_KEY)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in",
        )
    return verify_token(token)
