"""
Signed account tokens.

A token is ``<urlsafe-b64 JSON claims>.<hex HMAC-SHA256>`` with claims
``sub`` (local account id), ``iat`` and ``exp``.  The signing key is
``config.jwt_secret`` (env var: ``JWT_SECRET``).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import Optional

from fastapi import HTTPException, status

from config.settings import config


def _sign(claims_segment: str) -> str:
    return hmac.new(
        config.jwt_secret.encode(), claims_segment.encode(), hashlib.sha256
    ).hexdigest()


def create_token(user_id: str, expires_in: Optional[int] = None) -> str:
    """Issue a token for the local account *user_id*."""
    now = int(time.time())
    ttl = config.jwt_expiry_seconds if expires_in is None else expires_in
    claims = {"sub": user_id, "iat": now, "exp": now + ttl}
    segment = urlsafe_b64encode(json.dumps(claims).encode()).decode()
    return f"{segment}.{_sign(segment)}"


def verify_token(token: str) -> str:
    """
    Verify token and return the account id (``sub``).

    Raises ``HTTPException(401)`` on malformed, tampered or expired tokens.
    """
    try:
        segment, sig = token.split(".", 1)
        if not hmac.compare_digest(sig, _sign(segment)):
            raise ValueError("bad signature")
        claims = json.loads(urlsafe_b64decode(segment))
        if claims["exp"] < time.time():
            raise ValueError("token expired")
        return claims["sub"]
    except (ValueError, KeyError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid or expired token: {exc}",
        )
