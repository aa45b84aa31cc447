"""
Auth API routes — bind an account token to the browser session.

Route prefix: /api/v1/auth
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from auth.dependencies import SESSION_TOKEN_KEY
from auth.jwt import verify_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


class SessionLoginRequest(BaseModel):
    token: str = Field(..., min_length=1)


@router.post("/session")
async def open_session(req: SessionLoginRequest, request: Request) -> Dict[str, Any]:
    """
    Remember the account token in the session cookie so the connect
    flow works across provider redirects.
    """
    user_id = verify_token(req.token)
    request.session[SESSION_TOKEN_KEY] = req.token
    logger.info("Session opened for user %s", user_id)
    return {"user_id": user_id}


@router.delete("/session")
async def close_session(request: Request) -> Dict[str, str]:
    """Forget the account and any in-flight connect state."""
    request.session.clear()
    return {"status": "signed_out"}
