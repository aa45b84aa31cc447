"""
Connect API routes — status, connect, provider callbacks, disconnect.

Route prefix: ``config.connect_base_path`` (default ``/connect``)

  GET    /                                   status of every provider
  GET    /{provider_id}                      status of one provider
  POST   /{provider_id}                      start connecting (302 to provider)
  GET    /{provider_id}?oauth_token=…        OAuth1 callback (302 to status)
  GET    /{provider_id}?code=…               OAuth2 callback (302 to status)
  GET    /{provider_id}?error=…              provider denied (302 to status)
  DELETE /{provider_id}                      remove all connections (303 to status)
  DELETE /{provider_id}/{provider_user_id}   remove one connection (303 to status)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import get_current_user_id
from connectors.base import Connection
from connectors.controller import ConnectController, ConnectRequest, ViewSelection
from connectors.exceptions import CallbackFailedError, ConnectError
from connectors.repository import ConnectionRepository, SqlConnectionRepository
from connectors.session_store import MappingSessionStore
from database.session import get_db_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connect"])


# ── Dependencies ────────────────────────────────────────────────────────


def get_connect_controller(request: Request) -> ConnectController:
    """The controller built at startup (see ``main.create_app``)."""
    return request.app.state.connect_controller


async def get_connection_repository(
    session: AsyncSession = Depends(get_db_session),
    user_id: str = Depends(get_current_user_id),
) -> ConnectionRepository:
    return SqlConnectionRepository(session, user_id)


def get_connect_request(request: Request) -> ConnectRequest:
    return ConnectRequest(
        session=MappingSessionStore(request.session),
        params=dict(request.query_params),
    )


# ── Routes ─────────────────────────────────────────────────────────────


@router.get("")
async def all_connection_status(
    controller: ConnectController = Depends(get_connect_controller),
    repository: ConnectionRepository = Depends(get_connection_repository),
    connect_request: ConnectRequest = Depends(get_connect_request),
) -> JSONResponse:
    """Connections of the current account to every registered provider."""
    view = await controller.all_connection_status(repository, connect_request)
    return _render(view)


@router.get("/{provider_id}")
async def connection_status_or_callback(
    provider_id: str,
    oauth_token: Optional[str] = Query(None),
    oauth_verifier: Optional[str] = Query(None),
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    controller: ConnectController = Depends(get_connect_controller),
    session: AsyncSession = Depends(get_db_session),
    repository: ConnectionRepository = Depends(get_connection_repository),
    connect_request: ConnectRequest = Depends(get_connect_request),
):
    """
    Render connection status, or complete a provider callback.

    The provider's redirect back lands on the same path as the status
    page; the query parameters tell the two apart.
    """
    if not (oauth_token or code or error):
        view = await controller.connection_status(provider_id, repository, connect_request)
        return _render(view)

    # Callback failures must leave as ConnectError: only those are answered
    # inside SessionMiddleware, where the consumed request token is saved.
    try:
        if oauth_token:
            target = await controller.oauth1_callback(
                provider_id, oauth_token, oauth_verifier, repository, connect_request
            )
        elif code:
            target = await controller.oauth2_callback(
                provider_id, code, repository, connect_request
            )
        else:
            target = await controller.authorization_error_callback(
                provider_id, error, connect_request
            )
        # Commit before the browser follows the redirect to the status page.
        await session.commit()
    except ConnectError:
        raise
    except Exception as exc:
        logger.exception("Unexpected failure in %s callback", provider_id)
        raise CallbackFailedError(provider_id, type(exc).__name__) from exc

    return RedirectResponse(target, status_code=status.HTTP_302_FOUND)


@router.post("/{provider_id}")
async def connect(
    provider_id: str,
    controller: ConnectController = Depends(get_connect_controller),
    user_id: str = Depends(get_current_user_id),
    connect_request: ConnectRequest = Depends(get_connect_request),
) -> RedirectResponse:
    """Send the user to the provider to authorize the connection."""
    url = await controller.connect(provider_id, connect_request)
    logger.info("User %s connecting to %s", user_id, provider_id)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.delete("/{provider_id}")
async def remove_connections(
    provider_id: str,
    controller: ConnectController = Depends(get_connect_controller),
    session: AsyncSession = Depends(get_db_session),
    repository: ConnectionRepository = Depends(get_connection_repository),
) -> RedirectResponse:
    """Disconnect every account the user has at *provider_id*."""
    target = await controller.remove_connections(provider_id, repository)
    await session.commit()
    return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)


@router.delete("/{provider_id}/{provider_user_id}")
async def remove_connection(
    provider_id: str,
    provider_user_id: str,
    controller: ConnectController = Depends(get_connect_controller),
    session: AsyncSession = Depends(get_db_session),
    repository: ConnectionRepository = Depends(get_connection_repository),
) -> RedirectResponse:
    """Disconnect one provider account."""
    target = await controller.remove_connection(provider_id, provider_user_id, repository)
    await session.commit()
    return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)


# ── Rendering ──────────────────────────────────────────────────────────


def _render(view: ViewSelection) -> JSONResponse:
    return JSONResponse({"view": view.view_name, "model": _jsonable(view.model)})


def _jsonable(value: Any) -> Any:
    if isinstance(value, Connection):
        return value.to_public_dict()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value
