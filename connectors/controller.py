"""
ConnectController — drives the account-to-provider connection flow.

  • status   : which view to show for a provider (connected / not connected)
  • connect  : send the user to the provider for authorization
  • callback : OAuth1 (``oauth_token``) or OAuth2 (``code``) return leg,
               exchange for credentials and store the new connection
  • remove   : drop one or all connections to a provider

The controller is transport-agnostic: routes hand it a ``ConnectRequest``
(session store + query parameters) and turn its results into redirects
or rendered views.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from connectors.base import (
    AuthFlavor,
    AuthorizedRequestToken,
    Connection,
    ConnectionFactory,
    ConnectionKey,
    OAuth1ConnectionFactory,
    OAuth2ConnectionFactory,
    OAuthToken,
)
from connectors.exceptions import (
    DuplicateConnectionError,
    MissingRequestTokenError,
    UnsupportedProviderError,
)
from connectors.interceptors import ConnectInterceptor, InterceptorRegistry
from connectors.oauth1 import OAuth1Version
from connectors.oauth2 import GrantType
from connectors.registry import ConnectionFactoryRegistry
from connectors.repository import ConnectionRepository
from connectors.session_store import (
    AUTHORIZATION_ERROR_KEY,
    DUPLICATE_CONNECTION_KEY,
    OAUTH_TOKEN_KEY,
    SessionStore,
)

logger = logging.getLogger(__name__)


@dataclass
class ConnectRequest:
    """What the controller sees of an incoming request."""

    session: SessionStore
    params: Mapping[str, str] = field(default_factory=dict)
    # free-form request-scoped state for interceptors
    attributes: Dict[str, Any] = field(default_factory=dict)

    def get_parameter(self, name: str) -> Optional[str]:
        return self.params.get(name)


@dataclass
class ViewSelection:
    view_name: str
    model: Dict[str, Any] = field(default_factory=dict)


CustomAuthHandler = Callable[[ConnectionFactory, ConnectRequest], Awaitable[str]]


class ConnectController:
    def __init__(
        self,
        application_url: str,
        factory_registry: ConnectionFactoryRegistry,
        base_path: str = "/connect",
        interceptors: Optional[InterceptorRegistry] = None,
    ) -> None:
        """
        Parameters
        ----------
        application_url : str
            Base URL of this application, used to build the callback URL
            handed to providers.
        factory_registry : ConnectionFactoryRegistry
            Locates the ConnectionFactory for a provider id.
        base_path : str
            Path the connect routes are mounted under.
        """
        self._factories = factory_registry
        self._base_path = base_path.rstrip("/")
        self._callback_base = application_url.rstrip("/") + self._base_path
        self._interceptors = interceptors or InterceptorRegistry()
        self._custom_handlers: Dict[str, CustomAuthHandler] = {}

    # ── Configuration ───────────────────────────────────────────────────

    @property
    def interceptors(self) -> InterceptorRegistry:
        return self._interceptors

    def add_interceptor(self, api_type: str, interceptor: ConnectInterceptor) -> None:
        self._interceptors.add_interceptor(api_type, interceptor)

    def register_custom_auth_handler(self, provider_id: str, handler: CustomAuthHandler) -> None:
        """Handle ``connect`` for a provider that is neither OAuth1 nor OAuth2."""
        self._custom_handlers[provider_id] = handler

    def callback_url(self, provider_id: str) -> str:
        return f"{self._callback_base}/{provider_id}"

    def status_path(self, provider_id: str) -> str:
        return f"{self._base_path}/{provider_id}"

    # ── Status ──────────────────────────────────────────────────────────

    async def connection_status(
        self,
        provider_id: str,
        repository: ConnectionRepository,
        request: ConnectRequest,
    ) -> ViewSelection:
        """Pick the connect / connected view for *provider_id*."""
        model = self._process_flash(request)
        connections = await repository.find_connections(provider_id)
        if not connections:
            return ViewSelection(f"connect/{provider_id}Connect", model)
        model["connections"] = connections
        return ViewSelection(f"connect/{provider_id}Connected", model)

    async def all_connection_status(
        self,
        repository: ConnectionRepository,
        request: ConnectRequest,
    ) -> ViewSelection:
        """Connections to every registered provider."""
        model = self._process_flash(request)
        found = await repository.find_all_connections()
        model["connection_map"] = {
            provider_id: found.get(provider_id, [])
            for provider_id in self._factories.registered_provider_ids()
        }
        return ViewSelection("connect/status", model)

    # ── Connect ─────────────────────────────────────────────────────────

    async def connect(self, provider_id: str, request: ConnectRequest) -> str:
        """
        Start connecting to *provider_id*; returns the URL to redirect to.

        OAuth1: fetches a request token, caches it in the session and
        returns the provider's authorize URL.  OAuth2: returns the
        authorize URL for the authorization-code grant.
        """
        factory = self._factories.get_connection_factory(provider_id)
        await self._pre_connect(factory, request)

        if factory.auth_flavor is AuthFlavor.OAUTH1:
            url = await self._oauth1_url(factory, request)
        elif factory.auth_flavor is AuthFlavor.OAUTH2:
            url = self._oauth2_url(factory, request)
        else:
            url = await self._custom_auth_url(factory, request)

        logger.info("Connecting to %s — redirecting to provider", provider_id)
        return url

    # ── Callbacks ───────────────────────────────────────────────────────

    async def oauth1_callback(
        self,
        provider_id: str,
        oauth_token: str,
        oauth_verifier: Optional[str],
        repository: ConnectionRepository,
        request: ConnectRequest,
    ) -> str:
        """
        Complete an OAuth1 authorization and store the connection.

        The cached request token is removed from the session before the
        exchange, whatever its outcome.
        """
        cached = request.session.pop(OAUTH_TOKEN_KEY)
        factory = self._factories.get_connection_factory(provider_id)
        if not isinstance(factory, OAuth1ConnectionFactory):
            raise UnsupportedProviderError(provider_id)
        if not cached or cached.get("provider_id") != provider_id:
            raise MissingRequestTokenError(provider_id)

        request_token = OAuthToken.from_dict(cached)
        if request_token.value != oauth_token:
            logger.warning(
                "%s callback token %s does not match the cached request token",
                provider_id,
                oauth_token,
            )
        access_token = await factory.oauth_operations.exchange_for_access_token(
            AuthorizedRequestToken(request_token, oauth_verifier), None
        )
        connection = await factory.create_connection(access_token)
        await self._add_connection(connection, factory, repository, request)
        return self.status_path(provider_id)

    async def oauth2_callback(
        self,
        provider_id: str,
        code: str,
        repository: ConnectionRepository,
        request: ConnectRequest,
    ) -> str:
        """Exchange the authorization code and store the connection."""
        factory = self._factories.get_connection_factory(provider_id)
        if not isinstance(factory, OAuth2ConnectionFactory):
            raise UnsupportedProviderError(provider_id)

        access_grant = await factory.oauth_operations.exchange_for_access(
            code, self.callback_url(provider_id), None
        )
        connection = await factory.create_connection(access_grant)
        await self._add_connection(connection, factory, repository, request)
        return self.status_path(provider_id)

    async def authorization_error_callback(
        self,
        provider_id: str,
        error: str,
        request: ConnectRequest,
    ) -> str:
        """The provider sent the user back without authorizing (e.g. ``access_denied``)."""
        self._factories.get_connection_factory(provider_id)
        logger.info("Authorization to %s not granted: %s", provider_id, error)
        request.session.set(AUTHORIZATION_ERROR_KEY, error)
        return self.status_path(provider_id)

    # ── Removal ─────────────────────────────────────────────────────────

    async def remove_connections(
        self, provider_id: str, repository: ConnectionRepository
    ) -> str:
        await repository.remove_connections(provider_id)
        return self.status_path(provider_id)

    async def remove_connection(
        self,
        provider_id: str,
        provider_user_id: str,
        repository: ConnectionRepository,
    ) -> str:
        await repository.remove_connection(ConnectionKey(provider_id, provider_user_id))
        return self.status_path(provider_id)

    # ── Internal helpers ────────────────────────────────────────────────

    async def _oauth1_url(self, factory: OAuth1ConnectionFactory, request: ConnectRequest) -> str:
        operations = factory.oauth_operations
        callback_url = self.callback_url(factory.provider_id)
        if operations.version is OAuth1Version.CORE_10_REVISION_A:
            request_token = await operations.fetch_request_token(callback_url, None)
            authorize_url = operations.build_authorize_url(request_token.value)
        else:
            request_token = await operations.fetch_request_token(None, None)
            authorize_url = operations.build_authorize_url(
                request_token.value, {"oauth_callback": callback_url}
            )
        request.session.set(
            OAUTH_TOKEN_KEY,
            {"provider_id": factory.provider_id, **request_token.to_dict()},
        )
        return authorize_url

    def _oauth2_url(self, factory: OAuth2ConnectionFactory, request: ConnectRequest) -> str:
        return factory.oauth_operations.build_authorize_url(
            GrantType.AUTHORIZATION_CODE,
            {
                "redirect_uri": self.callback_url(factory.provider_id),
                "scope": request.get_parameter("scope"),
            },
        )

    async def _custom_auth_url(self, factory: ConnectionFactory, request: ConnectRequest) -> str:
        handler = self._custom_handlers.get(factory.provider_id)
        if handler is None:
            raise UnsupportedProviderError(factory.provider_id)
        return await handler(factory, request)

    async def _add_connection(
        self,
        connection: Connection,
        factory: ConnectionFactory,
        repository: ConnectionRepository,
        request: ConnectRequest,
    ) -> None:
        try:
            await repository.add_connection(connection)
        except DuplicateConnectionError:
            logger.info(
                "Duplicate %s connection %s — flagged for next status render",
                connection.provider_id,
                connection.provider_user_id,
            )
            request.session.set(DUPLICATE_CONNECTION_KEY, True)
            return
        await self._post_connect(factory, connection, request)

    async def _pre_connect(self, factory: ConnectionFactory, request: ConnectRequest) -> None:
        for interceptor in self._interceptors.for_factory(factory):
            await interceptor.pre_connect(factory, request)

    async def _post_connect(
        self, factory: ConnectionFactory, connection: Connection, request: ConnectRequest
    ) -> None:
        for interceptor in self._interceptors.for_factory(factory):
            await interceptor.post_connect(connection, request)

    def _process_flash(self, request: ConnectRequest) -> Dict[str, Any]:
        model: Dict[str, Any] = {}
        if request.session.pop(DUPLICATE_CONNECTION_KEY):
            model[DUPLICATE_CONNECTION_KEY] = True
        error = request.session.pop(AUTHORIZATION_ERROR_KEY)
        if error:
            model[AUTHORIZATION_ERROR_KEY] = error
        return model
