"""
OAuth1 operations — request token, user authorization URL, access token.

Requests are signed with HMAC-SHA1 by Authlib's ``OAuth1Auth`` and sent
with httpx.  Token endpoints answer with form-encoded bodies
(``oauth_token=…&oauth_token_secret=…``).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode

import httpx
from authlib.integrations.httpx_client import OAuth1Auth

from connectors.base import AuthorizedRequestToken, OAuthToken
from connectors.exceptions import ProviderExchangeError

logger = logging.getLogger(__name__)


class OAuth1Version(str, Enum):
    CORE_10 = "1.0"
    CORE_10_REVISION_A = "1.0a"


class OAuth1Operations(ABC):
    """The three legs of an OAuth1 authorization, as seen by a consumer."""

    @property
    @abstractmethod
    def version(self) -> OAuth1Version:
        ...

    @abstractmethod
    async def fetch_request_token(
        self,
        callback_url: Optional[str],
        additional_params: Optional[Mapping[str, str]] = None,
    ) -> OAuthToken:
        """
        Obtain a new request token.

        ``callback_url`` is sent as ``oauth_callback`` (1.0a providers);
        pass None for legacy 1.0 providers, which take the callback on the
        authorize URL instead.
        """
        ...

    @abstractmethod
    def build_authorize_url(
        self, request_token: str, params: Optional[Mapping[str, str]] = None
    ) -> str:
        ...

    @abstractmethod
    def build_authenticate_url(
        self, request_token: str, params: Optional[Mapping[str, str]] = None
    ) -> str:
        ...

    @abstractmethod
    async def exchange_for_access_token(
        self,
        authorized_token: AuthorizedRequestToken,
        additional_params: Optional[Mapping[str, str]] = None,
    ) -> OAuthToken:
        ...


class OAuth1Template(OAuth1Operations):
    """OAuth1Operations against a provider's three OAuth1 endpoints."""

    def __init__(
        self,
        provider_id: str,
        consumer_key: str,
        consumer_secret: str,
        request_token_url: str,
        authorize_url: str,
        access_token_url: str,
        authenticate_url: Optional[str] = None,
        version: OAuth1Version = OAuth1Version.CORE_10_REVISION_A,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.provider_id = provider_id
        self._consumer_key = consumer_key
        self._consumer_secret = consumer_secret
        self._request_token_url = request_token_url
        self._authorize_url = authorize_url
        self._authenticate_url = authenticate_url or authorize_url
        self._access_token_url = access_token_url
        self._version = version
        self._timeout = timeout
        self._transport = transport

    @property
    def version(self) -> OAuth1Version:
        return self._version

    async def fetch_request_token(
        self,
        callback_url: Optional[str],
        additional_params: Optional[Mapping[str, str]] = None,
    ) -> OAuthToken:
        auth = OAuth1Auth(
            self._consumer_key,
            self._consumer_secret,
            redirect_uri=callback_url,
        )
        token = await self._token_request(self._request_token_url, auth, additional_params)
        logger.debug("Fetched %s request token %s", self.provider_id, token.value)
        return token

    def build_authorize_url(
        self, request_token: str, params: Optional[Mapping[str, str]] = None
    ) -> str:
        return _with_query(self._authorize_url, request_token, params)

    def build_authenticate_url(
        self, request_token: str, params: Optional[Mapping[str, str]] = None
    ) -> str:
        return _with_query(self._authenticate_url, request_token, params)

    async def exchange_for_access_token(
        self,
        authorized_token: AuthorizedRequestToken,
        additional_params: Optional[Mapping[str, str]] = None,
    ) -> OAuthToken:
        auth = OAuth1Auth(
            self._consumer_key,
            self._consumer_secret,
            token=authorized_token.value,
            token_secret=authorized_token.secret,
            verifier=authorized_token.verifier,
        )
        return await self._token_request(self._access_token_url, auth, additional_params)

    async def _token_request(
        self,
        url: str,
        auth: OAuth1Auth,
        additional_params: Optional[Mapping[str, str]],
    ) -> OAuthToken:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    url,
                    data=dict(additional_params) if additional_params else None,
                    auth=auth,
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ProviderExchangeError(
                self.provider_id, f"token request to {url} failed: {exc}"
            ) from exc

        data = dict(parse_qsl(resp.text))
        if "oauth_token" not in data or "oauth_token_secret" not in data:
            raise ProviderExchangeError(
                self.provider_id, f"malformed token response from {url}"
            )
        value = data.pop("oauth_token")
        secret = data.pop("oauth_token_secret")
        return OAuthToken(value=value, secret=secret, extra=data)


def _with_query(base_url: str, request_token: str, params: Optional[Mapping[str, str]]) -> str:
    query = {"oauth_token": request_token}
    for name, value in (params or {}).items():
        if value is not None:
            query[name] = value
    sep = "&" if "?" in base_url else "?"
    return f"{base_url}{sep}{urlencode(query)}"
