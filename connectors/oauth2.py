"""
OAuth2 operations — authorization URL and code → access grant exchange.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlencode

import httpx

from connectors.base import AccessGrant
from connectors.exceptions import ProviderExchangeError

logger = logging.getLogger(__name__)


class GrantType(str, Enum):
    AUTHORIZATION_CODE = "authorization_code"
    IMPLICIT_GRANT = "implicit_grant"

    @property
    def response_type(self) -> str:
        return "code" if self is GrantType.AUTHORIZATION_CODE else "token"


class OAuth2Operations(ABC):
    @abstractmethod
    def build_authorize_url(
        self, grant_type: GrantType, params: Optional[Mapping[str, Optional[str]]] = None
    ) -> str:
        """
        Build the provider's authorization URL.

        ``params`` usually carries ``redirect_uri`` and ``scope``; entries
        whose value is None are left out.
        """
        ...

    @abstractmethod
    def build_authenticate_url(
        self, grant_type: GrantType, params: Optional[Mapping[str, Optional[str]]] = None
    ) -> str:
        ...

    @abstractmethod
    async def exchange_for_access(
        self,
        authorization_code: str,
        redirect_uri: str,
        additional_params: Optional[Mapping[str, str]] = None,
    ) -> AccessGrant:
        ...


class OAuth2Template(OAuth2Operations):
    """OAuth2Operations for providers following RFC 6749 closely enough."""

    def __init__(
        self,
        provider_id: str,
        client_id: str,
        client_secret: str,
        authorize_url: str,
        access_token_url: str,
        authenticate_url: Optional[str] = None,
        default_scope: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.provider_id = provider_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._authorize_url = authorize_url
        self._authenticate_url = authenticate_url or authorize_url
        self._access_token_url = access_token_url
        self._default_scope = default_scope
        self._timeout = timeout
        self._transport = transport

    def build_authorize_url(
        self, grant_type: GrantType, params: Optional[Mapping[str, Optional[str]]] = None
    ) -> str:
        return self._build_url(self._authorize_url, grant_type, params)

    def build_authenticate_url(
        self, grant_type: GrantType, params: Optional[Mapping[str, Optional[str]]] = None
    ) -> str:
        return self._build_url(self._authenticate_url, grant_type, params)

    async def exchange_for_access(
        self,
        authorization_code: str,
        redirect_uri: str,
        additional_params: Optional[Mapping[str, str]] = None,
    ) -> AccessGrant:
        """Exchange the authorization code for an access grant."""
        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "code": authorization_code,
            "redirect_uri": redirect_uri,
            "grant_type": GrantType.AUTHORIZATION_CODE.value,
        }
        data.update(additional_params or {})

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    self._access_token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                )
                resp.raise_for_status()
            token_data = _parse_token_response(resp)
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderExchangeError(
                self.provider_id, f"code exchange failed: {exc}"
            ) from exc

        if not isinstance(token_data, dict):
            raise ProviderExchangeError(self.provider_id, "token response is not a JSON object")
        if "error" in token_data:
            raise ProviderExchangeError(
                self.provider_id,
                token_data.get("error_description") or token_data["error"],
            )
        if "access_token" not in token_data:
            raise ProviderExchangeError(self.provider_id, "token response has no access_token")

        logger.debug("Exchanged %s authorization code for access grant", self.provider_id)
        return AccessGrant.from_token_response(token_data)

    def _build_url(
        self,
        base_url: str,
        grant_type: GrantType,
        params: Optional[Mapping[str, Optional[str]]],
    ) -> str:
        query: Dict[str, str] = {
            "client_id": self._client_id,
            "response_type": grant_type.response_type,
        }
        for name, value in (params or {}).items():
            if value is not None:
                query[name] = value
        if "scope" not in query and self._default_scope:
            query["scope"] = self._default_scope
        sep = "&" if "?" in base_url else "?"
        return f"{base_url}{sep}{urlencode(query)}"


def _parse_token_response(resp: httpx.Response) -> Dict[str, Any]:
    """Token endpoints answer in JSON or, like GitHub by default, form-encoded."""
    content_type = resp.headers.get("content-type", "")
    if "json" in content_type:
        return resp.json()
    return dict(parse_qsl(resp.text))
