"""
Built-in connection factories.

  • GitHub  — OAuth2, remote account identified via ``GET /user``
  • Google  — OAuth2, remote account identified via the userinfo endpoint
  • Twitter — OAuth1 1.0a, identity comes back with the access token
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from connectors.base import (
    AccessGrant,
    Connection,
    ConnectionKey,
    OAuth1ConnectionFactory,
    OAuth2ConnectionFactory,
    OAuthToken,
)
from connectors.exceptions import ProviderExchangeError
from connectors.oauth1 import OAuth1Template, OAuth1Version
from connectors.oauth2 import OAuth2Template


# GitHub OAuth2 endpoints
_GH_AUTH_URL = "https://github.com/login/oauth/authorize"
_GH_TOKEN_URL = "https://github.com/login/oauth/access_token"
_GH_API = "https://api.github.com"

# Google OAuth2 endpoints
_GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
_GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

# Twitter OAuth1 endpoints
_TW_REQUEST_TOKEN_URL = "https://api.twitter.com/oauth/request_token"
_TW_AUTHORIZE_URL = "https://api.twitter.com/oauth/authorize"
_TW_AUTHENTICATE_URL = "https://api.twitter.com/oauth/authenticate"
_TW_ACCESS_TOKEN_URL = "https://api.twitter.com/oauth/access_token"


async def _fetch_profile(
    provider_id: str,
    url: str,
    access_token: str,
    *,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport],
    accept: str = "application/json",
) -> Dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.get(
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": accept,
                },
            )
            resp.raise_for_status()
            profile = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise ProviderExchangeError(provider_id, f"profile lookup failed: {exc}") from exc
    if not isinstance(profile, dict):
        raise ProviderExchangeError(provider_id, "profile response is not a JSON object")
    return profile


class GitHubConnectionFactory(OAuth2ConnectionFactory):
    """OAuth2 connections to GitHub accounts."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout
        self._transport = transport
        self._operations = OAuth2Template(
            self.provider_id,
            client_id,
            client_secret,
            authorize_url=_GH_AUTH_URL,
            access_token_url=_GH_TOKEN_URL,
            default_scope=" ".join(self.scopes),
            timeout=timeout,
            transport=transport,
        )

    @property
    def provider_id(self) -> str:
        return "github"

    @property
    def api_type(self) -> str:
        return "github"

    @property
    def display_name(self) -> str:
        return "GitHub"

    @property
    def scopes(self) -> List[str]:
        return ["read:user", "user:email"]

    @property
    def oauth_operations(self) -> OAuth2Template:
        return self._operations

    def is_configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    async def create_connection(self, access_grant: AccessGrant) -> Connection:
        user = await _fetch_profile(
            self.provider_id,
            f"{_GH_API}/user",
            access_grant.access_token,
            timeout=self._timeout,
            transport=self._transport,
            accept="application/vnd.github+json",
        )
        if user.get("id") is None:
            raise ProviderExchangeError(self.provider_id, "profile response has no id")
        return Connection(
            key=ConnectionKey(self.provider_id, str(user["id"])),
            display_name=user.get("login"),
            profile_url=user.get("html_url"),
            image_url=user.get("avatar_url"),
            access_token=access_grant.access_token,
            refresh_token=access_grant.refresh_token,
            expire_time=access_grant.expire_time,
        )


class GoogleConnectionFactory(OAuth2ConnectionFactory):
    """OAuth2 connections to Google accounts."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout
        self._transport = transport
        self._operations = OAuth2Template(
            self.provider_id,
            client_id,
            client_secret,
            authorize_url=_GOOGLE_AUTH_URL,
            access_token_url=_GOOGLE_TOKEN_URL,
            default_scope=" ".join(self.scopes),
            timeout=timeout,
            transport=transport,
        )

    @property
    def provider_id(self) -> str:
        return "google"

    @property
    def api_type(self) -> str:
        return "google"

    @property
    def display_name(self) -> str:
        return "Google"

    @property
    def scopes(self) -> List[str]:
        return [
            "https://www.googleapis.com/auth/userinfo.email",
            "https://www.googleapis.com/auth/userinfo.profile",
        ]

    @property
    def oauth_operations(self) -> OAuth2Template:
        return self._operations

    def is_configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    async def create_connection(self, access_grant: AccessGrant) -> Connection:
        user_info = await _fetch_profile(
            self.provider_id,
            _GOOGLE_USERINFO_URL,
            access_grant.access_token,
            timeout=self._timeout,
            transport=self._transport,
        )
        provider_user_id = user_info.get("id") or user_info.get("email")
        if not provider_user_id:
            raise ProviderExchangeError(self.provider_id, "userinfo response has neither id nor email")
        return Connection(
            key=ConnectionKey(self.provider_id, str(provider_user_id)),
            display_name=user_info.get("email"),
            profile_url=user_info.get("link"),
            image_url=user_info.get("picture"),
            access_token=access_grant.access_token,
            refresh_token=access_grant.refresh_token,
            expire_time=access_grant.expire_time,
        )


class TwitterConnectionFactory(OAuth1ConnectionFactory):
    """OAuth1 (1.0a) connections to Twitter accounts."""

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._consumer_key = consumer_key
        self._consumer_secret = consumer_secret
        self._operations = OAuth1Template(
            self.provider_id,
            consumer_key,
            consumer_secret,
            request_token_url=_TW_REQUEST_TOKEN_URL,
            authorize_url=_TW_AUTHORIZE_URL,
            authenticate_url=_TW_AUTHENTICATE_URL,
            access_token_url=_TW_ACCESS_TOKEN_URL,
            version=OAuth1Version.CORE_10_REVISION_A,
            timeout=timeout,
            transport=transport,
        )

    @property
    def provider_id(self) -> str:
        return "twitter"

    @property
    def api_type(self) -> str:
        return "twitter"

    @property
    def display_name(self) -> str:
        return "Twitter"

    @property
    def oauth_operations(self) -> OAuth1Template:
        return self._operations

    def is_configured(self) -> bool:
        return bool(self._consumer_key and self._consumer_secret)

    async def create_connection(self, access_token: OAuthToken) -> Connection:
        # The access token response carries user_id and screen_name.
        user_id = access_token.extra.get("user_id")
        if not user_id:
            raise ProviderExchangeError(self.provider_id, "access token response has no user_id")
        screen_name = access_token.extra.get("screen_name")
        return Connection(
            key=ConnectionKey(self.provider_id, user_id),
            display_name=f"@{screen_name}" if screen_name else None,
            profile_url=f"https://twitter.com/{screen_name}" if screen_name else None,
            access_token=access_token.value,
            secret=access_token.secret,
        )
