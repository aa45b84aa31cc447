"""
Connection model and the ConnectionFactory abstraction.

Every provider (GitHub, Google, Twitter, …) is a ConnectionFactory subclass
of one of three flavors: OAuth1, OAuth2 or custom.  The flavor decides how
the connect flow sends the user to the provider and how it completes the
callback; the factory only knows how to talk to its provider.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

if TYPE_CHECKING:
    from connectors.oauth1 import OAuth1Operations
    from connectors.oauth2 import OAuth2Operations


class AuthFlavor(str, Enum):
    OAUTH1 = "oauth1"
    OAUTH2 = "oauth2"
    CUSTOM = "custom"


# ── Credentials ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class OAuthToken:
    """An OAuth1 token: request token or access token, with its secret."""

    value: str
    secret: str
    extra: Dict[str, str] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "secret": self.secret, "extra": dict(self.extra)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OAuthToken":
        return cls(
            value=data["value"],
            secret=data["secret"],
            extra=dict(data.get("extra") or {}),
        )


@dataclass(frozen=True)
class AuthorizedRequestToken:
    """A request token the user authorized, plus the 1.0a verifier if any."""

    request_token: OAuthToken
    verifier: Optional[str] = None

    @property
    def value(self) -> str:
        return self.request_token.value

    @property
    def secret(self) -> str:
        return self.request_token.secret


@dataclass(frozen=True)
class AccessGrant:
    """Result of an OAuth2 code exchange."""

    access_token: str
    scope: Optional[str] = None
    refresh_token: Optional[str] = None
    expire_time: Optional[int] = None  # epoch millis
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_token_response(cls, data: Mapping[str, Any]) -> "AccessGrant":
        """Build a grant from a token-endpoint response body."""
        expires_in = data.get("expires_in")
        expire_time = None
        if expires_in not in (None, ""):
            expire_time = int(time.time() * 1000) + int(expires_in) * 1000
        known = {"access_token", "scope", "refresh_token", "expires_in"}
        return cls(
            access_token=data["access_token"],
            scope=data.get("scope"),
            refresh_token=data.get("refresh_token"),
            expire_time=expire_time,
            extra={k: v for k, v in data.items() if k not in known},
        )


# ── Connections ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConnectionKey:
    provider_id: str
    provider_user_id: str


@dataclass(frozen=True)
class Connection:
    """A link between the local account and one account at a provider."""

    key: ConnectionKey
    display_name: Optional[str] = None
    profile_url: Optional[str] = None
    image_url: Optional[str] = None
    access_token: str = ""
    secret: Optional[str] = None
    refresh_token: Optional[str] = None
    expire_time: Optional[int] = None

    @property
    def provider_id(self) -> str:
        return self.key.provider_id

    @property
    def provider_user_id(self) -> str:
        return self.key.provider_user_id

    def has_expired(self) -> bool:
        return self.expire_time is not None and self.expire_time < int(time.time() * 1000)

    def to_public_dict(self) -> Dict[str, Any]:
        """Rendering-safe view of the connection (no credentials)."""
        return {
            "provider_id": self.provider_id,
            "provider_user_id": self.provider_user_id,
            "display_name": self.display_name,
            "profile_url": self.profile_url,
            "image_url": self.image_url,
            "expired": self.has_expired(),
        }


# ── Factories ───────────────────────────────────────────────────────────


class ConnectionFactory(ABC):
    """Per-provider strategy for establishing connections."""

    auth_flavor: AuthFlavor = AuthFlavor.CUSTOM

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique slug: 'github', 'google', 'twitter'."""
        ...

    @property
    @abstractmethod
    def api_type(self) -> str:
        """
        Tag of the remote API this factory connects to.

        Connect interceptors are registered against this tag and only fire
        for factories declaring exactly the same one.
        """
        ...

    @property
    def display_name(self) -> str:
        return self.provider_id

    def is_configured(self) -> bool:
        """
        Return True if this factory has all required config
        (client id, client secret, …).
        """
        return True


class OAuth1ConnectionFactory(ConnectionFactory):
    auth_flavor = AuthFlavor.OAUTH1

    @property
    @abstractmethod
    def oauth_operations(self) -> "OAuth1Operations":
        ...

    @abstractmethod
    async def create_connection(self, access_token: OAuthToken) -> Connection:
        """Build a connection from an exchanged OAuth1 access token."""
        ...


class OAuth2ConnectionFactory(ConnectionFactory):
    auth_flavor = AuthFlavor.OAUTH2

    @property
    @abstractmethod
    def oauth_operations(self) -> "OAuth2Operations":
        ...

    @abstractmethod
    async def create_connection(self, access_grant: AccessGrant) -> Connection:
        """Build a connection from an OAuth2 access grant."""
        ...
