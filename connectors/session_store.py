"""
Short-lived per-session storage for the connect flow.

Holds two kinds of values between requests of the same browser session:

  • the OAuth1 request token, from ``connect`` until the provider callback
  • flash values (duplicate connection, provider-denied authorization),
    set by a callback and shown once by the next status render

Values must be JSON-serialisable: the production store is Starlette's
signed-cookie session.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, MutableMapping, Optional

OAUTH_TOKEN_KEY = "oauthToken"
DUPLICATE_CONNECTION_KEY = "social_duplicateConnection"
AUTHORIZATION_ERROR_KEY = "social_authorizationError"


class SessionStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove *key*; absent keys are ignored."""
        ...

    def pop(self, key: str) -> Optional[Any]:
        """Read *key* and remove it in the same step (remove-once)."""
        value = self.get(key)
        self.remove(key)
        return value


class MappingSessionStore(SessionStore):
    """SessionStore over a mutable mapping, e.g. ``request.session``."""

    def __init__(self, data: MutableMapping[str, Any]) -> None:
        self._data = data

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)
