"""
Errors raised while establishing or managing provider connections.
"""

from __future__ import annotations


class ConnectError(Exception):
    """Base class for every connect-flow failure."""


class UnknownProviderError(ConnectError):
    """No connection factory is registered for the provider id."""

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"No connection factory registered for provider '{provider_id}'")


class UnsupportedProviderError(ConnectError):
    """The provider's auth scheme cannot be handled by this flow."""

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"Connections to provider '{provider_id}' are not supported")


class MissingRequestTokenError(ConnectError):
    """An OAuth1 callback arrived without a request token cached for that provider."""

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"No request token cached for provider '{provider_id}'")


class ProviderExchangeError(ConnectError):
    """The provider rejected a token request or could not be reached."""

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"{provider_id}: {message}")


class DuplicateConnectionError(ConnectError):
    """The account is already connected to this provider user."""

    def __init__(self, key) -> None:
        self.key = key
        super().__init__(
            f"Connection to {key.provider_id} user '{key.provider_user_id}' already exists"
        )


class NoSuchConnectionError(ConnectError):
    def __init__(self, key) -> None:
        self.key = key
        super().__init__(
            f"No connection to {key.provider_id} user '{key.provider_user_id}'"
        )


class CallbackFailedError(ConnectError):
    """A provider callback failed for a reason outside the connect flow (database, factory bug)."""

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"{provider_id} callback failed: {message}")
