"""
ConnectionFactoryRegistry — locates the ConnectionFactory for a provider id.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from config.settings import Settings, config
from connectors.base import ConnectionFactory
from connectors.exceptions import UnknownProviderError
from connectors.providers import (
    GitHubConnectionFactory,
    GoogleConnectionFactory,
    TwitterConnectionFactory,
)

logger = logging.getLogger(__name__)


class ConnectionFactoryRegistry:
    """Registry of connection factories keyed by provider id."""

    def __init__(self) -> None:
        self._factories: Dict[str, ConnectionFactory] = {}

    def register(self, factory: ConnectionFactory) -> None:
        if factory.provider_id in self._factories:
            raise ValueError(
                f"A ConnectionFactory for provider '{factory.provider_id}' is already registered"
            )
        self._factories[factory.provider_id] = factory
        logger.info(
            "Connection factory registered: %s (%s, %s)",
            factory.display_name,
            factory.provider_id,
            factory.auth_flavor.value,
        )

    def get_connection_factory(self, provider_id: str) -> ConnectionFactory:
        factory = self._factories.get(provider_id)
        if factory is None:
            raise UnknownProviderError(provider_id)
        return factory

    def registered_provider_ids(self) -> List[str]:
        return list(self._factories.keys())


def build_default_registry(settings: Optional[Settings] = None) -> ConnectionFactoryRegistry:
    """Register every built-in provider that has its client credentials configured."""
    settings = settings or config
    registry = ConnectionFactoryRegistry()
    candidates: List[ConnectionFactory] = [
        GitHubConnectionFactory(
            settings.github_client_id,
            settings.github_client_secret,
            timeout=settings.http_timeout_seconds,
        ),
        GoogleConnectionFactory(
            settings.google_client_id,
            settings.google_client_secret,
            timeout=settings.http_timeout_seconds,
        ),
        TwitterConnectionFactory(
            settings.twitter_consumer_key,
            settings.twitter_consumer_secret,
            timeout=settings.http_timeout_seconds,
        ),
    ]
    for factory in candidates:
        if factory.is_configured():
            registry.register(factory)
        else:
            logger.warning(
                "Provider %s skipped — not configured (missing client id/secret)",
                factory.provider_id,
            )
    return registry
