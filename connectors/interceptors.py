"""
Connect interceptors — hooks around connection establishment.

Interceptors are registered against an API type tag and fire only for
factories whose ``api_type`` is exactly that tag, in registration order.
The registry is filled at startup and only read afterwards.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Sequence, Tuple

from connectors.base import Connection, ConnectionFactory

if TYPE_CHECKING:
    from connectors.controller import ConnectRequest

logger = logging.getLogger(__name__)


class ConnectInterceptor:
    """Base interceptor; override either hook."""

    async def pre_connect(self, factory: ConnectionFactory, request: "ConnectRequest") -> None:
        """Called before the user is sent to the provider."""

    async def post_connect(self, connection: Connection, request: "ConnectRequest") -> None:
        """Called after a new connection has been stored."""


class InterceptorRegistry:
    """Maps API type tag → ordered list of interceptors."""

    def __init__(self) -> None:
        self._interceptors: Dict[str, List[ConnectInterceptor]] = {}

    def add_interceptor(self, api_type: str, interceptor: ConnectInterceptor) -> None:
        self._interceptors.setdefault(api_type, []).append(interceptor)
        logger.info(
            "Connect interceptor registered: %s for api_type=%s",
            type(interceptor).__name__,
            api_type,
        )

    def set_interceptors(
        self, registrations: Iterable[Tuple[str, ConnectInterceptor]]
    ) -> None:
        """Register several ``(api_type, interceptor)`` pairs in order."""
        for api_type, interceptor in registrations:
            self.add_interceptor(api_type, interceptor)

    def for_api_type(self, api_type: str) -> Sequence[ConnectInterceptor]:
        return tuple(self._interceptors.get(api_type, ()))

    def for_factory(self, factory: ConnectionFactory) -> Sequence[ConnectInterceptor]:
        return self.for_api_type(factory.api_type)
