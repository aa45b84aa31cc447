"""
Connection repository — the current account's connections to providers.

``ConnectionRepository`` is the interface the connect flow depends on;
``SqlConnectionRepository`` stores connections in ``user_connections``
with credentials encrypted at rest.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from connectors.base import Connection, ConnectionKey
from connectors.encryption import TokenCipher, default_cipher
from connectors.exceptions import DuplicateConnectionError, NoSuchConnectionError
from database.models import UserConnection

logger = logging.getLogger(__name__)

_INSERT_ATTEMPTS = 3


class ConnectionRepository(ABC):
    """Connections of one local account."""

    @abstractmethod
    async def find_all_connections(self) -> Dict[str, List[Connection]]:
        """Connections grouped by provider id."""
        ...

    @abstractmethod
    async def find_connections(self, provider_id: str) -> List[Connection]:
        """Connections to *provider_id*, in the order they were made."""
        ...

    @abstractmethod
    async def get_connection(self, key: ConnectionKey) -> Connection:
        """Raises ``NoSuchConnectionError`` if absent."""
        ...

    @abstractmethod
    async def add_connection(self, connection: Connection) -> None:
        """Raises ``DuplicateConnectionError`` if the key is already connected."""
        ...

    @abstractmethod
    async def remove_connections(self, provider_id: str) -> None:
        """Remove every connection to *provider_id*; a no-op if there are none."""
        ...

    @abstractmethod
    async def remove_connection(self, key: ConnectionKey) -> None:
        """Remove the connection for *key*; a no-op if it does not exist."""
        ...


class SqlConnectionRepository(ConnectionRepository):
    """ConnectionRepository over an async SQLAlchemy session."""

    def __init__(
        self,
        db_session: AsyncSession,
        user_id: str,
        cipher: Optional[TokenCipher] = None,
    ) -> None:
        self._session = db_session
        self._user_id = user_id
        self._cipher = cipher or default_cipher()

    async def find_all_connections(self) -> Dict[str, List[Connection]]:
        result = await self._session.execute(
            select(UserConnection)
            .where(UserConnection.user_id == self._user_id)
            .order_by(UserConnection.provider_id, UserConnection.rank)
        )
        grouped: Dict[str, List[Connection]] = {}
        for row in result.scalars().all():
            grouped.setdefault(row.provider_id, []).append(self._to_connection(row))
        return grouped

    async def find_connections(self, provider_id: str) -> List[Connection]:
        result = await self._session.execute(
            select(UserConnection)
            .where(
                UserConnection.user_id == self._user_id,
                UserConnection.provider_id == provider_id,
            )
            .order_by(UserConnection.rank)
        )
        return [self._to_connection(row) for row in result.scalars().all()]

    async def get_connection(self, key: ConnectionKey) -> Connection:
        row = await self._find_row(key)
        if row is None:
            raise NoSuchConnectionError(key)
        return self._to_connection(row)

    async def add_connection(self, connection: Connection) -> None:
        if await self._find_row(connection.key) is not None:
            raise DuplicateConnectionError(connection.key)

        for attempt in range(1, _INSERT_ATTEMPTS + 1):
            rank = await self._next_rank(connection.provider_id)
            try:
                # A failed insert rolls back to the savepoint only; the rest
                # of the request's transaction stays intact.
                async with self._session.begin_nested():
                    self._session.add(self._to_row(connection, rank))
                break
            except IntegrityError as exc:
                if await self._find_row(connection.key) is not None:
                    raise DuplicateConnectionError(connection.key) from exc
                # rank taken by a concurrent insert of a different key
                if attempt == _INSERT_ATTEMPTS:
                    raise
                logger.debug(
                    "Rank %d for %s taken concurrently, retrying", rank, connection.provider_id
                )

        logger.info(
            "Created %s connection %s for user %s",
            connection.provider_id,
            connection.provider_user_id,
            self._user_id,
        )

    async def remove_connections(self, provider_id: str) -> None:
        result = await self._session.execute(
            delete(UserConnection).where(
                UserConnection.user_id == self._user_id,
                UserConnection.provider_id == provider_id,
            )
        )
        await self._session.flush()
        logger.info(
            "Removed %d %s connection(s) for user %s",
            result.rowcount,
            provider_id,
            self._user_id,
        )

    async def remove_connection(self, key: ConnectionKey) -> None:
        result = await self._session.execute(
            delete(UserConnection).where(
                UserConnection.user_id == self._user_id,
                UserConnection.provider_id == key.provider_id,
                UserConnection.provider_user_id == key.provider_user_id,
            )
        )
        await self._session.flush()
        if result.rowcount:
            logger.info(
                "Removed %s connection %s for user %s",
                key.provider_id,
                key.provider_user_id,
                self._user_id,
            )

    async def _next_rank(self, provider_id: str) -> int:
        result = await self._session.execute(
            select(func.coalesce(func.max(UserConnection.rank), 0)).where(
                UserConnection.user_id == self._user_id,
                UserConnection.provider_id == provider_id,
            )
        )
        return result.scalar_one() + 1

    def _to_row(self, connection: Connection, rank: int) -> UserConnection:
        return UserConnection(
            user_id=self._user_id,
            provider_id=connection.provider_id,
            provider_user_id=connection.provider_user_id,
            rank=rank,
            display_name=connection.display_name,
            profile_url=connection.profile_url,
            image_url=connection.image_url,
            access_token=self._cipher.encrypt(connection.access_token),
            secret=self._cipher.encrypt(connection.secret),
            refresh_token=self._cipher.encrypt(connection.refresh_token),
            expire_time=connection.expire_time,
        )

    async def _find_row(self, key: ConnectionKey) -> Optional[UserConnection]:
        result = await self._session.execute(
            select(UserConnection).where(
                UserConnection.user_id == self._user_id,
                UserConnection.provider_id == key.provider_id,
                UserConnection.provider_user_id == key.provider_user_id,
            )
        )
        return result.scalar_one_or_none()

    def _to_connection(self, row: UserConnection) -> Connection:
        return Connection(
            key=ConnectionKey(row.provider_id, row.provider_user_id),
            display_name=row.display_name,
            profile_url=row.profile_url,
            image_url=row.image_url,
            access_token=self._cipher.decrypt(row.access_token),
            secret=self._cipher.decrypt(row.secret),
            refresh_token=self._cipher.decrypt(row.refresh_token),
            expire_time=row.expire_time,
        )
