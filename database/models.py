"""
SQLAlchemy ORM models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class UserConnection(Base):
    """One row per (local account, provider, provider user)."""

    __tablename__ = "user_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "provider_id", "provider_user_id", name="uq_user_connection_key"),
        UniqueConstraint("user_id", "provider_id", "rank", name="uq_user_connection_rank"),
    )

    connection_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    provider_id = Column(String(32), nullable=False)
    provider_user_id = Column(String(256), nullable=False)
    rank = Column(Integer, nullable=False)
    display_name = Column(String(256))
    profile_url = Column(String(512))
    image_url = Column(String(512))
    access_token = Column(Text, nullable=False)
    secret = Column(Text)
    refresh_token = Column(Text)
    expire_time = Column(BigInteger)  # epoch millis
    connected_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
