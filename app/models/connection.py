from sqlalchemy import BigInteger, Column, DateTime, Integer, JSON, String

from app.core.db import Base
from app.models.user import _utcnow


class Connection(Base):
    """Link between an application user and Rook's identity space."""

    __tablename__ = "connections"

    id = Column(Integer, primary_key=True)

    # one active aggregator id per user; a new connection overwrites the old
    user_fid = Column(BigInteger, nullable=False, unique=True, index=True)
    rook_user_id = Column(String(128), nullable=False, unique=True, index=True)

    provider = Column(String(64), default="rook")
    data_sources = Column(JSON)  # e.g. ["garmin", "fitbit"]
    connection_status = Column(String(32), nullable=False, default="active")

    access_token = Column(String)
    refresh_token = Column(String)
    token_expires_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class LegacyUserConnection(Base):
    """
    Pre-consolidation connection table. Read only; see
    app.core.connections for the compatibility lookup.
    """

    __tablename__ = "user_connections"

    id = Column(Integer, primary_key=True)
    user_fid = Column(BigInteger, nullable=False, index=True)
    provider = Column(String(64))
    rook_user_id = Column(String(128), index=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)
