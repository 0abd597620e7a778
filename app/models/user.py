from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String

from app.core.db import Base


def _utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    """
    Whitelisted application user.

    `id` is the numeric whitelist id handed to Rook during the connect flow;
    `user_fid` is the identifier every other table and API parameter uses.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    user_fid = Column(BigInteger, nullable=False, unique=True, index=True)

    username = Column(String(128))
    display_name = Column(String(256))
    connected_provider = Column(String(64))

    created_at = Column(DateTime(timezone=True), default=_utcnow)
