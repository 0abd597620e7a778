"""
Single repository for the user <-> Rook identity link.

`connections` is the canonical table. The legacy `user_connections` table
is only read by the compatibility shim at the bottom of this module, and
`migrate_legacy_connections` copies its rows forward.

Database failures surface as StorageUnavailable.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.db import storage_errors
from app.models.connection import Connection, LegacyUserConnection
from app.models.user import User

logger = logging.getLogger(__name__)


def find_user_fid(db: Session, rook_user_id: str) -> Optional[int]:
    with storage_errors(db, "looking up connection"):
        row = db.execute(
            select(Connection.user_fid).where(Connection.rook_user_id == rook_user_id)
        ).first()
        if row is not None:
            return row[0]
        return _legacy_user_fid(db, rook_user_id)


def find_rook_user_id(db: Session, user_fid: int) -> Optional[str]:
    with storage_errors(db, "looking up connection"):
        row = db.execute(
            select(Connection.rook_user_id).where(
                Connection.user_fid == user_fid,
                Connection.rook_user_id.is_not(None),
            )
        ).first()
        if row is not None:
            return row[0]
        return _legacy_rook_user_id(db, user_fid)


def active_connections(db: Session, user_fid: int | None = None) -> List[Connection]:
    query = select(Connection).where(Connection.connection_status == "active")
    if user_fid is not None:
        query = query.where(Connection.user_fid == user_fid)
    with storage_errors(db, "listing connections"):
        return list(db.scalars(query.order_by(Connection.user_fid)))


def attach(
    db: Session,
    user_fid: int,
    rook_user_id: str,
    provider: str = "rook",
    data_sources: list | None = None,
) -> Connection:
    """
    Attach (or replace) the aggregator id for a user. Any other connection
    already holding this aggregator id is dropped so lookups stay unique.
    """
    with storage_errors(db, "attaching connection"):
        stale = db.scalars(
            select(Connection).where(
                Connection.rook_user_id == rook_user_id,
                Connection.user_fid != user_fid,
            )
        ).all()
        for row in stale:
            logger.warning(
                "Rook id %s moved from user_fid=%s to user_fid=%s",
                rook_user_id,
                row.user_fid,
                user_fid,
            )
            db.delete(row)
        db.flush()

        connection = db.scalars(select(Connection).where(Connection.user_fid == user_fid)).first()
        if connection is None:
            connection = Connection(user_fid=user_fid, rook_user_id=rook_user_id)
            db.add(connection)

        connection.rook_user_id = rook_user_id
        connection.provider = provider
        connection.connection_status = "active"
        if data_sources is not None:
            connection.data_sources = data_sources

        user = db.scalars(select(User).where(User.user_fid == user_fid)).first()
        if user is not None:
            user.connected_provider = provider

        db.commit()
        db.refresh(connection)
    return connection


def migrate_legacy_connections(db: Session) -> int:
    """Copy legacy rows that have no canonical counterpart. Returns count."""
    migrated = 0
    legacy_rows = db.scalars(
        select(LegacyUserConnection)
        .where(LegacyUserConnection.rook_user_id.is_not(None))
        .order_by(LegacyUserConnection.updated_at.desc())
    ).all()

    seen: set[int] = set()
    for legacy in legacy_rows:
        if legacy.user_fid in seen:
            continue
        seen.add(legacy.user_fid)

        exists = db.execute(
            select(Connection.id).where(
                (Connection.user_fid == legacy.user_fid)
                | (Connection.rook_user_id == legacy.rook_user_id)
            )
        ).first()
        if exists is not None:
            continue

        db.add(
            Connection(
                user_fid=legacy.user_fid,
                rook_user_id=legacy.rook_user_id,
                provider=legacy.provider or "rook",
                connection_status="active",
            )
        )
        migrated += 1

    db.commit()
    logger.info("Migrated %d legacy connections", migrated)
    return migrated


# ---------------------------------------------------------------------------
# Compatibility shim: legacy `user_connections` lookups.
# Remove once migrate_legacy_connections has run in every environment.
# ---------------------------------------------------------------------------
def _legacy_user_fid(db: Session, rook_user_id: str) -> Optional[int]:
    row = db.execute(
        select(LegacyUserConnection.user_fid)
        .where(LegacyUserConnection.rook_user_id == rook_user_id)
        .limit(1)
    ).first()
    if row is not None:
        logger.info("Resolved rook_user_id=%s through legacy user_connections", rook_user_id)
        return row[0]
    return None


def _legacy_rook_user_id(db: Session, user_fid: int) -> Optional[str]:
    row = db.execute(
        select(LegacyUserConnection.rook_user_id)
        .where(
            LegacyUserConnection.user_fid == user_fid,
            LegacyUserConnection.rook_user_id.is_not(None),
        )
        .limit(1)
    ).first()
    if row is not None:
        logger.info("Using legacy user_connections rook id for user_fid=%s", user_fid)
        return row[0]
    return None
