"""
Activity upsert store and webhook audit log.

Both writes are a single INSERT ... ON CONFLICT DO UPDATE so the database
provides the atomicity: two deliveries for the same (user, date) racing
each other only touch their own columns and neither update is lost.
"""
from __future__ import annotations

import logging
from datetime import date as DateType, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import StorageUnavailable
from app.core.normalize import ACTIVITY_FIELDS
from app.models.activity import DailyActivity
from app.models.webhook_log import WebhookLog

logger = logging.getLogger(__name__)

# defaults used only when a (user, date) row is created
_NEW_ROW_DEFAULTS = {
    "steps": 0,
    "calories": 0,
    "distance_meters": 0,
    "sleep_hours": None,
    "sleep_efficiency": None,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise StorageUnavailable(f"Upsert not supported on dialect {dialect!r}")


def upsert_activity(
    db: Session,
    user_fid: int,
    activity_date: DateType,
    fields: Dict[str, Any],
    *,
    data_source: str | None = None,
    rook_user_id: str | None = None,
    metadata: Dict[str, Any] | None = None,
) -> None:
    """
    Create-or-merge the (user_fid, activity_date) row.

    Only keys present (and not None) in `fields` are written on conflict;
    everything else keeps its stored value.
    """
    present = {
        name: value
        for name, value in fields.items()
        if name in ACTIVITY_FIELDS and value is not None
    }
    now = _utcnow()

    values = {
        "user_fid": user_fid,
        "activity_date": activity_date,
        "processing_date": now.date(),
        **_NEW_ROW_DEFAULTS,
        **present,
        "data_source": data_source,
        "rook_user_id": rook_user_id,
        "ingest_metadata": metadata,
        "created_at": now,
        "updated_at": now,
    }

    insert = _insert_for(db)
    stmt = insert(DailyActivity).values(**values)

    set_ = {name: stmt.excluded[name] for name in present}
    set_["processing_date"] = stmt.excluded.processing_date
    set_["updated_at"] = stmt.excluded.updated_at
    if data_source is not None:
        set_["data_source"] = stmt.excluded.data_source
    if rook_user_id is not None:
        set_["rook_user_id"] = stmt.excluded.rook_user_id
    if metadata is not None:
        set_["ingest_metadata"] = stmt.excluded.ingest_metadata

    stmt = stmt.on_conflict_do_update(
        index_elements=["user_fid", "activity_date"],
        set_=set_,
    )

    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Activity upsert failed user_fid=%s date=%s: %s", user_fid, activity_date, e)
        raise StorageUnavailable(f"Database error during upsert: {e}") from e

    logger.info(
        "Upserted activity user_fid=%s date=%s fields=%s source=%s",
        user_fid,
        activity_date,
        sorted(present),
        data_source,
    )


def get_activity(db: Session, user_fid: int, activity_date: DateType) -> Optional[DailyActivity]:
    try:
        return db.scalars(
            select(DailyActivity).where(
                DailyActivity.user_fid == user_fid,
                DailyActivity.activity_date == activity_date,
            )
        ).first()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(f"Database error reading activity: {e}") from e


def activity_exists(db: Session, user_fid: int, activity_date: DateType) -> bool:
    return get_activity(db, user_fid, activity_date) is not None


def list_activities(
    db: Session,
    user_fid: int,
    start: DateType,
    end: DateType,
) -> List[DailyActivity]:
    try:
        return list(
            db.scalars(
                select(DailyActivity)
                .where(
                    DailyActivity.user_fid == user_fid,
                    DailyActivity.activity_date >= start,
                    DailyActivity.activity_date <= end,
                )
                .order_by(DailyActivity.activity_date.asc())
            )
        )
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(f"Database error listing activities: {e}") from e


def record_webhook_log(
    db: Session,
    *,
    rook_user_id: str,
    log_type: str,
    document_version: str,
    data_date: DateType | None,
    status: str,
    raw_payload: Any,
    error_message: str | None = None,
) -> None:
    """Insert or refresh the audit row for one delivery."""
    now = _utcnow()
    insert = _insert_for(db)
    stmt = insert(WebhookLog).values(
        rook_user_id=rook_user_id,
        type=log_type,
        document_version=document_version,
        data_date=data_date,
        status=status,
        error_message=error_message,
        raw_payload=raw_payload,
        processed_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["rook_user_id", "type", "document_version"],
        set_={
            "data_date": stmt.excluded.data_date,
            "status": stmt.excluded.status,
            "error_message": stmt.excluded.error_message,
            "raw_payload": stmt.excluded.raw_payload,
            "processed_at": stmt.excluded.processed_at,
        },
    )

    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(f"Database error writing webhook log: {e}") from e
