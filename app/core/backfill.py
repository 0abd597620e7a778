"""
Historical backfill: pull the days Rook already holds for each connected
user (Rook only keeps a short pre-existing window) into daily_activities.
"""
from __future__ import annotations

import logging
from datetime import date as DateType, datetime, timedelta, timezone
from typing import Any, Dict, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core import connections, store
from app.core.config import settings
from app.core.db import storage_errors
from app.core.errors import AggregatorNotConfigured
from app.core.events import ActivityUpdated
from app.core.rook import RookClient, summarize
from app.models.connection import Connection
from app.models.goals import UserGoals

logger = logging.getLogger(__name__)

BACKFILL_METADATA = {"migration": True, "source": "historical_migration"}


def user_timezone(db: Session, user_fid: int) -> str:
    with storage_errors(db, "reading user timezone"):
        tz = db.execute(select(UserGoals.timezone).where(UserGoals.user_fid == user_fid)).scalar()
    if not tz or tz == "UTC":
        return "UTC"
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r for user_fid=%s, using UTC", tz, user_fid)
        return "UTC"
    return tz


def local_today(tz_name: str, now: datetime | None = None) -> DateType:
    now = now or datetime.now(timezone.utc)
    tz = timezone.utc if tz_name == "UTC" else ZoneInfo(tz_name)
    return now.astimezone(tz).date()


def backfill_window(today: DateType, days: int | None = None) -> List[DateType]:
    """The `days` calendar dates ending yesterday, oldest first."""
    days = settings.BACKFILL_WINDOW_DAYS if days is None else days
    return [today - timedelta(days=i) for i in range(days, 0, -1)]


def _fallback_source(connection: Connection) -> str | None:
    sources = connection.data_sources
    if isinstance(sources, list) and sources:
        return str(sources[0])
    return None


def backfill_user(
    db: Session,
    connection: Connection,
    client: RookClient,
    *,
    force_refresh: bool = False,
    now: datetime | None = None,
    events: List[ActivityUpdated] | None = None,
) -> Dict[str, Any]:
    """
    Per-date upstream failures are counted and skipped over; storage
    failures propagate.
    """
    tz_name = user_timezone(db, connection.user_fid)
    dates = backfill_window(local_today(tz_name, now))

    migrated = skipped = errors = 0
    for day in dates:
        if not force_refresh and store.activity_exists(db, connection.user_fid, day):
            skipped += 1
            continue

        results = client.fetch_day(connection.rook_user_id, day)
        activity = summarize(results)
        failed = [r.endpoint.value for r in results.values() if r.failed]

        if failed and activity.is_empty():
            logger.warning(
                "Backfill user_fid=%s date=%s: Rook calls failed (%s)",
                connection.user_fid,
                day,
                ", ".join(failed),
            )
            errors += 1
            continue

        store.upsert_activity(
            db,
            connection.user_fid,
            day,
            activity.present_fields(),
            data_source=activity.data_source or _fallback_source(connection),
            rook_user_id=connection.rook_user_id,
            metadata=dict(BACKFILL_METADATA),
        )
        if events is not None:
            events.append(ActivityUpdated(connection.user_fid, day, "backfill"))

        if failed:
            # partial data was kept, but the day still needs a retry
            errors += 1
        else:
            migrated += 1

    logger.info(
        "Backfill user_fid=%s tz=%s migrated=%d skipped=%d errors=%d",
        connection.user_fid,
        tz_name,
        migrated,
        skipped,
        errors,
    )
    return {
        "user_fid": connection.user_fid,
        "rook_user_id": connection.rook_user_id,
        "days_migrated": migrated,
        "skipped": skipped,
        "errors": errors,
        "user_timezone": tz_name,
        "dates": [d.isoformat() for d in dates],
    }


def run_backfill(
    db: Session,
    client: RookClient,
    *,
    force_refresh: bool = False,
    specific_user_fid: int | None = None,
    now: datetime | None = None,
    events: List[ActivityUpdated] | None = None,
) -> Dict[str, Any]:
    if not client.configured:
        raise AggregatorNotConfigured("Rook credentials are not configured")

    targets = connections.active_connections(db, specific_user_fid)
    logger.info("Backfill starting for %d active connections", len(targets))

    # connection attributes reload after each commit
    with storage_errors(db, "during backfill"):
        results = [
            backfill_user(
                db,
                connection,
                client,
                force_refresh=force_refresh,
                now=now,
                events=events,
            )
            for connection in targets
        ]

    return {
        "success": True,
        "migration_summary": {
            "total_users_processed": len(results),
            "total_days_migrated": sum(r["days_migrated"] for r in results),
            "total_skipped": sum(r["skipped"] for r in results),
            "total_errors": sum(r["errors"] for r in results),
            "force_refresh": force_refresh,
            "specific_user_fid": specific_user_fid,
        },
        "results": results,
    }
