import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core import connections
from app.core.backfill import local_today, user_timezone
from app.core.db import get_db, storage_errors
from app.core.errors import StorageUnavailable
from app.models.activity import DailyActivity
from app.models.webhook_log import WebhookLog

logger = logging.getLogger(__name__)

router = APIRouter(tags=["monitoring"])

FRESH_MINUTES = 60
STALE_MINUTES = 360


def _minutes_since(ts: datetime | None, now: datetime) -> float | None:
    if ts is None:
        return None
    if ts.tzinfo is None:
        # SQLite drops the offset; values are written in UTC
        ts = ts.replace(tzinfo=timezone.utc)
    return round((now - ts).total_seconds() / 60, 1)


def freshness(minutes: float | None) -> str:
    if minutes is None:
        return "very_stale"
    if minutes < FRESH_MINUTES:
        return "fresh"
    if minutes < STALE_MINUTES:
        return "stale"
    return "very_stale"


def _day_out(row: DailyActivity, now: datetime) -> Dict[str, Any]:
    return {
        "activity_date": row.activity_date.isoformat(),
        "processing_date": row.processing_date.isoformat() if row.processing_date else None,
        "steps": row.steps,
        "calories": row.calories,
        "sleep_hours": row.sleep_hours,
        "data_source": row.data_source,
        "minutes_since_update": _minutes_since(row.updated_at, now),
    }


def webhook_health(db: Session, user_fid: int, now: datetime | None = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    tz_name = user_timezone(db, user_fid)
    today = local_today(tz_name, now)
    rook_user_id = connections.find_rook_user_id(db, user_fid)

    with storage_errors(db, "reading webhook health"):
        recent = list(
            db.scalars(
                select(DailyActivity)
                .where(DailyActivity.user_fid == user_fid)
                .order_by(DailyActivity.activity_date.desc())
                .limit(7)
            )
        )
        log = None
        if rook_user_id:
            log = db.scalars(
                select(WebhookLog)
                .where(WebhookLog.rook_user_id == rook_user_id)
                .order_by(WebhookLog.processed_at.desc())
                .limit(1)
            ).first()

    today_row = next((r for r in recent if r.activity_date == today), None)
    minutes = _minutes_since(today_row.updated_at, now) if today_row else None

    last_log = None
    if log is not None:
        last_log = {
            "type": log.type,
            "status": log.status,
            "data_date": log.data_date.isoformat() if log.data_date else None,
            "error_message": log.error_message,
            "minutes_ago": _minutes_since(log.processed_at, now),
        }

    healthy = today_row is not None and minutes is not None and minutes < STALE_MINUTES
    return {
        "monitoring_info": {
            "timestamp": now.isoformat(),
            "user_fid": user_fid,
            "rook_user_id": rook_user_id,
        },
        "webhook_health": {
            "has_today_data": today_row is not None,
            "today_last_update": minutes,
            "data_freshness": freshness(minutes),
            "total_recent_days": len(recent),
            "days_with_activity": sum(
                1 for r in recent if r.steps > 0 or r.calories > 0 or (r.sleep_hours or 0) > 0
            ),
            "data_source_used": today_row.data_source if today_row else None,
            "last_webhook": last_log,
        },
        "timezone_analysis": {
            "user_timezone": tz_name,
            "calculated_today": today.isoformat(),
            "server_utc_today": now.date().isoformat(),
            "timezone_offset_detected": today != now.date(),
        },
        "recent_data": [_day_out(r, now) for r in recent],
        "health_status": {
            "overall": "healthy" if healthy else "needs_attention",
            "data_freshness": freshness(minutes),
            "recommendations": (
                ["System operating normally"]
                if healthy
                else ["Check webhook endpoint status", "Verify Rook API connectivity"]
            ),
        },
    }


@router.get("/monitoring/webhook-health")
def get_webhook_health(user_fid: int | None = None, db: Session = Depends(get_db)):
    if user_fid is None:
        return JSONResponse(status_code=400, content={"success": False, "error": "user_fid is required"})
    try:
        return webhook_health(db, user_fid)
    except StorageUnavailable as e:
        logger.error("Webhook health check failed: %s", e)
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})
