"""
On-demand reads for the dashboard: cache, then the local store, then Rook
with write-back so the next read is local.
"""
from __future__ import annotations

import logging
import random
from datetime import date as DateType, timedelta
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core import connections, store
from app.core.cache import TTLCache
from app.core.config import settings
from app.core.db import storage_errors
from app.core.errors import AggregatorNotConfigured, NoData, NotConnected, UpstreamError
from app.core.rook import RookClient, summarize
from app.models.user import User

logger = logging.getLogger(__name__)

SOURCE_LOCAL = "local_db"
SOURCE_LIVE = "rook_api"
SOURCE_DEMO = "demo_data"

MAX_WEEKLY_RANGE_DAYS = 31

_NO_DATA = object()

_dashboard_cache = TTLCache(settings.DASHBOARD_CACHE_TTL_SECONDS, settings.CACHE_MAX_ENTRIES)
_weekly_cache = TTLCache(settings.WEEKLY_CACHE_TTL_SECONDS, settings.CACHE_MAX_ENTRIES)


def get_dashboard_cache() -> TTLCache:
    return _dashboard_cache


def get_weekly_cache() -> TTLCache:
    return _weekly_cache


class ActivityView(BaseModel):
    user: Optional[Dict[str, Any]] = None
    date: DateType
    steps: Optional[int] = None
    calories: Optional[int] = None
    sleep_hours: Optional[float] = None
    sleep_efficiency: Optional[float] = None
    source: str

    def response(self) -> Dict[str, Any]:
        # the dashboard renders missing values as zero
        return {
            "success": True,
            "data": {
                "user": self.user,
                "date": self.date.isoformat(),
                "physical": {
                    "steps": self.steps or 0,
                    "calories": self.calories or 0,
                },
                "sleep": {
                    "hours": self.sleep_hours or 0,
                    "efficiency": self.sleep_efficiency or 0,
                },
            },
            "source": self.source,
        }


def _user_info(db: Session, user_fid: int) -> Optional[Dict[str, Any]]:
    with storage_errors(db, "reading user"):
        user = db.scalars(select(User).where(User.user_fid == user_fid)).first()
    if user is None:
        return None
    return {"username": user.username, "display_name": user.display_name}


def get_daily_activity(
    db: Session,
    user_fid: int,
    day: DateType,
    *,
    cache: TTLCache,
    client: RookClient,
    force_refresh: bool = False,
) -> ActivityView:
    """
    Raises NotConnected, NoData, AggregatorNotConfigured, UpstreamError
    (every live call failed) or StorageUnavailable.
    """
    key = (user_fid, day)
    if not force_refresh:
        cached = cache.get(key)
        if cached is _NO_DATA:
            raise NoData(f"No data for user {user_fid} on {day.isoformat()}")
        if cached is not None:
            logger.debug("Dashboard cache hit user_fid=%s date=%s", user_fid, day)
            return cached

    row = store.get_activity(db, user_fid, day)
    if row is not None:
        view = ActivityView(
            user=_user_info(db, user_fid),
            date=day,
            steps=row.steps,
            calories=row.calories,
            sleep_hours=row.sleep_hours,
            sleep_efficiency=row.sleep_efficiency,
            source=SOURCE_LOCAL,
        )
        cache.set(key, view)
        return view

    rook_user_id = connections.find_rook_user_id(db, user_fid)
    if rook_user_id is None:
        raise NotConnected(user_fid)

    if not client.configured:
        raise AggregatorNotConfigured("Rook credentials are not configured")

    results = client.fetch_day(rook_user_id, day)
    if all(result.failed for result in results.values()):
        raise UpstreamError(f"Every Rook call failed for user {user_fid} on {day.isoformat()}")

    activity = summarize(results)
    if activity.is_empty():
        cache.set(key, _NO_DATA)
        raise NoData(f"No data for user {user_fid} on {day.isoformat()}")

    store.upsert_activity(
        db,
        user_fid,
        day,
        activity.present_fields(),
        data_source=activity.data_source,
        rook_user_id=rook_user_id,
        metadata={"source": SOURCE_LIVE},
    )
    logger.info("Wrote back live Rook data for user_fid=%s date=%s", user_fid, day)

    # not cached: the next read should come from the persisted row
    return ActivityView(
        user=_user_info(db, user_fid),
        date=day,
        steps=activity.steps,
        calories=activity.calories,
        sleep_hours=activity.sleep_hours,
        sleep_efficiency=activity.sleep_efficiency,
        source=SOURCE_LIVE,
    )


# ---------- weekly ----------

def _days(start: DateType, end: DateType) -> List[DateType]:
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def demo_week(user_fid: int, start: DateType, end: DateType) -> List[Dict[str, Any]]:
    """Plausible placeholder data for development dashboards."""
    out = []
    for day in _days(start, end):
        rng = random.Random(f"{user_fid}:{day.isoformat()}")
        out.append(
            {
                "date": day.isoformat(),
                "steps": rng.randint(3000, 8000),
                "calories": rng.randint(150, 350),
                "sleep_hours": round(rng.uniform(5, 8), 1),
            }
        )
    return out


def _day_out(day: DateType, steps, calories, sleep_hours) -> Dict[str, Any]:
    return {
        "date": day.isoformat(),
        "steps": steps or 0,
        "calories": calories or 0,
        "sleep_hours": sleep_hours or 0,
    }


def get_weekly_activity(
    db: Session,
    user_fid: int,
    start: DateType,
    end: DateType,
    *,
    cache: TTLCache,
    client: RookClient,
    force_refresh: bool = False,
) -> Tuple[List[Dict[str, Any]], str]:
    """Returns (days, source)."""
    key = (user_fid, start, end)
    if not force_refresh:
        cached = cache.get(key)
        if cached is not None:
            return cached

    rows = store.list_activities(db, user_fid, start, end)
    if rows:
        result = (
            [_day_out(r.activity_date, r.steps, r.calories, r.sleep_hours) for r in rows],
            SOURCE_LOCAL,
        )
        cache.set(key, result)
        return result

    rook_user_id = connections.find_rook_user_id(db, user_fid)
    if rook_user_id is None:
        if settings.ENVIRONMENT != "production":
            result = (demo_week(user_fid, start, end), SOURCE_DEMO)
            cache.set(key, result)
            return result
        raise NotConnected(user_fid)

    if not client.configured:
        raise AggregatorNotConfigured("Rook credentials are not configured")

    days: List[Dict[str, Any]] = []
    failed_days = 0
    for day in _days(start, end):
        results = client.fetch_day(rook_user_id, day)
        if all(r.failed for r in results.values()):
            failed_days += 1
            days.append(_day_out(day, 0, 0, 0))
            continue

        activity = summarize(results)
        if not activity.is_empty():
            store.upsert_activity(
                db,
                user_fid,
                day,
                activity.present_fields(),
                data_source=activity.data_source,
                rook_user_id=rook_user_id,
                metadata={"source": SOURCE_LIVE},
            )
        days.append(_day_out(day, activity.steps, activity.calories, activity.sleep_hours))

    if failed_days == len(days):
        if settings.ENVIRONMENT != "production":
            logger.warning("Rook unavailable for user_fid=%s; serving demo week", user_fid)
            result = (demo_week(user_fid, start, end), SOURCE_DEMO)
            cache.set(key, result)
            return result
        raise UpstreamError(f"Every Rook call failed for user {user_fid}")

    result = (days, SOURCE_LIVE)
    cache.set(key, result)
    return result
