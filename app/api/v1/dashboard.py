import logging
from datetime import date as DateType, datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.cache import TTLCache
from app.core.db import get_db
from app.core.errors import (
    AggregatorNotConfigured,
    NoData,
    NotConnected,
    StorageUnavailable,
    UpstreamError,
)
from app.core.pull import (
    MAX_WEEKLY_RANGE_DAYS,
    get_daily_activity,
    get_dashboard_cache,
    get_weekly_activity,
    get_weekly_cache,
)
from app.core.rook import RookClient, get_rook_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rook-dashboard"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _parse_day(value: str | None) -> DateType:
    if not value:
        return datetime.now(timezone.utc).date()
    return DateType.fromisoformat(value)


@router.get("/rook/dashboard-data")
def dashboard_data(
    user_fid: int | None = None,
    date: str | None = None,
    force_refresh: bool = False,
    db: Session = Depends(get_db),
    cache: TTLCache = Depends(get_dashboard_cache),
    client: RookClient = Depends(get_rook_client),
):
    if user_fid is None:
        return _error(400, "user_fid is required")
    try:
        day = _parse_day(date)
    except ValueError:
        return _error(400, f"Invalid date format: {date}, expected YYYY-MM-DD")

    try:
        view = get_daily_activity(
            db,
            user_fid,
            day,
            cache=cache,
            client=client,
            force_refresh=force_refresh,
        )
    except NotConnected as e:
        return _error(404, str(e))
    except NoData:
        return {
            "success": False,
            "error": "No data available for this day",
            "data": None,
        }
    except UpstreamError as e:
        logger.warning("Dashboard pull upstream failure: %s", e)
        return _error(502, "Rook API unavailable")
    except AggregatorNotConfigured as e:
        logger.error("%s", e)
        return _error(500, str(e))
    except StorageUnavailable as e:
        logger.error("Dashboard pull storage failure: %s", e)
        return _error(500, "Internal server error")

    return view.response()


@router.get("/rook/weekly-data")
def weekly_data(
    user_fid: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    force_refresh: bool = False,
    db: Session = Depends(get_db),
    cache: TTLCache = Depends(get_weekly_cache),
    client: RookClient = Depends(get_rook_client),
):
    if user_fid is None:
        return _error(400, "user_fid is required")
    if not start_date:
        return _error(400, "start_date is required")
    try:
        start = DateType.fromisoformat(start_date)
        end = _parse_day(end_date)
    except ValueError:
        return _error(400, "Dates must be YYYY-MM-DD")
    if end < start:
        return _error(400, "end_date must not be before start_date")
    if (end - start).days >= MAX_WEEKLY_RANGE_DAYS:
        return _error(400, f"Date range is limited to {MAX_WEEKLY_RANGE_DAYS} days")

    try:
        days, source = get_weekly_activity(
            db,
            user_fid,
            start,
            end,
            cache=cache,
            client=client,
            force_refresh=force_refresh,
        )
    except NotConnected as e:
        return _error(404, str(e))
    except UpstreamError as e:
        logger.warning("Weekly pull upstream failure: %s", e)
        return _error(502, "Rook API unavailable")
    except AggregatorNotConfigured as e:
        logger.error("%s", e)
        return _error(500, str(e))
    except StorageUnavailable as e:
        logger.error("Weekly pull storage failure: %s", e)
        return _error(500, "Internal server error")

    return {"success": True, "data": days, "source": source}
