import logging
from datetime import date as DateType

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.backfill import run_backfill
from app.core.db import get_db
from app.core.errors import AggregatorNotConfigured, StorageUnavailable
from app.core.events import ActivityUpdated, bus
from app.core.rook import RookClient, get_rook_client
from app.core.verification import delete_rows, verification_report

logger = logging.getLogger(__name__)

router = APIRouter(tags=["migration"])


class BackfillIn(BaseModel):
    force_refresh: bool = False
    specific_user_fid: int | None = None


class CleanupIn(BaseModel):
    user_fid: int | None = None
    activity_date: DateType | None = None
    test_data_only: bool = False


def _publish_all(events: list[ActivityUpdated]) -> None:
    for event in events:
        bus.publish(event)


@router.post("/migrate-historical-data")
def migrate_historical_data(
    background_tasks: BackgroundTasks,
    payload: BackfillIn | None = None,
    db: Session = Depends(get_db),
    client: RookClient = Depends(get_rook_client),
):
    payload = payload or BackfillIn()
    events: list[ActivityUpdated] = []
    try:
        result = run_backfill(
            db,
            client,
            force_refresh=payload.force_refresh,
            specific_user_fid=payload.specific_user_fid,
            events=events,
        )
    except AggregatorNotConfigured as e:
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    except StorageUnavailable as e:
        logger.error("Backfill aborted: %s", e)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Migration failed", "details": str(e)},
        )

    if events:
        background_tasks.add_task(_publish_all, events)
    return result


@router.get("/verify-migration")
def verify_migration(db: Session = Depends(get_db)):
    try:
        return verification_report(db)
    except StorageUnavailable as e:
        logger.error("Verification failed: %s", e)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Verification failed", "details": str(e)},
        )


@router.delete("/verify-migration")
def cleanup_migration(payload: CleanupIn, db: Session = Depends(get_db)):
    if payload.user_fid is None or payload.activity_date is None:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "user_fid and activity_date are required"},
        )

    try:
        deleted = delete_rows(db, payload.user_fid, payload.activity_date, payload.test_data_only)
    except StorageUnavailable as e:
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Cleanup failed", "details": str(e)},
        )

    return {
        "success": True,
        "message": f"Cleaned {deleted} rows from daily_activities",
        "user_fid": payload.user_fid,
        "activity_date": payload.activity_date.isoformat(),
        "deleted_rows": deleted,
    }
