import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core import connections
from app.core.config import settings
from app.core.db import get_db
from app.core.events import bus
from app.core.ingest import process_delivery
from app.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rook-webhook"])


async def _handle(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session,
    path_user_id: str | None = None,
    client_uuid: str | None = None,
):
    # raw bytes so a malformed body can still be logged verbatim
    body = await request.body()
    try:
        response, event = await run_in_threadpool(
            process_delivery, db, body, path_user_id, client_uuid
        )
    except Exception:
        # anything but 2xx makes Rook redeliver forever
        logger.exception("Webhook delivery failed outside processing; raw body=%r", body[:2000])
        return {"success": True, "warning": "Logged for replay: unexpected error"}
    if event is not None:
        background_tasks.add_task(bus.publish, event)
    return response


@router.post("/rook/webhook")
async def rook_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    return await _handle(request, background_tasks, db)


@router.post("/rook/webhook/client_uuid/{client_uuid}/user_id/{user_id}")
async def rook_webhook_for_user(
    client_uuid: str,
    user_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    return await _handle(request, background_tasks, db, user_id, client_uuid)


@router.get("/rook/webhook")
def rook_webhook_check():
    return {"success": True, "message": "Rook webhook endpoint is configured"}


@router.get("/rook/webhook/client_uuid/{client_uuid}/user_id/{user_id}")
def rook_webhook_for_user_check(
    client_uuid: str,
    user_id: str,
    db: Session = Depends(get_db),
):
    """
    Debug echo. Older Rook connect flows land here with our whitelist id in
    the path; in that case the pending connection is completed and the
    browser is sent back to the dashboard.
    """
    if user_id.isdecimal():
        user = db.scalars(select(User).where(User.id == int(user_id))).first()
        if user is not None:
            connections.attach(db, user.user_fid, user_id, provider="rook")
            logger.info("Completed Rook connection for user_fid=%s via callback", user.user_fid)
            return RedirectResponse(
                f"{settings.APP_BASE_URL.rstrip('/')}/dashboard?connection=success",
                status_code=302,
            )

    return {
        "success": True,
        "message": "Rook webhook endpoint is configured",
        "params": {"client_uuid": client_uuid, "user_id": user_id},
    }
