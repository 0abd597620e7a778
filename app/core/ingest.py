"""
Webhook delivery processing.

Every delivery ends in exactly one webhook_logs write and a success-shaped
response: Rook retries anything that is not 2xx forever, so failures are
logged for replay instead of being surfaced.
"""
from __future__ import annotations

import hashlib
import json
import logging
from datetime import date as DateType
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.core import normalize
from app.core.errors import (
    IdentityNotFound,
    MalformedPayload,
    NoSummaryFound,
    StorageUnavailable,
)
from app.core.events import ActivityUpdated
from app.core.identity import resolve_internal_user
from app.core.store import record_webhook_log, upsert_activity

logger = logging.getLogger(__name__)

MALFORMED_LOG_TYPE = "malformed"


def _is_placeholder(value: Any) -> bool:
    """Rook's dashboard sometimes posts the URL template verbatim."""
    if value is None:
        return True
    text = str(value).strip()
    return not text or (text.startswith("{") and text.endswith("}")) or text.startswith("[")


def _external_id(payload: Dict[str, Any], path_user_id: str | None) -> str:
    if not _is_placeholder(path_user_id):
        return str(path_user_id).strip()
    body_id = payload.get("user_id")
    if not _is_placeholder(body_id):
        return str(body_id).strip()
    raise MalformedPayload("Payload carries no user_id")


def _parse(body: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(body or b"")
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedPayload(f"Body is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedPayload("Body must be a JSON object")
    return payload


def _write_log(db: Session, **kwargs) -> None:
    try:
        record_webhook_log(db, **kwargs)
    except Exception:
        # the raw body is still in the application log for manual replay
        logger.exception(
            "Could not write webhook log rook_user_id=%s type=%s",
            kwargs.get("rook_user_id"),
            kwargs.get("log_type"),
        )


def _malformed(db: Session, body: bytes, path_user_id: str | None, error: MalformedPayload):
    raw = body.decode("utf-8", errors="replace")
    logger.warning("Malformed webhook delivery: %s; raw body=%r", error, raw[:2000])
    _write_log(
        db,
        rook_user_id=str(path_user_id) if not _is_placeholder(path_user_id) else "unknown",
        log_type=MALFORMED_LOG_TYPE,
        document_version=hashlib.sha1(body or b"").hexdigest(),
        data_date=None,
        status="error",
        raw_payload={"raw_body": raw},
        error_message=str(error),
    )
    return {"success": False, "error": str(error)}


def process_delivery(
    db: Session,
    body: bytes,
    path_user_id: str | None = None,
    client_uuid: str | None = None,
    today: DateType | None = None,
) -> Tuple[Dict[str, Any], Optional[ActivityUpdated]]:
    """
    Classify, normalize, resolve and store one delivery.

    Returns the response body and, when a row was stored, the event to
    publish once the response has been sent.
    """
    try:
        payload = _parse(body)
        external_id = _external_id(payload, path_user_id)
    except MalformedPayload as e:
        return _malformed(db, body, path_user_id, e), None

    kind = normalize.classify(payload)
    data_date = normalize.extract_date(payload, today)
    document_version = str(payload.get("document_version") or data_date.isoformat())

    logger.info(
        "Webhook delivery rook_user_id=%s kind=%s date=%s version=%s client_uuid=%s",
        external_id,
        kind.value,
        data_date,
        document_version,
        client_uuid,
    )

    event: ActivityUpdated | None = None
    status = "error"
    error_message: str | None = None

    try:
        activity = normalize.normalize(payload, kind, today)
        user_fid = resolve_internal_user(db, external_id)
        upsert_activity(
            db,
            user_fid,
            data_date,
            activity.present_fields(),
            data_source=activity.data_source,
            rook_user_id=external_id,
            metadata={
                "source": "webhook",
                "kind": kind.value,
                "document_version": document_version,
            },
        )
    except NoSummaryFound as e:
        status = "not_processed"
        error_message = str(e)
        response = {"success": True, "warning": f"Not processed: {e}"}
    except IdentityNotFound as e:
        logger.warning("Webhook for unknown user %s (%s)", e.external_id, kind.log_type)
        error_message = str(e)
        response = {"success": True, "warning": f"Logged only: {e}"}
    except StorageUnavailable as e:
        logger.error("Webhook storage failure for %s: %s", external_id, e)
        error_message = str(e)
        response = {"success": True, "warning": "Logged for replay: storage unavailable"}
    except Exception as e:
        logger.exception("Unexpected webhook failure for %s", external_id)
        error_message = f"{type(e).__name__}: {e}"
        response = {"success": True, "warning": "Logged for replay: unexpected error"}
    else:
        status = "success"
        event = ActivityUpdated(user_fid=user_fid, activity_date=data_date, origin="webhook")
        response = {
            "success": True,
            "message": (
                f"Stored {kind.log_type} for user_fid={user_fid} on {data_date.isoformat()}"
            ),
        }

    _write_log(
        db,
        rook_user_id=external_id,
        log_type=kind.log_type,
        document_version=document_version,
        data_date=data_date,
        status=status,
        raw_payload=payload,
        error_message=error_message,
    )
    return response, event
