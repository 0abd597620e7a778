import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core import db as db_module

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _db_status() -> str:
    if db_module.engine is None:
        return "not_configured"
    try:
        with db_module.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Health check could not reach the database: %s", e)
        return "unavailable"
    return "ok"


@router.get("/health")
def health():
    db = _db_status()
    return {
        "status": "ok" if db == "ok" else "degraded",
        "environment": settings.ENVIRONMENT,
        "db": db,
    }
