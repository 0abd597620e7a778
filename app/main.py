import logging

from fastapi import FastAPI

from app.core.config import settings
from app.core.db import Base, engine
from app.core.events import ActivityUpdated, bus, sync_challenges
from app.api.v1.health import router as health_router
from app.api.v1.webhook import router as webhook_router
from app.api.v1.dashboard import router as dashboard_router
from app.api.v1.migration import router as migration_router
from app.api.v1.monitoring import router as monitoring_router
from app import models  # noqa: F401  registers tables on Base.metadata

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Liv More Ingest", version="1.0.0")

if engine:
    Base.metadata.create_all(bind=engine)

bus.subscribe(ActivityUpdated, sync_challenges)

app.include_router(health_router, prefix="/v1")
app.include_router(webhook_router, prefix="/v1")
app.include_router(dashboard_router, prefix="/v1")
app.include_router(migration_router, prefix="/v1")
app.include_router(monitoring_router, prefix="/v1")
