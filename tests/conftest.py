import os

# the app module builds its engine at import time
os.environ.setdefault("POSTGRES_DSN", "sqlite://")

from typing import Dict, List, Tuple  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.cache import TTLCache  # noqa: E402
from app.core.db import Base, get_db  # noqa: E402
from app.core.pull import get_dashboard_cache, get_weekly_cache  # noqa: E402
from app.core.rook import RookClient, get_rook_client  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Connection, User  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


class FakeRook:
    """
    Scripted Rook API. `responses` maps the endpoint segment
    ("physical_health", "sleep", "sleep_health") to (status, json) or to
    "timeout"; anything unscripted answers 204.
    """

    def __init__(self):
        self.responses: Dict[str, object] = {}
        self.calls: List[Tuple[str, str, str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.split("/")[3]
        self.calls.append(
            (endpoint, request.url.params.get("user_id"), request.url.params.get("date"))
        )
        scripted = self.responses.get(endpoint, (204, None))
        if scripted == "timeout":
            raise httpx.ConnectTimeout("timed out", request=request)
        status, body = scripted
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def client(self, configured: bool = True) -> RookClient:
        return RookClient(
            base_url="https://rook.test",
            client_uuid="uuid" if configured else "",
            client_secret="secret" if configured else "",
            timeout=1.0,
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def rook():
    return FakeRook()


@pytest.fixture
def client(db, rook):
    dashboard_cache = TTLCache(60)
    weekly_cache = TTLCache(60)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_rook_client] = lambda: rook.client()
    app.dependency_overrides[get_dashboard_cache] = lambda: dashboard_cache
    app.dependency_overrides[get_weekly_cache] = lambda: weekly_cache
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def connected_user(db):
    """Whitelist id 77 -> user_fid 5, connected to Rook as "rook-abc"."""
    db.add(User(id=77, user_fid=5, username="ana", display_name="Ana"))
    db.add(Connection(user_fid=5, rook_user_id="rook-abc", data_sources=["garmin"]))
    db.commit()
    return 5


def physical_payload(steps=8321, kcal=410.2, **extra):
    payload = {
        "physical_health": {
            "summary": {
                "physical_summary": {
                    "distance": {"steps_int": steps},
                    "calories": {"calories_expenditure_kcal_float": kcal},
                }
            }
        }
    }
    payload.update(extra)
    return payload


def sleep_payload(seconds=27000, **extra):
    payload = {
        "sleep_health": {
            "summary": {
                "sleep_summary": {
                    "duration": {"sleep_duration_seconds_int": seconds},
                    "scores": {"sleep_efficiency_1_100_score_int": 91},
                }
            }
        }
    }
    payload.update(extra)
    return payload
