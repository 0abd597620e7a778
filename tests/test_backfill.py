from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select

from app.core import store
from app.core.backfill import backfill_window, local_today, run_backfill, user_timezone
from app.core.rook import get_rook_client
from app.main import app
from app.models import Connection, DailyActivity, UserGoals

NOW = datetime(2024, 6, 8, 12, 0, tzinfo=timezone.utc)
WINDOW = [date(2024, 6, 1) + timedelta(days=i) for i in range(7)]

PHYSICAL = {
    "physical_health": {
        "summary": {"physical_summary": {"distance": {"steps_int": 6000}}}
    }
}


def test_window_is_seven_days_ending_yesterday():
    assert backfill_window(date(2024, 6, 8)) == WINDOW


def test_user_timezone_shifts_the_window(db):
    db.add(UserGoals(user_fid=5, timezone="Pacific/Auckland"))
    db.add(UserGoals(user_fid=6, timezone="Not/AZone"))
    db.commit()

    assert local_today(user_timezone(db, 5), NOW) == date(2024, 6, 9)
    assert user_timezone(db, 6) == "UTC"
    assert user_timezone(db, 7) == "UTC"


def test_fully_stored_user_is_skipped(db, rook, connected_user):
    for day in WINDOW:
        store.upsert_activity(db, 5, day, {"steps": 100})

    result = run_backfill(db, rook.client(), now=NOW)

    (user,) = result["results"]
    assert (user["days_migrated"], user["skipped"], user["errors"]) == (0, 7, 0)
    assert rook.calls == []


def test_missing_days_are_migrated_with_tags(db, rook, connected_user):
    rook.responses["physical_health"] = (200, PHYSICAL)
    store.upsert_activity(db, 5, WINDOW[0], {"steps": 1})

    result = run_backfill(db, rook.client(), now=NOW)

    (user,) = result["results"]
    assert (user["days_migrated"], user["skipped"], user["errors"]) == (6, 1, 0)
    assert result["migration_summary"]["total_days_migrated"] == 6

    db.expire_all()
    row = store.get_activity(db, 5, WINDOW[-1])
    assert row.steps == 6000
    assert row.ingest_metadata == {"migration": True, "source": "historical_migration"}
    # no source in the payload, so the connection's first source is used
    assert row.data_source == "garmin"
    assert store.get_activity(db, 5, WINDOW[0]).steps == 1


def test_force_refresh_overwrites_present_fields_only(db, rook, connected_user):
    rook.responses["physical_health"] = (200, PHYSICAL)
    store.upsert_activity(db, 5, WINDOW[0], {"steps": 1, "sleep_hours": 8.0})

    result = run_backfill(db, rook.client(), force_refresh=True, now=NOW)

    assert result["results"][0]["days_migrated"] == 7
    db.expire_all()
    row = store.get_activity(db, 5, WINDOW[0])
    assert (row.steps, row.sleep_hours) == (6000, 8.0)


def test_upstream_failures_are_counted_and_skipped(db, rook, connected_user):
    for endpoint in ("physical_health", "sleep", "sleep_health"):
        rook.responses[endpoint] = "timeout"

    result = run_backfill(db, rook.client(), now=NOW)

    (user,) = result["results"]
    assert (user["days_migrated"], user["skipped"], user["errors"]) == (0, 0, 7)
    assert db.scalars(select(DailyActivity)).all() == []


def test_empty_days_get_zero_rows(db, rook, connected_user):
    result = run_backfill(db, rook.client(), now=NOW)

    assert result["results"][0]["days_migrated"] == 7
    rows = db.scalars(select(DailyActivity)).all()
    assert len(rows) == 7
    assert all(r.steps == 0 and r.sleep_hours is None for r in rows)


def test_scope_to_one_user(db, rook, connected_user):
    db.add(Connection(user_fid=6, rook_user_id="other"))
    db.commit()

    result = run_backfill(db, rook.client(), specific_user_fid=6, now=NOW)

    assert [r["user_fid"] for r in result["results"]] == [6]
    assert {c[1] for c in rook.calls} == {"other"}


def test_endpoint(client, rook, connected_user):
    resp = client.post("/v1/migrate-historical-data", json={"specific_user_fid": 5})

    assert resp.status_code == 200
    body = resp.json()
    assert body["migration_summary"]["total_users_processed"] == 1
    assert body["migration_summary"]["force_refresh"] is False


def test_endpoint_without_credentials(client, rook, connected_user):
    app.dependency_overrides[get_rook_client] = lambda: rook.client(configured=False)
    resp = client.post("/v1/migrate-historical-data")
    assert resp.status_code == 500


def test_endpoint_storage_failure_is_json_500(client, engine, connected_user):
    Connection.__table__.drop(engine)

    resp = client.post("/v1/migrate-historical-data")

    assert resp.status_code == 500
    body = resp.json()
    assert (body["success"], body["error"]) == (False, "Migration failed")
