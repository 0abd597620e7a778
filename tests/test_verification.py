from datetime import date

from sqlalchemy import select

from app.core import store
from app.core.verification import delete_rows, verification_report
from app.models import DailyActivity, UserGoals

DAY = date(2024, 6, 1)


def _seed(db):
    db.add(UserGoals(user_fid=1, steps_goal=5000, calories_goal=200, sleep_hours_goal=7))
    db.commit()
    store.upsert_activity(db, 1, DAY, {"steps": 6000, "calories": 250, "sleep_hours": 7.5}, data_source="garmin")
    store.upsert_activity(db, 1, date(2024, 6, 2), {"steps": 4000, "calories": 250}, data_source="garmin")
    store.upsert_activity(db, 2, DAY, {"steps": 1000}, data_source="fitbit")
    store.upsert_activity(db, 3, DAY, {})


def test_report_aggregates(db):
    _seed(db)

    report = verification_report(db)

    general = report["general_statistics"]
    assert general["total_records"] == 4
    assert general["unique_users"] == 3
    assert general["records_with_steps"] == 3
    assert general["days_all_goals_completed"] == 1
    assert general["days_steps_completed"] == 1

    sources = {s["data_source"]: s["records_count"] for s in report["data_source_distribution"]}
    assert sources == {"garmin": 2, "fitbit": 1}

    top = report["top_active_users"]
    assert top[0]["user_fid"] == 1 and top[0]["avg_steps"] == 5000

    completion = {c["user_fid"]: c for c in report["completion_analysis"]}
    assert completion[1]["completion_percentage"] == 50.0
    assert completion[2]["days_all_goals_met"] == 0

    assert report["data_quality"]["zero_data_records"]["zero_data_count"] == 1
    assert report["data_quality"]["data_coverage_percentage"] == 75
    assert report["summary"]["multiple_data_sources"] is True


def test_report_on_empty_table(db):
    report = verification_report(db)
    assert report["general_statistics"]["total_records"] == 0
    assert report["data_quality"]["data_coverage_percentage"] == 0
    assert report["summary"]["migration_success"] is False


def test_test_data_only_deletes_sentinel_rows(db):
    store.upsert_activity(db, 1, DAY, {"steps": 9999})
    store.upsert_activity(db, 1, date(2024, 6, 2), {"steps": 5000})

    assert delete_rows(db, 1, DAY, test_data_only=True) == 1
    assert delete_rows(db, 1, date(2024, 6, 2), test_data_only=True) == 0
    assert [r.activity_date for r in db.scalars(select(DailyActivity))] == [date(2024, 6, 2)]


def test_delete_endpoint(client, db):
    store.upsert_activity(db, 1, DAY, {"steps": 10, "calories": 2999})

    resp = client.request(
        "DELETE",
        "/v1/verify-migration",
        json={"user_fid": 1, "activity_date": "2024-06-01", "test_data_only": True},
    )

    assert resp.status_code == 200
    assert resp.json()["deleted_rows"] == 1


def test_delete_requires_both_keys(client, db):
    store.upsert_activity(db, 1, DAY, {"steps": 10})

    assert client.request("DELETE", "/v1/verify-migration", json={"user_fid": 1}).status_code == 400
    assert (
        client.request("DELETE", "/v1/verify-migration", json={"activity_date": "2024-06-01"}).status_code
        == 400
    )
    assert len(db.scalars(select(DailyActivity)).all()) == 1


def test_report_endpoint(client, db):
    _seed(db)
    body = client.get("/v1/verify-migration").json()
    assert body["general_statistics"]["total_records"] == 4
    assert body["general_statistics"]["earliest_date"] == "2024-06-01"
