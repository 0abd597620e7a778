from datetime import date

import pytest
from sqlalchemy import func, select

from app.core import store
from app.models import DailyActivity, WebhookLog

DAY = date(2024, 6, 1)


def test_new_row_defaults(db):
    store.upsert_activity(db, 5, DAY, {"steps": 1000})

    row = store.get_activity(db, 5, DAY)
    assert row.steps == 1000
    assert row.calories == 0
    assert row.distance_meters == 0
    assert row.sleep_hours is None
    assert row.sleep_efficiency is None


def test_partial_update_does_not_clobber(db):
    store.upsert_activity(db, 5, DAY, {"steps": 5000, "calories": 300})
    store.upsert_activity(db, 5, DAY, {"sleep_hours": 7.5})

    db.expire_all()
    row = store.get_activity(db, 5, DAY)
    assert (row.steps, row.calories, row.sleep_hours) == (5000, 300, 7.5)


def test_none_values_are_treated_as_absent(db):
    store.upsert_activity(db, 5, DAY, {"steps": 5000})
    store.upsert_activity(db, 5, DAY, {"steps": None, "sleep_hours": 6.0})

    db.expire_all()
    assert store.get_activity(db, 5, DAY).steps == 5000


@pytest.mark.parametrize("physical_first", [True, False])
def test_merge_is_order_independent(db, physical_first):
    physical = {"steps": 8000, "calories": 400, "distance_meters": 5000}
    sleep = {"sleep_hours": 7.2, "sleep_efficiency": 88.0}
    for fields in ([physical, sleep] if physical_first else [sleep, physical]):
        store.upsert_activity(db, 5, DAY, fields)

    db.expire_all()
    row = store.get_activity(db, 5, DAY)
    assert (row.steps, row.calories, row.distance_meters) == (8000, 400, 5000)
    assert (row.sleep_hours, row.sleep_efficiency) == (7.2, 88.0)
    assert db.scalar(select(func.count(DailyActivity.id))) == 1


def test_tags_only_overwritten_when_supplied(db):
    store.upsert_activity(
        db, 5, DAY, {"steps": 1}, data_source="garmin", rook_user_id="r1", metadata={"a": 1}
    )
    store.upsert_activity(db, 5, DAY, {"steps": 2})

    db.expire_all()
    row = store.get_activity(db, 5, DAY)
    assert row.steps == 2
    assert row.data_source == "garmin"
    assert row.rook_user_id == "r1"
    assert row.ingest_metadata == {"a": 1}
    assert row.processing_date is not None


def test_list_activities_range(db):
    for day in (date(2024, 5, 31), DAY, date(2024, 6, 2), date(2024, 6, 3)):
        store.upsert_activity(db, 5, day, {"steps": day.day})
    store.upsert_activity(db, 6, DAY, {"steps": 1})

    rows = store.list_activities(db, 5, DAY, date(2024, 6, 2))
    assert [r.activity_date for r in rows] == [DAY, date(2024, 6, 2)]
    assert store.activity_exists(db, 5, DAY)
    assert not store.activity_exists(db, 5, date(2024, 7, 1))


def test_webhook_log_redelivery_updates_in_place(db):
    kwargs = dict(
        rook_user_id="r1",
        log_type="physical_summary",
        document_version="3",
        data_date=DAY,
        raw_payload={"x": 1},
    )
    store.record_webhook_log(db, status="error", error_message="boom", **kwargs)
    store.record_webhook_log(db, status="success", **kwargs)

    logs = db.scalars(select(WebhookLog)).all()
    assert len(logs) == 1
    db.refresh(logs[0])
    assert logs[0].status == "success"
    assert logs[0].error_message is None


def test_webhook_log_distinct_versions_are_kept(db):
    for version in ("1", "2"):
        store.record_webhook_log(
            db,
            rook_user_id="r1",
            log_type="sleep_summary",
            document_version=version,
            data_date=DAY,
            status="success",
            raw_payload={},
        )
    assert db.scalar(select(func.count(WebhookLog.id))) == 2
