"""Operational read-only report over daily_activities, plus a scoped delete."""
from __future__ import annotations

import logging
from datetime import date as DateType, datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import and_, case, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import StorageUnavailable
from app.models.activity import DailyActivity
from app.models.goals import UserGoals

logger = logging.getLogger(__name__)

A = DailyActivity
G = UserGoals

_has_data = or_(A.steps > 0, A.calories > 0)

_steps_met = and_(G.steps_goal.is_not(None), A.steps >= G.steps_goal)
_calories_met = and_(G.calories_goal.is_not(None), A.calories >= G.calories_goal)
_sleep_met = and_(G.sleep_hours_goal.is_not(None), A.sleep_hours >= G.sleep_hours_goal)
_all_met = and_(_steps_met, _calories_met, _sleep_met)


def _count_if(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _int(value) -> int | None:
    return None if value is None else int(round(float(value)))


def _pct(part: int, whole: int) -> int:
    return round(part * 100 / whole) if whole else 0


def _rows(result) -> List[Dict[str, Any]]:
    return [dict(row._mapping) for row in result]


def general_statistics(db: Session) -> Dict[str, Any]:
    row = db.execute(
        select(
            func.count(A.id).label("total_records"),
            func.count(func.distinct(A.user_fid)).label("unique_users"),
            func.min(A.activity_date).label("earliest_date"),
            func.max(A.activity_date).label("latest_date"),
            _count_if(A.steps > 0).label("records_with_steps"),
            _count_if(A.calories > 0).label("records_with_calories"),
            _count_if(A.sleep_hours > 0).label("records_with_sleep"),
            _count_if(_all_met).label("days_all_goals_completed"),
            _count_if(_steps_met).label("days_steps_completed"),
            _count_if(_calories_met).label("days_calories_completed"),
            _count_if(_sleep_met).label("days_sleep_completed"),
        ).select_from(A).outerjoin(G, G.user_fid == A.user_fid)
    ).one()
    stats = dict(row._mapping)
    # Postgres hands SUM() back as Decimal
    for key, value in stats.items():
        if key not in ("earliest_date", "latest_date"):
            stats[key] = int(value or 0)
    return stats


def real_data_sample(db: Session, limit: int = 15) -> List[Dict[str, Any]]:
    return _rows(
        db.execute(
            select(
                A.user_fid,
                A.activity_date,
                A.steps,
                A.calories,
                A.sleep_hours,
                A.data_source,
                A.processing_date,
            )
            .where(or_(_has_data, A.sleep_hours > 0))
            .order_by(A.activity_date.desc(), A.steps.desc())
            .limit(limit)
        )
    )


def top_active_users(db: Session, limit: int = 10) -> List[Dict[str, Any]]:
    out = []
    for row in db.execute(
        select(
            A.user_fid,
            func.count(A.id).label("days_recorded"),
            func.avg(A.steps).label("avg_steps"),
            func.avg(A.calories).label("avg_calories"),
            func.avg(A.sleep_hours).label("avg_sleep_hours"),
            _count_if(A.steps > 0).label("days_with_steps"),
            func.max(A.steps).label("max_steps"),
            func.max(A.calories).label("max_calories"),
        )
        .where(_has_data)
        .group_by(A.user_fid)
        .order_by(func.avg(A.steps).desc())
        .limit(limit)
    ):
        item = dict(row._mapping)
        item["avg_steps"] = _int(item["avg_steps"])
        item["avg_calories"] = _int(item["avg_calories"])
        if item["avg_sleep_hours"] is not None:
            item["avg_sleep_hours"] = round(float(item["avg_sleep_hours"]), 1)
        out.append(item)
    return out


def data_source_distribution(db: Session) -> List[Dict[str, Any]]:
    out = []
    for row in db.execute(
        select(
            A.data_source,
            func.count(A.id).label("records_count"),
            func.count(func.distinct(A.user_fid)).label("unique_users"),
            func.avg(A.steps).label("avg_steps"),
            func.avg(A.calories).label("avg_calories"),
            _count_if(A.steps > 0).label("records_with_data"),
        )
        .where(A.data_source.is_not(None))
        .group_by(A.data_source)
        .order_by(func.count(A.id).desc())
    ):
        item = dict(row._mapping)
        item["avg_steps"] = _int(item["avg_steps"])
        item["avg_calories"] = _int(item["avg_calories"])
        out.append(item)
    return out


def daily_distribution(db: Session) -> List[Dict[str, Any]]:
    out = []
    for row in db.execute(
        select(
            A.activity_date,
            func.count(A.id).label("users_count"),
            _count_if(A.steps > 0).label("users_with_steps"),
            _count_if(A.calories > 0).label("users_with_calories"),
            _count_if(_all_met).label("users_completed_all"),
            func.avg(A.steps).label("avg_steps"),
            func.avg(A.calories).label("avg_calories"),
        )
        .select_from(A)
        .outerjoin(G, G.user_fid == A.user_fid)
        .group_by(A.activity_date)
        .order_by(A.activity_date.desc())
    ):
        item = dict(row._mapping)
        item["avg_steps"] = _int(item["avg_steps"])
        item["avg_calories"] = _int(item["avg_calories"])
        out.append(item)
    return out


def completion_analysis(db: Session, limit: int = 15) -> List[Dict[str, Any]]:
    out = []
    for row in db.execute(
        select(
            A.user_fid,
            G.steps_goal,
            G.calories_goal,
            G.sleep_hours_goal,
            func.count(A.id).label("total_days"),
            _count_if(_steps_met).label("days_steps_goal_met"),
            _count_if(_calories_met).label("days_calories_goal_met"),
            _count_if(_sleep_met).label("days_sleep_goal_met"),
            _count_if(_all_met).label("days_all_goals_met"),
        )
        .select_from(A)
        .outerjoin(G, G.user_fid == A.user_fid)
        .where(_has_data)
        .group_by(A.user_fid, G.steps_goal, G.calories_goal, G.sleep_hours_goal)
    ):
        item = dict(row._mapping)
        item["completion_percentage"] = round(
            item["days_all_goals_met"] * 100 / item["total_days"], 2
        ) if item["total_days"] else 0.0
        out.append(item)

    out.sort(key=lambda r: (r["completion_percentage"], r["days_all_goals_met"]), reverse=True)
    return out[:limit]


def zero_data_records(db: Session) -> Dict[str, Any]:
    zero = and_(A.steps == 0, A.calories == 0, func.coalesce(A.sleep_hours, 0) == 0)
    row = db.execute(
        select(
            func.count(A.id).label("zero_data_count"),
            func.count(func.distinct(A.user_fid)).label("users_with_zero_data"),
        ).where(zero)
    ).one()
    return dict(row._mapping)


def verification_report(db: Session) -> Dict[str, Any]:
    try:
        general = general_statistics(db)
        sources = data_source_distribution(db)
        report = {
            "verification_timestamp": datetime.now(timezone.utc).isoformat(),
            "general_statistics": general,
            "real_data_sample": real_data_sample(db),
            "top_active_users": top_active_users(db),
            "data_source_distribution": sources,
            "daily_distribution": daily_distribution(db),
            "completion_analysis": completion_analysis(db),
            "data_quality": {
                "zero_data_records": zero_data_records(db),
                "data_coverage_percentage": _pct(
                    general["records_with_steps"], general["total_records"]
                ),
                "completion_rate": _pct(
                    general["days_all_goals_completed"], general["total_records"]
                ),
            },
        }
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(f"Database error building verification report: {e}") from e

    total = general["total_records"]
    with_steps = general["records_with_steps"]
    report["summary"] = {
        "migration_success": total > 0,
        "has_real_data": with_steps > 0,
        "multiple_data_sources": len(sources) > 1,
        "recommendation": (
            "Migration successful - good data coverage"
            if with_steps > total * 0.3
            else "Migration completed but low data coverage - may need data source review"
        ),
    }
    return report


def is_test_fingerprint():
    return or_(
        A.steps == settings.TEST_SENTINEL_STEPS,
        A.calories == settings.TEST_SENTINEL_CALORIES,
    )


def delete_rows(
    db: Session,
    user_fid: int,
    activity_date: DateType,
    test_data_only: bool = False,
) -> int:
    """Delete the (user, date) row; with test_data_only, only sentinel rows."""
    stmt = delete(A).where(A.user_fid == user_fid, A.activity_date == activity_date)
    if test_data_only:
        stmt = stmt.where(is_test_fingerprint())

    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(f"Database error during cleanup: {e}") from e

    logger.info(
        "Deleted %d daily_activities rows user_fid=%s date=%s test_data_only=%s",
        result.rowcount,
        user_fid,
        activity_date,
        test_data_only,
    )
    return result.rowcount
