from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)

from app.core.db import Base
from app.models.user import _utcnow


class DailyActivity(Base):
    __tablename__ = "daily_activities"
    __table_args__ = (
        UniqueConstraint("user_fid", "activity_date", name="uq_daily_activity_user_date"),
    )

    id = Column(Integer, primary_key=True)

    user_fid = Column(BigInteger, nullable=False, index=True)
    activity_date = Column(Date, nullable=False)  # user's local calendar day
    processing_date = Column(Date)  # day the data was ingested

    steps = Column(Integer, nullable=False, default=0)
    calories = Column(Integer, nullable=False, default=0)
    distance_meters = Column(Integer, nullable=False, default=0)
    sleep_hours = Column(Float)
    sleep_efficiency = Column(Float)

    data_source = Column(String(64))  # vendor, e.g. "garmin"
    rook_user_id = Column(String(128))
    ingest_metadata = Column(JSON)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)
