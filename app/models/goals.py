from sqlalchemy import BigInteger, Column, Float, Integer, String

from app.core.db import Base


class UserGoals(Base):
    __tablename__ = "user_goals"

    user_fid = Column(BigInteger, primary_key=True)

    steps_goal = Column(Integer)
    calories_goal = Column(Integer)
    sleep_hours_goal = Column(Float)

    timezone = Column(String(64))  # IANA name, e.g. "America/Mexico_City"
