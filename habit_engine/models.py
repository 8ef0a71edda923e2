from sqlalchemy import Column, Integer, String, DateTime, Date, Text
from datetime import datetime

from habit_engine.constants import (
    DEFAULT_BOUNDARY_HOUR, DEFAULT_DAILY_TARGET, DEFAULT_TARGET_SECONDS
)
from habit_engine.database import Base


class SessionLog(Base):
    __tablename__ = "session_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)

    duration_seconds = Column(Integer, nullable=False)
    target_seconds = Column(Integer, nullable=True)  # Target in effect when recorded
    occurred_at = Column(DateTime, nullable=True, index=True)
    habit_day = Column(Date, nullable=True)  # Explicit day for imported logs without a timestamp

    earned_points = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.now)


class UserPreference(Base):
    __tablename__ = "user_preferences"

    user_id = Column(String, primary_key=True, index=True)

    daily_target = Column(Integer, default=DEFAULT_DAILY_TARGET)  # Sessions per habit day
    boundary_hour = Column(Integer, default=DEFAULT_BOUNDARY_HOUR)  # Habit day reset hour (0-23)
    target_seconds = Column(Integer, default=DEFAULT_TARGET_SECONDS)  # Per-session duration goal

    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class CacheEntryRow(Base):
    __tablename__ = "cache_entries"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)  # JSON payload
    expires_at = Column(DateTime, nullable=False)
