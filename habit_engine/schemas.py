from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date
from typing import List, Optional

from habit_engine.constants import (
    DEFAULT_BOUNDARY_HOUR, DEFAULT_DAILY_TARGET, DEFAULT_TARGET_SECONDS
)


class SessionRecord(BaseModel):
    """A single recorded activity session"""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    duration_seconds: int = Field(..., gt=0)
    occurred_at: Optional[datetime] = None
    habit_day: Optional[date] = None  # Used only when occurred_at is missing
    target_seconds: Optional[int] = Field(default=None, gt=0)


class SessionCreate(BaseModel):
    duration_seconds: int = Field(..., gt=0)
    occurred_at: Optional[datetime] = None


class UserPreferences(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    daily_target: int = DEFAULT_DAILY_TARGET
    boundary_hour: int = Field(default=DEFAULT_BOUNDARY_HOUR, ge=0, le=23)
    target_seconds: int = DEFAULT_TARGET_SECONDS


class StreakRecord(BaseModel):
    user_id: Optional[str] = None
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_calculated_at: datetime
    daily_target: int = Field(default=DEFAULT_DAILY_TARGET, gt=0)


class StreakPeriod(BaseModel):
    id: str
    start_day: date
    end_day: date
    duration: int = Field(..., gt=0)


class StreakHistory(BaseModel):
    periods: List[StreakPeriod] = []
    last_updated: datetime

    @property
    def longest_duration(self) -> int:
        return max((p.duration for p in self.periods), default=0)


class StreakStatus(BaseModel):
    current_streak: int = 0
    strict_streak: int = 0
    streak_including_today: int = 0  # What the streak is once today is completed
    today_sessions_count: int = 0
    today_sessions_needed: int = 0
    today_completed: bool = False
    is_streak_continuing: bool = False  # Today completed or grace period in effect


class DailyGoalStatus(BaseModel):
    hit_goal_today: bool
    sessions_today: int
    required_sessions: int
    remaining_sessions: int


class StreakData(BaseModel):
    current_streak: int = 0
    longest_streak: int = 0
    history: List[StreakPeriod] = []
    current_period_session_count: int = 0
    last_updated: datetime


class StreakComparison(BaseModel):
    current: int
    previous_best: int
    is_new_record: bool
    improvement: int  # Days beyond the previous best (0 when not a record)


class MilestoneProgress(BaseModel):
    current_phase: int
    next_milestone: int
    progress: int
    progress_percentage: int


class PointsResult(BaseModel):
    base_points: int = Field(..., ge=0)
    bonus_points: int = Field(..., ge=0)
    total: int
    time_streak: int = Field(..., ge=0)  # Value to persist for the next session
    daily_streak: int = Field(..., ge=0)


class PointsSummary(BaseModel):
    points: int
    stage: int
