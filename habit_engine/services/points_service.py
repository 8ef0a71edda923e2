"""
Points calculation service.
Scores a single session from its duration and the user's recent consistency.
"""
import math
from datetime import datetime
from typing import List, Optional

from habit_engine.constants import (
    BASE_POINTS_FULL,
    TIME_STREAK_STEP,
    DAILY_STREAK_BONUS,
    POINTS_STAGE_THRESHOLDS,
)
from habit_engine.exceptions import InvalidInputException
from habit_engine.schemas import SessionRecord, PointsResult
from habit_engine.services.streak_service import StreakService


class PointsService:
    """Service for session points calculation"""

    def __init__(self, streak_service: Optional[StreakService] = None):
        self.streak_service = streak_service or StreakService()

    def calculate_points(
        self,
        target_seconds: int,
        current_session: SessionRecord,
        recent_sessions: List[SessionRecord],
        daily_target: int,
        now: Optional[datetime] = None
    ) -> PointsResult:
        """
        Calculate points earned for a session.

        Formula: Total = BasePoints + BonusPoints

        Base points reward the session itself and are bounded; bonus points
        reward the daily streak and grow without limit.

        Args:
            target_seconds: Duration goal for one session
            current_session: Session being scored
            recent_sessions: Previous sessions, newest first
            daily_target: Sessions required per habit day
            now: Current time (defaults to datetime.now())

        Returns:
            PointsResult with the post-session time streak

        Raises:
            InvalidInputException: If target_seconds or daily_target <= 0
        """
        if target_seconds <= 0:
            raise InvalidInputException("target_seconds", "must be greater than 0")
        if daily_target <= 0:
            raise InvalidInputException("daily_target", "must be greater than 0")

        time_streak = self._calculate_time_streak(recent_sessions, target_seconds)
        met_target = current_session.duration_seconds >= target_seconds

        # 1. Base points
        base_points = self._calculate_base_points(
            current_session.duration_seconds, target_seconds, time_streak
        )

        # 2. Daily bonus, as if the current session were already saved
        daily_streak = self.streak_service.compute_streak(
            [current_session, *recent_sessions], daily_target, grace_period=True, now=now
        )
        bonus_points = daily_streak * DAILY_STREAK_BONUS

        return PointsResult(
            base_points=base_points,
            bonus_points=bonus_points,
            total=base_points + bonus_points,
            time_streak=time_streak + 1 if met_target else 0,
            daily_streak=daily_streak
        )

    @staticmethod
    def _calculate_time_streak(recent_sessions: List[SessionRecord], target_seconds: int) -> int:
        """
        Count preceding sessions that met their target.

        Each session is judged against its own stored target, falling back
        to the current one. Stops at the first miss.
        """
        streak = 0
        for session in recent_sessions:
            session_target = session.target_seconds or target_seconds
            if session.duration_seconds < session_target:
                break
            streak += 1
        return streak

    @staticmethod
    def _calculate_base_points(actual_seconds: int, target_seconds: int, time_streak: int) -> int:
        """
        Calculate base points from the duration ratio.

        - Actual >= target: 100 + 10 per preceding on-target session
        - Actual < target: ratio * 100, rounded half up, never above 100
        """
        if actual_seconds >= target_seconds:
            return BASE_POINTS_FULL + TIME_STREAK_STEP * time_streak

        ratio = actual_seconds / target_seconds
        return min(BASE_POINTS_FULL, math.floor(ratio * BASE_POINTS_FULL + 0.5))

    @staticmethod
    def get_stage_for_points(total_points: int) -> int:
        """
        Get the progress stage (1-6) for a cumulative points total.

        0 -> 1, 1-299 -> 2, 300-999 -> 3, 1000-2499 -> 4,
        2500-4999 -> 5, 5000+ -> 6
        """
        stage = 1
        for threshold in POINTS_STAGE_THRESHOLDS:
            if total_points >= threshold:
                stage += 1
        return stage
