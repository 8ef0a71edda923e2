"""
Streak calculation service.
Computes consecutive successful habit days, streak status and streak history
from an already fetched list of sessions. Pure: no I/O, no caching.
"""
import logging
from collections import Counter
from datetime import datetime, date, timedelta, tzinfo
from typing import Iterable, List, Optional

from habit_engine.constants import DEFAULT_BOUNDARY_HOUR, HISTORY_LOOKBACK_DAYS
from habit_engine.exceptions import InvalidInputException
from habit_engine.schemas import (
    SessionRecord, StreakStatus, StreakPeriod, StreakHistory,
    DailyGoalStatus, StreakComparison
)
from habit_engine.services.date_service import DateService

logger = logging.getLogger("habit_engine.streak")


class StreakService:
    """Service for streak calculation"""

    def __init__(
        self,
        boundary_hour: int = DEFAULT_BOUNDARY_HOUR,
        tz: Optional[tzinfo] = None
    ):
        DateService.validate_boundary_hour(boundary_hour)
        self.boundary_hour = boundary_hour
        self.tz = tz

    @staticmethod
    def validate_daily_target(daily_target: int) -> None:
        if daily_target <= 0:
            raise InvalidInputException("daily_target", "must be greater than 0")

    def today(self, now: Optional[datetime] = None) -> date:
        return DateService.today_habit_day(now, self.boundary_hour, self.tz)

    def count_by_day(self, sessions: Iterable[SessionRecord]) -> Counter:
        """
        Group sessions by habit day.

        Sessions with neither a timestamp nor an explicit day are skipped.
        """
        counts = Counter()
        skipped = 0
        for session in sessions:
            day = DateService.session_habit_day(session, self.boundary_hour, self.tz)
            if day is None:
                skipped += 1
                continue
            counts[day] += 1
        if skipped:
            logger.debug(f"Skipped {skipped} sessions without a day or timestamp")
        return counts

    def compute_streak(
        self,
        sessions: List[SessionRecord],
        daily_target: int,
        grace_period: bool = True,
        now: Optional[datetime] = None
    ) -> int:
        """
        Calculate the current streak in habit days.

        A day is successful when it has at least daily_target sessions.
        Counting walks backwards from today. With grace_period, an
        unfinished today is skipped instead of breaking the streak.

        Args:
            sessions: Sessions in any order
            daily_target: Sessions required per habit day
            grace_period: Skip today if its target is not met yet
            now: Current time (defaults to datetime.now())

        Returns:
            Number of consecutive successful habit days

        Raises:
            InvalidInputException: If daily_target <= 0
        """
        self.validate_daily_target(daily_target)
        if not sessions:
            return 0

        counts = self.count_by_day(sessions)
        today = self.today(now)
        return self._walk_back(counts, today, daily_target, grace_period)

    @staticmethod
    def _walk_back(counts: Counter, today: date, daily_target: int, grace_period: bool) -> int:
        streak = 0
        cursor = today

        if grace_period and counts[today] < daily_target:
            cursor = today - timedelta(days=1)

        while counts[cursor] >= daily_target:
            streak += 1
            cursor -= timedelta(days=1)

        return streak

    def compute_streak_status(
        self,
        sessions: List[SessionRecord],
        daily_target: int,
        now: Optional[datetime] = None
    ) -> StreakStatus:
        """Get streak information including today's progress"""
        self.validate_daily_target(daily_target)
        if not sessions:
            return StreakStatus(today_sessions_needed=daily_target)

        counts = self.count_by_day(sessions)
        today = self.today(now)

        today_count = counts[today]
        today_completed = today_count >= daily_target
        current = self._walk_back(counts, today, daily_target, grace_period=True)
        strict = self._walk_back(counts, today, daily_target, grace_period=False)

        return StreakStatus(
            current_streak=current,
            strict_streak=strict,
            streak_including_today=strict if today_completed else current,
            today_sessions_count=today_count,
            today_sessions_needed=max(0, daily_target - today_count),
            today_completed=today_completed,
            is_streak_continuing=today_completed or current > strict
        )

    def check_daily_goal_status(
        self,
        sessions: List[SessionRecord],
        daily_target: int,
        now: Optional[datetime] = None
    ) -> DailyGoalStatus:
        """Check whether today's session target has been reached"""
        self.validate_daily_target(daily_target)
        sessions_today = self.count_by_day(sessions)[self.today(now)]
        return DailyGoalStatus(
            hit_goal_today=sessions_today >= daily_target,
            sessions_today=sessions_today,
            required_sessions=daily_target,
            remaining_sessions=max(0, daily_target - sessions_today)
        )

    def compute_streak_history(
        self,
        sessions: List[SessionRecord],
        daily_target: int,
        lookback_days: int = HISTORY_LOOKBACK_DAYS,
        now: Optional[datetime] = None
    ) -> StreakHistory:
        """
        Reconstruct streak periods within the lookback window.

        Days are scanned oldest to newest up to and including today. A
        period closes on the first unsuccessful day; a period still running
        on today stays open and ends today.

        Args:
            sessions: Sessions in any order
            daily_target: Sessions required per habit day
            lookback_days: Number of days before today to scan
            now: Current time (defaults to datetime.now())

        Returns:
            StreakHistory sorted by duration desc, most recent start first on ties
        """
        self.validate_daily_target(daily_target)
        if lookback_days < 0:
            raise InvalidInputException("lookback_days", "must not be negative")

        now = now or datetime.now()
        counts = self.count_by_day(sessions)
        today = self.today(now)

        periods: List[StreakPeriod] = []
        run_start: Optional[date] = None
        run_length = 0

        cursor = today - timedelta(days=lookback_days)
        while cursor <= today:
            if counts[cursor] >= daily_target:
                if run_start is None:
                    run_start = cursor
                run_length += 1
            elif run_start is not None:
                periods.append(self._period(len(periods) + 1, run_start, cursor - timedelta(days=1), run_length))
                run_start = None
                run_length = 0
            cursor += timedelta(days=1)

        if run_start is not None:
            periods.append(self._period(len(periods) + 1, run_start, today, run_length))

        periods.sort(key=lambda p: (p.duration, p.start_day), reverse=True)
        return StreakHistory(periods=periods, last_updated=now)

    @staticmethod
    def _period(number: int, start: date, end: date, duration: int) -> StreakPeriod:
        return StreakPeriod(id=str(number), start_day=start, end_day=end, duration=duration)

    def count_current_period_sessions(
        self,
        sessions: List[SessionRecord],
        current_streak: int,
        daily_target: int,
        now: Optional[datetime] = None
    ) -> int:
        """
        Count sessions logged during the current streak.

        When today is completed the streak covers today and the
        current_streak - 1 days before it. Otherwise it ends yesterday and
        today's sessions are not part of it.
        """
        self.validate_daily_target(daily_target)
        if current_streak <= 0:
            return 0

        counts = self.count_by_day(sessions)
        today = self.today(now)
        if counts[today] >= daily_target:
            last_day = today
        else:
            last_day = today - timedelta(days=1)
        first_day = last_day - timedelta(days=current_streak - 1)

        return sum(count for day, count in counts.items() if first_day <= day <= last_day)

    @staticmethod
    def compare_with_best(current: int, previous_best: int) -> StreakComparison:
        """Compare the current streak with the best one seen before"""
        is_new_record = current > previous_best
        return StreakComparison(
            current=current,
            previous_best=previous_best,
            is_new_record=is_new_record,
            improvement=current - previous_best if is_new_record else 0
        )
