"""
Streak engine.
Owns the cache and event notifier and runs each request as explicit stages:
fetch (fallible) -> compute (pure) -> persist -> cache write -> notify.
"""
import logging
from datetime import datetime, date, timedelta, tzinfo
from typing import Callable, List, Optional, Protocol, Union

from habit_engine.constants import HISTORY_LOOKBACK_DAYS
from habit_engine.exceptions import DataUnavailableException, InvalidInputException
from habit_engine.schemas import (
    SessionRecord, SessionCreate, UserPreferences, StreakRecord, StreakHistory,
    StreakData, StreakStatus, DailyGoalStatus, PointsResult, PointsSummary
)
from habit_engine.services.cache_service import StreakCache
from habit_engine.services.date_service import DateService
from habit_engine.services.event_service import EventNotifier, StreakEvent, Listener
from habit_engine.services.points_service import PointsService
from habit_engine.services.streak_service import StreakService

logger = logging.getLogger("habit_engine.engine")


class SessionStore(Protocol):
    def fetch_sessions(self, user_id: str, since: datetime) -> List[SessionRecord]: ...

    def add_session(self, user_id: str, session: SessionRecord, earned_points: int = 0): ...

    def get_total_points(self, user_id: str) -> int: ...


class PreferenceSource(Protocol):
    def get_preferences(self, user_id: str) -> UserPreferences: ...


class StreakEngine:
    """Service object exposing streak and points operations per user"""

    def __init__(
        self,
        session_store: SessionStore,
        preference_source: Optional[PreferenceSource] = None,
        cache: Optional[StreakCache] = None,
        notifier: Optional[EventNotifier] = None,
        clock: Callable[[], datetime] = datetime.now,
        tz: Optional[tzinfo] = None,
        lookback_days: int = HISTORY_LOOKBACK_DAYS
    ):
        self.session_store = session_store
        self.preference_source = preference_source
        self.cache = cache if cache is not None else StreakCache(clock=clock)
        self.notifier = notifier if notifier is not None else EventNotifier(clock=clock)
        self.clock = clock
        self.tz = tz
        self.lookback_days = lookback_days

    # Collaborator-facing API ------------------------------------------
    def subscribe(self, event: StreakEvent, callback: Listener) -> Callable[[], None]:
        return self.notifier.subscribe(event, callback)

    def get_current_streak(self, user_id: str, force_refresh: bool = False) -> int:
        return self.get_streak_record(user_id, force_refresh).current_streak

    def get_streak_record(self, user_id: str, force_refresh: bool = False) -> StreakRecord:
        """
        Get the user's streak record, served from cache while fresh.

        If sessions cannot be fetched, the last cached record (even if
        expired) is returned, or a zero record when nothing was cached.
        """
        if not force_refresh:
            cached = self.cache.get_record(user_id)
            if cached:
                return cached

        preferences = self._load_preferences(user_id)
        now = self.clock()

        try:
            sessions = self._fetch_sessions(user_id, now)
        except DataUnavailableException as e:
            logger.error(f"Streak calculation for {user_id} fell back to cached data: {e}")
            return self._fallback_record(user_id, preferences, now)

        streaks = self._streak_service(preferences)
        history = streaks.compute_streak_history(sessions, preferences.daily_target, self.lookback_days, now)
        record = self._build_record(user_id, streaks, sessions, history, preferences, now)

        self.cache.set_record(user_id, record)
        self.cache.set_history(user_id, history)
        self.notifier.emit_streak_calculated(user_id, record.current_streak)
        return record

    def get_streak_data(self, user_id: str, force_refresh: bool = False) -> StreakData:
        """Get current and longest streak, streak history and sessions in the current streak"""
        preferences = self._load_preferences(user_id)
        now = self.clock()
        streaks = self._streak_service(preferences)

        try:
            sessions = self._fetch_sessions(user_id, now)
        except DataUnavailableException as e:
            logger.error(f"Streak data for {user_id} served from cache: {e}")
            record = self._fallback_record(user_id, preferences, now)
            history = self.cache.get_history(user_id)
            return StreakData(
                current_streak=record.current_streak,
                longest_streak=record.longest_streak,
                history=history.periods if history else [],
                current_period_session_count=record.current_streak * preferences.daily_target,
                last_updated=record.last_calculated_at
            )

        record = None if force_refresh else self.cache.get_record(user_id)
        history = None if force_refresh else self.cache.get_history(user_id)

        if record is None or history is None:
            history = streaks.compute_streak_history(sessions, preferences.daily_target, self.lookback_days, now)
            record = self._build_record(user_id, streaks, sessions, history, preferences, now)
            self.cache.set_record(user_id, record)
            self.cache.set_history(user_id, history)
            self.notifier.emit_streak_calculated(user_id, record.current_streak)

        return StreakData(
            current_streak=record.current_streak,
            longest_streak=record.longest_streak,
            history=history.periods,
            current_period_session_count=streaks.count_current_period_sessions(
                sessions, record.current_streak, preferences.daily_target, now
            ),
            last_updated=min(record.last_calculated_at, history.last_updated)
        )

    def get_streak_status(self, user_id: str) -> StreakStatus:
        """Get streak status including today's progress"""
        preferences = self._load_preferences(user_id)
        now = self.clock()
        try:
            sessions = self._fetch_sessions(user_id, now)
        except DataUnavailableException as e:
            logger.error(f"Streak status for {user_id} unavailable: {e}")
            return StreakStatus(today_sessions_needed=preferences.daily_target)
        return self._streak_service(preferences).compute_streak_status(sessions, preferences.daily_target, now)

    def check_daily_goal_status(self, user_id: str) -> DailyGoalStatus:
        preferences = self._load_preferences(user_id)
        now = self.clock()
        try:
            sessions = self._fetch_sessions(user_id, now)
        except DataUnavailableException as e:
            logger.error(f"Daily goal status for {user_id} unavailable: {e}")
            sessions = []
        return self._streak_service(preferences).check_daily_goal_status(sessions, preferences.daily_target, now)

    def record_session_and_score(
        self,
        user_id: str,
        session: Union[SessionRecord, SessionCreate]
    ) -> PointsResult:
        """
        Score a new session, store it and refresh the user's streak.

        Stages:
        1. Fetch recent sessions (failure -> score against no history, keep cached streak)
        2. Calculate points (pure)
        3. Persist the session (failure -> DataUnavailableException)
        4. Recompute and cache the streak (cache failures are ignored)
        5. Notify subscribers when the streak changed

        Raises:
            InvalidInputException: If the user's targets are not positive
            DataUnavailableException: If the session could not be stored
        """
        preferences = self._load_preferences(user_id)
        if preferences.target_seconds <= 0:
            raise InvalidInputException("target_seconds", "must be greater than 0")
        now = self.clock()
        new_session = self._normalize_session(session, preferences, now)
        streaks = self._streak_service(preferences)

        # 1. Fetch
        try:
            recent = self._fetch_sessions(user_id, now)
            history_available = True
        except DataUnavailableException as e:
            logger.warning(f"Scoring session for {user_id} without history: {e}")
            recent = []
            history_available = False
        recent = self._newest_first(recent)

        previous_record = self.cache.peek_record(user_id)
        if previous_record is not None:
            previous_streak = previous_record.current_streak
        else:
            previous_streak = streaks.compute_streak(recent, preferences.daily_target, True, now)

        # 2. Compute
        result = PointsService(streaks).calculate_points(
            preferences.target_seconds, new_session, recent, preferences.daily_target, now
        )

        # 3. Persist
        try:
            self.session_store.add_session(user_id, new_session, result.total)
        except DataUnavailableException:
            raise
        except Exception as e:
            raise DataUnavailableException("add_session", str(e)) from e

        if not history_available:
            # Without history the cached streak stays authoritative
            logger.info(f"Recorded session for {user_id}: {result.total} points, streak left as cached")
            return result

        # 4. Refresh streak from the sessions we already hold
        sessions = [new_session, *recent]
        history = streaks.compute_streak_history(sessions, preferences.daily_target, self.lookback_days, now)
        record = self._build_record(user_id, streaks, sessions, history, preferences, now)
        self.cache.set_record(user_id, record)
        self.cache.set_history(user_id, history)

        best = streaks.compare_with_best(
            record.current_streak, previous_record.longest_streak if previous_record else 0
        )
        if best.is_new_record and previous_record is not None:
            logger.info(f"New streak record for {user_id}: {best.current} days (previous: {best.previous_best})")

        # 5. Notify
        self.notifier.emit_streak_calculated(user_id, record.current_streak)
        if record.current_streak != previous_streak:
            self.notifier.emit_streak_update(user_id, previous_streak, record.current_streak, new_session)
        self.notifier.emit_history_updated(user_id, len(history.periods), history.longest_duration)

        logger.info(
            f"Recorded session for {user_id}: {result.total} points "
            f"(base {result.base_points}, bonus {result.bonus_points}), streak {record.current_streak}"
        )
        return result

    def get_total_points(self, user_id: str) -> PointsSummary:
        """Get cumulative points and the matching stage"""
        try:
            total = self.session_store.get_total_points(user_id)
        except Exception as e:
            logger.error(f"Total points for {user_id} unavailable: {e}")
            total = 0
        return PointsSummary(points=total, stage=PointsService.get_stage_for_points(total))

    def invalidate(self, user_id: str) -> None:
        self.cache.invalidate(user_id)

    # Internal helpers -------------------------------------------------
    def _streak_service(self, preferences: UserPreferences) -> StreakService:
        return StreakService(preferences.boundary_hour, self.tz)

    def _load_preferences(self, user_id: str) -> UserPreferences:
        """
        Load the user's preferences, falling back to defaults.

        Raises:
            InvalidInputException: If the stored daily target is not positive
        """
        if self.preference_source is None:
            preferences = UserPreferences()
        else:
            try:
                preferences = self.preference_source.get_preferences(user_id)
            except InvalidInputException:
                raise
            except Exception as e:
                logger.warning(f"Using default preferences for {user_id}: {e}")
                preferences = UserPreferences()

        StreakService.validate_daily_target(preferences.daily_target)
        return preferences

    def _fetch_sessions(self, user_id: str, now: datetime) -> List[SessionRecord]:
        # One extra day so the oldest habit day in the window is complete
        since = now - timedelta(days=self.lookback_days + 1)
        try:
            sessions = list(self.session_store.fetch_sessions(user_id, since))
        except DataUnavailableException:
            raise
        except Exception as e:
            raise DataUnavailableException("fetch_sessions", str(e)) from e
        return [self._localize(session) for session in sessions]

    def _localize(self, session: SessionRecord) -> SessionRecord:
        """Store and compare timestamps as naive local time"""
        if session.occurred_at is None or session.occurred_at.tzinfo is None:
            return session
        return session.model_copy(
            update={"occurred_at": DateService.to_naive_local(session.occurred_at, self.tz)}
        )

    def _build_record(
        self,
        user_id: str,
        streaks: StreakService,
        sessions: List[SessionRecord],
        history: StreakHistory,
        preferences: UserPreferences,
        now: datetime
    ) -> StreakRecord:
        current = streaks.compute_streak(sessions, preferences.daily_target, True, now)
        # Best streak survives history leaving the lookback window
        previous = self.cache.peek_record(user_id)
        previous_longest = previous.longest_streak if previous else 0
        return StreakRecord(
            user_id=user_id,
            current_streak=current,
            longest_streak=max(current, history.longest_duration, previous_longest),
            last_calculated_at=now,
            daily_target=preferences.daily_target
        )

    def _fallback_record(self, user_id: str, preferences: UserPreferences, now: datetime) -> StreakRecord:
        cached = self.cache.peek_record(user_id)
        if cached:
            return cached
        return StreakRecord(user_id=user_id, last_calculated_at=now, daily_target=preferences.daily_target)

    def _normalize_session(
        self,
        session: Union[SessionRecord, SessionCreate],
        preferences: UserPreferences,
        now: datetime
    ) -> SessionRecord:
        data = session.model_dump()
        if data.get("occurred_at") is None and data.get("habit_day") is None:
            data["occurred_at"] = now
        if data.get("target_seconds") is None:
            data["target_seconds"] = preferences.target_seconds
        return self._localize(SessionRecord.model_validate(data))

    @staticmethod
    def _newest_first(sessions: List[SessionRecord]) -> List[SessionRecord]:
        """Order sessions newest first; undated sessions go last"""
        dated = sorted((s for s in sessions if s.occurred_at is not None), key=lambda s: s.occurred_at, reverse=True)
        undated = sorted((s for s in sessions if s.occurred_at is None), key=lambda s: s.habit_day or date.min, reverse=True)
        return dated + undated
