"""
Tests for StreakEngine.

Tests cover:
1. Cached streak reads and forced refresh
2. Fallback when sessions cannot be fetched
3. Recording and scoring sessions
4. Event notification
5. Preferences and points totals
"""
import pytest
from datetime import date, datetime, timedelta, timezone

from habit_engine.exceptions import DataUnavailableException, InvalidInputException
from habit_engine.repositories.session_repository import SessionRepository
from habit_engine.schemas import SessionCreate, SessionRecord, UserPreferences
from habit_engine.services.cache_service import StreakCache
from habit_engine.services.event_service import StreakEvent
from habit_engine.services.engine import StreakEngine
from habit_engine.services.streak_service import StreakService
from habit_engine.tests.conftest import FakeSessionStore, make_session, sessions_for_pattern


class StaticPreferences:
    def __init__(self, preferences: UserPreferences):
        self.preferences = preferences

    def get_preferences(self, user_id):
        return self.preferences


class BrokenPreferences:
    def get_preferences(self, user_id):
        raise ConnectionError("preferences offline")


def build_engine(clock, sessions=None, preferences=None):
    store = FakeSessionStore(sessions)
    engine = StreakEngine(
        store,
        preference_source=preferences,
        cache=StreakCache(ttl=timedelta(minutes=5), clock=clock),
        clock=clock
    )
    return engine, store


class TestCurrentStreak:
    """Tests for get_current_streak function"""

    def test_computes_from_sessions(self, clock, today):
        engine, _ = build_engine(clock, sessions_for_pattern("FSSS", today))

        assert engine.get_current_streak("user-1") == 3

    def test_served_from_cache_while_fresh(self, clock, today):
        engine, store = build_engine(clock, sessions_for_pattern("SSS", today))

        engine.get_current_streak("user-1")
        clock.advance(minutes=4)
        engine.get_current_streak("user-1")

        assert store.fetch_calls == 1

    def test_recomputed_after_expiry(self, clock, today):
        engine, store = build_engine(clock, sessions_for_pattern("SSS", today))

        engine.get_current_streak("user-1")
        clock.advance(minutes=5)
        engine.get_current_streak("user-1")

        assert store.fetch_calls == 2

    def test_force_refresh_bypasses_cache(self, clock, today):
        engine, store = build_engine(clock, sessions_for_pattern("SS", today))
        assert engine.get_current_streak("user-1") == 2

        store.sessions = sessions_for_pattern("SSS", today)

        assert engine.get_current_streak("user-1") == 2
        assert engine.get_current_streak("user-1", force_refresh=True) == 3

    def test_users_are_independent(self, clock, today):
        engine, store = build_engine(clock, sessions_for_pattern("SS", today))
        engine.get_current_streak("user-1")

        store.sessions = []

        assert engine.get_current_streak("user-2") == 0
        assert engine.get_current_streak("user-1") == 2


class TestFetchFailure:
    """Tests for degraded reads"""

    def test_zero_when_nothing_cached(self, clock):
        engine, store = build_engine(clock)
        store.fail_fetch = True

        record = engine.get_streak_record("user-1")

        assert record.current_streak == 0
        assert record.longest_streak == 0

    def test_stale_record_when_fetch_fails(self, clock, today):
        engine, store = build_engine(clock, sessions_for_pattern("SSS", today))
        engine.get_current_streak("user-1")

        clock.advance(hours=1)
        store.fail_fetch = True

        assert engine.get_current_streak("user-1") == 3

    def test_streak_data_fallback(self, clock):
        engine, store = build_engine(clock)
        store.fail_fetch = True

        data = engine.get_streak_data("user-1")

        assert data.current_streak == 0
        assert data.history == []
        assert data.current_period_session_count == 0

    def test_streak_status_fallback(self, clock):
        engine, store = build_engine(clock)
        store.fail_fetch = True

        status = engine.get_streak_status("user-1")

        assert status.current_streak == 0
        assert status.today_sessions_needed == 2

    def test_daily_goal_fallback(self, clock):
        engine, store = build_engine(clock)
        store.fail_fetch = True

        goal = engine.check_daily_goal_status("user-1")

        assert goal.hit_goal_today is False
        assert goal.remaining_sessions == 2


class TestStreakData:
    """Tests for get_streak_data function"""

    def test_current_longest_and_history(self, clock, today):
        engine, _ = build_engine(clock, sessions_for_pattern("SSSFSS", today))

        data = engine.get_streak_data("user-1")

        assert data.current_streak == 2
        assert data.longest_streak == 3
        assert [p.duration for p in data.history] == [3, 2]
        assert data.current_period_session_count == 4

    def test_uses_cached_history(self, clock, today):
        engine, store = build_engine(clock, sessions_for_pattern("SS", today))
        engine.get_streak_data("user-1")
        calculated = []
        engine.subscribe(StreakEvent.STREAK_CALCULATED, calculated.append)

        engine.get_streak_data("user-1")

        assert calculated == []
        assert store.fetch_calls == 2


class TestRecordSession:
    """Tests for record_session_and_score function"""

    def test_first_session(self, clock):
        engine, store = build_engine(clock)

        result = engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150))

        assert result.total == 100
        assert result.time_streak == 1
        _, saved, points = store.added[0]
        assert points == 100
        assert saved.occurred_at == clock.now
        assert saved.target_seconds == 120

    def test_completing_today_extends_streak(self, clock, today, yesterday):
        sessions = sessions_for_pattern("SS", yesterday) + [make_session(today, hour=8)]
        engine, _ = build_engine(clock, sessions)

        result = engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150))

        # Five preceding on-target sessions, three successful days
        assert result.base_points == 150
        assert result.daily_streak == 3
        assert result.bonus_points == 150
        assert result.time_streak == 6
        assert engine.get_current_streak("user-1") == 3

    def test_streak_update_event_on_change(self, clock, today, yesterday):
        sessions = sessions_for_pattern("SS", yesterday) + [make_session(today, hour=8)]
        engine, _ = build_engine(clock, sessions)
        updates = []
        engine.subscribe(StreakEvent.STREAK_UPDATED, updates.append)

        engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150))

        assert len(updates) == 1
        assert updates[0].previous_streak == 2
        assert updates[0].new_streak == 3
        assert updates[0].user_id == "user-1"

    def test_no_streak_update_when_unchanged(self, clock):
        engine, _ = build_engine(clock)
        updates, calculated, histories = [], [], []
        engine.subscribe(StreakEvent.STREAK_UPDATED, updates.append)
        engine.subscribe(StreakEvent.STREAK_CALCULATED, calculated.append)
        engine.subscribe(StreakEvent.HISTORY_UPDATED, histories.append)

        engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150))

        assert updates == []
        assert len(calculated) == 1
        assert len(histories) == 1

    def test_failing_subscriber_does_not_break_recording(self, clock):
        engine, store = build_engine(clock)
        received = []

        def broken(payload):
            raise RuntimeError("listener bug")

        engine.subscribe(StreakEvent.STREAK_CALCULATED, broken)
        engine.subscribe(StreakEvent.STREAK_CALCULATED, received.append)

        result = engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150))

        assert result.total == 100
        assert len(received) == 1
        assert len(store.added) == 1

    def test_scores_without_history_when_fetch_fails(self, clock, today, yesterday):
        sessions = sessions_for_pattern("SS", yesterday)
        engine, store = build_engine(clock, sessions)
        store.fail_fetch = True

        result = engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150))

        assert result.base_points == 100
        assert result.bonus_points == 0

    def test_fetch_failure_keeps_cached_streak(self, clock, today):
        """A session scored without history leaves the cached streak alone"""
        engine, store = build_engine(clock, sessions_for_pattern("SSSSS", today))
        assert engine.get_current_streak("user-1") == 5
        updates = []
        engine.subscribe(StreakEvent.STREAK_UPDATED, updates.append)

        store.fail_fetch = True
        engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150))
        store.fail_fetch = False

        assert updates == []
        assert len(store.added) == 1
        assert engine.get_current_streak("user-1") == 5

    def test_persist_failure_raises(self, clock):
        engine, store = build_engine(clock)
        store.fail_add = True
        calculated = []
        engine.subscribe(StreakEvent.STREAK_CALCULATED, calculated.append)

        with pytest.raises(DataUnavailableException):
            engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150))

        assert calculated == []

    def test_rejects_non_positive_target_seconds(self, clock):
        preferences = StaticPreferences(UserPreferences(target_seconds=0))
        engine, store = build_engine(clock, preferences=preferences)

        with pytest.raises(InvalidInputException):
            engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150))

        assert store.added == []

    def test_longest_streak_never_decreases(self, clock, today):
        engine, store = build_engine(clock, sessions_for_pattern("SSSS", today))
        assert engine.get_streak_record("user-1").longest_streak == 4

        # History drops out of the store; cached best is kept
        store.sessions = []
        engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150))

        assert engine.get_streak_record("user-1").longest_streak == 4


class TestPreferences:
    """Tests for preference handling"""

    def test_defaults_when_source_fails(self, clock, today):
        engine, _ = build_engine(clock, sessions_for_pattern("SS", today), preferences=BrokenPreferences())

        assert engine.get_current_streak("user-1") == 2

    def test_daily_target_is_applied(self, clock, today):
        preferences = StaticPreferences(UserPreferences(daily_target=3))
        engine, _ = build_engine(clock, sessions_for_pattern("SS", today), preferences=preferences)

        assert engine.get_current_streak("user-1") == 0

    def test_rejects_zero_daily_target(self, clock):
        preferences = StaticPreferences(UserPreferences(daily_target=0))
        engine, _ = build_engine(clock, preferences=preferences)

        with pytest.raises(InvalidInputException):
            engine.get_current_streak("user-1")


class TestTotalPoints:
    """Tests for get_total_points function"""

    def test_sums_recorded_points(self, clock):
        engine, _ = build_engine(clock)
        engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150))
        engine.record_session_and_score("user-1", SessionCreate(duration_seconds=60))

        summary = engine.get_total_points("user-1")

        # 100 for the first; second is under target (50) and completes today
        assert summary.points == 100 + 50 + 50
        assert summary.stage == 2

    def test_zero_for_new_user(self, clock):
        engine, _ = build_engine(clock)

        summary = engine.get_total_points("user-1")

        assert summary.points == 0
        assert summary.stage == 1


class TestLongestStreak:
    """Tests for the best streak across recomputations"""

    def test_survives_cache_expiry_on_read(self, clock, today):
        engine, store = build_engine(clock, sessions_for_pattern("SSSS", today))
        assert engine.get_streak_record("user-1").longest_streak == 4

        store.sessions = []
        clock.advance(minutes=6)
        record = engine.get_streak_record("user-1")

        assert record.current_streak == 0
        assert record.longest_streak == 4

    def test_survives_in_streak_data(self, clock, today):
        engine, store = build_engine(clock, sessions_for_pattern("SSSS", today))
        engine.get_streak_data("user-1")

        store.sessions = []
        clock.advance(minutes=6)

        assert engine.get_streak_data("user-1").longest_streak == 4


class TestTimestamps:
    """Tests for sessions logged with a UTC offset"""

    def test_stored_session_keeps_its_habit_day(self, clock, session_factory):
        repo = SessionRepository(session_factory)
        engine = StreakEngine(repo, clock=clock, tz=timezone.utc)
        # 04:00 at +05:00 is 23:00 UTC the previous evening
        logged_at = datetime(2026, 1, 28, 4, 0, tzinfo=timezone(timedelta(hours=5)))

        engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150, occurred_at=logged_at))

        stored = repo.fetch_sessions("user-1", clock.now - timedelta(days=7))
        assert stored[0].occurred_at == datetime(2026, 1, 27, 23, 0)
        counts = StreakService(3, timezone.utc).count_by_day(stored)
        assert counts == {date(2026, 1, 27): 1}

    def test_mixed_aware_and_naive_sessions(self, clock, today, yesterday):
        sessions = [
            make_session(yesterday, hour=8),
            SessionRecord(duration_seconds=150, occurred_at=datetime(2026, 1, 27, 9, 0, tzinfo=timezone.utc)),
            make_session(today, hour=8),
        ]
        engine = StreakEngine(
            FakeSessionStore(sessions),
            cache=StreakCache(clock=clock),
            clock=clock,
            tz=timezone.utc
        )

        result = engine.record_session_and_score("user-1", SessionCreate(duration_seconds=150))

        assert result.daily_streak == 2
        assert engine.get_current_streak("user-1") == 2
