"""
Habit calendar service.
Maps wall-clock timestamps to habit days under a configurable reset hour.
"""
from datetime import datetime, timedelta, date, tzinfo
from typing import Optional

from habit_engine.constants import DEFAULT_BOUNDARY_HOUR
from habit_engine.exceptions import InvalidInputException
from habit_engine.schemas import SessionRecord


class DateService:
    """Service for habit day attribution"""

    @staticmethod
    def validate_boundary_hour(boundary_hour: int) -> None:
        if not isinstance(boundary_hour, int) or not 0 <= boundary_hour <= 23:
            raise InvalidInputException("boundary_hour", f"{boundary_hour!r} is not an hour between 0 and 23")

    @staticmethod
    def to_local(timestamp: datetime, tz: Optional[tzinfo] = None) -> datetime:
        """
        Convert a timestamp to local wall-clock time.

        Naive timestamps are already local. Aware timestamps are converted
        to tz, or to the system local zone when tz is None.
        """
        if timestamp.tzinfo is None:
            return timestamp
        return timestamp.astimezone(tz)

    @staticmethod
    def to_naive_local(timestamp: datetime, tz: Optional[tzinfo] = None) -> datetime:
        """Local wall-clock time without tzinfo, the form sessions are stored in"""
        return DateService.to_local(timestamp, tz).replace(tzinfo=None)

    @staticmethod
    def habit_day(
        timestamp: datetime,
        boundary_hour: int = DEFAULT_BOUNDARY_HOUR,
        tz: Optional[tzinfo] = None
    ) -> date:
        """
        Get the habit day a timestamp belongs to.

        A habit day starts at boundary_hour instead of midnight, so anything
        logged before the reset hour is attributed to the previous date.

        Example: with boundary_hour = 3, a session at 01:30 on Jan 30
        belongs to the Jan 29 habit day.

        Args:
            timestamp: Wall-clock timestamp
            boundary_hour: Hour (0-23) at which a new habit day begins
            tz: Zone used to read the local hour of aware timestamps

        Returns:
            Habit day date
        """
        DateService.validate_boundary_hour(boundary_hour)
        local = DateService.to_local(timestamp, tz)
        if local.hour < boundary_hour:
            return (local - timedelta(days=1)).date()
        return local.date()

    @staticmethod
    def today_habit_day(
        now: Optional[datetime] = None,
        boundary_hour: int = DEFAULT_BOUNDARY_HOUR,
        tz: Optional[tzinfo] = None
    ) -> date:
        """Get the habit day that is currently in progress"""
        return DateService.habit_day(now or datetime.now(), boundary_hour, tz)

    @staticmethod
    def session_habit_day(
        session: SessionRecord,
        boundary_hour: int = DEFAULT_BOUNDARY_HOUR,
        tz: Optional[tzinfo] = None
    ) -> Optional[date]:
        """
        Resolve the habit day of a session.

        The timestamp is authoritative; the explicit day is only used for
        records that carry no timestamp. Returns None when neither is set.
        """
        if session.occurred_at is not None:
            return DateService.habit_day(session.occurred_at, boundary_hour, tz)
        return session.habit_day

    @staticmethod
    def get_day_range(
        target_day: date,
        boundary_hour: int = DEFAULT_BOUNDARY_HOUR
    ) -> tuple[datetime, datetime]:
        """
        Get the wall-clock range covered by a habit day.

        Args:
            target_day: Habit day
            boundary_hour: Reset hour

        Returns:
            Tuple of (day_start, day_end), end exclusive
        """
        DateService.validate_boundary_hour(boundary_hour)
        day_start = datetime.combine(target_day, datetime.min.time()) + timedelta(hours=boundary_hour)
        return day_start, day_start + timedelta(days=1)
