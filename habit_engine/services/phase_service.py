"""
Streak phase service.
Maps streak depth to fixed phases, milestone progress and celebration moments.
"""
import math
from enum import Enum

from habit_engine.constants import (
    STREAK_PHASE_LENGTH,
    MILESTONE_FIRST_DAY,
    MILESTONE_EARLY_PHASE,
    MILESTONE_ONE_WEEK,
    MILESTONE_TWO_WEEKS,
    MILESTONE_ONE_MONTH,
    MILESTONE_TWO_MONTHS,
    MILESTONE_CENTURY,
)
from habit_engine.exceptions import InvalidInputException
from habit_engine.schemas import MilestoneProgress


class StreakPhase(str, Enum):
    START = "start"
    FIRST = "first"
    EARLY = "early"
    WEEK = "week"
    TWO_WEEKS = "two_weeks"
    MONTH = "month"
    TWO_MONTHS = "two_months"
    HUNDRED = "hundred"
    LEGENDARY = "legendary"


# Ordered (phase, max streak) pairs; LEGENDARY is open-ended
PHASE_UPPER_BOUNDS = [
    (StreakPhase.START, 0),
    (StreakPhase.FIRST, MILESTONE_FIRST_DAY),
    (StreakPhase.EARLY, MILESTONE_EARLY_PHASE),
    (StreakPhase.WEEK, MILESTONE_ONE_WEEK),
    (StreakPhase.TWO_WEEKS, MILESTONE_TWO_WEEKS),
    (StreakPhase.MONTH, MILESTONE_ONE_MONTH),
    (StreakPhase.TWO_MONTHS, MILESTONE_TWO_MONTHS),
    (StreakPhase.HUNDRED, MILESTONE_CENTURY),
]

MOTIVATIONAL_LEVELS = {
    StreakPhase.START: "start",
    StreakPhase.FIRST: "building",
    StreakPhase.EARLY: "building",
    StreakPhase.WEEK: "strong",
    StreakPhase.TWO_WEEKS: "champion",
    StreakPhase.MONTH: "master",
    StreakPhase.TWO_MONTHS: "master",
    StreakPhase.HUNDRED: "legendary",
    StreakPhase.LEGENDARY: "legendary",
}

DEFAULT_TITLES = {
    StreakPhase.START: "Start Your Journey!",
    StreakPhase.FIRST: "Great Start!",
    StreakPhase.EARLY: "Building Momentum!",
    StreakPhase.WEEK: "One Week Strong!",
    StreakPhase.TWO_WEEKS: "Two Weeks Champion!",
    StreakPhase.MONTH: "Monthly Master!",
    StreakPhase.TWO_MONTHS: "Habit Hero!",
    StreakPhase.HUNDRED: "Century Achiever!",
    StreakPhase.LEGENDARY: "Legendary Keeper!",
}


class PhaseService:
    """Service for streak phase and milestone mapping"""

    @staticmethod
    def get_streak_phase(streak_days: int) -> StreakPhase:
        """
        Get the phase a streak falls into.

        0 -> START, 1 -> FIRST, 2-3 -> EARLY, 4-7 -> WEEK, 8-14 -> TWO_WEEKS,
        15-30 -> MONTH, 31-60 -> TWO_MONTHS, 61-100 -> HUNDRED, 101+ -> LEGENDARY
        """
        for phase, upper in PHASE_UPPER_BOUNDS:
            if streak_days <= upper:
                return phase
        return StreakPhase.LEGENDARY

    @staticmethod
    def get_motivational_level(streak_days: int) -> str:
        return MOTIVATIONAL_LEVELS[PhaseService.get_streak_phase(streak_days)]

    @staticmethod
    def get_default_title(streak_days: int) -> str:
        return DEFAULT_TITLES[PhaseService.get_streak_phase(streak_days)]

    @staticmethod
    def should_celebrate(previous_streak: int, current_streak: int) -> bool:
        """Celebrate when the streak grows into a new phase"""
        if current_streak <= previous_streak:
            return False
        return PhaseService.get_streak_phase(previous_streak) != PhaseService.get_streak_phase(current_streak)

    @staticmethod
    def calculate_milestone_progress(
        current_streak: int,
        phase_length: int = STREAK_PHASE_LENGTH
    ) -> MilestoneProgress:
        """
        Calculate progress towards the next fixed-length milestone.

        Example: streak 10 with phase length 7 -> 3/7 done, next milestone 14.
        """
        if phase_length <= 0:
            raise InvalidInputException("phase_length", "must be greater than 0")

        progress = current_streak % phase_length
        next_milestone = math.ceil((current_streak + 1) / phase_length) * phase_length
        percentage = min(100, math.floor(progress / phase_length * 100 + 0.5))

        return MilestoneProgress(
            current_phase=progress,
            next_milestone=next_milestone,
            progress=progress,
            progress_percentage=percentage
        )
