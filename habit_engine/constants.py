"""
Engine-wide constants and environment configuration.
"""
import os

# Habit day
DEFAULT_BOUNDARY_HOUR = 3  # 03:00 reset, late-night sessions count for the previous day
DEFAULT_DAILY_TARGET = 2
DEFAULT_TARGET_SECONDS = 120

# Lookback windows (days)
HISTORY_LOOKBACK_DAYS = 365

# Points
BASE_POINTS_FULL = 100
TIME_STREAK_STEP = 10   # Extra base points per preceding on-target session
DAILY_STREAK_BONUS = 50  # Bonus points per consecutive successful day

# Points stages: minimum cumulative total for stages 2..6
POINTS_STAGE_THRESHOLDS = [1, 300, 1000, 2500, 5000]

# Milestones
STREAK_PHASE_LENGTH = 7
MILESTONE_FIRST_DAY = 1
MILESTONE_EARLY_PHASE = 3
MILESTONE_ONE_WEEK = 7
MILESTONE_TWO_WEEKS = 14
MILESTONE_ONE_MONTH = 30
MILESTONE_TWO_MONTHS = 60
MILESTONE_CENTURY = 100

# Cache
CACHE_BACKEND_MEMORY = "memory"
CACHE_BACKEND_SQL = "sql"
CACHE_KEY_RECORD_PREFIX = "streak_cache_v1"
CACHE_KEY_HISTORY = "streak_history_v1"

# Environment
DATABASE_URL = os.getenv("HABIT_ENGINE_DATABASE_URL", "sqlite:///./habits.db")
CACHE_BACKEND = os.getenv("HABIT_ENGINE_CACHE_BACKEND", CACHE_BACKEND_MEMORY)
CACHE_TTL_SECONDS = int(os.getenv("HABIT_ENGINE_CACHE_TTL_SECONDS", "300"))

DEFAULT_LOG_DIRECTORY_PROD = "/var/log/habit-engine"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"

CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("HABIT_ENGINE_CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
