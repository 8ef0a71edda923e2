"""
Streak HTTP routes.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status

from habit_engine.exceptions import InvalidInputException, DataUnavailableException
from habit_engine.schemas import (
    SessionCreate, PointsResult, PointsSummary, StreakData, StreakStatus, DailyGoalStatus
)
from habit_engine.services.engine import StreakEngine

router = APIRouter(prefix="/api/users/{user_id}", tags=["streaks"])


def get_engine(request: Request) -> StreakEngine:
    """Engine built once at startup and shared by all requests"""
    return request.app.state.engine


@router.get("/streak")
def get_current_streak(user_id: str, refresh: bool = False, engine: StreakEngine = Depends(get_engine)):
    """Get the current streak in habit days."""
    return {"user_id": user_id, "current_streak": engine.get_current_streak(user_id, force_refresh=refresh)}


@router.get("/streak/data", response_model=StreakData)
def get_streak_data(user_id: str, refresh: bool = False, engine: StreakEngine = Depends(get_engine)):
    """Get current and longest streak with streak history."""
    return engine.get_streak_data(user_id, force_refresh=refresh)


@router.get("/streak/status", response_model=StreakStatus)
def get_streak_status(user_id: str, engine: StreakEngine = Depends(get_engine)):
    return engine.get_streak_status(user_id)


@router.get("/streak/goal", response_model=DailyGoalStatus)
def get_daily_goal_status(user_id: str, engine: StreakEngine = Depends(get_engine)):
    return engine.check_daily_goal_status(user_id)


@router.post("/sessions", response_model=PointsResult, status_code=status.HTTP_201_CREATED)
def record_session(user_id: str, session: SessionCreate, engine: StreakEngine = Depends(get_engine)):
    """Record a session and return the points it earned."""
    try:
        return engine.record_session_and_score(user_id, session)
    except InvalidInputException as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataUnavailableException as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/points", response_model=PointsSummary)
def get_points(user_id: str, engine: StreakEngine = Depends(get_engine)):
    """Get cumulative points and stage."""
    return engine.get_total_points(user_id)
