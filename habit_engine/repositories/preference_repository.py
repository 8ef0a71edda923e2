"""
Preference repository - Data access layer for UserPreference model.
Handles all database queries related to per-user streak settings.
"""
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from habit_engine.exceptions import DataUnavailableException, InvalidInputException
from habit_engine.models import UserPreference
from habit_engine.schemas import UserPreferences


class PreferenceRepository:
    """Repository for UserPreference data access"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_preferences(self, user_id: str) -> UserPreferences:
        """
        Get a user's preferences (defaults if none stored).

        Raises:
            DataUnavailableException: If the query fails
        """
        db: Session = self.session_factory()
        try:
            row = db.query(UserPreference).filter(UserPreference.user_id == user_id).first()
            if not row:
                return UserPreferences()
            return UserPreferences.model_validate(row)
        except SQLAlchemyError as e:
            raise DataUnavailableException("get_preferences", str(e))
        except ValidationError as e:
            raise DataUnavailableException("get_preferences", f"stored preferences are malformed: {e}")
        finally:
            db.close()

    def update_preferences(
        self,
        user_id: str,
        daily_target: Optional[int] = None,
        boundary_hour: Optional[int] = None,
        target_seconds: Optional[int] = None
    ) -> UserPreferences:
        """
        Create or update a user's preferences.

        Only fields that are passed are changed.
        """
        db: Session = self.session_factory()
        try:
            row = db.query(UserPreference).filter(UserPreference.user_id == user_id).first()
            current = UserPreferences.model_validate(row) if row else UserPreferences()
            changes = {
                key: value for key, value in {
                    "daily_target": daily_target,
                    "boundary_hour": boundary_hour,
                    "target_seconds": target_seconds,
                }.items() if value is not None
            }
            try:
                updated = UserPreferences.model_validate({**current.model_dump(), **changes})
            except ValidationError as e:
                raise InvalidInputException("preferences", str(e))
            if updated.daily_target <= 0 or updated.target_seconds <= 0:
                raise InvalidInputException("preferences", "targets must be greater than 0")

            if not row:
                row = UserPreference(user_id=user_id)
                db.add(row)
            row.daily_target = updated.daily_target
            row.boundary_hour = updated.boundary_hour
            row.target_seconds = updated.target_seconds

            db.commit()
            db.refresh(row)
            return updated
        except SQLAlchemyError as e:
            db.rollback()
            raise DataUnavailableException("update_preferences", str(e))
        finally:
            db.close()
