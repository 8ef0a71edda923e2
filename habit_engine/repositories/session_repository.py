"""
Session repository - Data access layer for SessionLog model.
Supplies session records to the engine and stores new ones.
"""
import logging
from datetime import datetime
from typing import List

from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from habit_engine.exceptions import DataUnavailableException
from habit_engine.models import SessionLog
from habit_engine.schemas import SessionRecord

logger = logging.getLogger("habit_engine.repository")


class SessionRepository:
    """Repository for SessionLog data access"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def fetch_sessions(self, user_id: str, since: datetime) -> List[SessionRecord]:
        """
        Get a user's sessions logged at or after since, newest first.

        Rows without a timestamp are matched on their explicit day.

        Raises:
            DataUnavailableException: If the query fails
        """
        db: Session = self.session_factory()
        try:
            rows = db.query(SessionLog).filter(
                SessionLog.user_id == user_id,
                (SessionLog.occurred_at >= since)
                | (SessionLog.occurred_at.is_(None) & (SessionLog.habit_day >= since.date()))
            ).order_by(SessionLog.occurred_at.desc(), SessionLog.id.desc()).all()
            return self._to_records(rows)
        except SQLAlchemyError as e:
            raise DataUnavailableException("fetch_sessions", str(e))
        finally:
            db.close()

    @staticmethod
    def _to_records(rows: List[SessionLog]) -> List[SessionRecord]:
        records = []
        for row in rows:
            try:
                records.append(SessionRecord.model_validate(row))
            except ValidationError as e:
                logger.warning(f"Skipping malformed session log {row.id}: {e}")
        return records

    def add_session(self, user_id: str, session: SessionRecord, earned_points: int = 0) -> SessionLog:
        """
        Persist a new session.

        Raises:
            DataUnavailableException: If the insert fails
        """
        db: Session = self.session_factory()
        try:
            log = SessionLog(
                user_id=user_id,
                duration_seconds=session.duration_seconds,
                target_seconds=session.target_seconds,
                occurred_at=session.occurred_at,
                habit_day=session.habit_day,
                earned_points=earned_points
            )
            db.add(log)
            db.commit()
            db.refresh(log)
            return log
        except SQLAlchemyError as e:
            db.rollback()
            raise DataUnavailableException("add_session", str(e))
        finally:
            db.close()

    def get_total_points(self, user_id: str) -> int:
        """Sum of points earned over all of a user's sessions"""
        db: Session = self.session_factory()
        try:
            total = db.query(func.coalesce(func.sum(SessionLog.earned_points), 0)).filter(
                SessionLog.user_id == user_id
            ).scalar()
            return int(total or 0)
        except SQLAlchemyError as e:
            raise DataUnavailableException("get_total_points", str(e))
        finally:
            db.close()
