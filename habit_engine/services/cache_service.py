"""
Streak cache service.
TTL cache of computed streak records per user plus one history slot.
Storage failures never surface: a broken read is a miss, a broken write is logged.
"""
import json
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Protocol, Tuple

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from habit_engine.constants import CACHE_KEY_RECORD_PREFIX, CACHE_KEY_HISTORY, CACHE_TTL_SECONDS
from habit_engine.exceptions import CacheFailureException
from habit_engine.models import CacheEntryRow
from habit_engine.schemas import StreakRecord, StreakHistory

logger = logging.getLogger("habit_engine.cache")


class CacheEntry(BaseModel):
    value: str  # Serialized payload
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class CacheStore(Protocol):
    """Storage backend for serialized cache entries"""

    def get(self, key: str) -> Optional[CacheEntry]: ...

    def set(self, key: str, entry: CacheEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class InMemoryCacheStore:
    """Process-local cache store"""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()


class SqlCacheStore:
    """Cache store backed by the cache_entries table"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[CacheEntry]:
        db: Session = self.session_factory()
        try:
            row = db.query(CacheEntryRow).filter(CacheEntryRow.key == key).first()
            if not row:
                return None
            return CacheEntry(value=row.value, expires_at=row.expires_at)
        except SQLAlchemyError as e:
            raise CacheFailureException("read", key, str(e))
        finally:
            db.close()

    def set(self, key: str, entry: CacheEntry) -> None:
        db: Session = self.session_factory()
        try:
            db.merge(CacheEntryRow(key=key, value=entry.value, expires_at=entry.expires_at))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheFailureException("write", key, str(e))
        finally:
            db.close()

    def delete(self, key: str) -> None:
        db: Session = self.session_factory()
        try:
            db.query(CacheEntryRow).filter(CacheEntryRow.key == key).delete()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheFailureException("delete", key, str(e))
        finally:
            db.close()

    def clear(self) -> None:
        db: Session = self.session_factory()
        try:
            db.query(CacheEntryRow).delete()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise CacheFailureException("clear", "*", str(e))
        finally:
            db.close()


class StreakCache:
    """
    Streak result cache.

    Records are keyed per user. History occupies a single slot tagged with
    the user it was computed for; reading it for anyone else is a miss.
    Expiry is checked lazily on read.
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        ttl: timedelta = timedelta(seconds=CACHE_TTL_SECONDS),
        clock: Callable[[], datetime] = datetime.now
    ):
        self.store = store if store is not None else InMemoryCacheStore()
        self.ttl = ttl
        self._clock = clock

    @staticmethod
    def record_key(user_id: str) -> str:
        return f"{CACHE_KEY_RECORD_PREFIX}:{user_id}"

    def get_record(self, user_id: str) -> Optional[StreakRecord]:
        """Get the cached record if present and not expired"""
        entry = self._read(self.record_key(user_id), honor_ttl=True)
        return self._decode_record(entry, user_id)

    def peek_record(self, user_id: str) -> Optional[StreakRecord]:
        """Get the last stored record, ignoring expiry"""
        entry = self._read(self.record_key(user_id), honor_ttl=False)
        return self._decode_record(entry, user_id)

    def set_record(self, user_id: str, record: StreakRecord) -> None:
        self._write(self.record_key(user_id), record.model_dump_json())

    def get_history(self, user_id: str) -> Optional[StreakHistory]:
        """Get the cached history if it belongs to user_id and has not expired"""
        entry = self._read(CACHE_KEY_HISTORY, honor_ttl=True)
        if entry is None:
            return None
        try:
            owner, payload = self._unwrap_history(entry.value)
            if owner != user_id:
                return None
            return StreakHistory.model_validate_json(payload)
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            logger.warning(f"Discarding unreadable history cache entry: {e}")
            return None

    def set_history(self, user_id: str, history: StreakHistory) -> None:
        self._write(CACHE_KEY_HISTORY, json.dumps({"user_id": user_id, "history": history.model_dump_json()}))

    def invalidate(self, user_id: str) -> None:
        """Drop everything cached for a user"""
        try:
            self.store.delete(self.record_key(user_id))
            entry = self.store.get(CACHE_KEY_HISTORY)
            if entry is not None and self._unwrap_history(entry.value)[0] == user_id:
                self.store.delete(CACHE_KEY_HISTORY)
        except (CacheFailureException, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Cache invalidation failed for {user_id}: {e}")

    def clear(self) -> None:
        try:
            self.store.clear()
        except CacheFailureException as e:
            logger.warning(f"Cache clear failed: {e}")

    # Internal helpers -------------------------------------------------
    def _read(self, key: str, honor_ttl: bool) -> Optional[CacheEntry]:
        try:
            entry = self.store.get(key)
        except CacheFailureException as e:
            logger.warning(f"Treating cache read failure as a miss: {e}")
            return None
        if entry is None:
            return None
        if honor_ttl and entry.is_expired(self._clock()):
            logger.debug(f"Cache entry {key} expired at {entry.expires_at}")
            return None
        return entry

    def _write(self, key: str, value: str) -> None:
        entry = CacheEntry(value=value, expires_at=self._clock() + self.ttl)
        try:
            self.store.set(key, entry)
        except CacheFailureException as e:
            logger.warning(f"Cache write skipped: {e}")

    @staticmethod
    def _decode_record(entry: Optional[CacheEntry], user_id: str) -> Optional[StreakRecord]:
        if entry is None:
            return None
        try:
            record = StreakRecord.model_validate_json(entry.value)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable streak cache entry for {user_id}: {e}")
            return None
        if record.user_id is not None and record.user_id != user_id:
            return None
        return record

    @staticmethod
    def _unwrap_history(raw: str) -> Tuple[str, str]:
        data = json.loads(raw)
        return data["user_id"], data["history"]
