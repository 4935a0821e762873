"""
Session persistence.

A session row holds the transcript shown to the user, the running list of
extracted tasks, suggestion selections, and the serialized conversation
state. Sessions expire a fixed time after their last update: ``get`` reports
an expired session as absent and removes it, even when the row still exists.
"""
import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from elicit.core.config import get_config
from elicit.utils.logger import get_logger
from elicit.utils.supabase_client import SupabaseClient

logger = get_logger("core.session_store")

SESSIONS_TABLE = "chat_sessions"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value:
        return _utcnow()
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass
class SessionRecord:
    """Persisted state of one elicitation session."""
    session_id: str
    job_title: str
    occupation_code: Optional[str] = None
    messages: List[Dict[str, Any]] = field(default_factory=list)
    extracted_tasks: List[Dict[str, Any]] = field(default_factory=list)
    selected_suggestion_ids: List[str] = field(default_factory=list)
    turn_count: int = 0
    agent_state: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


UPDATABLE_FIELDS = (
    "job_title", "occupation_code", "messages", "extracted_tasks",
    "selected_suggestion_ids", "turn_count", "agent_state",
)


class SessionStore:
    """Shared TTL handling; subclasses implement the row operations."""

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Optional[Callable[[], datetime]] = None):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_config().session_ttl_seconds
        self.clock = clock or _utcnow

    def is_expired(self, record: SessionRecord) -> bool:
        return (self.clock() - record.updated_at).total_seconds() > self.ttl_seconds

    def create(self, session_id: str, job_title: str, occupation_code: Optional[str] = None) -> SessionRecord:
        raise NotImplementedError

    def get(self, session_id: str) -> Optional[SessionRecord]:
        raise NotImplementedError

    def update(self, session_id: str, **updates) -> Optional[SessionRecord]:
        raise NotImplementedError

    def delete(self, session_id: str) -> bool:
        raise NotImplementedError

    def has(self, session_id: str) -> bool:
        return self.get(session_id) is not None

    @staticmethod
    def _check_fields(updates: Dict[str, Any]) -> None:
        unknown = set(updates) - set(UPDATABLE_FIELDS)
        if unknown:
            raise KeyError(f"Unknown session fields: {sorted(unknown)}")


class MemorySessionStore(SessionStore):
    """Process-local store. Records are copied in and out so callers never share them."""

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Optional[Callable[[], datetime]] = None):
        super().__init__(ttl_seconds, clock)
        self._rows: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def create(self, session_id: str, job_title: str, occupation_code: Optional[str] = None) -> SessionRecord:
        now = self.clock()
        record = SessionRecord(
            session_id=session_id,
            job_title=job_title,
            occupation_code=occupation_code,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._rows[session_id] = record
        logger.info(f"Created session: {session_id} ({job_title})")
        return copy.deepcopy(record)

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._rows.get(session_id)
            if record is None:
                return None
            if self.is_expired(record):
                del self._rows[session_id]
                logger.info(f"Session expired: {session_id}")
                return None
            return copy.deepcopy(record)

    def update(self, session_id: str, **updates) -> Optional[SessionRecord]:
        self._check_fields(updates)
        with self._lock:
            record = self._rows.get(session_id)
            if record is None or self.is_expired(record):
                self._rows.pop(session_id, None)
                return None
            for key, value in updates.items():
                setattr(record, key, copy.deepcopy(value))
            record.updated_at = self.clock()
            return copy.deepcopy(record)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._rows.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._rows)


class SupabaseSessionStore(SessionStore):
    """Sessions persisted in the ``chat_sessions`` table."""

    def __init__(
        self,
        client: Optional[SupabaseClient] = None,
        ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(ttl_seconds, clock)
        self.client = client if client is not None else SupabaseClient()

    @staticmethod
    def _to_row(record: SessionRecord) -> Dict[str, Any]:
        return {
            "session_id": record.session_id,
            "job_title": record.job_title,
            "occupation_code": record.occupation_code,
            "messages": record.messages,
            "extracted_tasks": record.extracted_tasks,
            "selected_suggestion_ids": record.selected_suggestion_ids,
            "turn_count": record.turn_count,
            "agent_state": record.agent_state,
        }

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> SessionRecord:
        return SessionRecord(
            session_id=row["session_id"],
            job_title=row.get("job_title", ""),
            occupation_code=row.get("occupation_code") or None,
            messages=row.get("messages") or [],
            extracted_tasks=row.get("extracted_tasks") or [],
            selected_suggestion_ids=row.get("selected_suggestion_ids") or [],
            turn_count=row.get("turn_count", 0),
            agent_state=row.get("agent_state") or {},
            created_at=_parse_timestamp(row.get("created_at")),
            updated_at=_parse_timestamp(row.get("updated_at")),
        )

    def create(self, session_id: str, job_title: str, occupation_code: Optional[str] = None) -> SessionRecord:
        now = self.clock()
        record = SessionRecord(session_id=session_id, job_title=job_title, occupation_code=occupation_code,
                               created_at=now, updated_at=now)
        row = self._to_row(record)
        row["created_at"] = now.isoformat()
        row["updated_at"] = now.isoformat()
        self.client.insert(SESSIONS_TABLE, row)
        logger.info(f"Created session: {session_id} ({job_title})")
        return record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        rows = self.client.select(SESSIONS_TABLE, filters={"session_id": session_id}, limit=1)
        if not rows:
            return None
        record = self._from_row(rows[0])
        if self.is_expired(record):
            logger.info(f"Session expired: {session_id}")
            self.delete(session_id)
            return None
        return record

    def update(self, session_id: str, **updates) -> Optional[SessionRecord]:
        self._check_fields(updates)
        record = self.get(session_id)
        if record is None:
            return None
        for key, value in updates.items():
            setattr(record, key, value)
        record.updated_at = self.clock()
        values = self._to_row(record)
        del values["session_id"]
        values["updated_at"] = record.updated_at.isoformat()
        self.client.update(SESSIONS_TABLE, {"session_id": session_id}, values)
        return record

    def delete(self, session_id: str) -> bool:
        return self.client.delete(SESSIONS_TABLE, {"session_id": session_id})


# Global instance
_session_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Get the configured session store."""
    global _session_store
    if _session_store is None:
        backend = get_config().session_backend
        if backend == "supabase":
            _session_store = SupabaseSessionStore()
        else:
            _session_store = MemorySessionStore()
        logger.info(f"Session store backend: {backend}")
    return _session_store


def set_session_store(store: SessionStore) -> None:
    global _session_store
    _session_store = store
