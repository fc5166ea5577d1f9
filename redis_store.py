"""
Redis Store - Proficiency ledger and session document persistence.

Key Structure:
    proficiency:{user_id}:{skill_id} -> String (JSON ProficiencyRecord)
    proficiency:{user_id}:skills     -> Set (skill ids with a record)
    session:{session_id}             -> String (JSON Session)

Every read-modify-write runs as an optimistic transaction (WATCH/MULTI)
on exactly one record key, retried on conflict. The in-memory stores keep
the same contract with per-key locks and are used for tests and local runs.
"""

import json
import logging
import threading
from collections import defaultdict
from typing import Callable, Dict, Optional, Tuple, TypeVar

import redis

import config
from learning.errors import ExternalServiceError, InvalidStateError, NotFoundError
from learning.models import ProficiencyRecord, Session

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProficiencyMutator = Callable[[ProficiencyRecord], ProficiencyRecord]
SessionMutator = Callable[[Session], T]


def connect() -> redis.Redis:
    """Connect to Redis using environment variables."""
    return redis.Redis(
        host=config.REDIS_HOST,
        port=config.REDIS_PORT,
        password=config.REDIS_PASSWORD,
        db=config.REDIS_DB,
        decode_responses=True  # Return strings instead of bytes
    )


# ==================== Redis Stores ====================

class RedisProficiencyStore:
    """Per-(user, skill) proficiency records in Redis."""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.client = client if client is not None else connect()

    # ==================== Key Builders ====================

    def _record_key(self, user_id: str, skill_id: str) -> str:
        """Redis key for one proficiency record."""
        return f"proficiency:{user_id}:{skill_id}"

    def _index_key(self, user_id: str) -> str:
        """Redis key for the set of skills a user has records for."""
        return f"proficiency:{user_id}:skills"

    # ==================== Reads ====================

    def get(self, user_id: str, skill_id: str) -> Optional[ProficiencyRecord]:
        """
        Get one proficiency record.

        Returns:
            The stored record, or None if the user never practiced the skill
        """
        try:
            raw = self.client.get(self._record_key(user_id, skill_id))
        except redis.RedisError as e:
            raise ExternalServiceError(f"Failed to read proficiency: {e}") from e
        return ProficiencyRecord.from_dict(json.loads(raw)) if raw else None

    def get_all(self, user_id: str) -> Dict[str, ProficiencyRecord]:
        """Get every stored record for a user, keyed by skill id."""
        try:
            skill_ids = sorted(self.client.smembers(self._index_key(user_id)))
            if not skill_ids:
                return {}
            raws = self.client.mget([self._record_key(user_id, s) for s in skill_ids])
        except redis.RedisError as e:
            raise ExternalServiceError(f"Failed to read proficiencies: {e}") from e

        return {
            skill_id: ProficiencyRecord.from_dict(json.loads(raw))
            for skill_id, raw in zip(skill_ids, raws)
            if raw
        }

    # ==================== Writes ====================

    def update(self, user_id: str, skill_id: str, mutate: ProficiencyMutator) -> ProficiencyRecord:
        """
        Atomically read-modify-write one record.

        The record key is WATCHed; if another writer commits first the
        transaction is retried from a fresh read, so no update is lost.

        Args:
            user_id: Learner
            skill_id: Skill being practiced
            mutate: Pure function from the current (or zero) record to the new one

        Returns:
            The record that was committed
        """
        record_key = self._record_key(user_id, skill_id)
        index_key = self._index_key(user_id)

        def transaction(pipe) -> ProficiencyRecord:
            raw = pipe.get(record_key)
            current = ProficiencyRecord.from_dict(json.loads(raw)) if raw else ProficiencyRecord()
            updated = mutate(current)
            pipe.multi()
            pipe.set(record_key, json.dumps(updated.to_dict()))
            pipe.sadd(index_key, skill_id)
            return updated

        try:
            return self.client.transaction(transaction, record_key, value_from_callable=True)
        except redis.RedisError as e:
            raise ExternalServiceError(f"Failed to update proficiency: {e}") from e

    def put(self, user_id: str, skill_id: str, record: ProficiencyRecord):
        """Overwrite a record unconditionally."""
        try:
            pipe = self.client.pipeline()
            pipe.set(self._record_key(user_id, skill_id), json.dumps(record.to_dict()))
            pipe.sadd(self._index_key(user_id), skill_id)
            pipe.execute()
        except redis.RedisError as e:
            raise ExternalServiceError(f"Failed to write proficiency: {e}") from e


class RedisSessionStore:
    """Tutoring session documents in Redis."""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.client = client if client is not None else connect()

    def _session_key(self, session_id: str) -> str:
        """Redis key for a session document."""
        return f"session:{session_id}"

    def create(self, session: Session) -> Session:
        """Store a new session. Fails if the id is already taken."""
        try:
            created = self.client.set(
                self._session_key(session.session_id),
                json.dumps(session.to_dict()),
                nx=True,
            )
        except redis.RedisError as e:
            raise ExternalServiceError(f"Failed to create session: {e}") from e

        if not created:
            raise InvalidStateError(f"Session already exists: {session.session_id}")
        return session

    def get(self, session_id: str) -> Optional[Session]:
        """
        Retrieve a session document.

        Returns:
            Session, or None if not found
        """
        try:
            raw = self.client.get(self._session_key(session_id))
        except redis.RedisError as e:
            raise ExternalServiceError(f"Failed to load session: {e}") from e
        return Session.from_dict(json.loads(raw)) if raw else None

    def update(self, session_id: str, mutate: SessionMutator) -> Tuple[Session, T]:
        """
        Atomically read-modify-write a session document.

        `mutate` changes the session in place and returns a result. It can
        run more than once on conflict, so it must not have side effects
        outside the session.

        Returns:
            (committed session, value returned by mutate)
        """
        key = self._session_key(session_id)

        def transaction(pipe):
            raw = pipe.get(key)
            if not raw:
                raise NotFoundError(f"Session not found: {session_id}")
            session = Session.from_dict(json.loads(raw))
            result = mutate(session)
            pipe.multi()
            pipe.set(key, json.dumps(session.to_dict()))
            return session, result

        try:
            return self.client.transaction(transaction, key, value_from_callable=True)
        except redis.RedisError as e:
            raise ExternalServiceError(f"Failed to update session: {e}") from e

    def delete(self, session_id: str):
        """Delete a session (for testing/cleanup)."""
        try:
            self.client.delete(self._session_key(session_id))
        except redis.RedisError as e:
            raise ExternalServiceError(f"Failed to delete session: {e}") from e


# ==================== In-Memory Stores ====================

class _KeyLocks:
    """One lock per key, created on demand."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)

    def __call__(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks[key]


class InMemoryProficiencyStore:
    """Process-local proficiency records with the same atomicity contract."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], dict] = {}
        self._locks = _KeyLocks()

    def get(self, user_id: str, skill_id: str) -> Optional[ProficiencyRecord]:
        raw = self._records.get((user_id, skill_id))
        return ProficiencyRecord.from_dict(raw) if raw else None

    def get_all(self, user_id: str) -> Dict[str, ProficiencyRecord]:
        return {
            skill_id: ProficiencyRecord.from_dict(raw)
            for (uid, skill_id), raw in sorted(self._records.items())
            if uid == user_id
        }

    def update(self, user_id: str, skill_id: str, mutate: ProficiencyMutator) -> ProficiencyRecord:
        with self._locks(f"{user_id}:{skill_id}"):
            current = self.get(user_id, skill_id) or ProficiencyRecord()
            updated = mutate(current)
            self._records[(user_id, skill_id)] = updated.to_dict()
            return updated

    def put(self, user_id: str, skill_id: str, record: ProficiencyRecord):
        with self._locks(f"{user_id}:{skill_id}"):
            self._records[(user_id, skill_id)] = record.to_dict()


class InMemorySessionStore:
    """Process-local session documents with the same atomicity contract."""

    def __init__(self):
        self._sessions: Dict[str, dict] = {}
        self._locks = _KeyLocks()

    def create(self, session: Session) -> Session:
        with self._locks(session.session_id):
            if session.session_id in self._sessions:
                raise InvalidStateError(f"Session already exists: {session.session_id}")
            self._sessions[session.session_id] = session.to_dict()
        return session

    def get(self, session_id: str) -> Optional[Session]:
        raw = self._sessions.get(session_id)
        return Session.from_dict(raw) if raw else None

    def update(self, session_id: str, mutate: SessionMutator) -> Tuple[Session, T]:
        with self._locks(session_id):
            session = self.get(session_id)
            if session is None:
                raise NotFoundError(f"Session not found: {session_id}")
            result = mutate(session)
            self._sessions[session_id] = session.to_dict()
            return session, result

    def delete(self, session_id: str):
        self._sessions.pop(session_id, None)


def create_stores() -> Tuple[object, object]:
    """Build (proficiency store, session store) for the configured backend."""
    if config.STORE_BACKEND == "memory":
        logger.warning("[Store] Using in-memory stores; data is lost on restart")
        return InMemoryProficiencyStore(), InMemorySessionStore()

    client = connect()
    return RedisProficiencyStore(client), RedisSessionStore(client)
