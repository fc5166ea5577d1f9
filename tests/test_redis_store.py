"""Tests for redis_store.py (against fakeredis)"""

import fakeredis
import pytest
import redis

from learning.errors import ExternalServiceError, InvalidStateError, NotFoundError
from learning.models import (
    MainProblem,
    ProficiencyLevel,
    ProficiencyRecord,
    Session,
    SessionScreen,
    SkillBranch,
)
from learning.proficiency_tracker import apply_attempt
from redis_store import RedisProficiencyStore, RedisSessionStore


@pytest.fixture
def server():
    return fakeredis.FakeServer()


@pytest.fixture
def client(server):
    return fakeredis.FakeRedis(server=server, decode_responses=True)


def make_session(session_id="s1"):
    return Session(session_id=session_id, user_id="user_1", main_problem=MainProblem(text="Solve x + 1 = 2"))


# ==================== Proficiency ====================

def test_proficiency_roundtrip(client):
    store = RedisProficiencyStore(client)
    assert store.get("user_1", "fractions") is None

    record = store.update("user_1", "fractions", lambda r: apply_attempt(r, True))
    assert record.problems_solved == 1

    stored = store.get("user_1", "fractions")
    assert stored.problems_solved == 1
    assert stored.level == ProficiencyLevel.LEARNING
    assert set(store.get_all("user_1")) == {"fractions"}
    assert store.get_all("user_2") == {}


def test_proficiency_update_retries_on_conflict(server, client):
    store = RedisProficiencyStore(client)
    other = RedisProficiencyStore(fakeredis.FakeRedis(server=server, decode_responses=True))
    calls = []

    def mutate(record):
        calls.append(record.problems_solved)
        if len(calls) == 1:
            # Another writer commits between our WATCH and EXEC
            other.update("user_1", "integers", lambda r: apply_attempt(r, True))
        return apply_attempt(record, True)

    record = store.update("user_1", "integers", mutate)

    assert calls == [0, 1]
    assert record.problems_solved == 2
    assert store.get("user_1", "integers").success_count == 2


def test_proficiency_put_overwrites(client):
    store = RedisProficiencyStore(client)
    store.update("user_1", "fractions", lambda r: apply_attempt(r, True))
    store.put("user_1", "fractions", ProficiencyRecord())

    assert store.get("user_1", "fractions").problems_solved == 0
    assert "fractions" in store.get_all("user_1")


def test_redis_errors_become_external_service_errors():
    class DownClient:
        def get(self, *args, **kwargs):
            raise redis.ConnectionError("connection refused")

    with pytest.raises(ExternalServiceError):
        RedisProficiencyStore(DownClient()).get("user_1", "fractions")
    with pytest.raises(ExternalServiceError):
        RedisSessionStore(DownClient()).get("s1")


# ==================== Sessions ====================

def test_session_create_and_get(client):
    store = RedisSessionStore(client)
    store.create(make_session())

    loaded = store.get("s1")
    assert loaded.user_id == "user_1"
    assert loaded.main_problem.text == "Solve x + 1 = 2"
    assert loaded.current_screen == SessionScreen.ENTRY
    assert store.get("missing") is None


def test_session_create_rejects_duplicate_id(client):
    store = RedisSessionStore(client)
    store.create(make_session())
    with pytest.raises(InvalidStateError):
        store.create(make_session())


def test_session_update_persists_stack(client):
    store = RedisSessionStore(client)
    store.create(make_session())

    def mutate(session):
        session.skill_stack.push(SkillBranch(skill_id="integers", name="Integer Operations"))
        session.branch_history.append("integers")
        return session.skill_stack.depth

    session, depth = store.update("s1", mutate)
    assert depth == 1

    loaded = store.get("s1")
    assert loaded.current_branch.skill_id == "integers"
    assert loaded.branch_history == ["integers"]
    assert loaded.skill_stack.max_depth == 3


def test_session_update_retries_on_conflict(server, client):
    store = RedisSessionStore(client)
    other = RedisSessionStore(fakeredis.FakeRedis(server=server, decode_responses=True))
    store.create(make_session())
    seen = []

    def add_message(session):
        session.messages.append({"role": "user", "content": "hi"})

    def mutate(session):
        seen.append(len(session.messages))
        if len(seen) == 1:
            # Another writer commits between our WATCH and EXEC
            other.update("s1", add_message)
        session.total_correct_answers += 1

    store.update("s1", mutate)

    assert seen == [0, 1]
    loaded = store.get("s1")
    assert loaded.total_correct_answers == 1
    assert [m["content"] for m in loaded.messages] == ["hi"]


def test_session_update_missing(client):
    with pytest.raises(NotFoundError):
        RedisSessionStore(client).update("missing", lambda s: None)


def test_failed_mutation_writes_nothing(client):
    store = RedisSessionStore(client)
    store.create(make_session())

    def mutate(session):
        session.total_correct_answers = 99
        raise InvalidStateError("refused")

    with pytest.raises(InvalidStateError):
        store.update("s1", mutate)
    assert store.get("s1").total_correct_answers == 0


def test_session_delete(client):
    store = RedisSessionStore(client)
    store.create(make_session())
    store.delete("s1")
    assert store.get("s1") is None
