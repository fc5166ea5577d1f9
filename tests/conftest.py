"""Shared fixtures: the sample skill graph, in-memory stores and fake LLMs."""

from pathlib import Path
from types import SimpleNamespace

import pytest

from learning import (
    MainProblem,
    PracticeProblem,
    ProficiencyTracker,
    SessionEngine,
    SkillGraph,
)
from judging import Judgment
from redis_store import InMemoryProficiencyStore, InMemorySessionStore

GRAPH_PATH = Path(__file__).resolve().parent.parent / "data" / "skill_graph.json"


class FakeLLM:
    """Chat model stand-in: returns canned content or raises."""

    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def invoke(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=self.content)


class ExactJudge:
    """Judge that accepts only the exact expected solution."""

    def judge(self, student_answer, expected_solution, problem_text):
        correct = student_answer == expected_solution
        return Judgment(correct=correct, feedback="ok" if correct else "no")


def make_problems(n):
    return [PracticeProblem(text=f"Problem {i}", hint="", solution=str(i)) for i in range(n)]


@pytest.fixture
def skill_graph():
    return SkillGraph.load(GRAPH_PATH)


@pytest.fixture
def proficiency_store():
    return InMemoryProficiencyStore()


@pytest.fixture
def tracker(proficiency_store):
    return ProficiencyTracker(proficiency_store)


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def engine(skill_graph, session_store, tracker):
    return SessionEngine(skill_graph, session_store, tracker, judge=ExactJudge())


@pytest.fixture
def session(engine):
    return engine.create_session("user_1", MainProblem(text="Solve 2x + 3 = 11"))
