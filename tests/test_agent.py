"""Tests for agent.py"""

import json

import pytest

from agent import DiagnosisAgent
from judging import SkillIdentifier
from learning import DiagnosticQuestionSelector, PrerequisiteChecker, ProficiencyLevel, ProficiencyRecord
from learning.errors import ExternalServiceError, InvalidStateError
from learning.models import SessionScreen

from conftest import FakeLLM

IDENTIFIED = json.dumps({
    "primarySkill": "two_step_equations",
    "requiredSkills": ["two_step_equations", "one_step_equations"],
    "reasoning": "Undo the addition, then the multiplication",
})
MASTERED = ProficiencyRecord(level=ProficiencyLevel.MASTERED, problems_solved=10, success_count=10)


def make_agent(engine, tracker, llm):
    return DiagnosisAgent(
        engine,
        SkillIdentifier(engine.skill_graph, llm),
        DiagnosticQuestionSelector(engine.skill_graph),
        PrerequisiteChecker(engine.skill_graph, tracker),
    )


def test_diagnose_new_learner(engine, tracker, session):
    agent = make_agent(engine, tracker, FakeLLM(content=IDENTIFIED))

    result = agent.diagnose(session.session_id, user_id="user_1")

    assert result["primary_skill"] == "two_step_equations"
    assert [q["skill_id"] for q in result["diagnostic_questions"]] == [
        "one_step_equations", "order_of_operations"
    ]
    assert result["readiness"]["ready"] is False
    assert result["branch_decision"]["should_branch"] is False
    assert result["branch_skill"]["skill_id"] == "understanding_variables"
    assert "understanding variables" in result["branch_message"]
    assert result["stuck_level"] == 0

    loaded = engine.load_session(session.session_id)
    assert loaded.current_screen == SessionScreen.DIAGNOSIS
    assert loaded.main_skill_id == "two_step_equations"


def test_diagnose_ready_learner_gets_no_branch(engine, tracker, proficiency_store, session):
    for skill_id in ("one_step_equations", "order_of_operations", "understanding_variables", "integers"):
        proficiency_store.put("user_1", skill_id, MASTERED)
    agent = make_agent(engine, tracker, FakeLLM(content=IDENTIFIED))

    result = agent.diagnose(session.session_id)

    assert result["readiness"]["ready"] is True
    assert result["readiness"]["weak_skills"] == []
    assert result["branch_skill"] is None
    assert result["branch_message"] is None


def test_diagnose_confused_learner_skips_practiced_skills(engine, tracker, session):
    engine.branch_to_skill(session.session_id, "understanding_variables")
    engine.return_to_parent(session.session_id)
    engine.add_message(session.session_id, "user", "???")
    agent = make_agent(engine, tracker, FakeLLM(content=IDENTIFIED))

    result = agent.diagnose(session.session_id, student_response="I don't understand")

    assert result["branch_decision"]["should_branch"] is True
    assert result["branch_decision"]["reason"] == "explicit_confusion"
    assert result["branch_skill"]["skill_id"] == "integers"
    assert result["stuck_level"] >= 1


def test_identification_timeout_degrades(engine, tracker, session):
    agent = make_agent(engine, tracker, FakeLLM(error=TimeoutError("slow")))

    result = agent.diagnose(session.session_id)

    assert result["primary_skill"] is None
    assert result["diagnostic_questions"] == []
    assert result["readiness"] is None
    assert engine.load_session(session.session_id).current_screen == SessionScreen.DIAGNOSIS


def test_identification_failure_leaves_session_untouched(engine, tracker, session):
    agent = make_agent(engine, tracker, FakeLLM(error=RuntimeError("provider down")))

    with pytest.raises(ExternalServiceError):
        agent.diagnose(session.session_id)
    assert engine.load_session(session.session_id).current_screen == SessionScreen.ENTRY


def test_ended_session_is_not_diagnosed(engine, tracker, session):
    llm = FakeLLM(content=IDENTIFIED)
    engine.end_session(session.session_id)

    with pytest.raises(InvalidStateError):
        make_agent(engine, tracker, llm).diagnose(session.session_id)
    assert llm.calls == []


def test_full_stack_offers_alternative_help(engine, tracker, session):
    for skill_id in ("understanding_variables", "integers", "basic_arithmetic"):
        engine.branch_to_skill(session.session_id, skill_id)
    agent = make_agent(engine, tracker, FakeLLM(content=IDENTIFIED))

    result = agent.diagnose(session.session_id, student_response="I'm stuck")

    assert result["branch_decision"]["should_branch"] is True
    assert result["branch_skill"] is None
    assert "basic arithmetic is challenging" in result["branch_message"]
    assert engine.load_session(session.session_id).skill_stack.depth == 3


def test_paused_session_is_not_diagnosed(engine, tracker, session):
    llm = FakeLLM(content=IDENTIFIED)
    engine.pause_session(session.session_id)

    with pytest.raises(InvalidStateError):
        make_agent(engine, tracker, llm).diagnose(session.session_id)
    assert llm.calls == []
    assert engine.load_session(session.session_id).current_screen == SessionScreen.ENTRY
