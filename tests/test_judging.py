"""Tests for judging/ (answer judge and skill identifier with fake chat models)"""

import json

import httpx
import openai
import pytest

from judging import AnswerJudge, SkillIdentifier, normalize_answer
from learning.errors import ExternalServiceError, ExternalServiceTimeout, InvalidInputError

from conftest import FakeLLM


# ==================== Answer Judge ====================

def test_normalize_answer():
    assert normalize_answer("  X + 5 ") == "x+5"
    assert normalize_answer(None) == ""


def test_judge_uses_llm_verdict():
    llm = FakeLLM(content=json.dumps({"correct": True, "feedback": "2/4 simplifies to 1/2."}))
    judgment = AnswerJudge(llm).judge("2/4", "1/2", "Simplify 2/4")

    assert judgment.correct is True
    assert judgment.fallback is False
    assert judgment.feedback == "2/4 simplifies to 1/2."
    assert "Student's Answer: 2/4" in llm.calls[0][1].content


@pytest.mark.parametrize("error", [
    TimeoutError("slow"),
    openai.APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")),
    RuntimeError("500 from provider"),
])
def test_judge_falls_back_to_string_comparison(error):
    judge = AnswerJudge(FakeLLM(error=error))

    assert judge.judge(" 1 / 2 ", "1/2", "Simplify 2/4").correct is True
    wrong = judge.judge("2/4", "1/2", "Simplify 2/4")
    assert wrong.correct is False
    assert wrong.fallback is True


def test_judge_falls_back_on_malformed_reply():
    judgment = AnswerJudge(FakeLLM(content="definitely correct")).judge("8", "8", "4 + 4")
    assert judgment.fallback is True
    assert judgment.correct is True


# ==================== Skill Identifier ====================

def identify(skill_graph, payload, **kwargs):
    llm = FakeLLM(content=json.dumps(payload))
    return SkillIdentifier(skill_graph, llm).identify("Solve 2x + 3 = 11", **kwargs), llm


def test_identify_drops_unknown_ids(skill_graph):
    result, llm = identify(skill_graph, {
        "primarySkill": "two_step_equations",
        "requiredSkills": ["two_step_equations", "made_up_skill", "integers"],
        "reasoning": "Two inverse operations",
    }, image_url="https://example.com/p.png")

    assert result.primary_skill == "two_step_equations"
    assert result.required_skills == ["two_step_equations", "integers"]
    assert result.reasoning == "Two inverse operations"
    assert "https://example.com/p.png" in llm.calls[0][1].content
    assert "two_step_equations" in llm.calls[0][0].content


def test_identify_replaces_invalid_primary(skill_graph):
    result, _ = identify(skill_graph, {"primarySkill": "made_up", "requiredSkills": ["integers"]})
    assert result.primary_skill == "integers"

    result, _ = identify(skill_graph, {"primarySkill": "made_up", "requiredSkills": ["also_made_up"]})
    assert result.primary_skill is None
    assert result.required_skills == []


def test_identify_rejects_bad_structure(skill_graph):
    with pytest.raises(ExternalServiceError):
        identify(skill_graph, {"primarySkill": "integers", "requiredSkills": "integers"})


def test_identify_errors(skill_graph):
    with pytest.raises(InvalidInputError):
        SkillIdentifier(skill_graph, FakeLLM(content="{}")).identify("  ")

    with pytest.raises(ExternalServiceTimeout):
        SkillIdentifier(skill_graph, FakeLLM(error=TimeoutError())).identify("Solve x + 1 = 2")

    with pytest.raises(ExternalServiceError):
        SkillIdentifier(skill_graph, FakeLLM(error=ConnectionError("reset"))).identify("Solve x + 1 = 2")
