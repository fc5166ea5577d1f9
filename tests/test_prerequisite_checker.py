"""Tests for learning/prerequisite_checker.py"""

import pytest

from learning.errors import InvalidInputError, NotFoundError
from learning.models import ProficiencyLevel, ProficiencyRecord
from learning.prerequisite_checker import PrerequisiteChecker, WeakSkill, generate_recommendations

MASTERED = ProficiencyRecord(level=ProficiencyLevel.MASTERED, problems_solved=10, success_count=10)
PROFICIENT = ProficiencyRecord(level=ProficiencyLevel.PROFICIENT, problems_solved=5, success_count=4)


@pytest.fixture
def checker(skill_graph, tracker):
    return PrerequisiteChecker(skill_graph, tracker)


def test_no_prerequisites_is_always_ready(checker):
    result = checker.check_readiness("user_1", "basic_arithmetic")
    assert result.ready is True
    assert result.weak_skills == []
    assert result.recommendations == [
        "You are ready to tackle this skill! Your prerequisite knowledge is solid."
    ]


def test_unknown_layer1_blocks_even_with_mastered_layer2(checker, proficiency_store):
    proficiency_store.put("user_1", "understanding_variables", MASTERED)
    proficiency_store.put("user_1", "basic_arithmetic", MASTERED)

    result = checker.check_readiness("user_1", "one_step_equations")

    assert result.ready is False
    assert [(s.id, s.level, s.layer) for s in result.weak_skills] == [
        ("integers", ProficiencyLevel.UNKNOWN, 1)
    ]
    assert result.recommendations[-1].startswith("Focus on mastering Integer Operations")


def test_weak_layer2_does_not_block(checker, proficiency_store):
    proficiency_store.put("user_1", "one_step_equations", PROFICIENT)
    proficiency_store.put("user_1", "order_of_operations", MASTERED)

    result = checker.check_readiness("user_1", "two_step_equations")

    assert result.ready is True
    assert [s.id for s in result.weak_skills] == ["understanding_variables", "integers"]
    assert all(s.layer == 2 for s in result.weak_skills)


def test_new_learner_lists_all_weak_prerequisites_once(checker, tracker):
    tracker.update_proficiency("user_1", "one_step_equations", correct=True)

    result = checker.check_readiness("user_1", "multi_step_equations")

    ids = [s.id for s in result.weak_skills]
    assert result.ready is False
    assert len(ids) == len(set(ids))
    assert ids[:3] == ["two_step_equations", "distributive_property", "combining_like_terms"]
    assert "one_step_equations" in ids  # learning, layer 2
    assert result.recommendations[0].startswith("Practice these foundational skills first")
    assert result.recommendations[1].startswith("Strengthen your understanding of: One-Step Equations")
    assert "several prerequisite skills" in result.recommendations[-1]


def test_unknown_skill(checker):
    with pytest.raises(NotFoundError):
        checker.check_readiness("user_1", "nonexistent_skill")


@pytest.mark.parametrize("user_id, skill_id", [
    ("", "integers"),
    ("user_1", ""),
    (None, "integers"),
])
def test_empty_ids_are_rejected(checker, user_id, skill_id):
    with pytest.raises(InvalidInputError):
        checker.check_readiness(user_id, skill_id)


def test_store_failure_reads_as_unknown(skill_graph):
    class BrokenTracker:
        def get_proficiency(self, user_id, skill_id):
            raise RuntimeError("store offline")

    result = PrerequisiteChecker(skill_graph, BrokenTracker()).check_readiness("user_1", "integers")
    assert result.ready is False
    assert result.weak_skills[0].level == ProficiencyLevel.UNKNOWN


def test_recommendation_buckets():
    def weak(n):
        return [WeakSkill(f"s{i}", f"Skill {i}", "", ProficiencyLevel.LEARNING, 1) for i in range(n)]

    assert generate_recommendations(weak(2))[-1].startswith("Practice these skills one at a time")
    assert generate_recommendations(weak(3))[-1].startswith("Practice these skills one at a time")
    assert len(generate_recommendations(weak(1))) == 2
