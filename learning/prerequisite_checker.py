"""
Prerequisite Checker - Readiness decision and recommendations.

A learner is ready for a skill when none of its layer1 (direct)
prerequisites is weak. Layer2 weakness never blocks readiness; it only
shows up in the recommendations.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from .errors import InvalidInputError
from .models import ProficiencyLevel, SkillSummary

logger = logging.getLogger(__name__)


@dataclass
class WeakSkill:
    """A prerequisite that still needs practice."""
    id: str
    name: str
    description: str
    level: ProficiencyLevel
    layer: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "level": self.level.value,
            "layer": self.layer,
        }


@dataclass
class ReadinessResult:
    ready: bool
    weak_skills: List[WeakSkill] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ready": self.ready,
            "weak_skills": [s.to_dict() for s in self.weak_skills],
            "recommendations": list(self.recommendations),
        }


def generate_recommendations(weak_skills: List[WeakSkill]) -> List[str]:
    """
    Build recommendation text.

    Unknown skills come first, then skills being learned, then one closing
    message picked by how many weak skills there are.
    """
    if not weak_skills:
        return ["You are ready to tackle this skill! Your prerequisite knowledge is solid."]

    recommendations = []

    unknown = [s.name for s in weak_skills if s.level == ProficiencyLevel.UNKNOWN]
    learning = [s.name for s in weak_skills if s.level == ProficiencyLevel.LEARNING]

    if unknown:
        recommendations.append(
            f"Practice these foundational skills first: {', '.join(unknown)}. "
            "These are essential prerequisites you haven't explored yet."
        )

    if learning:
        recommendations.append(
            f"Strengthen your understanding of: {', '.join(learning)}. "
            "You've started learning these, but more practice will help."
        )

    if len(weak_skills) == 1:
        recommendations.append(
            f"Focus on mastering {weak_skills[0].name} before moving forward. "
            "This will make the main skill much easier."
        )
    elif len(weak_skills) <= 3:
        recommendations.append(
            "Practice these skills one at a time. Start with the most fundamental skill and work your way up."
        )
    else:
        recommendations.append(
            "You have several prerequisite skills to practice. Don't worry - we'll guide you through them step by step!"
        )

    return recommendations


class PrerequisiteChecker:
    """Readiness checks built on the skill graph and the proficiency tracker."""

    def __init__(self, skill_graph, tracker):
        self.skill_graph = skill_graph
        self.tracker = tracker

    def _level_for(self, user_id: str, skill_id: str) -> ProficiencyLevel:
        """Current level, treating a store read failure as unknown."""
        try:
            return self.tracker.get_proficiency(user_id, skill_id).level
        except InvalidInputError:
            raise
        except Exception as e:
            logger.warning(
                f"[PrerequisiteChecker] Error checking proficiency for {skill_id}, assuming unknown: {e}"
            )
            return ProficiencyLevel.UNKNOWN

    def check_readiness(self, user_id: str, skill_id: str) -> ReadinessResult:
        """
        Decide whether a learner is ready for a skill.

        Raises:
            InvalidInputError: empty user_id or skill_id
            NotFoundError: skill_id is not in the graph
        """
        if not user_id or not isinstance(user_id, str):
            raise InvalidInputError("user_id is required and must be a non-empty string")
        if not skill_id or not isinstance(skill_id, str):
            raise InvalidInputError("skill_id is required and must be a non-empty string")

        layers = [
            (1, self.skill_graph.get_prerequisites(skill_id, 1)),
            (2, self.skill_graph.get_prerequisites(skill_id, 2)),
        ]

        weak_skills: List[WeakSkill] = []
        seen = set()
        ready = True

        for layer, prerequisites in layers:
            for prereq in prerequisites:
                if prereq.id in seen:
                    continue
                seen.add(prereq.id)

                level = self._level_for(user_id, prereq.id)
                if not level.is_weak:
                    continue

                weak_skills.append(self._weak(prereq, level, layer))
                if layer == 1:
                    ready = False

        result = ReadinessResult(
            ready=ready,
            weak_skills=weak_skills,
            recommendations=generate_recommendations(weak_skills),
        )

        logger.info(
            f"[PrerequisiteChecker] {user_id} readiness for '{skill_id}': "
            f"{'READY' if ready else 'NOT READY'} (weak: {[s.id for s in weak_skills] or 'none'})"
        )
        return result

    @staticmethod
    def _weak(prereq: SkillSummary, level: ProficiencyLevel, layer: int) -> WeakSkill:
        return WeakSkill(
            id=prereq.id,
            name=prereq.name,
            description=prereq.description,
            level=level,
            layer=layer,
        )
