"""
Branching - When to leave the current problem for prerequisite practice, and where to go.

Prioritization for a branch target:
    - Unknown skills before skills being learned
    - Simpler skills (fewer prerequisites) first
    - Skills many others depend on first
    - At the main-problem level, skills used as deeper (layer2) prerequisites
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .models import ProficiencyLevel, ProficiencyRecord

CONFUSION_PHRASES = [
    "i don't know",
    "i'm not sure",
    "i'm stuck",
    "i don't understand",
    "i'm confused",
    "no idea",
    "help",
    "what is",
    "how do i",
    "can you explain",
]


class BranchReason(str, Enum):
    CONSISTENT_STRUGGLE = "consistent_struggle"
    EXPLICIT_CONFUSION = "explicit_confusion"
    INCORRECT_ATTEMPTS = "incorrect_attempts"
    PREREQUISITE_GAP = "prerequisite_gap"


@dataclass
class BranchDecision:
    should_branch: bool
    confidence: float  # 0-1
    explanation: str
    reason: Optional[BranchReason] = None

    def to_dict(self) -> dict:
        return {
            "should_branch": self.should_branch,
            "reason": self.reason.value if self.reason else None,
            "confidence": self.confidence,
            "explanation": self.explanation,
        }


@dataclass
class BranchSkillSelection:
    skill_id: str
    skill_name: str
    reason: str
    priority: int  # higher = more urgent

    def to_dict(self) -> dict:
        return {
            "skill_id": self.skill_id,
            "skill_name": self.skill_name,
            "reason": self.reason,
            "priority": self.priority,
        }


def _level(proficiencies: Dict[str, ProficiencyRecord], skill_id: str) -> ProficiencyLevel:
    record = proficiencies.get(skill_id)
    return record.level if record else ProficiencyLevel.UNKNOWN


def should_branch(
    student_response: str,
    required_skills: List[str],
    proficiencies: Dict[str, ProficiencyRecord],
    incorrect_attempts: int = 0
) -> BranchDecision:
    """Decide whether the learner should practice a prerequisite first."""
    response = (student_response or "").lower().strip()

    if any(phrase in response for phrase in CONFUSION_PHRASES):
        return BranchDecision(
            should_branch=True,
            reason=BranchReason.EXPLICIT_CONFUSION,
            confidence=0.9,
            explanation="Student explicitly indicated confusion or lack of understanding",
        )

    if incorrect_attempts >= 2:
        return BranchDecision(
            should_branch=True,
            reason=BranchReason.CONSISTENT_STRUGGLE,
            confidence=0.85,
            explanation=f"Student has made {incorrect_attempts} incorrect attempts, indicating difficulty",
        )

    weak = [s for s in required_skills if _level(proficiencies, s).is_weak]
    if len(weak) >= 2 and incorrect_attempts >= 1:
        return BranchDecision(
            should_branch=True,
            reason=BranchReason.PREREQUISITE_GAP,
            confidence=0.75,
            explanation=f"Student has weak proficiency in {len(weak)} prerequisite skills",
        )

    if incorrect_attempts >= 1 and required_skills:
        if all(_level(proficiencies, s) == ProficiencyLevel.UNKNOWN for s in required_skills):
            return BranchDecision(
                should_branch=True,
                reason=BranchReason.PREREQUISITE_GAP,
                confidence=0.6,
                explanation="Student has no recorded proficiency in required prerequisites",
            )

    return BranchDecision(
        should_branch=False,
        confidence=0.7,
        explanation="Student shows sufficient understanding or has not struggled enough to warrant branching",
    )


def select_branch_skill(
    weak_skills: List[str],
    skill_graph,
    current_depth: int,
    proficiencies: Dict[str, ProficiencyRecord]
) -> Optional[BranchSkillSelection]:
    """Pick the most urgent weak skill to practice. Ties keep input order."""
    best: Optional[BranchSkillSelection] = None

    for skill_id in weak_skills:
        if not skill_graph.validate_exists(skill_id):
            continue
        skill = skill_graph.get_skill(skill_id)
        level = _level(proficiencies, skill_id)
        score = 0
        reasons = []

        if level == ProficiencyLevel.UNKNOWN:
            score += 100
            reasons.append("No prior practice with this skill")
        elif level == ProficiencyLevel.LEARNING:
            score += 50
            record = proficiencies[skill_id]
            reasons.append(f"Currently learning ({record.success_count}/{record.problems_solved} correct)")

        total_prereqs = len(skill.layer1) + len(skill.layer2)
        if total_prereqs == 0:
            score += 50
            reasons.append("Base skill with no prerequisites")
        elif total_prereqs <= 2:
            score += 30
        else:
            score += 10

        score += 5 * len(skill_graph.get_dependents(skill_id))

        if current_depth == 0 and skill_graph.is_layer2_prerequisite(skill_id):
            score += 20

        if best is None or score > best.priority:
            best = BranchSkillSelection(
                skill_id=skill_id,
                skill_name=skill.name,
                reason=" - ".join(reasons) or "This skill needs practice",
                priority=score,
            )

    return best


def weak_skills_for_branching(
    current_skill_id: Optional[str],
    required_skills: List[str],
    skill_graph,
    proficiencies: Dict[str, ProficiencyRecord],
    current_depth: int
) -> List[str]:
    """
    Weak candidates appropriate for the current depth.

    At the main problem the required skills are candidates; inside a
    branch, the branch skill's layer2 prerequisites are.
    """
    if current_depth == 0:
        candidates = [s for s in required_skills if skill_graph.validate_exists(s)]
    elif current_skill_id and skill_graph.validate_exists(current_skill_id):
        candidates = list(skill_graph.get_skill(current_skill_id).layer2)
    else:
        candidates = []

    return [s for s in candidates if _level(proficiencies, s).is_weak]


def valid_branch_options(weak_skills: List[str], branch_history: List[str]) -> List[str]:
    """Drop skills already practiced this session."""
    return [s for s in weak_skills if s not in branch_history]


def can_branch_deeper(current_depth: int, max_depth: int) -> bool:
    return current_depth < max_depth


def should_offer_alternative_help(current_depth: int, max_depth: int) -> bool:
    return current_depth >= max_depth


def branch_message(skill_name: str, reason: str) -> str:
    """A friendly offer to practice a prerequisite."""
    name = skill_name.lower()
    messages = [
        f"I notice {name} might need some practice. Would you like to work on that first? {reason}",
        f"Let's build a strong foundation with {name}. {reason} Ready to practice?",
        f"I think practicing {name} would help here. {reason} Shall we try a few problems?",
        f"Before we continue, let's strengthen your {name} skills. {reason}",
    ]
    return random.choice(messages)


def alternative_help_message(skill_name: str) -> str:
    return (
        f"I see {skill_name.lower()} is challenging. Since we've already practiced several skills, "
        "let me try explaining it differently or we can work through it together step by step. "
        "Which would you prefer?"
    )
