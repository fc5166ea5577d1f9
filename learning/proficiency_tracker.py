"""
Proficiency Tracker - Per-(user, skill) practice counters and level classification.

Levels are a deterministic function of attempt count and success rate:
    unknown    -> never practiced
    learning   -> 1-4 problems, or not yet meeting a higher bar
    proficient -> 5+ problems at 70%+
    mastered   -> 10+ problems at 90%+
"""

import logging
from typing import Dict

from .errors import InvalidInputError
from .models import ProficiencyLevel, ProficiencyRecord, utcnow

logger = logging.getLogger(__name__)


def classify_level(problems_solved: int, success_rate: float) -> ProficiencyLevel:
    """
    Classify a proficiency level.

    Evaluated most demanding tier first; the first match wins, so a record
    that meets both the mastered and proficient bars is mastered.
    """
    if problems_solved == 0:
        return ProficiencyLevel.UNKNOWN

    if problems_solved < 5:
        return ProficiencyLevel.LEARNING

    if problems_solved >= 10 and success_rate >= 0.9:
        return ProficiencyLevel.MASTERED

    if problems_solved >= 5 and success_rate >= 0.7:
        return ProficiencyLevel.PROFICIENT

    return ProficiencyLevel.LEARNING


def apply_attempt(record: ProficiencyRecord, correct: bool) -> ProficiencyRecord:
    """Return the record that results from one more attempt."""
    problems_solved = record.problems_solved + 1
    success_count = record.success_count + (1 if correct else 0)
    return ProficiencyRecord(
        level=classify_level(problems_solved, success_count / problems_solved),
        problems_solved=problems_solved,
        success_count=success_count,
        last_practiced=utcnow(),
    )


class ProficiencyTracker:
    """
    Proficiency ledger on top of a ProficiencyStore.

    The store guarantees that update() is atomic per (user, skill) key;
    this class owns the counting and classification rules.
    """

    def __init__(self, store):
        self.store = store

    @staticmethod
    def _validate(user_id: str, skill_id: str):
        if not user_id or not isinstance(user_id, str):
            raise InvalidInputError("user_id is required and must be a non-empty string")
        if not skill_id or not isinstance(skill_id, str):
            raise InvalidInputError("skill_id is required and must be a non-empty string")

    # ==================== Updates ====================

    def update_proficiency(self, user_id: str, skill_id: str, correct: bool) -> ProficiencyRecord:
        """
        Record one attempt as a single atomic transaction.

        Args:
            user_id: Learner
            skill_id: Skill the attempt was for
            correct: Whether the attempt was judged correct

        Returns:
            The updated record
        """
        self._validate(user_id, skill_id)

        record = self.store.update(user_id, skill_id, lambda current: apply_attempt(current, correct))

        logger.info(
            f"[ProficiencyTracker] {user_id}/{skill_id}: {record.level.value} "
            f"({record.success_count}/{record.problems_solved})"
        )
        return record

    def reset_proficiency(self, user_id: str, skill_id: str) -> ProficiencyRecord:
        """Overwrite a record to the zero/unknown state (administrative use)."""
        self._validate(user_id, skill_id)

        record = ProficiencyRecord()
        self.store.put(user_id, skill_id, record)
        logger.info(f"[ProficiencyTracker] Reset proficiency for {user_id}/{skill_id}")
        return record

    # ==================== Reads ====================

    def get_proficiency(self, user_id: str, skill_id: str) -> ProficiencyRecord:
        """Get a record; a skill never practiced reads as the zero record."""
        self._validate(user_id, skill_id)
        return self.store.get(user_id, skill_id) or ProficiencyRecord()

    def get_all_proficiencies(self, user_id: str) -> Dict[str, ProficiencyRecord]:
        if not user_id:
            raise InvalidInputError("user_id is required and must be a non-empty string")
        return self.store.get_all(user_id)

    def get_proficiency_by_level(self, user_id: str, level: ProficiencyLevel) -> Dict[str, ProficiencyRecord]:
        """Get every practiced skill currently at one level."""
        level = ProficiencyLevel(level)
        return {
            skill_id: record
            for skill_id, record in self.get_all_proficiencies(user_id).items()
            if record.level == level
        }
