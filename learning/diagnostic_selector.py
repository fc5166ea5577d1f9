"""
Diagnostic Question Selector - Picks up to three diagnostic questions for a stuck learner.

Cascade:
    1. First layer-1 diagnostic of each layer1 prerequisite, in stored order
    2. If fewer than two were found, first layer-2 diagnostic of each layer2 prerequisite
    3. If still nothing, up to two layer-1 diagnostics of the fallback skill itself

No randomness: output depends only on graph contents and the input ids.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from .errors import NotFoundError

logger = logging.getLogger(__name__)

MAX_QUESTIONS = 3
LAYER2_TOP_UP_BELOW = 2
FALLBACK_QUESTIONS = 2


@dataclass(frozen=True)
class DiagnosticQuestion:
    question: str
    skill_id: str
    skill_name: str
    layer: int

    def to_dict(self) -> dict:
        return {
            "question": self.question,
            "skill_id": self.skill_id,
            "skill_name": self.skill_name,
            "layer": self.layer,
        }


class DiagnosticQuestionSelector:

    def __init__(self, skill_graph, max_questions: int = MAX_QUESTIONS):
        self.skill_graph = skill_graph
        self.max_questions = max_questions

    def _collect(self, questions: List[DiagnosticQuestion], prereq_ids, layer: int):
        """Append the first question of each prerequisite's bank until full."""
        for prereq_id in prereq_ids:
            if len(questions) >= self.max_questions:
                return
            if not self.skill_graph.validate_exists(prereq_id):
                continue

            prereq = self.skill_graph.get_skill(prereq_id)
            bank = prereq.diagnostics(layer)
            if not bank:
                continue

            questions.append(DiagnosticQuestion(
                question=bank[0],
                skill_id=prereq.id,
                skill_name=prereq.name,
                layer=layer,
            ))

    def select_diagnostic_questions(
        self,
        primary_skill_id: Optional[str],
        fallback_skill_id: Optional[str] = None
    ) -> List[DiagnosticQuestion]:
        """
        Select diagnostic questions for a skill.

        Args:
            primary_skill_id: Skill the learner is stuck on
            fallback_skill_id: Skill from external identification, used when
                the primary skill's prerequisites yield nothing

        Returns:
            At most three questions, tagged with skill and layer

        Raises:
            NotFoundError: the primary skill is unknown and there is no
                usable fallback, or the fallback itself is unknown
        """
        questions: List[DiagnosticQuestion] = []

        if primary_skill_id and self.skill_graph.validate_exists(primary_skill_id):
            primary = self.skill_graph.get_skill(primary_skill_id)

            self._collect(questions, primary.layer1, layer=1)
            if len(questions) < LAYER2_TOP_UP_BELOW:
                self._collect(questions, primary.layer2, layer=2)
        elif not fallback_skill_id:
            raise NotFoundError(f"Skill not found: {primary_skill_id}")
        else:
            logger.warning(
                f"[DiagnosticSelector] Primary skill {primary_skill_id!r} unknown, using fallback {fallback_skill_id}"
            )

        if not questions and fallback_skill_id:
            fallback = self.skill_graph.get_skill(fallback_skill_id)
            for question in fallback.diagnostics_layer1[:FALLBACK_QUESTIONS]:
                questions.append(DiagnosticQuestion(
                    question=question,
                    skill_id=fallback.id,
                    skill_name=fallback.name,
                    layer=1,
                ))

        selected = questions[:self.max_questions]
        logger.info(f"[DiagnosticSelector] Selected {len(selected)} questions for {primary_skill_id}")
        return selected
