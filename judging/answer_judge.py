"""
Answer Judge - Decides whether a practice answer matches the expected solution.

Uses an LLM for equivalence (2/4 == 1/2, x + 5 == 5 + x, 8.0 == 8).
On timeout or any service error it degrades to normalized string
equality, so judging never blocks or fails a submission.
"""

import logging
import re
from dataclasses import dataclass

from langchain_core.messages import HumanMessage, SystemMessage

from learning.errors import ExternalServiceError
from .llm import build_chat_model, invoke_json

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a math tutor that validates student answers and provides "
    "constructive feedback. Always return valid JSON."
)


@dataclass
class Judgment:
    correct: bool
    feedback: str
    fallback: bool = False  # True when decided by string comparison

    def to_dict(self) -> dict:
        return {"correct": self.correct, "feedback": self.feedback, "fallback": self.fallback}


def normalize_answer(text: str) -> str:
    """Trim, lowercase and drop all whitespace."""
    return re.sub(r"\s+", "", (text or "").strip().lower())


def fallback_judgment(student_answer: str, expected_solution: str) -> Judgment:
    correct = normalize_answer(student_answer) == normalize_answer(expected_solution)
    return Judgment(
        correct=correct,
        feedback=(
            "Your answer is correct!"
            if correct
            else "Your answer doesn't match the expected solution. Please review the problem and try again."
        ),
        fallback=True,
    )


class AnswerJudge:
    """
    LLM-backed answer equivalence with a deterministic fallback.

    The chat model is created on first use, so a missing API key only
    turns judging into string comparison instead of failing at startup.
    """

    def __init__(self, llm=None):
        self.llm = llm

    def _prompt(self, student_answer: str, expected_solution: str, problem_text: str) -> str:
        return f"""You are a math tutor checking if a student's answer is correct.

Problem: {problem_text}

Expected Solution: {expected_solution}

Student's Answer: {student_answer}

Determine if the student's answer is mathematically equivalent to the expected solution. Consider:
- Algebraic equivalence (e.g., "2/4" = "1/2", "8.0" = "8")
- Different but equivalent forms (e.g., "x + 5" = "5 + x")
- Decimal vs fraction equivalence
- Simplified vs unsimplified forms

Return a JSON object with:
{{
  "correct": true or false,
  "feedback": "A brief explanation of why the answer is correct or incorrect (1-2 sentences)"
}}"""

    def judge(self, student_answer: str, expected_solution: str, problem_text: str) -> Judgment:
        """
        Judge one answer.

        Args:
            student_answer: What the learner typed
            expected_solution: Reference solution of the problem
            problem_text: The problem, for context

        Returns:
            Judgment; `fallback` is set when the LLM could not be used
        """
        messages = [
            SystemMessage(content=SYSTEM_PROMPT),
            HumanMessage(content=self._prompt(student_answer, expected_solution, problem_text)),
        ]

        try:
            if self.llm is None:
                self.llm = build_chat_model(temperature=0.3)
            result = invoke_json(self.llm, messages)
        except ExternalServiceError as e:
            logger.warning(f"[AnswerJudge] Falling back to string comparison: {e}")
            return fallback_judgment(student_answer, expected_solution)
        except Exception as e:
            # ChatOpenAI refuses to build without an API key
            logger.warning(f"[AnswerJudge] Chat model unavailable, falling back: {e}")
            return fallback_judgment(student_answer, expected_solution)

        return Judgment(
            correct=bool(result.get("correct")),
            feedback=str(result.get("feedback") or "Answer validated"),
        )
