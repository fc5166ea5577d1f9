"""
Judging module - LLM-backed collaborators with deterministic fallbacks.

Components:
    - answer_judge: Answer equivalence (falls back to normalized string equality)
    - skill_identifier: Problem text -> primary and required skills
    - llm: Shared ChatOpenAI construction and bounded JSON invocation
"""

from .answer_judge import AnswerJudge, Judgment, fallback_judgment, normalize_answer
from .skill_identifier import SkillIdentifier, SkillIdentification

__all__ = [
    "AnswerJudge",
    "Judgment",
    "fallback_judgment",
    "normalize_answer",
    "SkillIdentifier",
    "SkillIdentification",
]
